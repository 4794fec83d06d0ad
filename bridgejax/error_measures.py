# Copyright 2020- The Blackjax Authors.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Approximate errors of bridge sampling estimates."""
import logging

import jax.numpy as jnp
import numpy as np

from bridgejax.base import Bridge, BridgeListResult, ErrorMeasures
from bridgejax.diagnostics import spectrum0_ar

__all__ = ["error_measures"]

logger = logging.getLogger(__name__)


def error_measures(bridge: Bridge) -> ErrorMeasures:
    """Quantify the uncertainty of a bridge sampling estimate.

    For a single estimate obtained with the `"normal"` method, this returns
    the approximate relative mean-squared error of the marginal likelihood
    :cite:p:`fruhwirth2004estimating`

    .. math::

        RE^2 = \\frac{1}{N_2} \\frac{V(f_1)}{E(f_1)^2}
             + \\frac{\\rho_{f_2}(0)}{N_1} \\frac{V(f_2)}{E(f_2)^2}

    where :math:`f_1 = p / (s_1 p + s_2 g)` is evaluated at the proposal draws,
    :math:`f_2 = g / (s_1 p + s_2 g)` at the posterior draws, :math:`p` is
    the normalized posterior, :math:`g` the proposal and :math:`\\rho_{f_2}(0)`
    the spectral density at frequency zero of :math:`f_2`, estimated from an
    autoregressive fit by `bridgejax.diagnostics.spectrum0_ar`.

    For repeated estimates, the minimum, maximum and interquartile range of
    the log marginal likelihoods are returned instead.

    """
    if isinstance(bridge, BridgeListResult):
        logml = np.asarray(bridge.logml)
        q25, q75 = np.percentile(logml, [25, 75])
        return ErrorMeasures(
            min=float(np.min(logml)), max=float(np.max(logml)), iqr=float(q75 - q25)
        )

    if bridge.method == "warp3":
        raise NotImplementedError(
            "Error measures are only available for the 'normal' method; "
            "use repetitions to assess the variability of 'warp3' estimates."
        )

    logml = bridge.logml
    if not bool(jnp.isfinite(logml)):
        logger.warning("The log marginal likelihood is not finite, errors are NaN.")
        return ErrorMeasures(re2=float("nan"), cv=float("nan"), percentage="nan%")

    num_posterior, num_proposal = bridge.q11.shape[0], bridge.q22.shape[0]
    log_s1 = jnp.log(num_posterior / (num_posterior + num_proposal))
    log_s2 = jnp.log(num_proposal / (num_posterior + num_proposal))

    f1 = jnp.exp(
        -jnp.logaddexp(log_s1, log_s2 + bridge.q22 - bridge.q21 + logml)
    )
    f2 = jnp.exp(
        bridge.q12
        - jnp.logaddexp(log_s1 + bridge.q11 - logml, log_s2 + bridge.q12)
    )

    rho_f2 = spectrum0_ar(f2)
    term1 = jnp.var(f1, ddof=1) / jnp.mean(f1) ** 2 / num_proposal
    term2 = rho_f2 * jnp.var(f2, ddof=1) / jnp.mean(f2) ** 2 / num_posterior
    re2 = float(term1 + term2)
    cv = float(np.sqrt(re2))
    return ErrorMeasures(re2=re2, cv=cv, percentage=f"{cv:.1%}")
