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
"""Bayesian model comparison from log marginal likelihoods."""
import logging
from typing import Optional, Sequence, Union

import jax.numpy as jnp
import numpy as np
from jax.scipy.special import logsumexp

from bridgejax.base import BayesFactor, Bridge, BridgeListResult, BridgeResult
from bridgejax.types import Array, ArrayLike

__all__ = ["logml", "bf", "post_prob"]

logger = logging.getLogger(__name__)

LogMLLike = Union[Bridge, ArrayLike]


def logml(x: LogMLLike) -> Array:
    """Return the log marginal likelihood held by a bridge sampling result.

    Plain numbers and arrays are taken to be log marginal likelihoods already.
    """
    if isinstance(x, (BridgeResult, BridgeListResult)):
        return jnp.asarray(x.logml)
    return jnp.asarray(x)


def _aligned_logmls(xs: Sequence[LogMLLike]) -> Array:
    """Stack log marginal likelihoods into a `(repetitions, num_models)` array."""
    logmls = [jnp.atleast_1d(logml(x)) for x in xs]
    for value in logmls:
        if value.ndim != 1:
            raise ValueError(
                "Log marginal likelihoods must be scalars or vectors of repetitions."
            )
    lengths = {value.shape[0] for value in logmls} - {1}
    if len(lengths) > 1:
        raise ValueError(
            "All models must have the same number of repetitions, "
            f"got {sorted(lengths)}."
        )
    num_repetitions = lengths.pop() if lengths else 1
    return jnp.stack(
        [jnp.broadcast_to(value, (num_repetitions,)) for value in logmls], axis=-1
    )


def bf(x1: LogMLLike, x2: LogMLLike, log: bool = False) -> BayesFactor:
    """Bayes factor in favor of the first model over the second.

    Parameters
    ----------
    x1, x2
        Bridge sampling results, or log marginal likelihoods.
    log
        Whether to return the log Bayes factor.

    Returns
    -------
    A `BayesFactor`. With repeated estimates the Bayes factor is computed for
    every repetition.

    """
    logmls = _aligned_logmls([x1, x2])
    log_bf = logmls[:, 0] - logmls[:, 1]
    if log_bf.shape[0] == 1 and all(jnp.ndim(logml(x)) == 0 for x in (x1, x2)):
        log_bf = log_bf[0]
    return BayesFactor(bf=log_bf if log else jnp.exp(log_bf), log=log)


def post_prob(
    *xs: LogMLLike,
    prior_prob: Optional[ArrayLike] = None,
    model_names: Optional[Sequence[str]] = None,
) -> dict:
    """Posterior model probabilities.

    .. math:: p(M_k \\mid y) = \\frac{p(y \\mid M_k) p(M_k)}{\\sum_j p(y \\mid M_j) p(M_j)}

    Parameters
    ----------
    xs
        Two or more bridge sampling results, or log marginal likelihoods.
    prior_prob
        Prior model probabilities, uniform by default. They must sum to one.
    model_names
        Names of the models, `"model1"`, `"model2"`, ... by default.

    Returns
    -------
    A dictionary mapping each model name to its posterior probability, one per
    repetition when the estimates were repeated.

    """
    num_models = len(xs)
    if num_models < 2:
        raise ValueError("At least two models are needed to compute posterior probabilities.")

    if prior_prob is None:
        prior_prob = jnp.full((num_models,), 1.0 / num_models)
    prior_prob = jnp.asarray(prior_prob)
    if prior_prob.shape != (num_models,):
        raise ValueError(
            f"Got {num_models} models but {prior_prob.size} prior probabilities."
        )
    if not np.isclose(float(prior_prob.sum()), 1.0):
        raise ValueError("Prior model probabilities do not sum to one.")

    if model_names is None:
        model_names = [f"model{k + 1}" for k in range(num_models)]
    model_names = list(model_names)
    if len(model_names) != num_models:
        raise ValueError(f"Got {num_models} models but {len(model_names)} names.")

    logmls = _aligned_logmls(xs)
    # Repetitions are normalized separately; only those with a NaN are lost.
    missing = jnp.any(jnp.isnan(logmls), axis=-1, keepdims=True)
    if bool(jnp.any(missing)):
        logger.warning(
            "NaNs in logml values. No posterior probabilities calculated for "
            "%d of %d repetition(s).",
            int(missing.sum()),
            missing.shape[0],
        )
    log_weights = jnp.where(missing, 0.0, logmls) + jnp.log(prior_prob)
    probabilities = jnp.exp(
        log_weights - logsumexp(log_weights, axis=-1, keepdims=True)
    )
    probabilities = jnp.where(missing, jnp.nan, probabilities)

    if probabilities.shape[0] == 1:
        probabilities = probabilities[0]
        return {name: probabilities[k] for k, name in enumerate(model_names)}
    return {name: probabilities[:, k] for k, name in enumerate(model_names)}
