# Copyright 2020- The Blackjax Authors.
#
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
"""Diagnostics of the bridge sampling estimator.

Convergence diagnostics of the MCMC draws themselves, the effective sample size
and the potential scale reduction factor, come from `blackjax.diagnostics`.
"""
import numpy as np

from bridgejax.types import ArrayLike

__all__ = ["spectrum0_ar"]


def spectrum0_ar(input_array: ArrayLike) -> float:
    """Spectral density at frequency zero of a univariate series.

    An autoregressive model is fitted with the Yule-Walker equations, its order
    being chosen by AIC among :math:`0, \\dots, \\min(n - 1, \\lfloor 10
    \\log_{10} n \\rfloor)`. The spectral density at zero of the fitted model
    is

    .. math:: S(0) = \\frac{\\sigma^2}{(1 - \\sum_k \\phi_k)^2}

    where :math:`\\sigma^2` is the innovation variance and :math:`\\phi_k` the
    AR coefficients. For iid draws this is the variance of the series.

    Parameters
    ----------
    input_array
        A one dimensional series.

    Returns
    -------
    The spectral density at frequency zero; 0 for a constant series.

    """
    x = np.asarray(input_array, dtype=np.float64)
    if x.ndim != 1:
        raise ValueError(f"Expected a one dimensional series, got shape {x.shape}.")
    num_samples = x.shape[0]
    if num_samples < 2:
        raise ValueError("At least two values are needed to fit an AR model.")

    x = x - x.mean()
    order_max = int(min(num_samples - 1, np.floor(10 * np.log10(num_samples))))
    autocov = np.array(
        [x[: num_samples - k] @ x[k:] / num_samples for k in range(order_max + 1)]
    )
    if autocov[0] <= 0.0:
        return 0.0

    # Levinson-Durbin recursion, keeping the fit of every order.
    coefs = [np.zeros(0)]
    variances = [autocov[0]]
    for k in range(1, order_max + 1):
        phi, var = coefs[-1], variances[-1]
        kappa = (autocov[k] - phi @ autocov[k - 1 : 0 : -1]) / var
        coefs.append(np.append(phi - kappa * phi[::-1], kappa))
        variances.append(var * (1.0 - kappa**2))
    variances = np.asarray(variances)

    # The AIC includes one parameter for the mean.
    aic = num_samples * np.log(variances) + 2.0 * np.arange(order_max + 1) + 2.0
    order = int(np.argmin(aic))
    var_pred = variances[order] * num_samples / (num_samples - (order + 1))
    return float(var_pred / (1.0 - coefs[order].sum()) ** 2)
