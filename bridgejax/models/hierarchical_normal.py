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
"""Two competing hierarchical normal models.

Observations :math:`y_i` are normal around group means :math:`\\theta_i`,
which are themselves normal around a grand mean:

.. math::

    y_i \\sim N(\\theta_i, 1), \\quad
    \\theta_i \\sim N(\\mu, \\tau^2), \\quad
    \\tau^{-2} \\sim \\mathrm{Gamma}(1, 1).

Under :math:`H_0` the grand mean is zero; under :math:`H_1` it is unknown
with prior :math:`\\mu \\sim N(0, 1)`.

Since :math:`y_i \\mid \\mu, \\tau^2 \\sim N(\\mu, \\tau^2 + 1)`, the marginal
likelihood of both models reduces to a one dimensional integral over
:math:`\\tau^{-2}`, which is computed by quadrature to check the bridge
sampling estimates.
"""
from typing import Tuple

import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import numpy as np
from scipy.integrate import quad

from bridgejax.base import LogDensityFn
from bridgejax.types import Array, ArrayLike, PRNGKey

__all__ = [
    "simulate_data",
    "h0_logdensity",
    "h1_logdensity",
    "h0_bounds",
    "h1_bounds",
    "h0_initial_position",
    "h1_initial_position",
    "h0_exact_logml",
    "h1_exact_logml",
]


def simulate_data(
    rng_key: PRNGKey,
    num_observations: int = 20,
    mu: float = 0.0,
    tau2: float = 0.5,
    sigma2: float = 1.0,
) -> Array:
    """Draw observations from the hierarchical normal model."""
    theta_key, y_key = jax.random.split(rng_key)
    theta = mu + jnp.sqrt(tau2) * jax.random.normal(theta_key, (num_observations,))
    return theta + jnp.sqrt(sigma2) * jax.random.normal(y_key, (num_observations,))


def _log_prior_and_likelihood(y, inv_tau2, theta, mu):
    log_prior = stats.gamma.logpdf(inv_tau2, 1.0)
    log_prior += stats.norm.logpdf(theta, mu, jnp.sqrt(1.0 / inv_tau2)).sum()
    return log_prior + stats.norm.logpdf(y, theta, 1.0).sum()


def h0_logdensity(y: ArrayLike) -> LogDensityFn:
    """Unnormalized log posterior of the model with :math:`\\mu = 0`.

    Positions are dictionaries with keys `inv_tau2` and `theta`.
    """
    y = jnp.asarray(y)

    def logdensity_fn(position):
        return _log_prior_and_likelihood(
            y, position["inv_tau2"], position["theta"], 0.0
        )

    return logdensity_fn


def h1_logdensity(y: ArrayLike) -> LogDensityFn:
    """Unnormalized log posterior of the model with unknown :math:`\\mu`.

    Positions are dictionaries with keys `inv_tau2`, `theta` and `mu`.
    """
    y = jnp.asarray(y)

    def logdensity_fn(position):
        log_posterior = _log_prior_and_likelihood(
            y, position["inv_tau2"], position["theta"], position["mu"]
        )
        return log_posterior + stats.norm.logpdf(position["mu"], 0.0, 1.0)

    return logdensity_fn


def h0_bounds(num_observations: int) -> Tuple[dict, None]:
    """Lower and upper bounds of the parameters of H0: only `inv_tau2 >= 0`."""
    del num_observations
    return {"inv_tau2": 0.0, "theta": None}, None


def h1_bounds(num_observations: int) -> Tuple[dict, None]:
    """Lower and upper bounds of the parameters of H1: only `inv_tau2 >= 0`."""
    del num_observations
    return {"inv_tau2": 0.0, "theta": None, "mu": None}, None


def h0_initial_position(num_observations: int) -> dict:
    """A starting point for H0, with unit precision and all group means at zero."""
    return {"inv_tau2": jnp.array(1.0), "theta": jnp.zeros(num_observations)}


def h1_initial_position(num_observations: int) -> dict:
    """A starting point for H1, with the grand mean at zero as well."""
    return {
        "inv_tau2": jnp.array(1.0),
        "theta": jnp.zeros(num_observations),
        "mu": jnp.array(0.0),
    }


def _integrate_inv_tau2(log_integrand_fn) -> float:
    """Log of the integral of `exp(log_integrand_fn)` over the positive line.

    The integral is computed over `u = log(inv_tau2)`, rescaled by the
    maximum of the integrand.
    """

    def log_integrand_u(u):
        return log_integrand_fn(np.exp(u)) + u

    grid = np.linspace(-30.0, 30.0, 2001)
    values = np.array([log_integrand_u(u) for u in grid])
    shift, peak = values.max(), grid[values.argmax()]
    value, _ = quad(
        lambda u: np.exp(log_integrand_u(u) - shift),
        -30.0,
        30.0,
        points=[peak],
        limit=200,
    )
    return float(shift + np.log(value))


def h0_exact_logml(y: ArrayLike) -> float:
    """Log marginal likelihood of :math:`H_0`, integrated numerically."""
    y = np.asarray(y, dtype=np.float64)
    num_observations = y.shape[0]
    sum_sq = np.sum(y**2)

    def log_integrand_fn(inv_tau2):
        variance = 1.0 / inv_tau2 + 1.0
        log_likelihood = -0.5 * num_observations * np.log(
            2.0 * np.pi * variance
        ) - sum_sq / (2.0 * variance)
        return log_likelihood - inv_tau2

    return _integrate_inv_tau2(log_integrand_fn)


def h1_exact_logml(y: ArrayLike) -> float:
    """Log marginal likelihood of :math:`H_1`, integrated numerically.

    With :math:`\\mu` integrated out, :math:`y \\sim N(0, aI + J)` where
    :math:`a = \\tau^2 + 1` and :math:`J` is the matrix of ones.
    """
    y = np.asarray(y, dtype=np.float64)
    num_observations = y.shape[0]
    sum_sq, sum_y = np.sum(y**2), np.sum(y)

    def log_integrand_fn(inv_tau2):
        a = 1.0 / inv_tau2 + 1.0
        log_det = (num_observations - 1) * np.log(a) + np.log(a + num_observations)
        quad_form = (sum_sq - sum_y**2 / (a + num_observations)) / a
        log_likelihood = -0.5 * (
            num_observations * np.log(2.0 * np.pi) + log_det + quad_form
        )
        return log_likelihood - inv_tau2

    return _integrate_inv_tau2(log_integrand_fn)
