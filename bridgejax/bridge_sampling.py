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
"""Estimate log marginal likelihoods with bridge sampling.

The posterior draws of every chain are split in two halves. The first halves
are used to fit a Gaussian approximation of the posterior on the real line;
the second halves and as many draws from the proposal enter the iterative
scheme of :cite:p:`meng1996simulating`, see `bridgejax.iterative_scheme`.

Two proposals are available:

- `"normal"`: a multivariate normal distribution with the mean and the
  covariance of the fitting draws;
- `"warp3"`: Warp-III bridge sampling :cite:p:`meng2002warp`. The posterior is
  centered, scaled and symmetrized, and bridged with a standard normal
  distribution. This matches the first three moments of the two densities
  and often gives a more precise estimate.

"""
import logging
from functools import partial
from typing import Callable

import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import numpy as np
from blackjax.diagnostics import effective_sample_size
from jax.flatten_util import ravel_pytree
from jax.scipy.linalg import solve_triangular

from bridgejax.base import Bridge, BridgeListResult, BridgeResult, LogDensityFn
from bridgejax.iterative_scheme import run_iterative_scheme
from bridgejax.transforms import (
    check_bounds,
    log_jacobian,
    ravel_bounds,
    transform_from_real,
    transform_to_real,
)
from bridgejax.types import Array, ArrayLikeTree, BoundsTree, PRNGKey

__all__ = ["bridge_sampler", "normal_densities", "warp3_densities"]

logger = logging.getLogger(__name__)

METHODS = ("normal", "warp3")


def normal_densities(
    rng_key: PRNGKey,
    real_logdensity_fn: Callable,
    fit_draws: Array,
    iter_draws: Array,
    repetitions: int,
) -> tuple[Array, Array, Array, Array]:
    """Log densities of the posterior and of a fitted normal proposal.

    Parameters
    ----------
    rng_key
        The random state used to draw from the proposal.
    real_logdensity_fn
        The log posterior on the real line, including the log Jacobian, for a
        batch of flat positions.
    fit_draws
        The draws used to fit the proposal, shape `(n_fit, dim)`.
    iter_draws
        The posterior draws used in the iterative scheme, shape `(N1, dim)`.
    repetitions
        The number of independent batches of `N1` proposal draws.

    Returns
    -------
    `q11`, `q12` with shape `(N1,)` and `q21`, `q22` with shape
    `(repetitions, N1)`.

    """
    mean = fit_draws.mean(axis=0)
    cov = jnp.atleast_2d(jnp.cov(fit_draws, rowvar=False))
    proposal_draws = jax.random.multivariate_normal(
        rng_key, mean, cov, shape=(repetitions, iter_draws.shape[0])
    )

    q11 = real_logdensity_fn(iter_draws)
    q12 = stats.multivariate_normal.logpdf(iter_draws, mean, cov)
    q21 = jax.vmap(real_logdensity_fn)(proposal_draws)
    q22 = stats.multivariate_normal.logpdf(proposal_draws, mean, cov)
    return q11, q12, q21, q22


def warp3_densities(
    rng_key: PRNGKey,
    real_logdensity_fn: Callable,
    fit_draws: Array,
    iter_draws: Array,
    repetitions: int,
) -> tuple[Array, Array, Array, Array]:
    """Log densities of the warped posterior and of a standard normal.

    With :math:`m` and :math:`LL^T` the mean and covariance of the fitting
    draws, the warped posterior is

    .. math:: \\tilde{p}(z) = \\frac{|L|}{2} \\left(p(m - Lz) + p(m + Lz)\\right)

    which has the same normalizing constant as :math:`p`.

    The arguments and the returned values are those of `normal_densities`.

    """
    mean = fit_draws.mean(axis=0)
    cov = jnp.atleast_2d(jnp.cov(fit_draws, rowvar=False))
    chol = jnp.linalg.cholesky(cov)
    log_normalizer = jnp.sum(jnp.log(jnp.diag(chol))) - jnp.log(2.0)

    def warped_logdensity_fn(draws):
        reflected = 2.0 * mean - draws
        return log_normalizer + jnp.logaddexp(
            real_logdensity_fn(draws), real_logdensity_fn(reflected)
        )

    proposal_draws = jax.random.normal(
        rng_key, (repetitions,) + iter_draws.shape, dtype=iter_draws.dtype
    )
    warped_iter_draws = solve_triangular(chol, (iter_draws - mean).T, lower=True).T

    q11 = warped_logdensity_fn(iter_draws)
    q12 = stats.norm.logpdf(warped_iter_draws).sum(axis=-1)
    q21 = jax.vmap(warped_logdensity_fn)(mean + proposal_draws @ chol.T)
    q22 = stats.norm.logpdf(proposal_draws).sum(axis=-1)
    return q11, q12, q21, q22


def bridge_sampler(
    rng_key: PRNGKey,
    samples: ArrayLikeTree,
    logdensity_fn: LogDensityFn,
    *,
    lb: BoundsTree = None,
    ub: BoundsTree = None,
    method: str = "normal",
    repetitions: int = 1,
    use_neff: bool = True,
    maxiter: int = 1000,
    r0: float = 0.5,
    tol1: float = 1e-10,
    tol2: float = 1e-4,
) -> Bridge:
    """Estimate the log marginal likelihood of a model by bridge sampling.

    Parameters
    ----------
    rng_key
        The random state used to draw from the proposal.
    samples
        Posterior draws, a pytree whose leaves have shape
        `(num_chains, num_draws, ...)` such as `MCMCResult.samples`.
    logdensity_fn
        The unnormalized log posterior (log prior plus log likelihood) of a
        single position.
    lb, ub
        The parameter bounds, pytrees with the structure of a single
        position. None means unbounded.
    method
        `"normal"` or `"warp3"`.
    repetitions
        Number of independent estimates, each with new proposal draws.
    use_neff
        Whether to use the effective sample size of the posterior draws,
        instead of their number, in the weights of the bridge function.
    maxiter
        Maximum number of iterations of the iterative scheme.
    r0
        Starting value of the iterative scheme.
    tol1
        Tolerance on the relative change of the ratio of normalizing
        constants.
    tol2
        Tolerance on the relative change of the log marginal likelihood, used
        when the scheme fails to converge with `tol1` within `maxiter`.

    Returns
    -------
    A `BridgeResult` when `repetitions` is 1, a `BridgeListResult` otherwise.

    """
    if method not in METHODS:
        raise ValueError(f"Unknown method {method!r}, expected one of {METHODS}.")
    if repetitions < 1:
        raise ValueError(f"`repetitions` must be positive, got {repetitions}.")

    position = jax.tree_util.tree_map(lambda leaf: leaf[0, 0], samples)
    _, unravel_fn = ravel_pytree(position)
    flat_samples = jax.vmap(jax.vmap(lambda p: ravel_pytree(p)[0]))(samples)
    num_chains, num_draws, dim = flat_samples.shape
    if num_draws < 4:
        raise ValueError(
            f"At least 4 draws per chain are needed, got {num_draws}: half of"
            " them fit the proposal and the other half enter the iterative scheme."
        )

    flat_lb, flat_ub = ravel_bounds(position, lb, ub)
    check_bounds(flat_samples, flat_lb, flat_ub)
    real_samples = transform_to_real(flat_samples, flat_lb, flat_ub)

    num_fit = num_draws // 2
    fit_draws = real_samples[:, :num_fit].reshape(-1, dim)
    iter_chains = real_samples[:, num_fit:]
    iter_draws = iter_chains.reshape(-1, dim)
    num_iter = iter_draws.shape[0]

    if use_neff:
        neff = jnp.median(jnp.atleast_1d(effective_sample_size(iter_chains)))
    else:
        neff = jnp.asarray(num_iter, dtype=iter_draws.dtype)

    @jax.vmap
    def real_logdensity_fn(xi):
        flat_position = transform_from_real(xi, flat_lb, flat_ub)
        return logdensity_fn(unravel_fn(flat_position)) + log_jacobian(
            xi, flat_lb, flat_ub
        )

    densities_fn = normal_densities if method == "normal" else warp3_densities
    q11, q12, q21, q22 = jax.jit(densities_fn, static_argnums=(1, 4))(
        rng_key, real_logdensity_fn, fit_draws, iter_draws, repetitions
    )

    def iterate(q21, q22, r0, *, tol, criterion):
        return run_iterative_scheme(
            q11, q12, q21, q22, neff, r0, tol, maxiter=maxiter, criterion=criterion
        )

    result = jax.vmap(
        partial(iterate, tol=tol1, criterion="r"), in_axes=(0, 0, None)
    )(q21, q22, r0)
    logml, niter = result.logml, result.niter

    if not bool(jnp.all(result.converged)):
        logger.warning(
            "logml could not be estimated within maxiter, rerunning with adjusted"
            " starting value. Estimate might be more variable than usual."
        )
        restart = jnp.exp(0.5 * (result.log_r + result.log_r_old))
        rerun = jax.vmap(partial(iterate, tol=tol2, criterion="logml"))(
            q21, q22, restart
        )
        logml = jnp.where(result.converged, logml, rerun.logml)
        niter = jnp.where(result.converged, niter, maxiter + rerun.niter)
        if not bool(jnp.all(result.converged | rerun.converged)):
            logger.warning(
                "logml could not be estimated within maxiter, returning NaN."
            )

    logger.info(
        "Bridge sampling estimate(s) of the log marginal likelihood: %s"
        " (method %r, %s iteration(s))",
        np.array2string(np.asarray(logml), precision=5),
        method,
        np.asarray(niter),
    )

    if repetitions == 1:
        return BridgeResult(
            logml=logml[0],
            niter=niter[0],
            method=method,
            q11=q11,
            q12=q12,
            q21=q21[0],
            q22=q22[0],
        )
    return BridgeListResult(
        logml=logml, niter=niter, method=method, repetitions=repetitions
    )
