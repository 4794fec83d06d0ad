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
"""Fixed-point iteration of the optimal bridge sampling estimator.

Given draws from the posterior (index 1) and from a proposal (index 2), and
the log densities of both distributions evaluated at both sets of draws, the
ratio of normalizing constants :math:`r` solves :cite:p:`meng1996simulating`

.. math::

    r = \\frac{N_1}{N_2}
        \\frac{\\sum_j \\frac{\\ell_{2,j}}{s_1 \\ell_{2,j} + s_2 r}}
              {\\sum_i \\frac{1}{s_1 \\ell_{1,i} + s_2 r}}

with :math:`\\ell = p / g` the ratio of the unnormalized posterior to the
proposal density. All computations are carried out on the log scale, after
the ratios have been rescaled by their median over the posterior draws.

"""
from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax.scipy.special import logsumexp

from bridgejax.types import Array, ArrayLike

__all__ = ["IterativeSchemeState", "IterativeSchemeResult", "run_iterative_scheme"]

CRITERIA = ("r", "logml")


class IterativeSchemeState(NamedTuple):
    log_r: Array
    log_r_old: Array
    criterion_value: Array
    iteration: Array


class IterativeSchemeResult(NamedTuple):
    """Output of the iterative scheme.

    logml
        The log marginal likelihood, NaN if the scheme did not converge.
    niter
        The number of iterations performed.
    converged
        Whether the convergence criterion fell below the tolerance.
    log_r, log_r_old
        The last two iterates of the (rescaled) ratio, on the log scale.
        Their mean is a sensible starting point for a new run.

    """

    logml: Array
    niter: Array
    converged: Array
    log_r: Array
    log_r_old: Array


def run_iterative_scheme(
    q11: ArrayLike,
    q12: ArrayLike,
    q21: ArrayLike,
    q22: ArrayLike,
    neff: ArrayLike,
    r0: ArrayLike = 0.5,
    tol: float = 1e-10,
    maxiter: int = 1000,
    criterion: str = "r",
) -> IterativeSchemeResult:
    """Estimate a log marginal likelihood with the iterative scheme.

    Parameters
    ----------
    q11
        Unnormalized log posterior at the `N1` posterior draws.
    q12
        Log proposal density at the posterior draws.
    q21
        Unnormalized log posterior at the `N2` proposal draws.
    q22
        Log proposal density at the proposal draws.
    neff
        The effective number of posterior draws, which replaces `N1` in the
        weights of the bridge function.
    r0
        Starting value of the rescaled ratio.
    tol
        Tolerance on the convergence criterion.
    maxiter
        Maximum number of iterations.
    criterion
        `"r"` stops on the relative change of the ratio, `"logml"` on the
        relative change of the log marginal likelihood.

    """
    if criterion not in CRITERIA:
        raise ValueError(
            f"Unknown convergence criterion {criterion!r}, expected one of {CRITERIA}."
        )
    if maxiter < 1:
        raise ValueError(f"`maxiter` must be positive, got {maxiter}.")
    return _iterate(
        jnp.asarray(q11),
        jnp.asarray(q12),
        jnp.asarray(q21),
        jnp.asarray(q22),
        jnp.asarray(neff),
        jnp.log(r0),
        tol,
        maxiter=maxiter,
        criterion=criterion,
    )


@partial(jax.jit, static_argnames=("maxiter", "criterion"))
def _iterate(q11, q12, q21, q22, neff, log_r0, tol, *, maxiter, criterion):
    l1 = q11 - q12
    l2 = q21 - q22
    lstar = jnp.median(l1)
    l1 = l1 - lstar
    l2 = l2 - lstar
    num_posterior, num_proposal = l1.shape[0], l2.shape[0]
    dtype = l1.dtype

    log_s1 = jnp.log(neff) - jnp.log(neff + num_proposal)
    log_s2 = jnp.log(num_proposal) - jnp.log(neff + num_proposal)
    log_sizes_ratio = jnp.log(num_posterior) - jnp.log(num_proposal)

    def update(log_r):
        log_numerator = l2 - jnp.logaddexp(log_s1 + l2, log_s2 + log_r)
        log_denominator = -jnp.logaddexp(log_s1 + l1, log_s2 + log_r)
        return (
            log_sizes_ratio + logsumexp(log_numerator) - logsumexp(log_denominator)
        )

    def criterion_fn(log_r, log_r_old):
        if criterion == "r":
            return jnp.abs(1.0 - jnp.exp(log_r_old - log_r))
        logml, logml_old = log_r + lstar, log_r_old + lstar
        return jnp.abs((logml - logml_old) / logml)

    def cond_fn(state):
        return (state.iteration < maxiter) & (state.criterion_value > tol)

    def body_fn(state):
        log_r = update(state.log_r)
        return IterativeSchemeState(
            log_r=log_r,
            log_r_old=state.log_r,
            criterion_value=criterion_fn(log_r, state.log_r),
            iteration=state.iteration + 1,
        )

    log_r0 = jnp.asarray(log_r0, dtype=dtype)
    init_state = IterativeSchemeState(
        log_r=log_r0,
        log_r_old=log_r0,
        criterion_value=jnp.asarray(jnp.inf, dtype=dtype),
        iteration=jnp.asarray(0),
    )
    state = jax.lax.while_loop(cond_fn, body_fn, init_state)

    converged = state.criterion_value <= tol
    logml = jnp.where(converged, state.log_r + lstar, jnp.nan)
    return IterativeSchemeResult(
        logml=logml,
        niter=state.iteration,
        converged=converged,
        log_r=state.log_r,
        log_r_old=state.log_r_old,
    )
