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
"""Draw posterior samples with several NUTS chains."""
import logging

import blackjax
import jax
import jax.numpy as jnp
from blackjax.progress_bar import gen_scan_fn
from jax.flatten_util import ravel_pytree

from bridgejax.base import LogDensityFn, MCMCInfo, MCMCResult
from bridgejax.transforms import (
    check_bounds,
    log_jacobian,
    ravel_bounds,
    transform_from_real,
    transform_to_real,
)
from bridgejax.types import ArrayLikeTree, BoundsTree, PRNGKey

__all__ = ["run_mcmc"]

logger = logging.getLogger(__name__)


def run_mcmc(
    rng_key: PRNGKey,
    logdensity_fn: LogDensityFn,
    initial_position: ArrayLikeTree,
    *,
    lb: BoundsTree = None,
    ub: BoundsTree = None,
    num_chains: int = 3,
    num_warmup: int = 1000,
    num_samples: int = 1000,
    thinning: int = 1,
    init_jitter: float = 1.0,
    target_acceptance_rate: float = 0.8,
    progress_bar: bool = False,
) -> MCMCResult:
    """Sample from a posterior distribution with several NUTS chains.

    Bounded parameters are sampled on the real line, see
    `bridgejax.transforms`, and the draws are mapped back before they are
    returned. Each chain is first tuned with BlackJAX's window adaptation;
    these warmup draws are discarded.

    Parameters
    ----------
    rng_key
        The random state used by JAX's random numbers generator.
    logdensity_fn
        The unnormalized log posterior of the model.
    initial_position
        A position inside the bounds. Every chain starts from its image on
        the real line, perturbed by `Uniform(-init_jitter, init_jitter)` noise.
    lb, ub
        The parameter bounds, pytrees with the structure of
        `initial_position`. None means unbounded.
    num_chains
        Number of chains, run in parallel with `jax.vmap`.
    num_warmup
        Number of adaptation steps of each chain.
    num_samples
        Number of draws kept in each chain.
    thinning
        Number of NUTS transitions between two kept draws.
    init_jitter
        Half-width of the noise added to the initial position.
    target_acceptance_rate
        The acceptance rate targeted by the step size adaptation.
    progress_bar
        Whether to display progress bars while drawing the samples.

    Returns
    -------
    An `MCMCResult` whose samples have leaves of shape
    `(num_chains, num_samples, ...)`.

    """
    if num_chains < 1:
        raise ValueError(f"`num_chains` must be positive, got {num_chains}.")
    if num_warmup < 1:
        raise ValueError(f"`num_warmup` must be positive, got {num_warmup}.")
    if num_samples < 1:
        raise ValueError(f"`num_samples` must be positive, got {num_samples}.")
    if thinning < 1:
        raise ValueError(f"`thinning` must be positive, got {thinning}.")

    flat_position, unravel_fn = ravel_pytree(initial_position)
    flat_lb, flat_ub = ravel_bounds(initial_position, lb, ub)
    check_bounds(flat_position, flat_lb, flat_ub)

    def real_logdensity_fn(xi):
        position = unravel_fn(transform_from_real(xi, flat_lb, flat_ub))
        return logdensity_fn(position) + log_jacobian(xi, flat_lb, flat_ub)

    init_key, chains_key = jax.random.split(rng_key)
    initial_xi = transform_to_real(flat_position, flat_lb, flat_ub)
    initial_xi = initial_xi + jax.random.uniform(
        init_key,
        (num_chains,) + initial_xi.shape,
        minval=-init_jitter,
        maxval=init_jitter,
    )

    warmup = blackjax.window_adaptation(
        blackjax.nuts,
        real_logdensity_fn,
        target_acceptance_rate=target_acceptance_rate,
    )
    scan_fn = gen_scan_fn(num_samples, progress_bar)

    def one_chain(rng_key, xi):
        warmup_key, sample_key = jax.random.split(rng_key)
        (state, parameters), _ = warmup.run(warmup_key, xi, num_steps=num_warmup)
        nuts = blackjax.nuts(real_logdensity_fn, **parameters)

        def one_transition(state, rng_key):
            return nuts.step(rng_key, state)

        def one_draw(state, xs):
            _, rng_key = xs
            keys = jax.random.split(rng_key, thinning)
            state, infos = jax.lax.scan(one_transition, state, keys)
            info = MCMCInfo(
                acceptance_rate=infos.acceptance_rate.mean(),
                is_divergent=infos.is_divergent.any(),
            )
            return state, (state.position, info)

        keys = jax.random.split(sample_key, num_samples)
        _, (positions, info) = scan_fn(
            one_draw, state, (jnp.arange(num_samples), keys)
        )
        return positions, info, parameters

    logger.info(
        "Running %d chain(s): %d warmup steps and %d draws of %d transition(s)",
        num_chains,
        num_warmup,
        num_samples,
        thinning,
    )
    chain_keys = jax.random.split(chains_key, num_chains)
    positions, info, parameters = jax.jit(jax.vmap(one_chain))(chain_keys, initial_xi)

    num_divergent = int(info.is_divergent.sum())
    if num_divergent > 0:
        logger.warning(
            "%d of the %d draws followed a divergent transition",
            num_divergent,
            num_chains * num_samples,
        )

    flat_samples = transform_from_real(positions, flat_lb, flat_ub)
    samples = jax.vmap(jax.vmap(unravel_fn))(flat_samples)
    return MCMCResult(samples=samples, info=info, parameters=parameters)
