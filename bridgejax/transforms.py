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
"""Transformations between bounded parameters and the real line.

Every element of a flattened position is mapped independently, according to
its bounds:

- no finite bound: the identity;
- a finite lower bound `lb`: :math:`\\xi = \\log(x - lb)`;
- a finite upper bound `ub`: :math:`\\xi = \\log(ub - x)`;
- two finite bounds: :math:`\\xi = \\Phi^{-1}((x - lb) / (ub - lb))`.

"""
import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import numpy as np
from jax.flatten_util import ravel_pytree
from jax.scipy.special import ndtr, ndtri

from bridgejax.types import Array, ArrayLike, ArrayLikeTree, BoundsTree

__all__ = [
    "transform_to_real",
    "transform_from_real",
    "log_jacobian",
    "ravel_bounds",
    "check_bounds",
]


def _bound_types(lb: ArrayLike, ub: ArrayLike):
    has_lower = jnp.isfinite(lb)
    has_upper = jnp.isfinite(ub)
    lower_only = has_lower & ~has_upper
    upper_only = ~has_lower & has_upper
    both = has_lower & has_upper
    # Infinite bounds are replaced so that unused branches stay finite.
    safe_lb = jnp.where(has_lower, lb, 0.0)
    safe_ub = jnp.where(has_upper, ub, 1.0)
    return lower_only, upper_only, both, safe_lb, safe_ub


def transform_to_real(x: ArrayLike, lb: ArrayLike, ub: ArrayLike) -> Array:
    """Map bounded values onto the real line.

    Parameters
    ----------
    x
        Values with shape `(..., dim)`.
    lb
        Lower bounds with shape `(dim,)`, `-inf` when unbounded.
    ub
        Upper bounds with shape `(dim,)`, `inf` when unbounded.

    """
    lower_only, upper_only, both, lb, ub = _bound_types(lb, ub)
    xi = jnp.where(lower_only, jnp.log(jnp.where(lower_only, x - lb, 1.0)), x)
    xi = jnp.where(upper_only, jnp.log(jnp.where(upper_only, ub - x, 1.0)), xi)
    xi = jnp.where(
        both, ndtri(jnp.where(both, (x - lb) / (ub - lb), 0.5)), xi
    )
    return xi


def transform_from_real(xi: ArrayLike, lb: ArrayLike, ub: ArrayLike) -> Array:
    """Map real values back to the bounded space, see `transform_to_real`."""
    lower_only, upper_only, both, lb, ub = _bound_types(lb, ub)
    x = jnp.where(lower_only, jnp.exp(xi) + lb, xi)
    x = jnp.where(upper_only, ub - jnp.exp(xi), x)
    x = jnp.where(both, (ub - lb) * ndtr(xi) + lb, x)
    return x


def log_jacobian(xi: ArrayLike, lb: ArrayLike, ub: ArrayLike) -> Array:
    """Log absolute determinant of the Jacobian of `transform_from_real`.

    The transformation is elementwise, so the result is summed over the last
    axis and has shape `xi.shape[:-1]`.

    """
    lower_only, upper_only, both, lb, ub = _bound_types(lb, ub)
    log_det = jnp.where(lower_only | upper_only, xi, 0.0)
    log_det = jnp.where(
        both, jnp.log(ub - lb) + stats.norm.logpdf(xi), log_det
    )
    return jnp.sum(log_det, axis=-1)


def ravel_bounds(
    position: ArrayLikeTree, lb: BoundsTree = None, ub: BoundsTree = None
) -> tuple[Array, Array]:
    """Flatten lower and upper bounds the way `ravel_pytree` flattens positions.

    Parameters
    ----------
    position
        A single position, used for its structure and leaf shapes.
    lb, ub
        Either None (every parameter is unbounded) or a pytree with the
        structure of `position`. Each leaf is either None or a value that
        broadcasts to the shape of the matching position leaf.

    Returns
    -------
    The flat lower and upper bounds, aligned with `ravel_pytree(position)`.

    """
    flat_position, _ = ravel_pytree(position)
    dtype = flat_position.dtype

    def ravel_one(bounds, fill_value):
        if bounds is None:
            return jnp.full(flat_position.shape, fill_value, dtype=dtype)
        filled = jax.tree_util.tree_map(
            lambda bound, leaf: jnp.broadcast_to(
                jnp.asarray(fill_value if bound is None else bound, dtype=dtype),
                jnp.shape(leaf),
            ),
            bounds,
            position,
            is_leaf=lambda bound: bound is None,
        )
        flat_bounds, _ = ravel_pytree(filled)
        return flat_bounds

    return ravel_one(lb, -jnp.inf), ravel_one(ub, jnp.inf)


def check_bounds(samples: ArrayLike, lb: ArrayLike, ub: ArrayLike):
    """Raise a ValueError if the bounds or the samples are inconsistent.

    Parameters
    ----------
    samples
        Flat samples with shape `(..., dim)`.
    lb, ub
        Flat bounds with shape `(dim,)`.

    """
    samples, lb, ub = np.asarray(samples), np.asarray(lb), np.asarray(ub)
    if np.any(lb >= ub):
        raise ValueError("Lower bounds must be smaller than upper bounds.")
    if np.any(samples < lb) or np.any(samples > ub):
        raise ValueError("Some samples lie outside of the parameter bounds.")
