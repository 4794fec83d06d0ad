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
from typing import NamedTuple, Union

from typing_extensions import Protocol

from .types import Array, ArrayLikeTree, ArrayTree

Position = ArrayLikeTree


class LogDensityFn(Protocol):
    """The unnormalized log posterior of a model.

    Models are plain functions of a single position (a pytree of parameter
    values) that return the sum of the log prior and the log likelihood. The
    data is closed over when the function is built, so that the same callable
    can be handed to the MCMC runner and to the bridge sampler.

    """

    def __call__(self, position: Position) -> Array:
        """Evaluate the unnormalized log posterior.

        Parameters
        ----------
        position
           A single parameter value, on the constrained scale.

        Returns
        -------
        A scalar, the log prior plus the log likelihood at `position`.

        """


class MCMCInfo(NamedTuple):
    """Per-draw information about the NUTS transitions.

    acceptance_rate
        The average acceptance probability along the trajectory.
    is_divergent
        Whether the trajectory diverged.

    """

    acceptance_rate: Array
    is_divergent: Array


class MCMCResult(NamedTuple):
    """The output of `run_mcmc`.

    samples
        The posterior draws on the constrained scale, every leaf with shape
        `(num_chains, num_samples, ...)`.
    info
        The `MCMCInfo` of every retained draw.
    parameters
        The step size and inverse mass matrix adapted for each chain.

    """

    samples: ArrayTree
    info: MCMCInfo
    parameters: dict


class BridgeResult(NamedTuple):
    """Bridge sampling estimate of a log marginal likelihood.

    The log densities are kept so that the estimation error can be assessed
    afterwards, see `bridgejax.error_measures`.

    logml
        The estimated log marginal likelihood, NaN if the iterative scheme
        failed to converge.
    niter
        The number of iterations of the iterative scheme.
    method
        The bridge sampling method, `"normal"` or `"warp3"`.
    q11
        Log posterior (transformed scale) evaluated at the posterior draws.
    q12
        Log proposal density evaluated at the posterior draws.
    q21
        Log posterior (transformed scale) evaluated at the proposal draws.
    q22
        Log proposal density evaluated at the proposal draws.

    """

    logml: Array
    niter: Array
    method: str
    q11: Array
    q12: Array
    q21: Array
    q22: Array


class BridgeListResult(NamedTuple):
    """Bridge sampling estimates obtained with several repetitions."""

    logml: Array
    niter: Array
    method: str
    repetitions: int


Bridge = Union[BridgeResult, BridgeListResult]


class ErrorMeasures(NamedTuple):
    """Approximate errors of a bridge sampling estimate.

    For a single estimate `re2` is the approximate relative mean-squared
    error, `cv` its square root and `percentage` the coefficient of variation
    formatted as a percentage. For repeated estimates `min`, `max` and `iqr`
    summarize the spread of the estimates. Fields that do not apply are None.

    """

    re2: Union[float, None] = None
    cv: Union[float, None] = None
    percentage: Union[str, None] = None
    min: Union[float, None] = None
    max: Union[float, None] = None
    iqr: Union[float, None] = None


class BayesFactor(NamedTuple):
    """A Bayes factor, possibly on the log scale."""

    bf: Array
    log: bool
