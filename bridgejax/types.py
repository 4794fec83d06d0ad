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
from typing import Any, Iterable, Mapping, Optional, Union

import jax
from jax.typing import ArrayLike

"""
We use:
- `ArrayLike` and `ArrayLikeTree` to annotate function input,
- `Array` and `ArrayTree` to annotate function output.

Posterior samples are pytrees whose leaves carry two leading axes, the chain
and the draw, e.g. `{"mu": (3, 1000), "theta": (3, 1000, 20)}`. Bounds are
pytrees with the structure of a single position, `None` standing for an
unbounded parameter.
"""
#: JAX PyTrees
Array = jax.Array
ArrayTree = Union[jax.Array, Iterable["ArrayTree"], Mapping[Any, "ArrayTree"]]
ArrayLikeTree = Union[
    ArrayLike, Iterable["ArrayLikeTree"], Mapping[Any, "ArrayLikeTree"]
]

#: Lower or upper bounds of the parameters
BoundsTree = Optional[ArrayLikeTree]

#: JAX PRNGKey
PRNGKey = jax.Array
