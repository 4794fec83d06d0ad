from blackjax.diagnostics import effective_sample_size as ess
from blackjax.diagnostics import potential_scale_reduction as rhat

from bridgejax._version import __version__

from . import diagnostics, models
from .base import (
    BayesFactor,
    BridgeListResult,
    BridgeResult,
    ErrorMeasures,
    MCMCInfo,
    MCMCResult,
)
from .bridge_sampling import bridge_sampler
from .comparison import bf, logml, post_prob
from .error_measures import error_measures
from .mcmc import run_mcmc

__all__ = [
    "__version__",
    "run_mcmc",  # posterior sampling
    "bridge_sampler",  # marginal likelihood
    "error_measures",
    "logml",  # model comparison
    "bf",
    "post_prob",
    "ess",  # diagnostics, from blackjax
    "rhat",
    "diagnostics",
    "models",
    "BayesFactor",
    "BridgeListResult",
    "BridgeResult",
    "ErrorMeasures",
    "MCMCInfo",
    "MCMCResult",
]
