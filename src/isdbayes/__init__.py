"""
Hierarchical Bayesian estimation of size-spectrum (bounded power-law) exponents.

Contains the PLB log-density kernel, inverse-CDF simulation and aggregation,
model specifications, a built-in Metropolis sampler (PyMC optional), and the
parameter-recovery harness.
"""

from .density import pareto_log_likelihood, pareto_lpdf, paretocounts_lpdf
from .errors import ConfigurationError, ConvergenceFailure, DomainError, SamplerTimeout
from .simulate import aggregate_counts, rplb

__all__ = [
    "ConfigurationError",
    "ConvergenceFailure",
    "DomainError",
    "SamplerTimeout",
    "aggregate_counts",
    "pareto_log_likelihood",
    "pareto_lpdf",
    "paretocounts_lpdf",
    "rplb",
]
