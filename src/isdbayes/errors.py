"""
Error taxonomy for the density kernel, data preparation and recovery trials.

Every error carries a short identifier and a data payload describing which
group, parameter or value violated which constraint.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class IsdBayesError(RuntimeError):
    """Base class for all package errors."""

    def __init__(self, error_id: str, message: str, data: Optional[Dict[str, Any]] = None):
        self.error_id = error_id
        self.data = data or {}
        super().__init__(f"[{type(self).__name__}:{error_id}] {message} | data={self.data}")


class DomainError(IsdBayesError, ValueError):
    """Kernel evaluated outside the bounded power-law support."""


class ConfigurationError(IsdBayesError, ValueError):
    """Malformed group, bounds or harness configuration."""


class ConvergenceFailure(IsdBayesError):
    """Sampler diagnostics above the acceptance threshold."""


class SamplerTimeout(IsdBayesError):
    """Sampler run exceeded its wall-clock budget."""
