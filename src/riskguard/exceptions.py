"""
Error taxonomy for the monitoring engine.

- ValidationError: malformed or out-of-domain input, raised before computing
- DependencyError: screening provider or persistence unavailable or timed out
- ComputationError: numerical failure not covered by an explicit sentinel
"""

from typing import Any, Optional


class RiskGuardError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(RiskGuardError):
    """Input rejected before any computation took place."""

    pass


class DependencyError(RiskGuardError):
    """A collaborator (screening provider, store) failed or timed out."""

    def __init__(
        self,
        message: str,
        dependency: str = "unknown",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.dependency = dependency

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["dependency"] = self.dependency
        return data


class ComputationError(RiskGuardError):
    """Numerical failure that must not surface as a wrong number."""

    pass
