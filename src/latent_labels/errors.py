"""
Error taxonomy for latent-class label inference.

All errors are raised synchronously where the problem is detected.
None of them are retried internally.
"""

from typing import Any, Optional


class LatentLabelError(Exception):
    """Base class for all latent-label errors."""
    pass


class ValidationError(LatentLabelError):
    """Raised when a model (or a subject result) is structurally inconsistent."""
    pass


class ConfigurationError(LatentLabelError):
    """Raised for a bad indicator selection, target class, policy or settings file."""
    pass


class MissingIndicatorError(LatentLabelError):
    """Raised when a subject record lacks a required indicator."""

    def __init__(self, subject_id: Any, indicator: str, reason: str = "is missing"):
        self.subject_id = subject_id
        self.indicator = indicator
        super().__init__(
            f"subject {subject_id!r}: required indicator '{indicator}' {reason}"
        )


class DegenerateLikelihoodError(LatentLabelError):
    """Raised when every class likelihood of a subject underflows together."""

    def __init__(self, subject_index: int, subject_id: Optional[Any] = None, denominator: float = 0.0):
        self.subject_index = subject_index
        self.subject_id = subject_id
        self.denominator = denominator
        label = f"subject {subject_id!r} (index {subject_index})"
        super().__init__(
            f"{label}: posterior normalising constant is {denominator!r}; "
            f"all class likelihoods underflowed"
        )
