"""
Error taxonomy for the analysis pipeline.

Every error subclasses ``ValueError`` so callers can keep catching the
built-in type. The pipeline attaches the name of the failing stage before
re-raising, so messages read like ``[cleaner] More than two groups ...``.
"""

from typing import Optional


class AnalysisError(ValueError):
    """Base class for data and statistical precondition failures."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class DataFormatError(AnalysisError):
    """Input table is missing columns, empty, or holds malformed values."""


class SchemaError(AnalysisError):
    """A categorical column has unexpected levels or cardinality."""


class InsufficientDataError(AnalysisError):
    """A group or stage lacks enough observations for the computation."""


class NumericalInstabilityError(AnalysisError):
    """Propensity scores at or near 0/1 would produce unbounded weights."""
