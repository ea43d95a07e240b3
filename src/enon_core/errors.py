"""Error taxonomy for the decision core.

Only configuration and correction failures reach the caller.  Generation
and collapse handle their own failures by falling back to an emergency
collapse, so nothing in :mod:`~enon_core.collapser` raises these.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "EnonError",
    "ConfigurationError",
    "RecursionLimitError",
    "EthicalThresholdViolation",
    "DegenerateStateWarning",
]


class EnonError(Exception):
    """Base class for every error raised by :mod:`enon_core`."""


class ConfigurationError(EnonError, ValueError):
    """A threshold or register length outside its valid range.

    Raised synchronously; the object being configured is left unchanged.
    """


class RecursionLimitError(EnonError, RuntimeError):
    """A correction was requested while already at the maximum depth."""

    def __init__(self, depth: int, max_depth: int):
        super().__init__(
            f"Maximum correction depth exceeded ({depth}/{max_depth})")
        self.depth = depth
        self.max_depth = max_depth


class EthicalThresholdViolation(EnonError, RuntimeError):
    """A corrected state scored below the alignment threshold."""

    def __init__(self, score: float, threshold: float,
                 message: Optional[str] = None):
        super().__init__(
            message or
            f"Correction alignment {score:.4f} is below threshold "
            f"{threshold:.4f}")
        self.score = score
        self.threshold = threshold


class DegenerateStateWarning(UserWarning):
    """Normalisation met an all-zero register and left it unchanged."""
