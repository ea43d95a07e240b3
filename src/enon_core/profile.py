"""Contextual profiles — the normalised dimensions that tilt the rubric.

A :class:`ContextualProfile` is produced by an external provider (locale
detection, regional lookup tables, user settings) and consumed read-only by
the evaluator.  The core never derives one itself; it only clamps what it
is given into range at the boundary.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

__all__ = [
    "ContextualProfile",
    "DEFAULT_DIMENSIONS",
    "ProfileProvider",
    "StaticProfileProvider",
]


DEFAULT_DIMENSIONS: Mapping[str, float] = MappingProxyType({
    "power_distance": 0.55,
    "individualism": 0.45,
    "masculinity": 0.50,
    "uncertainty_avoidance": 0.65,
    "long_term_orientation": 0.55,
    "indulgence": 0.50,
    "collectivism": 0.55,
    "context_sensitivity": 0.60,
    "temporal_orientation": 0.50,
    "relationship_focus": 0.65,
})
"""Global-average dimensions used when no regional profile is known."""


def _clamp01(value: Any, fallback: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(v):
        return fallback
    return min(max(v, 0.0), 1.0)


@dataclass(frozen=True)
class ContextualProfile:
    """Named dimensions in [0, 1] plus a confidence and a region label.

    Out-of-range or non-numeric inputs are clamped on construction:
    dimensions fall back to 0.5, confidence to 0.0.  The dimension mapping
    is exposed read-only.
    """

    dimensions: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_DIMENSIONS))
    confidence: float = 0.5
    region: str = "global"
    language: str = "en"
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        clean = {str(k): _clamp01(v, 0.5)
                 for k, v in dict(self.dimensions).items()}
        object.__setattr__(self, "dimensions", MappingProxyType(clean))
        object.__setattr__(self, "confidence",
                           _clamp01(self.confidence, 0.0))
        object.__setattr__(self, "region", str(self.region or ""))

    def __hash__(self) -> int:
        # mappingproxy is unhashable; hash its sorted items instead
        return hash((tuple(sorted(self.dimensions.items())),
                     self.confidence, self.region, self.language,
                     self.timestamp))

    @classmethod
    def neutral(cls, region: str = "global") -> "ContextualProfile":
        """Profile with :data:`DEFAULT_DIMENSIONS` and confidence 0.5."""
        return cls(dimensions=dict(DEFAULT_DIMENSIONS), confidence=0.5,
                   region=region, timestamp=0.0)

    def dimension(self, name: str, default: float = 0.5) -> float:
        """Value of dimension *name*, or *default* if absent."""
        return self.dimensions.get(name, default)

    def with_dimensions(self, **overrides: float) -> "ContextualProfile":
        """Return a copy with some dimensions replaced."""
        dims = dict(self.dimensions)
        dims.update(overrides)
        return ContextualProfile(
            dimensions=dims, confidence=self.confidence,
            region=self.region, language=self.language,
            timestamp=self.timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimensions": dict(self.dimensions),
            "confidence": self.confidence,
            "region": self.region,
            "language": self.language,
            "timestamp": self.timestamp,
        }


@runtime_checkable
class ProfileProvider(Protocol):
    """Anything that can turn a free-form context into a profile."""

    def profile_for(self, context: Any) -> ContextualProfile:
        ...


class StaticProfileProvider:
    """Provider that ignores the context and returns one fixed profile."""

    def __init__(self, profile: Optional[ContextualProfile] = None):
        self._profile = profile or ContextualProfile.neutral()

    def profile_for(self, context: Any) -> ContextualProfile:
        return self._profile

    def __repr__(self) -> str:
        return f"StaticProfileProvider(region={self._profile.region!r})"
