"""Public snapshot types: candidates, reflective metadata, states.

Everything here is a frozen dataclass holding independent numpy copies, so
a :class:`State` handed to a caller can never alias the live register.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .evaluator import EvaluationBreakdown

__all__ = [
    "Candidate",
    "CorrectionRecord",
    "ReflectiveMetadata",
    "State",
]


def _frozen_copy(values: Any) -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class Candidate:
    """A scored, not-yet-committed option.

    ``register`` is a private copy of the register at generation time;
    ``probability`` is ``1 / bound`` where *bound* is the number of slots
    offered, not the number of candidates kept.
    """

    id: str
    option: Any
    register: np.ndarray
    alignment: float
    reflective: float
    probability: float
    timestamp: float = field(default_factory=time.time)
    evaluation: Optional[EvaluationBreakdown] = None

    def __post_init__(self):
        object.__setattr__(self, "register", _frozen_copy(self.register))

    def combined_score(self, alignment_weight: float = 0.6,
                       reflective_weight: float = 0.4) -> float:
        return (self.alignment * alignment_weight
                + self.reflective * reflective_weight)


@dataclass(frozen=True)
class CorrectionRecord:
    """One accepted correction, kept in the state's metadata."""
    id: str
    reason: str
    depth: int
    digest: str
    score: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ReflectiveMetadata:
    """Self-reference score, uncertainty markers and correction history."""
    self_reference_score: float = 0.0
    uncertainty_markers: Tuple[str, ...] = ()
    correction_records: Tuple[CorrectionRecord, ...] = ()

    def with_correction(self, record: CorrectionRecord) -> "ReflectiveMetadata":
        return replace(self,
                       correction_records=self.correction_records + (record,))


@dataclass(frozen=True)
class State:
    """Snapshot produced by every collapse or correction.

    Parameters
    ----------
    register : numpy.ndarray
        Read-only copy of the register.
    metadata : ReflectiveMetadata
    alignment : float
        Composite alignment of the committed path.
    dispersion : float
    candidates : tuple of Candidate
        The surviving candidate (singleton) or empty.
    emergency : bool
        True for emergency-collapse states, a normal operating mode.
    """

    register: np.ndarray
    metadata: ReflectiveMetadata
    alignment: float
    dispersion: float
    candidates: Tuple[Candidate, ...] = ()
    timestamp: float = field(default_factory=time.time)
    emergency: bool = False

    def __post_init__(self):
        object.__setattr__(self, "register", _frozen_copy(self.register))
        object.__setattr__(self, "candidates", tuple(self.candidates))

    @property
    def chosen(self) -> Optional[Candidate]:
        """The committed candidate, if any."""
        return self.candidates[0] if self.candidates else None

    @property
    def correction_depth(self) -> int:
        """Number of accepted corrections applied to this state."""
        return len(self.metadata.correction_records)

    def to_dict(self) -> Dict[str, Any]:
        """Summary without the register values."""
        return {
            "alignment": round(self.alignment, 6),
            "dispersion": round(self.dispersion, 6),
            "emergency": self.emergency,
            "n_candidates": len(self.candidates),
            "self_reference_score": round(
                self.metadata.self_reference_score, 6),
            "uncertainty_markers": list(self.metadata.uncertainty_markers),
            "corrections": [r.id for r in self.metadata.correction_records],
            "register_length": int(self.register.size),
            "timestamp": self.timestamp,
        }
