"""Corrector — bounded-depth, reproducible adjustment of a collapsed state.

A correction payload is hashed (SHA-256 of its canonical JSON text) into a
phase φ, and the correction vector is

.. math::

    c_i = a \\sin(\\varphi + i), \\qquad a = 0.1

The corrected register is ``normalize(ψ + scale · c)`` with ``scale = 0.1``
by default (``correction.scale``).  The same payload always yields the same
vector, so applying one correction to one state twice gives the same
register.

Depth accounting
----------------
Corrections may nest: a ``temporal-correction`` subscriber can request a
further correction of the state it was just handed.  The depth counter
bounds this:

* at ``depth == max_depth`` a request fails with
  :class:`~enon_core.errors.RecursionLimitError` before anything changes;
* otherwise depth is incremented for the duration of the request and
  decremented in a ``finally`` block, whether the request succeeds or not.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from typing import Any, Callable, Optional

import numpy as np

from .criteria import canonical_json
from .errors import EthicalThresholdViolation, RecursionLimitError
from .evaluator import Evaluator
from .events import TEMPORAL_CORRECTION, EventChannel
from .profile import ContextualProfile
from .register import dispersion_of, normalize_vector
from .state import CorrectionRecord, State
from .thresholds import DEFAULT_THRESHOLDS, ThresholdRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "Corrector",
    "correction_digest",
    "correction_vector",
    "VECTOR_AMPLITUDE",
]

VECTOR_AMPLITUDE: float = 0.1


def correction_digest(correction: Any) -> str:
    """Hex SHA-256 of the case-preserving canonical JSON of *correction*."""
    text = canonical_json(correction)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def correction_vector(correction: Any, length: int) -> np.ndarray:
    """Deterministic correction vector of *length* components."""
    phase = int(correction_digest(correction)[:8], 16)
    return np.sin(phase + np.arange(length, dtype=np.float64)) \
        * VECTOR_AMPLITUDE


class Corrector:
    """Applies hash-derived corrections under a recursion-depth guard.

    Parameters
    ----------
    evaluator : Evaluator
        Re-scores the committed option together with the correction.
    events : EventChannel, optional
        Receives ``temporal-correction``.  Defaults to the evaluator's.
    thresholds : ThresholdRegistry
        Supplies ``correction.max_depth`` and ``correction.scale``.
    on_accept : callable, optional
        Called with each accepted :class:`State` before the event is
        emitted (the collapser commits it to its register here).
    """

    def __init__(
        self,
        evaluator: Evaluator,
        events: Optional[EventChannel] = None,
        thresholds: ThresholdRegistry = DEFAULT_THRESHOLDS,
        on_accept: Optional[Callable[[State], None]] = None,
    ):
        self.evaluator = evaluator
        self.events = events if events is not None else evaluator.events
        self.max_depth = thresholds.get_int("correction.max_depth")
        self.scale = thresholds["correction.scale"]
        self._on_accept = on_accept
        self._depth = 0
        self._ids = itertools.count(1)

    @property
    def depth(self) -> int:
        return self._depth

    def reset(self) -> None:
        self._depth = 0

    def __repr__(self) -> str:
        return f"Corrector(depth={self._depth}/{self.max_depth})"

    # ── public API ──────────────────────────────────────────────

    def apply_correction(
        self,
        target_state: State,
        correction: Any,
        reason: str = "",
        profile: Optional[ContextualProfile] = None,
    ) -> State:
        """Return *target_state* corrected by *correction*.

        Raises
        ------
        RecursionLimitError
            Already at ``max_depth``.  Nothing is changed.
        EthicalThresholdViolation
            The corrected alignment is below the evaluator's threshold.
            *target_state* stays authoritative.
        """
        if self._depth >= self.max_depth:
            logger.warning("Correction rejected at depth %d/%d",
                           self._depth, self.max_depth)
            raise RecursionLimitError(self._depth, self.max_depth)

        self._depth += 1
        try:
            corrected = self._correct(target_state, correction, reason,
                                      profile)
            if self._on_accept is not None:
                self._on_accept(corrected)
            logger.info("Correction accepted at depth %d: alignment=%.4f",
                        self._depth, corrected.alignment)
            self.events.emit(TEMPORAL_CORRECTION, {
                "depth": self._depth,
                "score": corrected.alignment,
                "correction": correction,
                "state": corrected,
            })
            return corrected
        finally:
            self._depth = max(self._depth - 1, 0)

    # ── internals ───────────────────────────────────────────────

    def _rescore(self, target: State, correction: Any,
                 profile: Optional[ContextualProfile]) -> float:
        chosen = target.chosen
        if chosen is None:
            # nothing to re-score (e.g. an emergency state)
            return target.alignment
        payload = {"option": chosen.option, "correction": correction}
        breakdown = self.evaluator.evaluate(
            payload, profile or ContextualProfile.neutral())
        return breakdown.composite

    def _correct(self, target: State, correction: Any, reason: str,
                 profile: Optional[ContextualProfile]) -> State:
        base = np.asarray(target.register, dtype=np.float64)
        vector = correction_vector(correction, base.size)
        values = normalize_vector(base + self.scale * vector)

        alignment = self._rescore(target, correction, profile)
        threshold = self.evaluator.alignment_threshold
        if alignment < threshold:
            logger.warning("Correction rejected: alignment %.4f < %.4f",
                           alignment, threshold)
            raise EthicalThresholdViolation(alignment, threshold)

        record = CorrectionRecord(
            id=f"correction_{next(self._ids)}",
            reason=reason,
            depth=self._depth,
            digest=correction_digest(correction),
            score=alignment,
        )
        return State(
            register=values,
            metadata=target.metadata.with_correction(record),
            alignment=alignment,
            dispersion=dispersion_of(values),
            candidates=target.candidates,
            emergency=target.emergency,
        )
