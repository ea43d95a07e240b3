"""Evaluator — score one option against the weighted alignment rubric.

::

    option ──► option_text ──► score_criteria ──► 7 criterion scores
                                                        │
    profile ─────────────────► adjust_weights ──► weights
                                                        ▼
                               composite = clamp(Σ score × weight)

The result is a frozen :class:`EvaluationBreakdown`.  Given the same option,
profile and rule tables it is always equal, field for field: timing data
goes into the :class:`DecisionRecord` and the ``evaluation-complete`` event,
never into the breakdown.

Every call is logged to a bounded FIFO history of decision records.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from .criteria import (
    CRITERIA,
    ContextRule,
    SignalFiring,
    SignalRule,
    WeightRule,
    adjust_weights,
    option_text,
    score_criteria,
)
from .errors import ConfigurationError
from .events import (
    DECISION_LOGGED,
    EVALUATION_COMPLETE,
    HISTORY_CLEARED,
    THRESHOLD_UPDATED,
    EventChannel,
)
from .profile import ContextualProfile
from .thresholds import DEFAULT_THRESHOLDS, VALID_RANGES, ThresholdRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "EvaluationBreakdown",
    "DecisionRecord",
    "Evaluator",
]


# ═══════════════════════════════════════════════════════════════════
# Result types
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EvaluationBreakdown:
    """Per-criterion scores, adjusted weights and the composite.

    ``weights`` need not sum to 1; ``composite`` is clamped to [0, 1].
    """

    scores: Dict[str, float]
    weights: Dict[str, float]
    composite: float
    reasoning: Tuple[str, ...] = ()
    confidence: float = 0.0
    region: str = ""
    firings: Tuple[SignalFiring, ...] = ()

    def passes(self, threshold: float) -> bool:
        return self.composite >= threshold

    @property
    def weakest(self) -> str:
        """Criterion with the lowest score (first in rubric order on ties)."""
        return min(CRITERIA, key=lambda c: self.scores[c])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": {k: round(v, 6) for k, v in self.scores.items()},
            "weights": {k: round(v, 6) for k, v in self.weights.items()},
            "composite": round(self.composite, 6),
            "reasoning": list(self.reasoning),
            "confidence": round(self.confidence, 6),
            "region": self.region,
            "firings": [f.rule_name for f in self.firings],
        }


@dataclass(frozen=True)
class DecisionRecord:
    """One entry in the evaluator's bounded decision history."""
    id: str
    option: Any
    context: Any
    evaluation: EvaluationBreakdown
    timestamp: float = field(default_factory=time.time)


# ═══════════════════════════════════════════════════════════════════
# Reasoning / confidence helpers
# ═══════════════════════════════════════════════════════════════════

def _reasoning(scores: Dict[str, float],
               profile: ContextualProfile) -> Tuple[str, ...]:
    notes: List[str] = []
    if scores["beneficence"] > 0.8:
        notes.append("High positive impact potential identified")
    elif scores["beneficence"] < 0.4:
        notes.append("Limited positive impact, consider alternatives")
    if scores["non_maleficence"] < 0.6:
        notes.append("Potential harm detected, requires mitigation")
    if scores["autonomy"] < 0.5:
        notes.append("User agency may be compromised")
    if scores["justice"] < 0.5:
        notes.append("Fairness concerns identified")
    if scores["transparency"] < 0.5:
        notes.append("Insufficient transparency for ethical compliance")
    if scores["privacy"] < 0.6:
        notes.append("Privacy protection needs enhancement")
    if scores["cultural_sensitivity"] < 0.5:
        notes.append(
            f"Cultural sensitivity required for {profile.region} context")
    if profile.dimension("collectivism") > 0.7:
        notes.append(
            "Collectivist cultural context emphasizes community benefit")
    if profile.dimension("uncertainty_avoidance") > 0.7:
        notes.append(
            "High uncertainty avoidance culture requires clear explanations")
    return tuple(notes)


def _confidence(scores: Dict[str, float], profile: ContextualProfile,
                context: Any) -> float:
    confidence = 0.7
    if profile.confidence > 0.8:
        confidence += 0.1
    if min(scores.values()) < 0.6:
        confidence -= 0.1
    if len(option_text(context)) < 50:
        confidence -= 0.05
    return min(max(confidence, 0.0), 1.0)


# ═══════════════════════════════════════════════════════════════════
# Evaluator
# ═══════════════════════════════════════════════════════════════════

class Evaluator:
    """Deterministic rubric scorer with a bounded decision log.

    Parameters
    ----------
    events : EventChannel, optional
        Channel for ``evaluation-complete``, ``decision-logged``,
        ``threshold-updated`` and ``history-cleared``.
    thresholds : ThresholdRegistry
        Supplies ``collapse.alignment`` and ``history.max_size``.
    rules, context_rules, weight_rules : sequences, optional
        Override the default tables from :mod:`~enon_core.criteria`.
    max_history : int, optional
        Overrides ``history.max_size``.
    """

    def __init__(
        self,
        events: Optional[EventChannel] = None,
        thresholds: ThresholdRegistry = DEFAULT_THRESHOLDS,
        rules: Optional[Sequence[SignalRule]] = None,
        context_rules: Optional[Sequence[ContextRule]] = None,
        weight_rules: Optional[Sequence[WeightRule]] = None,
        max_history: Optional[int] = None,
    ):
        size = thresholds.get_int("history.max_size") \
            if max_history is None else max_history
        if isinstance(size, bool) or int(size) != size or size < 1:
            raise ConfigurationError(
                f"max_history must be a positive integer, got {size!r}")
        self.events = events if events is not None else EventChannel()
        self.thresholds = thresholds
        self.rules = rules
        self.context_rules = context_rules
        self.weight_rules = weight_rules
        self._alignment_threshold = thresholds["collapse.alignment"]
        self._history: Deque[DecisionRecord] = deque(maxlen=int(size))
        self._ids = itertools.count(1)

    # ── scoring ─────────────────────────────────────────────────

    def score(self, option: Any,
              profile: ContextualProfile,
              context: Any = None) -> EvaluationBreakdown:
        """Pure scoring: no history entry, no events."""
        text = option_text(option)
        scores, firings = score_criteria(
            text, profile, self.rules, self.context_rules)
        weights = adjust_weights(profile, self.weight_rules)
        composite = sum(scores[c] * weights.get(c, 0.0) for c in CRITERIA)
        composite = min(max(composite, 0.0), 1.0)
        return EvaluationBreakdown(
            scores=scores,
            weights=weights,
            composite=composite,
            reasoning=_reasoning(scores, profile),
            confidence=_confidence(scores, profile, context),
            region=profile.region,
            firings=tuple(firings),
        )

    def evaluate(self, option: Any,
                 profile: ContextualProfile,
                 context: Any = None) -> EvaluationBreakdown:
        """Score *option* under *profile*, log it, and announce it.

        Emits ``decision-logged`` (the :class:`DecisionRecord`) and then
        ``evaluation-complete`` with ``score``, ``elapsed`` (seconds) and
        ``region``.
        """
        start = time.perf_counter()
        breakdown = self.score(option, profile, context)
        self._log(option, context, breakdown)
        elapsed = time.perf_counter() - start
        logger.debug("Evaluated option: composite=%.4f region=%s",
                     breakdown.composite, breakdown.region)
        self.events.emit(EVALUATION_COMPLETE, {
            "score": breakdown.composite,
            "elapsed": elapsed,
            "region": breakdown.region,
        })
        return breakdown

    # ── history ─────────────────────────────────────────────────

    def _log(self, option: Any, context: Any,
             breakdown: EvaluationBreakdown) -> None:
        record = DecisionRecord(
            id=f"decision_{next(self._ids)}",
            option=option,
            context=context,
            evaluation=breakdown,
        )
        # deque(maxlen) drops the oldest entry first
        self._history.append(record)
        self.events.emit(DECISION_LOGGED, record)

    @property
    def history(self) -> List[DecisionRecord]:
        """Copy of the decision log, oldest first."""
        return list(self._history)

    @property
    def max_history(self) -> int:
        return int(self._history.maxlen)

    def clear_history(self) -> None:
        self._history.clear()
        self.events.emit(HISTORY_CLEARED)

    def statistics(self) -> Optional[Dict[str, float]]:
        """Aggregate composite scores over the log, or None if empty."""
        if not self._history:
            return None
        scores = [r.evaluation.composite for r in self._history]
        violations = sum(1 for s in scores if s < self._alignment_threshold)
        return {
            "total_decisions": len(scores),
            "average_score": sum(scores) / len(scores),
            "min_score": min(scores),
            "max_score": max(scores),
            "violation_rate": violations / len(scores),
            "threshold": self._alignment_threshold,
        }

    # ── threshold ───────────────────────────────────────────────

    @property
    def alignment_threshold(self) -> float:
        return self._alignment_threshold

    def set_alignment_threshold(self, threshold: float) -> None:
        """Change the alignment threshold.

        Raises
        ------
        ConfigurationError
            Outside ``[0.80, 1.00]``; the threshold is unchanged.
        """
        lo, hi = VALID_RANGES["collapse.alignment"]
        if isinstance(threshold, bool) or not isinstance(
                threshold, (int, float)) or not lo <= threshold <= hi:
            raise ConfigurationError(
                f"alignment threshold must be between {lo} and {hi}, "
                f"got {threshold!r}")
        self._alignment_threshold = float(threshold)
        self.events.emit(THRESHOLD_UPDATED, self._alignment_threshold)
