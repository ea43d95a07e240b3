"""PathCollapser — candidate generation and collapse, the core state machine.

::

    IDLE ──create_candidates──► GENERATING ──collapse──► COLLAPSED
                                    ▲                     │
                                    │                     └─► EMERGENCY_COLLAPSED
                                    └──────── next create_candidates ─┘

Generation
----------
The first ``bound`` options are evaluated in input order, where ``bound``
is ``paths.max_normal`` (3) or, under low resources, ``paths.max_low`` (2).
Options scoring below the alignment threshold are dropped.  Each kept
candidate carries ``probability = 1 / bound``, the share of one slot, even
when fewer candidates qualify.

Collapse
--------
Emergency collapse is taken when any of these hold (checked in order):

1. register dispersion > ``collapse.dispersion``
2. a candidate's reflective score < ``collapse.reflective``
3. resource level < ``resource.low``
4. no candidates

Otherwise candidates passing both gates compete on
``0.6 × alignment + 0.4 × reflective``; the first one seen wins ties.
The winner's register snapshot replaces the live register wholesale.

Emergency collapse refills the register from a small positive range and
reports the minimum acceptable alignment with a fixed low dispersion.  It
never raises, and neither does :meth:`PathCollapser.collapse`: any error in
the normal path is logged and turned into an emergency collapse.
"""

from __future__ import annotations

import enum
import itertools
import logging
from typing import Any, Callable, Iterable, List, Optional

import numpy as np

from .corrector import Corrector
from .errors import ConfigurationError
from .evaluator import Evaluator
from .events import (
    CANDIDATES_CREATED,
    COLLAPSE_APPLIED,
    COLLAPSE_EMERGENCY,
    CORE_RESET,
    REGISTER_INITIALIZED,
    STATE_CHANGED,
    EventChannel,
)
from .profile import ContextualProfile, ProfileProvider
from .reflective import analyse_reflection
from .register import StateRegister
from .state import Candidate, ReflectiveMetadata, State
from .thresholds import DEFAULT_THRESHOLDS, ThresholdRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "Phase",
    "ConstantResource",
    "PathCollapser",
    "EMERGENCY_MARKER",
]

EMERGENCY_MARKER = "emergency_collapse"

ResourceSignal = Callable[[], float]


class Phase(enum.Enum):
    IDLE = "idle"
    GENERATING = "generating"
    COLLAPSED = "collapsed"
    EMERGENCY_COLLAPSED = "emergency_collapsed"


class ConstantResource:
    """Resource signal that always reports the same level."""

    def __init__(self, level: float = 1.0):
        self.level = level

    def __call__(self) -> float:
        return self.level

    def __repr__(self) -> str:
        return f"ConstantResource({self.level})"


# ═══════════════════════════════════════════════════════════════════
# PathCollapser
# ═══════════════════════════════════════════════════════════════════

class PathCollapser:
    """Owns the state register; generates, scores and collapses paths.

    Parameters
    ----------
    evaluator : Evaluator, optional
        Rubric scorer.  A default one sharing *events* is built if omitted.
    events : EventChannel, optional
        Defaults to the evaluator's channel.
    thresholds : ThresholdRegistry
    register : StateRegister, optional
        Defaults to a random register of ``register.length`` components.
    resource_signal : callable, optional
        Zero-argument callable returning a level in [0, 1].  Defaults to
        ``ConstantResource(1.0)``.
    profile_provider : ProfileProvider, optional
        Consulted when :meth:`create_candidates` gets no profile.
    rng : numpy.random.Generator, optional
        Randomness for register fills.
    """

    def __init__(
        self,
        evaluator: Optional[Evaluator] = None,
        events: Optional[EventChannel] = None,
        thresholds: ThresholdRegistry = DEFAULT_THRESHOLDS,
        register: Optional[StateRegister] = None,
        resource_signal: Optional[ResourceSignal] = None,
        profile_provider: Optional[ProfileProvider] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        if evaluator is None:
            evaluator = Evaluator(events=events, thresholds=thresholds)
        self.evaluator = evaluator
        self.events = events if events is not None else evaluator.events
        self.thresholds = thresholds
        self._rng = rng if rng is not None else np.random.default_rng()
        self._register = register if register is not None else \
            StateRegister(thresholds.get_int("register.length"), rng=self._rng)
        self._resource = resource_signal or ConstantResource(1.0)
        self._provider = profile_provider
        self._corrector = Corrector(self.evaluator, self.events, thresholds,
                                    on_accept=self._accept_correction)
        self._candidates: List[Candidate] = []
        self._phase = Phase.IDLE
        self._profile: Optional[ContextualProfile] = None
        self._last_state: Optional[State] = None
        self._generation = itertools.count(1)
        self.events.emit(REGISTER_INITIALIZED, {
            "length": self._register.length,
            "dispersion": self._register.dispersion(),
        })

    # ── read ────────────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def candidates(self) -> List[Candidate]:
        return list(self._candidates)

    @property
    def register(self) -> np.ndarray:
        """Snapshot of the live register."""
        return self._register.snapshot()

    @property
    def correction_depth(self) -> int:
        return self._corrector.depth

    @property
    def corrector(self) -> Corrector:
        return self._corrector

    def dispersion(self) -> float:
        return self._register.dispersion()

    def current_state(self) -> Optional[State]:
        """The last state produced by a collapse or correction, if any."""
        return self._last_state

    def __repr__(self) -> str:
        return (f"PathCollapser(phase={self._phase.value}, "
                f"candidates={len(self._candidates)}, "
                f"register={self._register.length})")

    # ── resources / profile ─────────────────────────────────────

    def resource_level(self) -> float:
        """Current resource level clamped to [0, 1].

        A failing or non-finite signal reads as 0.0 (low).
        """
        try:
            level = float(self._resource())
        except Exception:
            logger.exception("Resource signal failed; assuming low")
            return 0.0
        if not np.isfinite(level):
            return 0.0
        return min(max(level, 0.0), 1.0)

    def resources_low(self) -> bool:
        return self.resource_level() < self.thresholds["resource.low"]

    def path_bound(self) -> int:
        """How many options the next generation may evaluate."""
        if self.resources_low():
            return self.thresholds.get_int("paths.max_low")
        return self.thresholds.get_int("paths.max_normal")

    def _resolve_profile(self, context: Any,
                         profile: Optional[ContextualProfile],
                         ) -> ContextualProfile:
        if profile is not None:
            return profile
        if self._provider is not None:
            try:
                return self._provider.profile_for(context)
            except Exception:
                logger.exception("Profile provider failed; using neutral")
        return ContextualProfile.neutral()

    # ── generation ──────────────────────────────────────────────

    def create_candidates(
        self,
        context: Any,
        options: Iterable[Any],
        profile: Optional[ContextualProfile] = None,
    ) -> List[Candidate]:
        """Evaluate the leading options and keep those above threshold.

        Replaces the current candidate set and emits
        ``candidates-created`` with ``{"count": n}``.
        """
        self._phase = Phase.GENERATING
        bound = self.path_bound()
        profile = self._resolve_profile(context, profile)
        self._profile = profile
        threshold = self.evaluator.alignment_threshold
        generation = next(self._generation)

        kept: List[Candidate] = []
        for i, option in enumerate(itertools.islice(options, bound)):
            try:
                evaluation = self.evaluator.evaluate(option, profile, context)
                reflection = analyse_reflection(option)
            except Exception:
                logger.exception("Evaluation of option %d failed; skipped", i)
                continue
            if evaluation.composite < threshold:
                logger.debug("Option %d rejected: alignment %.4f < %.4f",
                             i, evaluation.composite, threshold)
                continue
            kept.append(Candidate(
                id=f"path_{generation}_{i}",
                option=option,
                register=self._register.snapshot(),
                alignment=evaluation.composite,
                reflective=reflection.score,
                probability=1.0 / bound,
                evaluation=evaluation,
            ))

        self._candidates = kept
        self.events.emit(CANDIDATES_CREATED, {"count": len(kept)})
        return list(kept)

    # ── collapse ────────────────────────────────────────────────

    def emergency_reason(self) -> Optional[str]:
        """Why the next collapse would be an emergency one, or None."""
        if self._register.dispersion() > self.thresholds["collapse.dispersion"]:
            return "dispersion above threshold"
        reflective_min = self.thresholds["collapse.reflective"]
        if any(c.reflective < reflective_min for c in self._candidates):
            return "candidate reflective score below threshold"
        if self.resources_low():
            return "resources low"
        if not self._candidates:
            return "no candidates"
        return None

    def collapse(self) -> State:
        """Commit one candidate, or fall back to an emergency collapse.

        Never raises.  The returned state's alignment is always at least
        the alignment threshold.
        """
        try:
            return self._collapse()
        except Exception:
            logger.exception("Collapse failed; falling back to emergency")
            return self._emergency_collapse("collapse error")

    def _collapse(self) -> State:
        reason = self.emergency_reason()
        if reason is not None:
            return self._emergency_collapse(reason)

        alignment_min = self.evaluator.alignment_threshold
        reflective_min = self.thresholds["collapse.reflective"]
        valid = [c for c in self._candidates
                 if c.alignment >= alignment_min
                 and c.reflective >= reflective_min]
        if not valid:
            return self._emergency_collapse("no eligible candidate")

        w_align = self.thresholds["collapse.alignment_weight"]
        w_refl = self.thresholds["collapse.reflective_weight"]
        best = valid[0]
        best_score = best.combined_score(w_align, w_refl)
        for cand in valid[1:]:
            score = cand.combined_score(w_align, w_refl)
            if score > best_score:
                best, best_score = cand, score

        self._register.load(best.register, normalize=False)
        reflection = analyse_reflection(best.option)
        state = State(
            register=self._register.snapshot(),
            metadata=ReflectiveMetadata(
                self_reference_score=reflection.score,
                uncertainty_markers=reflection.markers,
            ),
            alignment=best.alignment,
            dispersion=self._register.dispersion(),
            candidates=(best,),
        )
        self._candidates = []
        self._phase = Phase.COLLAPSED
        self._last_state = state
        logger.info("Collapsed to %s: alignment=%.4f reflective=%.4f",
                    best.id, best.alignment, best.reflective)
        self.events.emit(COLLAPSE_APPLIED, state)
        self.events.emit(STATE_CHANGED, state)
        return state

    def _emergency_collapse(self, reason: str) -> State:
        self._register.fill_uniform(
            0.0, self.thresholds["emergency.magnitude"])
        state = State(
            register=self._register.snapshot(),
            metadata=ReflectiveMetadata(
                self_reference_score=self.thresholds["emergency.reflective"],
                uncertainty_markers=(EMERGENCY_MARKER,),
            ),
            alignment=self.evaluator.alignment_threshold,
            dispersion=self.thresholds["emergency.dispersion"],
            candidates=(),
            emergency=True,
        )
        self._candidates = []
        self._phase = Phase.EMERGENCY_COLLAPSED
        self._last_state = state
        logger.warning("Emergency collapse: %s", reason)
        self.events.emit(COLLAPSE_EMERGENCY, state)
        self.events.emit(STATE_CHANGED, state)
        return state

    # ── correction ──────────────────────────────────────────────

    def apply_correction(
        self,
        target_state: State,
        correction: Any,
        reason: str = "",
        profile: Optional[ContextualProfile] = None,
    ) -> State:
        """Correct *target_state*; on success the result becomes live.

        Raises
        ------
        ConfigurationError
            *target_state* has a different register length.
        RecursionLimitError, EthicalThresholdViolation
            See :meth:`Corrector.apply_correction`.  The live register is
            unchanged.
        """
        if target_state.register.size != self._register.length:
            raise ConfigurationError(
                f"state has {target_state.register.size} components, "
                f"register has {self._register.length}")
        return self._corrector.apply_correction(
            target_state, correction, reason=reason,
            profile=profile or self._profile)

    def _accept_correction(self, state: State) -> None:
        self._register.load(state.register, normalize=False)
        self._last_state = state
        self.events.emit(STATE_CHANGED, state)

    # ── reset ───────────────────────────────────────────────────

    def reset(self) -> None:
        """Fresh register, no candidates, zero correction depth."""
        fresh = StateRegister(self._register.length, rng=self._rng)
        self._register = fresh
        self._candidates = []
        self._corrector.reset()
        self._phase = Phase.IDLE
        self._last_state = None
        self._profile = None
        logger.info("Core reset (register length %d)", fresh.length)
        self.events.emit(CORE_RESET, {"length": fresh.length})
