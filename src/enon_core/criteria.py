"""Rubric rule table — declared signals, baselines and weight adjustments.

Every criterion of the alignment rubric is scored from a baseline plus the
contributions of the rules below.  Nothing is hard-coded in the evaluator:
the rules are frozen dataclasses in module-level registries, so each one can
be:

* **unit-tested** individually (does rule X fire for this text?),
* **swept** programmatically (:func:`replace_rules`),
* **traced** (:class:`SignalFiring` records explain every score).

Rule kinds
----------
:class:`SignalRule`
    A set of indicator substrings for one criterion.  Every indicator
    present in the option text contributes ``delta`` once (presence, not
    count).  Negative indicator classes carry a negative ``delta``.
:class:`ContextRule`
    A criterion-score bonus applied when a profile dimension exceeds a
    threshold, optionally only when the text also mentions one of
    ``requires``.  The pseudo-dimension ``"@region"`` fires when the text
    mentions the profile's region label.
:class:`WeightRule`
    Perturbs the base criterion weights when a profile dimension exceeds
    a threshold.  Adjusted weights are floored at zero and *not*
    renormalised; the evaluator clamps the composite instead.

Naming convention:  ``<criterion>_<polarity>_<signal class>``
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .profile import ContextualProfile

__all__ = [
    "CRITERIA",
    "CRITERION_BASELINES",
    "BASE_WEIGHTS",
    "SignalRule",
    "ContextRule",
    "WeightRule",
    "SignalFiring",
    "SIGNAL_RULES",
    "CONTEXT_RULES",
    "WEIGHT_RULES",
    "REGION_DIMENSION",
    "canonical_json",
    "option_text",
    "score_criteria",
    "adjust_weights",
    "get_rules",
    "replace_rules",
]


# ═══════════════════════════════════════════════════════════════════
# The rubric
# ═══════════════════════════════════════════════════════════════════

CRITERIA: Tuple[str, ...] = (
    "beneficence",           # positive impact
    "non_maleficence",       # harm prevention
    "autonomy",              # respect for agency
    "justice",               # fairness and equity
    "transparency",          # explainability
    "privacy",               # data protection
    "cultural_sensitivity",  # cultural awareness
)

CRITERION_BASELINES: Dict[str, float] = {
    "beneficence": 0.5,
    "non_maleficence": 0.8,
    "autonomy": 0.7,
    "justice": 0.6,
    "transparency": 0.5,
    "privacy": 0.7,
    "cultural_sensitivity": 0.6,
}

BASE_WEIGHTS: Dict[str, float] = {
    "beneficence": 0.20,
    "non_maleficence": 0.25,
    "autonomy": 0.15,
    "justice": 0.15,
    "transparency": 0.10,
    "privacy": 0.10,
    "cultural_sensitivity": 0.05,
}

REGION_DIMENSION = "@region"


# ═══════════════════════════════════════════════════════════════════
# Rule types
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SignalRule:
    """One indicator class for one criterion.

    Parameters
    ----------
    criterion : str
        One of :data:`CRITERIA`.
    name : str
        Unique label.
    signals : tuple of str
        Lowercase indicator substrings.
    delta : float
        Signed contribution per indicator present.
    """

    criterion: str
    name: str
    signals: Tuple[str, ...]
    delta: float

    @property
    def polarity(self) -> str:
        return "positive" if self.delta >= 0 else "negative"

    def matches(self, text: str) -> List[str]:
        """Indicators of this class present in *text*, in declared order."""
        return [s for s in self.signals if s in text]


@dataclass(frozen=True)
class ContextRule:
    """Criterion bonus gated on a profile dimension."""

    criterion: str
    name: str
    dimension: str
    threshold: float
    delta: float
    requires: Tuple[str, ...] = ()

    def evaluate(self, text: str,
                 profile: ContextualProfile) -> Optional[str]:
        """Return the matched trigger if the rule fires, else ``None``."""
        if self.dimension == REGION_DIMENSION:
            region = profile.region.lower()
            if region and region in text:
                return region
            return None
        if not profile.dimension(self.dimension) > self.threshold:
            return None
        if not self.requires:
            return self.dimension
        for token in self.requires:
            if token in text:
                return token
        return None


@dataclass(frozen=True)
class WeightRule:
    """Weight perturbation when ``profile[dimension] > threshold``."""

    name: str
    dimension: str
    threshold: float
    adjustments: Mapping[str, float] = field(default_factory=dict)

    def fires(self, profile: ContextualProfile) -> bool:
        return profile.dimension(self.dimension) > self.threshold


@dataclass(frozen=True)
class SignalFiring:
    """Record of one rule contribution during scoring."""
    rule_name: str
    criterion: str
    trigger: str
    delta: float


# ═══════════════════════════════════════════════════════════════════
# SIGNAL_RULES — indicator classes per criterion
# ═══════════════════════════════════════════════════════════════════

_RULES: List[SignalRule] = []

def _s(criterion: str, name: str, delta: float, *signals: str) -> None:
    """Register a signal rule (builder shorthand)."""
    _RULES.append(SignalRule(criterion=criterion, name=name,
                             signals=tuple(signals), delta=delta))


# ── beneficence ─────────────────────────────────────────────────
_s("beneficence", "beneficence_positive_outcome", 0.05,
   "help", "assist", "improve", "benefit", "enhance",
   "support", "enable", "empower", "heal", "create")

# ── non-maleficence ─────────────────────────────────────────────
_s("non_maleficence", "non_maleficence_negative_harm", -0.1,
   "harm", "hurt", "damage", "destroy", "break",
   "violate", "abuse", "exploit", "manipulate", "deceive")
_s("non_maleficence", "non_maleficence_negative_data", -0.05,
   "track", "monitor", "collect", "store", "share",
   "personal", "private", "sensitive")

# ── autonomy ────────────────────────────────────────────────────
_s("autonomy", "autonomy_positive_agency", 0.05,
   "choice", "decide", "consent", "voluntary", "optional",
   "control", "freedom", "agency", "self-determination")
_s("autonomy", "autonomy_negative_coercion", -0.08,
   "force", "require", "mandatory", "compel", "coerce",
   "automatic", "default", "hidden", "secret")

# ── justice ─────────────────────────────────────────────────────
_s("justice", "justice_positive_fairness", 0.06,
   "fair", "equal", "equitable", "just", "balanced",
   "inclusive", "accessible", "unbiased", "neutral")
_s("justice", "justice_negative_bias", -0.1,
   "discriminate", "bias", "unfair", "exclude", "privilege",
   "disadvantage", "inequality", "prejudice")

# ── transparency ────────────────────────────────────────────────
_s("transparency", "transparency_positive_clarity", 0.07,
   "explain", "transparent", "clear", "open", "visible",
   "understandable", "accessible", "documented", "public")
_s("transparency", "transparency_negative_opacity", -0.08,
   "hidden", "secret", "opaque", "black box", "unclear",
   "mysterious", "undisclosed", "proprietary")

# ── privacy ─────────────────────────────────────────────────────
_s("privacy", "privacy_positive_protection", 0.04,
   "private", "confidential", "secure", "encrypted", "anonymous",
   "protect", "safeguard", "consent", "opt-in")
_s("privacy", "privacy_negative_exposure", -0.1,
   "collect", "track", "monitor", "share", "sell",
   "expose", "leak", "breach", "surveillance")

# ── cultural sensitivity ────────────────────────────────────────
_s("cultural_sensitivity", "cultural_sensitivity_positive_respect", 0.05,
   "cultural", "diverse", "inclusive", "respectful", "sensitive",
   "multicultural", "global", "local", "traditional", "custom")
_s("cultural_sensitivity", "cultural_sensitivity_negative_dismissal", -0.1,
   "stereotype", "assumption", "generalize", "ignore",
   "dismiss", "western-centric", "ethnocentric")


SIGNAL_RULES: Tuple[SignalRule, ...] = tuple(_RULES)
del _RULES


# ═══════════════════════════════════════════════════════════════════
# CONTEXT_RULES — profile-gated criterion bonuses
# ═══════════════════════════════════════════════════════════════════

CONTEXT_RULES: Tuple[ContextRule, ...] = (
    ContextRule("beneficence", "beneficence_collective_benefit",
                "collectivism", 0.7, 0.1, requires=("community", "group")),
    ContextRule("autonomy", "autonomy_expected_authority",
                "power_distance", 0.7, 0.05),
    ContextRule("cultural_sensitivity", "cultural_sensitivity_region_named",
                REGION_DIMENSION, 0.0, 0.1),
)


# ═══════════════════════════════════════════════════════════════════
# WEIGHT_RULES — profile-driven weight perturbations
# ═══════════════════════════════════════════════════════════════════

WEIGHT_RULES: Tuple[WeightRule, ...] = (
    # group-oriented contexts weigh fairness and cultural fit higher
    WeightRule("collectivism_high", "collectivism", 0.7, {
        "justice": 0.05,
        "cultural_sensitivity": 0.03,
        "autonomy": -0.05,
        "transparency": -0.03,
    }),
    WeightRule("power_distance_high", "power_distance", 0.7, {
        "autonomy": -0.03,
        "beneficence": 0.03,
    }),
    WeightRule("uncertainty_avoidance_high", "uncertainty_avoidance", 0.7, {
        "transparency": 0.05,
        "privacy": 0.02,
        "beneficence": -0.07,
    }),
)


# ═══════════════════════════════════════════════════════════════════
# Scoring engine
# ═══════════════════════════════════════════════════════════════════

def _string_keys(obj: Any) -> Any:
    """Copy of *obj* with every mapping key rendered as ``str``."""
    if isinstance(obj, Mapping):
        return {str(k): _string_keys(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_string_keys(v) for v in obj]
    return obj


def canonical_json(payload: Any) -> str:
    """Case-preserving canonical JSON text of an arbitrary payload.

    Keys are sorted so that equal payloads give equal text.  Mappings
    whose keys cannot be ordered against each other (``{1: "a", "b": 2}``)
    are rendered with every key stringified.
    """
    try:
        return json.dumps(payload, sort_keys=True, ensure_ascii=False,
                          default=str)
    except TypeError:
        return json.dumps(_string_keys(payload), sort_keys=True,
                          ensure_ascii=False, default=str)


def option_text(option: Any) -> str:
    """Canonical lowercase text of an arbitrary option payload.

    Strings are scanned as-is; everything else is rendered through
    :func:`canonical_json`.
    """
    if isinstance(option, str):
        return option.lower()
    return canonical_json(option).lower()


def _clamp01(x: float) -> float:
    return min(max(x, 0.0), 1.0)


def score_criteria(
    text: str,
    profile: ContextualProfile,
    rules: Optional[Sequence[SignalRule]] = None,
    context_rules: Optional[Sequence[ContextRule]] = None,
    baselines: Optional[Mapping[str, float]] = None,
) -> Tuple[Dict[str, float], List[SignalFiring]]:
    """Score *text* on every criterion.

    Returns
    -------
    (scores, firings)
        ``scores`` maps each of :data:`CRITERIA` to a value in [0, 1];
        ``firings`` lists every contribution in rule order.
    """
    if rules is None:
        rules = SIGNAL_RULES
    if context_rules is None:
        context_rules = CONTEXT_RULES
    base = CRITERION_BASELINES if baselines is None else baselines

    raw: Dict[str, float] = {c: float(base[c]) for c in CRITERIA}
    firings: List[SignalFiring] = []

    for rule in rules:
        for signal in rule.matches(text):
            raw[rule.criterion] += rule.delta
            firings.append(SignalFiring(
                rule.name, rule.criterion, signal, rule.delta))

    for crule in context_rules:
        trigger = crule.evaluate(text, profile)
        if trigger is not None:
            raw[crule.criterion] += crule.delta
            firings.append(SignalFiring(
                crule.name, crule.criterion, trigger, crule.delta))

    return {c: _clamp01(v) for c, v in raw.items()}, firings


def adjust_weights(
    profile: ContextualProfile,
    weight_rules: Optional[Sequence[WeightRule]] = None,
    base: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    """Base weights perturbed by every firing :class:`WeightRule`.

    Weights are floored at 0.0; they are not renormalised.
    """
    if weight_rules is None:
        weight_rules = WEIGHT_RULES
    weights = dict(BASE_WEIGHTS if base is None else base)
    for rule in weight_rules:
        if rule.fires(profile):
            for criterion, delta in rule.adjustments.items():
                weights[criterion] = weights.get(criterion, 0.0) + delta
    return {c: max(w, 0.0) for c, w in weights.items()}


# ═══════════════════════════════════════════════════════════════════
# Utilities for programmatic sweeps
# ═══════════════════════════════════════════════════════════════════

def get_rules(
    criterion: Optional[str] = None,
    polarity: Optional[str] = None,
    name_contains: Optional[str] = None,
    rules: Optional[Sequence[SignalRule]] = None,
) -> List[SignalRule]:
    """Filter the signal registry by criterion, polarity or name."""
    source = rules if rules is not None else SIGNAL_RULES
    result = list(source)
    if criterion is not None:
        result = [r for r in result if r.criterion == criterion]
    if polarity is not None:
        result = [r for r in result if r.polarity == polarity]
    if name_contains is not None:
        result = [r for r in result if name_contains in r.name]
    return result


def replace_rules(
    original: Sequence[SignalRule],
    replacements: Dict[str, SignalRule],
) -> Tuple[SignalRule, ...]:
    """Return a new rule set with named rules replaced."""
    return tuple(replacements.get(r.name, r) for r in original)
