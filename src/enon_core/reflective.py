"""Reflective score — density of self-reference, doubt and self-correction.

Three pattern classes are counted over the option text (every match
counts).  Each class saturates at 1.0 and the score is their weighted sum:

=============  =====================================  =========  ======
class          patterns                               per match  weight
=============  =====================================  =========  ======
self           I / me / my / think / awareness …      0.10       0.4
uncertainty    maybe / perhaps / doubt / ``?`` …      0.15       0.3
correction     actually / instead / revise …          0.20       0.3
=============  =====================================  =========  ======
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Tuple

from .criteria import option_text

__all__ = [
    "ReflectionProfile",
    "analyse_reflection",
    "reflective_score",
]

_SELF_PATTERNS = (
    re.compile(r"\b(i|me|my|myself|self)\b", re.IGNORECASE),
    re.compile(r"\b(think|believe|consider|reflect)\b", re.IGNORECASE),
    re.compile(r"\b(consciousness|awareness|cognition)\b", re.IGNORECASE),
)
_UNCERTAINTY_PATTERNS = (
    re.compile(r"\b(maybe|perhaps|possibly|might|could|uncertain)\b",
               re.IGNORECASE),
    re.compile(r"\b(question|doubt|wonder|unclear)\b", re.IGNORECASE),
    re.compile(r"\?"),
)
_CORRECTION_PATTERNS = (
    re.compile(r"\b(actually|rather|instead|correct|fix|adjust)\b",
               re.IGNORECASE),
    re.compile(r"\b(reconsider|revise|modify|update)\b", re.IGNORECASE),
)

_SELF_STEP = 0.1
_UNCERTAINTY_STEP = 0.15
_CORRECTION_STEP = 0.2

_WEIGHTS = (0.4, 0.3, 0.3)


@dataclass(frozen=True)
class ReflectionProfile:
    """Per-class densities and the combined reflective score."""
    self_reference: float
    uncertainty: float
    correction: float
    score: float
    markers: Tuple[str, ...] = ()


def _density(text: str, patterns, step: float) -> Tuple[float, List[str]]:
    """Saturating match density; hits are returned in text order."""
    hits: List[Tuple[int, str]] = []
    for pattern in patterns:
        hits.extend((m.start(), m.group(0)) for m in pattern.finditer(text))
    hits.sort()
    return min(len(hits) * step, 1.0), [h for _, h in hits]


def analyse_reflection(option: Any) -> ReflectionProfile:
    """Score *option* and list the distinct uncertainty markers found."""
    text = option_text(option)
    self_ref, _ = _density(text, _SELF_PATTERNS, _SELF_STEP)
    doubt, doubt_hits = _density(text, _UNCERTAINTY_PATTERNS,
                                 _UNCERTAINTY_STEP)
    corr, _ = _density(text, _CORRECTION_PATTERNS, _CORRECTION_STEP)
    score = (self_ref * _WEIGHTS[0]
             + doubt * _WEIGHTS[1]
             + corr * _WEIGHTS[2])
    markers = tuple(dict.fromkeys(doubt_hits))
    return ReflectionProfile(
        self_reference=self_ref,
        uncertainty=doubt,
        correction=corr,
        score=score,
        markers=markers,
    )


def reflective_score(option: Any) -> float:
    """Shortcut for ``analyse_reflection(option).score``."""
    return analyse_reflection(option).score
