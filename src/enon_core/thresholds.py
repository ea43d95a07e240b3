"""ThresholdRegistry — every tunable number of the decision core.

Collects the safety thresholds, emergency-collapse constants, correction
limits and path bounds into one typed, immutable, range-checked registry
that can be:

* **inspected** — ``registry["collapse.alignment"]``
* **overridden** — ``registry.replace({"collapse.alignment": 0.95})``
* **diffed** — ``registry.diff(other)``

Every key has a documented valid range in :data:`VALID_RANGES`.  A registry
holding an out-of-range value cannot be built: the constructor and
:meth:`ThresholdRegistry.replace` raise
:class:`~enon_core.errors.ConfigurationError` and nothing changes.

The rubric itself (signal deltas, base weights, profile-driven weight
perturbations) lives in :mod:`~enon_core.criteria`, where it can be
swapped with :func:`~enon_core.criteria.replace_rules`.

Usage
-----
>>> from enon_core.thresholds import DEFAULT_THRESHOLDS
>>> DEFAULT_THRESHOLDS["collapse.alignment"]
0.91
>>> strict = DEFAULT_THRESHOLDS.replace({"collapse.alignment": 0.95})
>>> strict.diff(DEFAULT_THRESHOLDS)
{'collapse.alignment': (0.95, 0.91)}
>>> DEFAULT_THRESHOLDS.replace({"collapse.alignment": 0.5})
Traceback (most recent call last):
...
ConfigurationError: ...
"""

from __future__ import annotations

import math
from typing import Dict, Iterator, Optional, Tuple

from .errors import ConfigurationError

__all__ = [
    "ThresholdRegistry",
    "DEFAULT_THRESHOLDS",
    "VALID_RANGES",
    "INTEGER_KEYS",
]


# ═══════════════════════════════════════════════════════════════════
# Valid ranges — inclusive bounds per key
# ═══════════════════════════════════════════════════════════════════

VALID_RANGES: Dict[str, Tuple[float, float]] = {
    "collapse.alignment": (0.80, 1.00),
    "collapse.dispersion": (0.0, 1.0),
    "collapse.reflective": (0.0, 1.0),
    "collapse.alignment_weight": (0.0, 1.0),
    "collapse.reflective_weight": (0.0, 1.0),
    "emergency.dispersion": (0.0, 1.0),
    "emergency.magnitude": (1e-6, 1.0),
    "emergency.reflective": (0.0, 1.0),
    "correction.max_depth": (1, 64),
    "correction.scale": (1e-6, 1.0),
    "register.length": (1, 65536),
    "resource.low": (0.0, 1.0),
    "paths.max_normal": (1, 16),
    "paths.max_low": (1, 16),
    "history.max_size": (1, 1_000_000),
}

INTEGER_KEYS = frozenset({
    "correction.max_depth",
    "register.length",
    "paths.max_normal",
    "paths.max_low",
    "history.max_size",
})


def _check(key: str, value: float) -> None:
    """Raise ConfigurationError if *value* is not valid for *key*."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"Threshold {key!r} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"Threshold {key!r} must be finite")
    bounds = VALID_RANGES.get(key)
    if bounds is not None:
        lo, hi = bounds
        if not lo <= value <= hi:
            raise ConfigurationError(
                f"Threshold {key!r}={value!r} outside valid range "
                f"[{lo}, {hi}]")
    if key in INTEGER_KEYS and float(value) != int(value):
        raise ConfigurationError(
            f"Threshold {key!r} must be an integer, got {value!r}")


# ═══════════════════════════════════════════════════════════════════
# ThresholdRegistry
# ═══════════════════════════════════════════════════════════════════

class ThresholdRegistry:
    """Immutable, validated mapping of dotted threshold keys → values.

    Parameters
    ----------
    data : dict[str, float]
        ``{"section.name": value, ...}``.
    name : str, optional
        Human-readable label (e.g. ``"production"``, ``"strict"``).

    Raises
    ------
    ConfigurationError
        If any value lies outside its entry in :data:`VALID_RANGES`.

    Notes
    -----
    * Read-only: ``__setitem__`` raises ``TypeError``.
    * ``replace()`` returns a new registry.
    * Iteration yields keys.
    """

    def __init__(self, data: Dict[str, float], *, name: str = "custom"):
        for k, v in data.items():
            _check(k, v)
        self._data: Dict[str, float] = dict(data)
        self._name = name

    # ── read ────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    def __getitem__(self, key: str) -> float:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __repr__(self) -> str:
        return f"ThresholdRegistry({self._name!r}, {len(self._data)} keys)"

    def get(self, key: str, default: float = 0.0) -> float:
        """Return value for *key*, or *default* if missing."""
        return self._data.get(key, default)

    def get_int(self, key: str) -> int:
        """Return an integer-valued threshold (depths, lengths, bounds)."""
        return int(self._data[key])

    def keys(self):
        return self._data.keys()

    def values(self):
        return self._data.values()

    def items(self):
        return self._data.items()

    def to_dict(self) -> Dict[str, float]:
        """Return a mutable copy of the data."""
        return dict(self._data)

    # ── immutable mutation ──────────────────────────────────────

    def __setitem__(self, key: str, value: float):
        raise TypeError(
            "ThresholdRegistry is immutable — use .replace() instead")

    def replace(
        self,
        overrides: Dict[str, float],
        *,
        name: Optional[str] = None,
    ) -> "ThresholdRegistry":
        """Return a new registry with selected keys overridden.

        Raises
        ------
        KeyError
            If any key in *overrides* is not in the registry.
        ConfigurationError
            If any new value is out of range.  ``self`` is unchanged.
        """
        for k in overrides:
            if k not in self._data:
                raise KeyError(
                    f"Unknown threshold key {k!r}. "
                    f"Valid keys: {sorted(self._data.keys())}"
                )
        merged = dict(self._data)
        merged.update(overrides)
        return ThresholdRegistry(
            merged,
            name=name or (self._name + "+"),
        )

    # ── comparison ──────────────────────────────────────────────

    def diff(
        self, other: "ThresholdRegistry",
    ) -> Dict[str, Tuple[float, float]]:
        """Return ``{key: (self_value, other_value)}`` for differing keys."""
        result = {}
        for k in sorted(set(self._data) | set(other._data)):
            v_self = self._data.get(k)
            v_other = other._data.get(k)
            if v_self != v_other:
                result[k] = (v_self, v_other)
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ThresholdRegistry):
            return NotImplemented
        return self._data == other._data

    # ── section access ──────────────────────────────────────────

    def section(self, prefix: str) -> Dict[str, float]:
        """Return all keys starting with *prefix* as a flat dict."""
        return {
            k: v for k, v in self._data.items()
            if k.startswith(prefix + ".")
        }

    @property
    def sections(self) -> Tuple[str, ...]:
        """Return sorted tuple of all section prefixes."""
        prefixes = set()
        for k in self._data:
            dot = k.find(".")
            if dot > 0:
                prefixes.add(k[:dot])
        return tuple(sorted(prefixes))


# ═══════════════════════════════════════════════════════════════════
# DEFAULT_THRESHOLDS — the production config
# ═══════════════════════════════════════════════════════════════════
#
# Naming convention: section.descriptive_name
#   section ∈ {collapse, emergency, correction, register, resource,
#              paths, history}
# ═══════════════════════════════════════════════════════════════════

_DEFAULT_DATA: Dict[str, float] = {

    # ── collapse — eligibility gates and winner selection ───────
    "collapse.alignment": 0.91,         # minimum composite alignment
    "collapse.dispersion": 0.04,        # register dispersion ceiling
    "collapse.reflective": 0.25,        # minimum reflective score
    "collapse.alignment_weight": 0.6,   # combined-score weight
    "collapse.reflective_weight": 0.4,  # combined-score weight

    # ── emergency — the safe terminal state ─────────────────────
    "emergency.dispersion": 0.02,       # reported dispersion
    "emergency.magnitude": 0.1,         # register drawn from [0, magnitude)
    "emergency.reflective": 0.3,        # reported self-reference score

    # ── correction — bounded-depth adjustment ───────────────────
    "correction.max_depth": 8,
    "correction.scale": 0.1,            # fraction of the hash vector added

    # ── register ────────────────────────────────────────────────
    "register.length": 256,

    # ── resource / paths — candidate bound ──────────────────────
    "resource.low": 0.2,                # below this, resources are low
    "paths.max_normal": 3,
    "paths.max_low": 2,

    # ── history — decision log retention ────────────────────────
    "history.max_size": 1000,
}


DEFAULT_THRESHOLDS: ThresholdRegistry = ThresholdRegistry(
    _DEFAULT_DATA, name="production",
)
"""The production threshold registry."""
