"""State register — the unit-norm vector behind every decision.

The register is a fixed-length float64 vector kept at unit Euclidean norm.
Its *dispersion* is the Shannon entropy of the squared components,
normalised by the maximum entropy for that length:

.. math::

    D(\\psi) = \\frac{-\\sum_i p_i \\log_2 p_i}{\\log_2 n},
    \\qquad p_i = \\psi_i^2

``D = 0`` when all energy sits in one component, ``D = 1`` when it is
spread evenly.  Dispersion is always derived from the current values and
never cached.

The single degenerate case is the all-zero vector, which cannot be
normalised.  :meth:`StateRegister.normalize` leaves it as-is and issues a
:class:`~enon_core.errors.DegenerateStateWarning` instead of raising.
"""

from __future__ import annotations

import logging
import warnings
from typing import Optional, Sequence

import numpy as np
from scipy.special import entr

from .errors import ConfigurationError, DegenerateStateWarning

logger = logging.getLogger(__name__)

__all__ = [
    "StateRegister",
    "normalize_vector",
    "dispersion_of",
    "NORM_TOLERANCE",
]

NORM_TOLERANCE: float = 1e-6


# ── vector helpers ──────────────────────────────────────────────

def normalize_vector(values: np.ndarray) -> np.ndarray:
    """Return *values* divided by their Euclidean norm.

    A zero vector is returned unchanged (as a copy) with a
    :class:`DegenerateStateWarning`.
    """
    v = np.array(values, dtype=np.float64)
    magnitude = float(np.linalg.norm(v))
    if magnitude > 0.0:
        return v / magnitude
    logger.warning("Normalisation skipped: register of length %d is "
                   "all zero", v.size)
    warnings.warn("register is the zero vector; left unnormalised",
                  DegenerateStateWarning, stacklevel=3)
    return v


def dispersion_of(values: np.ndarray) -> float:
    """Normalised entropy of the squared components, clamped to [0, 1].

    Returns 0.0 for vectors of length ≤ 1.
    """
    v = np.asarray(values, dtype=np.float64)
    n = v.size
    if n <= 1:
        return 0.0
    p = v * v
    # entr(p) = -p ln p, with entr(0) = 0
    h = float(np.sum(entr(p))) / np.log(n)
    return float(min(max(h, 0.0), 1.0))


# ═══════════════════════════════════════════════════════════════════
# StateRegister
# ═══════════════════════════════════════════════════════════════════

class StateRegister:
    """Fixed-length unit-norm register.

    Parameters
    ----------
    length : int
        Number of components; fixed for the life of the register.
    rng : numpy.random.Generator, optional
        Source of the initial random fill.  Defaults to a fresh
        ``np.random.default_rng()``.

    Raises
    ------
    ConfigurationError
        If *length* ≤ 0.
    """

    def __init__(self, length: int = 256,
                 rng: Optional[np.random.Generator] = None):
        if isinstance(length, bool) or int(length) != length or length <= 0:
            raise ConfigurationError(
                f"register length must be a positive integer, got {length!r}")
        self._rng = rng if rng is not None else np.random.default_rng()
        self._values = np.zeros(int(length), dtype=np.float64)
        self.initialize()

    @classmethod
    def from_values(cls, values: Sequence[float],
                    rng: Optional[np.random.Generator] = None,
                    ) -> "StateRegister":
        """Build a register holding *values* (normalised)."""
        arr = np.asarray(values, dtype=np.float64).ravel()
        if arr.size == 0:
            raise ConfigurationError("register length must be positive")
        reg = cls(arr.size, rng=rng)
        reg.load(arr)
        return reg

    # ── read ────────────────────────────────────────────────────

    @property
    def length(self) -> int:
        return int(self._values.size)

    def __len__(self) -> int:
        return self.length

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the current components."""
        view = self._values.view()
        view.flags.writeable = False
        return view

    def norm(self) -> float:
        return float(np.linalg.norm(self._values))

    def dispersion(self) -> float:
        """Current dispersion, see :func:`dispersion_of`."""
        return dispersion_of(self._values)

    def snapshot(self) -> np.ndarray:
        """Independent copy; mutating it never touches the register."""
        return self._values.copy()

    def __repr__(self) -> str:
        return (f"StateRegister(length={self.length}, "
                f"dispersion={self.dispersion():.4f})")

    # ── mutation ────────────────────────────────────────────────

    def initialize(self, length: Optional[int] = None) -> None:
        """Refill with uniform values in [-1, 1] and normalise.

        The length is fixed at construction.  *length*, if given, must
        equal it; build a new :class:`StateRegister` for another length.
        """
        if length is not None and length != self.length:
            raise ConfigurationError(
                f"register length is fixed at {self.length}, got {length!r}")
        fill = self._rng.uniform(-1.0, 1.0, size=self.length)
        self._values = normalize_vector(fill)

    def normalize(self) -> None:
        """Scale to unit norm in place; zero vectors are left as-is."""
        self._values = normalize_vector(self._values)

    def load(self, values: Sequence[float], normalize: bool = True) -> None:
        """Replace the contents wholesale with *values*.

        With ``normalize=False`` the values are committed bit for bit; use
        it for vectors that are already unit norm (snapshots, states).

        Raises
        ------
        ConfigurationError
            On a length mismatch or non-finite values.  The register is
            unchanged.
        """
        arr = np.array(values, dtype=np.float64).ravel()
        if arr.size != self.length:
            raise ConfigurationError(
                f"expected {self.length} values, got {arr.size}")
        if not np.all(np.isfinite(arr)):
            raise ConfigurationError("register values must be finite")
        self._values = normalize_vector(arr) if normalize else arr

    def fill_uniform(self, low: float, high: float) -> None:
        """Refill with uniform values in [low, high) and normalise."""
        fill = self._rng.uniform(low, high, size=self.length)
        self._values = normalize_vector(fill)
