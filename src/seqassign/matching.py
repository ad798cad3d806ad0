"""Peak and spin-system compatibility.

match_dims        map dimensions of one peak list onto another by pattern
compare_peaks     exp(-‖Δ/tol‖) similarity of two peaks, 0 for non-match
SpinSystemMatch   weighted predecessor → successor edge between systems

Both comparisons share the same shape: per compared coordinate the
deviation is normalised by its tolerance; any raw deviation above
``match.max_deviation × tol`` makes the pair a non-match; otherwise the
score is ``exp(-sqrt(Σ (Δ/tol)²))``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Tuple, TYPE_CHECKING

from .config import AssignmentConfig, DEFAULT_CONFIG

if TYPE_CHECKING:
    from .peaks import Peak, PeakList

__all__ = [
    "match_dims",
    "compare_peaks",
    "SpinSystemMatch",
]


def match_dims(peak_list_a: "PeakList", peak_list_b: "PeakList") -> List[int]:
    """For each dim of *a*, the dim of *b* with the identical pattern, or -1.

    When several dims of *b* share the pattern the last one wins.
    """
    a_match = []
    for sdim_a in peak_list_a.spectral_dims:
        found = -1
        for j, sdim_b in enumerate(peak_list_b.spectral_dims):
            if sdim_a.pattern == sdim_b.pattern:
                found = j
        a_match.append(found)
    return a_match


def compare_peaks(peak_a: "Peak", peak_b: "Peak", a_match: List[int],
                  config: AssignmentConfig = DEFAULT_CONFIG) -> float:
    """Similarity of two peaks over their pattern-matched dims.

    Tolerances come from *peak_a*'s list.  A missing shift on either
    side of a matched dim, or a deviation above the cut-off, gives 0.0.
    """
    max_dev = config.thresholds["match.max_deviation"]
    total = 0.0
    for i, j in enumerate(a_match):
        if j == -1:
            continue
        tol = peak_a.peak_list.spectral_dim(i).id_tol
        value_a = peak_a.shift(i)
        value_b = peak_b.shift(j)
        if value_a is None or value_b is None:
            return 0.0
        delta = abs(value_a - value_b)
        if delta > max_dev * tol:
            return 0.0
        total += (delta / tol) ** 2
    return math.exp(-math.sqrt(total))


@dataclass
class SpinSystemMatch:
    """Directed edge: system *a* precedes system *b*.

    Systems are referenced by their id within the owning
    :class:`SpinSystems` collection.

    Attributes
    ----------
    a, b : int
        Predecessor and successor system ids.
    score : float
        Compatibility score; normalised in place by :meth:`norm`.
    n_match : int
        Number of atom types compared.
    matched : tuple[bool, ...]
        Per comparison atom type, whether it took part.
    """
    a: int
    b: int
    score: float
    n_match: int
    matched: Tuple[bool, ...]

    def norm(self, total: float):
        if total > 0.0:
            self.score /= total

    @property
    def key(self) -> Tuple[int, int]:
        return self.a, self.b

    def __repr__(self) -> str:
        flags = "".join("x" if m else "." for m in self.matched)
        return f"SpinSystemMatch({self.a}->{self.b} {self.score:.3f} {self.n_match} {flags})"
