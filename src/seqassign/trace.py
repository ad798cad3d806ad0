"""SearchTrace — audit trail of one spin-system hypothesis search.

Captures what :meth:`SpinSystem.calc_combinations` saw and decided:
the admissible readings of every peak, how many labelings were scored,
pruned as shift-inconsistent or scored zero, and which one won, in a
single frozen dataclass suitable for debugging and serialisation.

Usage
-----
>>> trace = spin_system.calc_combinations()
>>> trace.labeled                 # True
>>> trace.best_probability        # 0.0183
>>> trace.n_evaluated             # 12
>>> trace.to_dict()               # JSON-safe dict
>>> trace.summary()               # one-line text
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

__all__ = [
    "PeakCandidates",
    "SearchTrace",
]


# ═══════════════════════════════════════════════════════════════════
# PeakCandidates: the readings offered for one peak
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PeakCandidates:
    """Admissible readings of one peak within the search.

    ``readings`` holds one text description per candidate, in search
    order; ``None`` stands for the "peak unused" candidate.
    """

    peak_name: str
    n_enumerated: int
    readings: Tuple[Optional[str], ...]
    excess: bool = False

    @property
    def n_candidates(self) -> int:
        return len(self.readings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peak": self.peak_name,
            "n_enumerated": self.n_enumerated,
            "readings": list(self.readings),
            "excess": self.excess,
        }


# ═══════════════════════════════════════════════════════════════════
# SearchTrace: the full audit trail
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SearchTrace:
    """Complete audit trail for one hypothesis search.

    1. **root** — name of the system's root peak
    2. **peaks** — :class:`PeakCandidates` per member peak, in order
    3. **n_space** — size of the full combination space
    4. **n_evaluated** — complete labelings scored
    5. **n_pruned** — partial labelings cut as shift-inconsistent
    6. **n_zero** — complete labelings with probability 0
    7. **best_probability** — winning probability (0.0 if none)
    8. **choice** — winning candidate index per peak (empty if none)
    9. **labeled** — whether a labeling was accepted
    """

    root: str
    peaks: List[PeakCandidates] = field(default_factory=list)
    n_space: int = 0
    n_evaluated: int = 0
    n_pruned: int = 0
    n_zero: int = 0
    best_probability: float = 0.0
    choice: Tuple[int, ...] = ()
    labeled: bool = False

    # ── Derived properties ──────────────────────────────────────

    @property
    def n_searched_peaks(self) -> int:
        """Peaks with more than one candidate."""
        return sum(1 for p in self.peaks if p.n_candidates > 1)

    @property
    def chosen_readings(self) -> List[Optional[str]]:
        """Winning reading per peak, ``None`` for unused peaks."""
        if not self.choice:
            return []
        result = []
        for cand, idx in zip(self.peaks, self.choice):
            result.append(cand.readings[idx] if cand.readings else None)
        return result

    # ── Serialisation ───────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe dict of the full trace."""
        return {
            "root": self.root,
            "peaks": [p.to_dict() for p in self.peaks],
            "n_space": self.n_space,
            "n_evaluated": self.n_evaluated,
            "n_pruned": self.n_pruned,
            "n_zero": self.n_zero,
            "best_probability": round(self.best_probability, 8),
            "choice": list(self.choice),
            "labeled": self.labeled,
        }

    def summary(self) -> str:
        """One-line human-readable summary."""
        state = "labeled" if self.labeled else "unlabeled"
        return (
            f"{self.root}: {state}, {len(self.peaks)} peaks "
            f"({self.n_searched_peaks} searched), "
            f"space={self.n_space} evaluated={self.n_evaluated} "
            f"pruned={self.n_pruned} zero={self.n_zero} "
            f"p={self.best_probability:.4g}"
        )
