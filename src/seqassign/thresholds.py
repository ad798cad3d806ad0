"""Tunable tolerances and cut-offs for labeling and matching.

Every empirical number the engine consults lives in one
:class:`ThresholdRegistry`, keyed ``"<section>.<name>"``:

``tolerance``
    Per-atom-type shift tolerance in ppm (``tolerance.ca`` ...).
``scorer``
    Hypothesis admissibility limits and the missing-atom penalty.
``search``
    The consistency factor used to prune labelings.
``match``
    The peak/peak deviation cut-off.

A registry never changes after construction.  Variants are derived
with :meth:`ThresholdRegistry.replace`, which refuses keys the base
registry does not know, so a typo cannot silently add a threshold.

Structural tables (atom types, expected atom counts) are not
thresholds; they live on :class:`~seqassign.config.AssignmentConfig`.

Usage
-----
>>> from seqassign.thresholds import DEFAULT_THRESHOLDS
>>> DEFAULT_THRESHOLDS["tolerance.ca"]
0.6
>>> wide = DEFAULT_THRESHOLDS.replace({"tolerance.ca": 0.8}, name="wide-ca")
>>> wide.diff(DEFAULT_THRESHOLDS)
{'tolerance.ca': (0.8, 0.6)}
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Tuple

__all__ = [
    "ThresholdRegistry",
    "DEFAULT_THRESHOLDS",
]


# ═══════════════════════════════════════════════════════════════════
# ThresholdRegistry
# ═══════════════════════════════════════════════════════════════════

class ThresholdRegistry:
    """Read-only mapping of ``"section.name"`` keys to float values.

    Parameters
    ----------
    data : dict[str, float]
        Initial values; copied on construction.
    name : str, optional
        Label shown in ``repr`` and carried into derived registries.

    Two registries compare equal (and hash equal) when their values
    match, whatever their names.
    """

    def __init__(self, data: Dict[str, float], *, name: str = "custom"):
        self._data: Dict[str, float] = dict(data)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def __getitem__(self, key: str) -> float:
        return self._data[key]

    def __setitem__(self, key: str, value: float):
        raise TypeError(
            f"ThresholdRegistry {self._name!r} is immutable; "
            "derive a new one with .replace()")

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ThresholdRegistry):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))

    def __repr__(self) -> str:
        return f"ThresholdRegistry({self._name!r}, {len(self)} keys)"

    def get(self, key: str, default: float = 0.0) -> float:
        return self._data.get(key, default)

    def items(self):
        return self._data.items()

    def to_dict(self) -> Dict[str, float]:
        """Plain ``dict`` copy, safe to mutate."""
        return dict(self._data)

    # ── derivation ──────────────────────────────────────────────

    def replace(self, overrides: Dict[str, float], *,
                name: Optional[str] = None) -> "ThresholdRegistry":
        """Copy of this registry with *overrides* applied.

        The copy is named *name*, or this registry's name with a
        trailing ``"+"``.

        Raises
        ------
        KeyError
            If *overrides* names a key this registry does not have.
        """
        unknown = sorted(set(overrides) - set(self._data))
        if unknown:
            raise KeyError(
                f"Unknown threshold key(s) {unknown} for registry "
                f"{self._name!r}; known sections: {list(self.sections)}")
        data = dict(self._data)
        data.update(overrides)
        return ThresholdRegistry(data, name=name or f"{self._name}+")

    def diff(self, other: "ThresholdRegistry",
             ) -> Dict[str, Tuple[Optional[float], Optional[float]]]:
        """``{key: (mine, theirs)}`` for every key whose value differs.

        A key present on one side only reports ``None`` for the other.
        """
        keys = sorted(set(self._data) | set(other._data))
        return {k: (self._data.get(k), other._data.get(k))
                for k in keys
                if self._data.get(k) != other._data.get(k)}

    # ── sections ────────────────────────────────────────────────

    def section(self, prefix: str) -> Dict[str, float]:
        """All entries under ``prefix.``, e.g. ``section("tolerance")``."""
        head = prefix + "."
        return {k: v for k, v in self._data.items() if k.startswith(head)}

    @property
    def sections(self) -> Tuple[str, ...]:
        """Sorted section prefixes; keys without a dot belong to none."""
        return tuple(sorted({k.partition(".")[0] for k in self._data if "." in k}))


# ═══════════════════════════════════════════════════════════════════
# DEFAULT_THRESHOLDS: the production config
# ═══════════════════════════════════════════════════════════════════
#
# Naming convention: section.descriptive_name
#   section ∈ {tolerance, scorer, search, match}
# ═══════════════════════════════════════════════════════════════════

_DEFAULT_DATA: Dict[str, float] = {

    # ── tolerance: per atom type, ppm ──────────────────────────
    "tolerance.h": 0.04,
    "tolerance.n": 0.5,
    "tolerance.c": 0.6,
    "tolerance.ha": 0.04,
    "tolerance.ca": 0.6,
    "tolerance.cb": 0.6,

    # ── scorer: per-hypothesis admissibility ───────────────────
    "scorer.ca_floor": 38.0,            # CA below this is implausible
    "scorer.gly_ca": 50.0,              # glycine-like CA
    "scorer.ambiguous_limit": 0.95,     # |norm. intensity| cap for i-1
    "scorer.ambiguous_limit_gly": 1.2,  # same, glycine-like CA present

    # ── scorer: joint probability ──────────────────────────────
    "scorer.missing_log_prob": -1.0,    # log of per-atom missing prob.

    # ── search: combination consistency ───────────────────────
    "search.consistency_factor": 1.5,   # × tolerance vs first value

    # ── match: peak/peak and system/system comparison ─────────
    "match.max_deviation": 2.0,         # × tolerance, hard cut-off
}


DEFAULT_THRESHOLDS: ThresholdRegistry = ThresholdRegistry(
    _DEFAULT_DATA, name="production",
)
"""The production threshold registry.

Contains the atom tolerances, the admissibility cut-offs and the
consistency and matching limits.
"""
