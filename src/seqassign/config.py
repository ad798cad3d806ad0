"""AssignmentConfig — the per-session constants of the assignment engine.

Bundles the closed atom-type table, the expected-observation table and
the comparison atom subset with a :class:`ThresholdRegistry`.  One
config is built per session and handed explicitly to the pattern
enumerator, the scorer, each :class:`SpinSystem` and the
:class:`SpinSystems` collection.

Cells
-----
Per-system shift summaries are indexed ``[k, atom]`` where ``k`` is
``offset + 1``: row 0 holds previous-residue (``i-1``) values and row 1
current-residue (``i``) values.

Label text
----------
Peak annotations carry labels like ``"i.ca"`` or ``"i-1.cb"``.
:func:`format_label` and :func:`parse_label` are the only places that
know this convention.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from .thresholds import ThresholdRegistry, DEFAULT_THRESHOLDS

__all__ = [
    "ATOM_TYPES",
    "PREVIOUS",
    "CURRENT",
    "AssignmentConfig",
    "DEFAULT_CONFIG",
    "format_label",
    "parse_label",
]


ATOM_TYPES: Tuple[str, ...] = ("h", "n", "c", "ha", "ca", "cb")
"""Closed set of atom types, index-addressable."""

PREVIOUS: int = -1
CURRENT: int = 0

_EXPECTED_COUNTS: Tuple[Tuple[int, ...], ...] = (
    (0, 0, 2, 0, 2, 2),     # i-1
    (7, 7, 1, 0, 1, 1),     # i
)

_MATCH_ATOMS: Tuple[str, ...] = ("c", "ca", "cb")


@dataclass(frozen=True)
class AssignmentConfig:
    """Immutable session configuration.

    Parameters
    ----------
    thresholds : ThresholdRegistry
        Tolerances and cut-offs.  Must contain ``tolerance.<atom>`` for
        every atom type.
    atom_types : tuple[str, ...]
        Atom type names, lower case.
    expected_counts : tuple of two tuples
        Expected number of observations per ``(k, atom)`` cell.
    match_atoms : tuple[str, ...]
        Atom types compared when matching spin systems.
    """

    thresholds: ThresholdRegistry = DEFAULT_THRESHOLDS
    atom_types: Tuple[str, ...] = ATOM_TYPES
    expected_counts: Tuple[Tuple[int, ...], ...] = _EXPECTED_COUNTS
    match_atoms: Tuple[str, ...] = _MATCH_ATOMS
    _index: Dict[str, int] = field(
        init=False, repr=False, compare=False, default_factory=dict)

    def __post_init__(self):
        index = {name: i for i, name in enumerate(self.atom_types)}
        object.__setattr__(self, "_index", index)
        for name in self.atom_types:
            if f"tolerance.{name}" not in self.thresholds:
                raise KeyError(f"No tolerance for atom type {name!r}")
        for name in self.match_atoms:
            if name not in index:
                raise KeyError(f"Unknown match atom {name!r}")

    # ── atom table ──────────────────────────────────────────────

    @property
    def n_atom_types(self) -> int:
        return len(self.atom_types)

    def atom_index(self, name: str) -> Optional[int]:
        """Index of atom type *name* (case-insensitive), or ``None``."""
        return self._index.get(name.lower())

    def atom_name(self, index: int) -> str:
        return self.atom_types[index]

    @property
    def ca_index(self) -> int:
        return self._index["ca"]

    @property
    def cb_index(self) -> int:
        return self._index["cb"]

    @property
    def match_indices(self) -> Tuple[int, ...]:
        return tuple(self._index[name] for name in self.match_atoms)

    def tolerance(self, index: int) -> float:
        return self.thresholds[f"tolerance.{self.atom_types[index]}"]

    @property
    def tolerances(self) -> np.ndarray:
        return np.array([self.tolerance(i) for i in range(self.n_atom_types)])

    def expected(self, k: int, index: int) -> int:
        return self.expected_counts[k][index]

    # ── derived configs ─────────────────────────────────────────

    def with_thresholds(self, overrides: Dict[str, float]) -> "AssignmentConfig":
        """Return a config whose registry has *overrides* applied."""
        return AssignmentConfig(
            thresholds=self.thresholds.replace(overrides),
            atom_types=self.atom_types,
            expected_counts=self.expected_counts,
            match_atoms=self.match_atoms,
        )


DEFAULT_CONFIG: AssignmentConfig = AssignmentConfig()


# ═══════════════════════════════════════════════════════════════════
# Label text adapter
# ═══════════════════════════════════════════════════════════════════

def format_label(atom_index: int, offset: int,
                 config: AssignmentConfig = DEFAULT_CONFIG) -> str:
    """``(4, -1)`` → ``"i-1.ca"``."""
    res = "i-1" if offset < 0 else "i"
    return f"{res}.{config.atom_name(atom_index)}"


def parse_label(text: str,
                config: AssignmentConfig = DEFAULT_CONFIG) -> Optional[Tuple[int, int]]:
    """``"i-1.ca"`` → ``(4, -1)``.  Returns ``None`` for anything else."""
    if not text or "." not in text:
        return None
    res, atom = text.split(".", 1)
    index = config.atom_index(atom.strip())
    if index is None:
        return None
    offset = PREVIOUS if res.strip().endswith("-1") else CURRENT
    return index, offset
