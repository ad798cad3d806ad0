"""SeqFragment — an ordered chain of confirmed spin-system matches.

A fragment with matches ``A→B, B→C, C→D`` covers systems ``A B C D``
and, through A's previous-residue shifts, the residue before A.  The
fragment graph itself (creation on confirm, split on unconfirm) is kept
by :class:`seqassign.spin_systems.SpinSystems`; this module only holds
the chain and derives its shifts.

Usage
-----
>>> frag = systems.fragments[0]
>>> frag.system_ids            # [3, 7, 1]
>>> frag.get_shifts(systems.systems)   # (4, 6) array, NaN where unknown
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, TYPE_CHECKING

import numpy as np

from .config import AssignmentConfig, DEFAULT_CONFIG
from .matching import SpinSystemMatch

if TYPE_CHECKING:
    from .spin_system import SpinSystem

logger = logging.getLogger(__name__)

__all__ = ["SeqFragment"]


class SeqFragment:
    """Chain of matches where each match's ``b`` is the next one's ``a``."""

    def __init__(self, fragment_id: int, matches: Sequence[SpinSystemMatch] = ()):
        self.id = fragment_id
        self.matches: List[SpinSystemMatch] = list(matches)

    def __len__(self) -> int:
        return len(self.matches)

    @property
    def system_ids(self) -> List[int]:
        if not self.matches:
            return []
        return [m.a for m in self.matches] + [self.matches[-1].b]

    @property
    def first(self) -> int:
        return self.matches[0].a

    @property
    def last(self) -> int:
        return self.matches[-1].b

    def get_shifts(self, systems: Sequence["SpinSystem"],
                   config: AssignmentConfig = DEFAULT_CONFIG) -> np.ndarray:
        """Per-residue consensus shifts along the chain.

        Row ``r`` averages the current-residue values of system
        ``r - 1`` with the previous-residue values of system ``r``,
        using finite values only.

        Returns
        -------
        np.ndarray
            Shape ``(n_systems + 1, n_atom_types)``.
        """
        members = [systems[i] for i in self.system_ids]
        n_atoms = config.n_atom_types
        shifts = np.full((len(members) + 1, n_atoms), np.nan)
        for row in range(len(members) + 1):
            stack = []
            if row > 0:
                stack.append(members[row - 1].values[1])
            if row < len(members):
                stack.append(members[row].values[0])
            block = np.vstack(stack)
            finite = np.isfinite(block)
            counts = finite.sum(axis=0)
            sums = np.where(finite, block, 0.0).sum(axis=0)
            known = counts > 0
            shifts[row, known] = sums[known] / counts[known]
        return shifts

    def dump(self):
        logger.debug("fragment %d: %s", self.id,
                     " ".join(repr(m) for m in self.matches))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "systems": self.system_ids,
            "scores": [round(float(m.score), 6) for m in self.matches],
        }

    def __repr__(self) -> str:
        chain = "->".join(str(i) for i in self.system_ids)
        return f"SeqFragment({self.id}: {chain})"
