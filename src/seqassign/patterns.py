"""Pattern enumeration — every atom-type / residue-offset reading of a peak.

Each peak-list dimension carries a pattern string

    ``<residue alternatives>.<atom-type alternatives>``

e.g. ``"i.h"``, ``"i,i-1.ca,cb"`` or ``"i-1.cb-"``.  An atom token may
end in ``+`` or ``-``: the reading is then only valid when the peak
intensity has that sign.

:func:`enumerate_patterns` expands the per-dimension alternatives of
one peak into the full cross product, row-major over dimensions (the
last dimension varies fastest).  Nothing is rejected here; deciding
admissibility is :func:`seqassign.scoring.check_pattern`'s job.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import product
from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING

from .config import AssignmentConfig, DEFAULT_CONFIG, PREVIOUS, CURRENT

if TYPE_CHECKING:
    from .peaks import Peak

__all__ = [
    "PatternError",
    "DimPattern",
    "ResAtomPattern",
    "parse_dim_pattern",
    "enumerate_patterns",
]


class PatternError(ValueError):
    """A pattern string does not follow the ``res.atoms`` grammar."""


@dataclass(frozen=True)
class DimPattern:
    """Parsed alternatives of one dimension.

    ``choices`` is the residue-major product of residue and atom
    alternatives: ``(offset, atom_index, sign)`` with ``sign`` one of
    ``"+"``, ``"-"`` or ``""``.
    """
    residues: Tuple[int, ...]
    atoms: Tuple[Tuple[int, str], ...]

    @property
    def choices(self) -> List[Tuple[int, int, str]]:
        return [(res, atom, sign)
                for res in self.residues
                for atom, sign in self.atoms]

    @property
    def n_residues(self) -> int:
        return len(self.residues)


@dataclass(frozen=True)
class ResAtomPattern:
    """One concrete reading of a peak.

    Attributes
    ----------
    peak : Peak
    offsets : tuple[int, ...]
        Per dimension, ``-1`` for the previous residue, ``0`` for the
        current one.
    atom_indices : tuple[int, ...]
        Per dimension, index into the atom-type table.
    require_sign : bool
        True when some dimension's atom token carried a sign.
    positive : bool
        The required sign (meaningless when ``require_sign`` is False).
    ambiguous_res : bool
        True when any dimension offers more than one residue alternative.
    """
    peak: "Peak"
    offsets: Tuple[int, ...]
    atom_indices: Tuple[int, ...]
    require_sign: bool = False
    positive: bool = False
    ambiguous_res: bool = False

    @property
    def is_inter(self) -> bool:
        """Whether any dimension reads as the previous residue."""
        return any(o == PREVIOUS for o in self.offsets)

    def describe(self, config: AssignmentConfig = DEFAULT_CONFIG) -> str:
        labels = " ".join(
            f"{'i-1' if o == PREVIOUS else 'i'}.{config.atom_name(a)}"
            for o, a in zip(self.offsets, self.atom_indices))
        sign = ""
        if self.require_sign:
            sign = " (+)" if self.positive else " (-)"
        return f"{self.peak.name} {labels}{sign}"


def parse_dim_pattern(pattern: str,
                      config: AssignmentConfig = DEFAULT_CONFIG) -> DimPattern:
    """Parse ``"i,i-1.ca,cb-"`` into residue offsets and signed atoms.

    Raises
    ------
    PatternError
        On a missing ``.`` separator, an empty alternative, an unknown
        residue token or an unknown atom type.
    """
    if "." not in pattern:
        raise PatternError(f"Pattern {pattern!r} has no '.' separator")
    res_part, atom_part = pattern.split(".", 1)

    residues = []
    for token in res_part.split(","):
        token = token.strip().lower()
        if token == "i":
            residues.append(CURRENT)
        elif token == "i-1":
            residues.append(PREVIOUS)
        else:
            raise PatternError(
                f"Unknown residue token {token!r} in pattern {pattern!r}")

    atoms = []
    for token in atom_part.split(","):
        token = token.strip()
        sign = ""
        if token.endswith(("+", "-")):
            token, sign = token[:-1], token[-1]
        index = config.atom_index(token) if token else None
        if index is None:
            raise PatternError(
                f"Unknown atom type {token!r} in pattern {pattern!r}")
        atoms.append((index, sign))

    return DimPattern(tuple(residues), tuple(atoms))


def enumerate_patterns(peak: "Peak",
                       patterns: Optional[Sequence[str]] = None,
                       config: AssignmentConfig = DEFAULT_CONFIG) -> List[ResAtomPattern]:
    """Expand every reading of *peak*.

    Parameters
    ----------
    peak : Peak
    patterns : sequence of str, optional
        One pattern string per dimension.  Defaults to the patterns of
        the peak's list.
    config : AssignmentConfig

    Returns
    -------
    list of ResAtomPattern
        Cross product of per-dimension alternatives, row-major.
    """
    if patterns is None:
        patterns = [sd.pattern for sd in peak.peak_list.spectral_dims]
    dims = [parse_dim_pattern(p, config) for p in patterns]
    ambiguous = max((d.n_residues for d in dims), default=1) > 1

    result = []
    for combo in product(*(d.choices for d in dims)):
        require_sign = False
        positive = False
        for _, _, sign in combo:
            if sign:
                require_sign = True
                positive = sign == "+"
        result.append(ResAtomPattern(
            peak=peak,
            offsets=tuple(c[0] for c in combo),
            atom_indices=tuple(c[1] for c in combo),
            require_sign=require_sign,
            positive=positive,
            ambiguous_res=ambiguous,
        ))
    return result
