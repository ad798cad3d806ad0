"""Hypothesis scoring — admissibility of one reading, probability of a labeling.

Two levels:

1. :func:`check_pattern` — is a single peak reading admissible?
   Rejects on intensity-sign mismatch, on implausible shifts (CA below
   ``scorer.ca_floor``) and on inter-residue readings of strong peaks
   when the residue offset is ambiguous.

2. :func:`analyze_shifts` — joint probability of a complete labeling
   of one spin system, from the shifts collected per ``(k, atom)`` cell
   (``k = offset + 1``)::

       P = Π_cells Π_values exp(-|v - mean| / tol)
             × p_missing ** max(0, expected - observed)

   with ``P = 0`` as soon as a cell that expects nothing receives a
   value.  A system whose CA mean is below ``scorer.gly_ca`` expects no
   CB for that residue.

:func:`push_pattern` implements the consistency rule used while a
labeling is built: a value further than
``search.consistency_factor × tol`` from the first value already in its
cell makes the whole labeling infeasible.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from .config import AssignmentConfig, DEFAULT_CONFIG
from .patterns import ResAtomPattern

__all__ = [
    "Cells",
    "empty_cells",
    "shift_range",
    "check_pattern",
    "glycine_rows",
    "analyze_shifts",
    "add_to_cells",
    "push_pattern",
    "pop_pattern",
]

Cells = List[List[List[float]]]
"""``cells[k][atom]`` → list of shifts; ``k = offset + 1``."""


def empty_cells(config: AssignmentConfig = DEFAULT_CONFIG) -> Cells:
    return [[[] for _ in range(config.n_atom_types)] for _ in range(2)]


def shift_range(shifts: Sequence[float]) -> Tuple[float, float]:
    """``(mean, max - min)`` of a non-empty sequence."""
    mean = sum(shifts) / len(shifts)
    return mean, max(shifts) - min(shifts)


# ═══════════════════════════════════════════════════════════════════
# Per-hypothesis admissibility
# ═══════════════════════════════════════════════════════════════════

def _ppm_plausible(atom_name: str, ppm: float, config: AssignmentConfig) -> bool:
    if atom_name == "ca" and ppm < config.thresholds["scorer.ca_floor"]:
        return False
    return True


def check_pattern(pattern: ResAtomPattern, intensity: float,
                  config: AssignmentConfig = DEFAULT_CONFIG) -> bool:
    """Decide whether one reading of a peak is admissible.

    Parameters
    ----------
    pattern : ResAtomPattern
    intensity : float
        The peak intensity normalised within its list and system.
    config : AssignmentConfig

    Returns
    -------
    bool
    """
    if pattern.require_sign:
        if pattern.positive and intensity < 0.0:
            return False
        if not pattern.positive and intensity > 0.0:
            return False

    th = config.thresholds
    is_gly = False
    for dim, atom in enumerate(pattern.atom_indices):
        name = config.atom_name(atom)
        shift = pattern.peak.dims[dim].adjusted
        if shift is None:
            continue
        if name == "ca" and shift < th["scorer.gly_ca"]:
            is_gly = True
        if not _ppm_plausible(name, shift, config):
            return False

    if pattern.ambiguous_res and pattern.is_inter:
        limit = (th["scorer.ambiguous_limit_gly"] if is_gly
                 else th["scorer.ambiguous_limit"])
        if abs(intensity) > limit:
            return False
    return True


# ═══════════════════════════════════════════════════════════════════
# Joint labeling probability
# ═══════════════════════════════════════════════════════════════════

def glycine_rows(cells: Cells, config: AssignmentConfig = DEFAULT_CONFIG) -> Tuple[bool, bool]:
    """Per row, whether the CA mean is glycine-like."""
    gly_ca = config.thresholds["scorer.gly_ca"]
    flags = []
    for k in range(2):
        ca = cells[k][config.ca_index]
        flags.append(bool(ca) and shift_range(ca)[0] < gly_ca)
    return flags[0], flags[1]


def analyze_shifts(cells: Cells, config: AssignmentConfig = DEFAULT_CONFIG) -> float:
    """Joint probability of one complete labeling.  See module docstring."""
    p_missing = math.exp(config.thresholds["scorer.missing_log_prob"])
    is_gly = glycine_rows(cells, config)
    p_cum = 1.0
    for k in range(2):
        for atom in range(config.n_atom_types):
            shifts = cells[k][atom]
            n_shifts = len(shifts)
            n_expected = config.expected(k, atom)
            if is_gly[k] and atom == config.cb_index:
                n_expected = 0
            if n_expected == 0:
                if n_shifts > 0:
                    return 0.0
                continue
            if n_shifts:
                mean = sum(shifts) / n_shifts
                tol = config.tolerance(atom)
                for shift in shifts:
                    p_cum *= math.exp(-abs(mean - shift) / tol)
            if n_shifts < n_expected:
                p_cum *= p_missing ** (n_expected - n_shifts)
    return p_cum


def push_pattern(cells: Cells, pattern: ResAtomPattern,
                 config: AssignmentConfig = DEFAULT_CONFIG) -> Optional[List[Tuple[int, int]]]:
    """Append the raw shifts of *pattern* to *cells*.

    Returns the touched ``(k, atom)`` cells, in order, so the caller can
    undo with :func:`pop_pattern`.  On the first value inconsistent with
    its cell the partial push is rolled back and ``None`` is returned.
    """
    factor = config.thresholds["search.consistency_factor"]
    touched: List[Tuple[int, int]] = []
    for dim, (atom, offset) in enumerate(zip(pattern.atom_indices, pattern.offsets)):
        value = pattern.peak.dims[dim].shift
        if value is None:
            continue
        k = offset + 1
        shifts = cells[k][atom]
        if shifts and abs(shifts[0] - value) > factor * config.tolerance(atom):
            pop_pattern(cells, touched)
            return None
        shifts.append(value)
        touched.append((k, atom))
    return touched


def pop_pattern(cells: Cells, touched: Sequence[Tuple[int, int]]):
    for k, atom in reversed(touched):
        cells[k][atom].pop()


def add_to_cells(cells: Cells, pattern: ResAtomPattern,
                 config: AssignmentConfig = DEFAULT_CONFIG) -> bool:
    """Add *pattern* to *cells*; ``False`` (cells unchanged) if inconsistent."""
    return push_pattern(cells, pattern, config) is not None
