"""SpinSystem — one cluster of peaks believed to come from one residue.

A spin system is anchored on a root peak and owns a list of
:class:`PeakMatch` records.  Its life cycle::

    UNLABELED ──calc_combinations()──▶ LABELED
        ▲                                 │
        └──────── split() / no viable labeling

Hypothesis search
-----------------
:meth:`SpinSystem.calc_combinations` enumerates the admissible readings
of every member peak (plus an "unused" reading for every peak but the
root), walks the cartesian product depth-first in peak order, prunes a
branch as soon as a shift lands too far from the first value of its
cell, scores every complete labeling with
:func:`~seqassign.scoring.analyze_shifts` and keeps the first maximum.
The winning labeling is written onto the peak matches and, as
``"i-1.ca"``-style text, onto the peaks' per-dimension annotations.

Summaries
---------
``values``, ``ranges`` and ``n_values`` are ``(2, n_atom_types)`` arrays
indexed ``[k, atom]`` with ``k = 0`` for the previous residue and
``k = 1`` for the current one.  Empty cells hold NaN / 0 / 0.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import KMeans

from .config import AssignmentConfig, DEFAULT_CONFIG, CURRENT, PREVIOUS, format_label, parse_label
from .matching import SpinSystemMatch, compare_peaks, match_dims
from .patterns import ResAtomPattern, enumerate_patterns, parse_dim_pattern
from .peaks import Peak, PeakList, get_links
from .scoring import (
    Cells, empty_cells, shift_range, check_pattern, analyze_shifts,
    push_pattern, pop_pattern,
)
from .trace import PeakCandidates, SearchTrace

logger = logging.getLogger(__name__)

__all__ = [
    "PeakMatch",
    "AtomPresent",
    "SpinSystem",
]


# ═══════════════════════════════════════════════════════════════════
# PeakMatch: one peak's membership in a system
# ═══════════════════════════════════════════════════════════════════

class PeakMatch:
    """A peak inside a spin system with its membership probability.

    ``labels[dim]`` is ``(atom_index, offset)`` once the system has been
    labeled, ``None`` otherwise.
    """

    def __init__(self, peak: Peak, prob: float):
        self.peak = peak
        self.prob = prob
        self.labels: List[Optional[Tuple[int, int]]] = [None] * peak.n_dim
        self.excess = False

    @property
    def positive(self) -> bool:
        return self.peak.intensity > 0.0

    def atom_index(self, dim: int) -> Optional[int]:
        label = self.labels[dim]
        return None if label is None else label[0]

    def intra_residue(self, dim: int) -> bool:
        label = self.labels[dim]
        return label is not None and label[1] == CURRENT

    def clear_labels(self):
        self.labels = [None] * self.peak.n_dim

    def is_type(self, peak_list: PeakList, name: str, intra: bool,
                config: AssignmentConfig = DEFAULT_CONFIG) -> bool:
        """Whether this peak, from *peak_list*, carries atom *name*."""
        if self.peak.peak_list is not peak_list:
            return False
        index = config.atom_index(name)
        for label in self.labels:
            if label is not None and label[0] == index and (label[1] == CURRENT) == intra:
                return True
        return False

    def __repr__(self) -> str:
        return f"PeakMatch({self.peak.name} {self.prob:.2f} {self.labels})"


@dataclass(frozen=True)
class AtomPresent:
    name: str
    intra_residue: bool
    present: bool


# ═══════════════════════════════════════════════════════════════════
# SpinSystem
# ═══════════════════════════════════════════════════════════════════

class SpinSystem:
    """Cluster of peaks rooted at one reference peak.

    Parameters
    ----------
    root : Peak
        Identity anchor; always the first peak match.
    system_id : int
        Identifier within the owning :class:`SpinSystems`.
    config : AssignmentConfig
    """

    def __init__(self, root: Peak, system_id: int = 0,
                 config: AssignmentConfig = DEFAULT_CONFIG):
        self.root = root
        self.id = system_id
        self.config = config
        self.peak_matches: List[PeakMatch] = []
        n_atoms = config.n_atom_types
        self.values = np.full((2, n_atoms), np.nan)
        self.ranges = np.zeros((2, n_atoms))
        self.n_values = np.zeros((2, n_atoms), dtype=int)
        self.match_prev: List[SpinSystemMatch] = []
        self.match_next: List[SpinSystemMatch] = []
        self.confirmed_prev: Optional[SpinSystemMatch] = None
        self.confirmed_next: Optional[SpinSystemMatch] = None
        self.fragment_id: Optional[int] = None
        self.add_peak(root, 1.0)

    # ── membership ──────────────────────────────────────────────

    def add_peak(self, peak: Peak, prob: float) -> PeakMatch:
        match = PeakMatch(peak, prob)
        self.peak_matches.append(match)
        return match

    @property
    def peaks(self) -> List[Peak]:
        return [m.peak for m in self.peak_matches]

    def n_peaks_with_list(self, peak_list: PeakList) -> int:
        return sum(1 for m in self.peak_matches if m.peak.peak_list is peak_list)

    def add_linked_peaks(self):
        """Add every peak linked to the root from another peak list."""
        ref_list = self.root.peak_list
        for peak in get_links(self.root):
            if peak is self.root or peak.peak_list is ref_list:
                continue
            a_match = match_dims(ref_list, peak.peak_list)
            self.add_peak(peak, compare_peaks(self.root, peak, a_match, self.config))
        logger.debug("cluster %s: %d peaks", self.root.name, len(self.peak_matches))

    def types_present(self, peak_list: PeakList, dim: int) -> List[AtomPresent]:
        """Which readings of *dim* of *peak_list* are taken by some peak."""
        dim_pattern = parse_dim_pattern(
            peak_list.spectral_dim(dim).pattern, self.config)
        result = []
        for offset, atom, _ in dim_pattern.choices:
            name = self.config.atom_name(atom)
            intra = offset == CURRENT
            present = any(m.is_type(peak_list, name, intra, self.config)
                          for m in self.peak_matches)
            result.append(AtomPresent(name.upper(), intra, present))
        return result

    # ── summary access ──────────────────────────────────────────

    def value(self, k: int, atom: int) -> float:
        return float(self.values[k, atom])

    def range(self, k: int, atom: int) -> float:
        return float(self.ranges[k, atom])

    def count(self, k: int, atom: int) -> int:
        return int(self.n_values[k, atom])

    @property
    def is_labeled(self) -> bool:
        return bool(np.isfinite(self.values).any())

    # ── confirmation state ──────────────────────────────────────

    def confirmed(self, prev: bool) -> bool:
        return (self.confirmed_prev if prev else self.confirmed_next) is not None

    def is_confirmed(self, match: SpinSystemMatch, prev: bool) -> bool:
        """Whether *match* is this system's confirmed edge in that direction."""
        current = self.confirmed_prev if prev else self.confirmed_next
        return current is not None and current.key == match.key

    # ═══════════════════════════════════════════════════════════════
    # Hypothesis search
    # ═══════════════════════════════════════════════════════════════

    def normalized_intensities(self) -> np.ndarray:
        """Intensities scaled by the per-list maximum |intensity| in this system.

        Also flags, per list, the weakest non-root peaks beyond the
        list's expected count as excess.
        """
        by_list: Dict[int, List[int]] = {}
        for i, match in enumerate(self.peak_matches):
            match.excess = False
            by_list.setdefault(id(match.peak.peak_list), []).append(i)

        intensities = np.zeros(len(self.peak_matches))
        for members in by_list.values():
            peak_list = self.peak_matches[members[0]].peak.peak_list
            max_int = max(abs(self.peak_matches[i].peak.intensity) for i in members)
            if max_int == 0.0:
                max_int = 1.0
            for i in members:
                intensities[i] = self.peak_matches[i].peak.intensity / max_int

            n_extra = len(members) - peak_list.expected_count
            weakest = sorted((i for i in members if i != 0),
                             key=lambda i: abs(self.peak_matches[i].peak.intensity))
            for i in weakest[:max(n_extra, 0)]:
                self.peak_matches[i].excess = True
        return intensities

    def _candidates(self) -> Tuple[List[List[Optional[ResAtomPattern]]], List[int]]:
        intensities = self.normalized_intensities()
        candidates = []
        n_enumerated = []
        for i, match in enumerate(self.peak_matches):
            admissible: List[Optional[ResAtomPattern]] = []
            n_enum = 0
            if not match.excess:
                patterns = enumerate_patterns(match.peak, config=self.config)
                n_enum = len(patterns)
                admissible = [p for p in patterns
                              if check_pattern(p, intensities[i], self.config)]
            if i != 0:
                admissible.append(None)   # peak unused (artifact)
            candidates.append(admissible)
            n_enumerated.append(n_enum)
        return candidates, n_enumerated

    def calc_combinations(self, trace: bool = True) -> Optional[SearchTrace]:
        """Search for the most probable labeling and apply it.

        Returns
        -------
        SearchTrace or None
            Audit trail of the search, or ``None`` when *trace* is
            False.  ``trace.labeled`` is False when no labeling was
            viable; the system is then left with empty summaries.
        """
        candidates, n_enumerated = self._candidates()
        n_space = 1
        for cands in candidates:
            if len(cands) > 1:
                n_space *= len(cands)

        cells = empty_cells(self.config)
        choice = [0] * len(candidates)
        state = {"best": 0.0, "best_choice": None,
                 "evaluated": 0, "pruned": 0, "zero": 0}

        def visit(i: int):
            if i == len(candidates):
                state["evaluated"] += 1
                prob = analyze_shifts(cells, self.config)
                if prob == 0.0:
                    state["zero"] += 1
                if prob > state["best"]:
                    state["best"] = prob
                    state["best_choice"] = tuple(choice)
                return
            cands = candidates[i]
            if not cands:
                choice[i] = 0
                visit(i + 1)
                return
            for idx, pattern in enumerate(cands):
                choice[i] = idx
                if pattern is None:
                    visit(i + 1)
                    continue
                touched = push_pattern(cells, pattern, self.config)
                if touched is None:
                    state["pruned"] += 1
                    continue
                visit(i + 1)
                pop_pattern(cells, touched)

        if n_space == 1:
            # nothing to search: take the single labeling if consistent and possible
            consistent = True
            for cands in candidates:
                if cands and cands[0] is not None:
                    if push_pattern(cells, cands[0], self.config) is None:
                        consistent = False
                        break
            state["evaluated"] = 1 if consistent else 0
            state["pruned"] = 0 if consistent else 1
            if consistent:
                prob = analyze_shifts(cells, self.config)
                if prob > 0.0:
                    state["best"] = prob
                    state["best_choice"] = tuple(choice)
                else:
                    state["zero"] = 1
        else:
            visit(0)

        best_choice = state["best_choice"]
        if best_choice is not None:
            self._apply_labeling(candidates, best_choice)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("labeled %s p=%.4g: %s", self.root.name,
                             state["best"], self.summary_line())
        else:
            self._clear_labels()
            self._save_shifts(empty_cells(self.config))
            logger.warning("no viable labeling for spin system %s (%d peaks)",
                           self.root.name, len(self.peak_matches))

        if not trace:
            return None
        return SearchTrace(
            root=self.root.name,
            peaks=[
                PeakCandidates(
                    peak_name=m.peak.name,
                    n_enumerated=n_enum,
                    readings=tuple(None if p is None else p.describe(self.config)
                                   for p in cands),
                    excess=m.excess,
                )
                for m, cands, n_enum in zip(self.peak_matches, candidates, n_enumerated)
            ],
            n_space=n_space,
            n_evaluated=state["evaluated"],
            n_pruned=state["pruned"],
            n_zero=state["zero"],
            best_probability=state["best"],
            choice=best_choice or (),
            labeled=best_choice is not None,
        )

    def _clear_labels(self):
        for match in self.peak_matches:
            match.clear_labels()
            for peak_dim in match.peak.dims:
                peak_dim.user = ""

    def _apply_labeling(self, candidates: Sequence[Sequence[Optional[ResAtomPattern]]],
                        choice: Sequence[int]):
        self._clear_labels()
        for match, cands, idx in zip(self.peak_matches, candidates, choice):
            if not cands or cands[idx] is None:
                continue
            pattern = cands[idx]
            for dim, (atom, offset) in enumerate(zip(pattern.atom_indices, pattern.offsets)):
                match.labels[dim] = (atom, offset)
                match.peak.dims[dim].user = format_label(atom, offset, self.config)
        self.update_summary()

    # ── summaries ───────────────────────────────────────────────

    def _label_cells(self) -> Cells:
        cells = empty_cells(self.config)
        for match in self.peak_matches:
            for dim, label in enumerate(match.labels):
                shift = match.peak.shift(dim)
                if label is None or shift is None:
                    continue
                atom, offset = label
                cells[offset + 1][atom].append(shift)
        return cells

    def _save_shifts(self, cells: Cells):
        for k in range(2):
            for atom in range(self.config.n_atom_types):
                shifts = cells[k][atom]
                if shifts:
                    mean, rng = shift_range(shifts)
                    self.values[k, atom] = mean
                    self.ranges[k, atom] = rng
                    self.n_values[k, atom] = len(shifts)
                else:
                    self.values[k, atom] = np.nan
                    self.ranges[k, atom] = 0.0
                    self.n_values[k, atom] = 0

    def update_summary(self):
        """Recompute the per-cell summary from the peak-match labels."""
        self._save_shifts(self._label_cells())

    def update_from_annotations(self):
        """Re-read labels from the peaks' annotations, then recompute."""
        for match in self.peak_matches:
            match.labels = [parse_label(d.user, self.config) for d in match.peak.dims]
        self.update_summary()

    def probability(self) -> float:
        """Joint probability of the current labeling."""
        return analyze_shifts(self._label_cells(), self.config)

    # ═══════════════════════════════════════════════════════════════
    # Split
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def _search_dims(peak_list: PeakList) -> List[Tuple[int, float]]:
        if peak_list.search_dims:
            return [(s.dim, s.tol) for s in peak_list.search_dims]
        return [(i, sd.id_tol) for i, sd in enumerate(peak_list.spectral_dims)]

    def split(self, new_id: int) -> Optional["SpinSystem"]:
        """Split the system in two by 2-means over search-dim shifts.

        The root keeps its cluster and moves to that cluster's centroid;
        a clone of the root, placed at the other centroid, roots the new
        system.  Every other peak joins the root of its cluster.

        Returns
        -------
        SpinSystem or None
            The new system, or ``None`` when the peaks cannot be split
            (fewer than two peaks or all vectors identical).

        Raises
        ------
        ValueError
            If member peaks have search vectors of different lengths or
            missing shifts.
        """
        if len(self.peak_matches) < 2:
            return None
        rows = []
        for match in self.peak_matches:
            row = []
            for dim, _ in self._search_dims(match.peak.peak_list):
                shift = match.peak.shift(dim)
                if shift is None:
                    raise ValueError(f"{match.peak.name} has no shift in dim {dim}")
                row.append(shift)
            rows.append(row)
        root_list = self.root.peak_list
        root_dims = self._search_dims(root_list)
        if len({len(r) for r in rows}) != 1:
            raise ValueError(
                f"spin system {self.root.name}: search vectors differ in length")
        # every member is scaled by the root list's tolerances
        scale = np.array([tol for _, tol in root_dims], dtype=float)
        data = np.array(rows, dtype=float) / scale

        distances = np.linalg.norm(data - data[0], axis=1)
        far = int(np.argmax(distances))
        if distances[far] == 0.0:
            return None
        init = np.vstack([data[0], data[far]])
        km = KMeans(n_clusters=2, init=init, n_init=1)
        labels = km.fit_predict(data)
        if len(set(labels.tolist())) < 2:
            return None
        centroids = km.cluster_centers_ * scale

        orig_cluster = int(labels[0])
        new_cluster = 1 - orig_cluster
        new_root = root_list.new_peak()
        self.root.copy_to(new_root)
        for j, (dim, _) in enumerate(root_dims):
            self.root.set_shift(dim, float(centroids[orig_cluster][j]))
            new_root.set_shift(dim, float(centroids[new_cluster][j]))

        new_sys = SpinSystem(new_root, new_id, self.config)
        old_matches = self.peak_matches
        self.peak_matches = []
        self.add_peak(self.root, 1.0)
        for match, label in zip(old_matches, labels):
            if match.peak is self.root:
                continue
            target = self if label == orig_cluster else new_sys
            a_match = match_dims(target.root.peak_list, match.peak.peak_list)
            target.add_peak(match.peak,
                            compare_peaks(target.root, match.peak, a_match, self.config))

        for system in (self, new_sys):
            system._clear_labels()
            system._save_shifts(empty_cells(self.config))
        logger.info("split %s: %d + %d peaks", self.root.name,
                    len(self.peak_matches), len(new_sys.peak_matches))
        return new_sys

    # ═══════════════════════════════════════════════════════════════
    # Pairwise comparison
    # ═══════════════════════════════════════════════════════════════

    def compare(self, other: "SpinSystem", prev: bool) -> Optional[SpinSystemMatch]:
        """Score *other* as this system's predecessor (*prev*) or successor.

        Returns ``None`` when no comparison atom is known on both sides
        or any known pair deviates beyond the cut-off.
        """
        idx_other = CURRENT + 1 if prev else PREVIOUS + 1
        idx_self = PREVIOUS + 1 if prev else CURRENT + 1
        max_dev = self.config.thresholds["match.max_deviation"]
        total = 0.0
        n_match = 0
        matched = []
        for atom in self.config.match_indices:
            v_self = self.values[idx_self, atom]
            v_other = other.values[idx_other, atom]
            tol = self.config.tolerance(atom)
            if np.isfinite(v_self) and np.isfinite(v_other):
                delta = abs(v_self - v_other)
                if delta > max_dev * tol:
                    return None
                total += (delta / tol) ** 2
                n_match += 1
                matched.append(True)
            else:
                matched.append(False)
        if n_match == 0:
            return None
        score = math.exp(-math.sqrt(total))
        if prev:
            return SpinSystemMatch(other.id, self.id, score, n_match, tuple(matched))
        return SpinSystemMatch(self.id, other.id, score, n_match, tuple(matched))

    def compare_all(self, systems: Sequence["SpinSystem"]):
        """Rank every other system as predecessor and as successor."""
        self.match_prev = []
        self.match_next = []
        for other in systems:
            if other is self:
                continue
            match = self.compare(other, True)
            if match is not None:
                self.match_prev.append(match)
            match = self.compare(other, False)
            if match is not None:
                self.match_next.append(match)
        for matches in (self.match_prev, self.match_next):
            total = sum(m.score for m in matches)
            for m in matches:
                m.norm(total)
            matches.sort(key=lambda m: -m.score)

    # ── reporting ───────────────────────────────────────────────

    def summary_line(self) -> str:
        """``cb ca ha c`` of i-1 then every type of i as ``shift:count``."""
        parts = []
        n_atoms = self.config.n_atom_types
        order = [(0, j) for j in reversed(range(2, n_atoms))]
        order += [(1, j) for j in range(n_atoms)]
        total = 0
        for k, atom in order:
            n = self.count(k, atom)
            if n:
                parts.append(f"{self.value(k, atom):6.2f}:{n:d}")
                total += n
            else:
                parts.append("  NA    ")
        return f"{self.root.name} {' '.join(parts)}  nA {total:2d} {self.probability():6.4f}"

    def to_dict(self) -> Dict:
        """JSON-safe snapshot of membership, labels and summaries."""
        def _clean(arr):
            return [[None if not np.isfinite(v) else round(float(v), 4) for v in row]
                    for row in arr]
        return {
            "id": self.id,
            "root": self.root.name,
            "peaks": [
                {
                    "peak": m.peak.name,
                    "prob": round(float(m.prob), 6),
                    "labels": [None if lab is None else format_label(*lab, self.config)
                               for lab in m.labels],
                }
                for m in self.peak_matches
            ],
            "values": _clean(self.values),
            "n_values": self.n_values.tolist(),
            "fragment": self.fragment_id,
            "confirmed_prev": None if self.confirmed_prev is None else list(self.confirmed_prev.key),
            "confirmed_next": None if self.confirmed_next is None else list(self.confirmed_next.key),
        }

    def __str__(self) -> str:
        members = " ".join(f"{m.peak.name}:{m.prob:.2f}" for m in self.peak_matches)
        return f"{self.root.name} {members}"

    def __repr__(self) -> str:
        return f"SpinSystem({self.id}, {self.root.name}, {len(self.peak_matches)} peaks)"
