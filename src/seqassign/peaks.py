"""In-memory peak store — the peak and peak-list contracts the engine consumes.

The assignment engine treats peaks and peak lists as opaque data
sources.  This module gives a small concrete realisation of that
contract so the engine can run stand-alone:

SpectralDim   per-dimension pattern string and identification tolerance
SearchDim     a dimension registered for clustering, with its tolerance
PeakDim       one dimension of one peak: shift, adjusted shift, annotation
Peak          shifts, signed intensity, status, links
PeakList      dimensionality, patterns, peaks, search dimensions

Clustering
----------
:func:`cluster_peaks` groups peaks of several lists by shift proximity
over their registered search dimensions, linking each peak of a
non-origin list to its nearest origin peak.  The grouping is exposed
through :func:`get_links`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)

__all__ = [
    "SpectralDim",
    "SearchDim",
    "PeakDim",
    "Peak",
    "PeakList",
    "link_peaks",
    "get_links",
    "cluster_peaks",
]


@dataclass(frozen=True)
class SpectralDim:
    """Static description of one peak-list dimension.

    ``pattern`` follows ``<residues>.<atoms>``, e.g. ``"i,i-1.ca,cb"``.
    """
    label: str
    pattern: str
    id_tol: float


@dataclass(frozen=True)
class SearchDim:
    dim: int
    tol: float


@dataclass
class PeakDim:
    shift: Optional[float]
    adjusted_shift: Optional[float] = None
    user: str = ""

    @property
    def adjusted(self) -> Optional[float]:
        """Referencing-corrected shift; the raw shift when none is set."""
        return self.shift if self.adjusted_shift is None else self.adjusted_shift


class Peak:
    """One multidimensional peak.

    Parameters
    ----------
    peak_list : PeakList
        Owning list.
    idx : int
        Index within the list; part of :attr:`name`.
    dims : list of PeakDim
    intensity : float
        Signed intensity.
    status : int
        Negative for deleted peaks; the assembler uses 0/1 for
        unclaimed/claimed.
    """

    def __init__(self, peak_list: "PeakList", idx: int, dims: List[PeakDim],
                 intensity: float = 0.0, status: int = 0):
        self.peak_list = peak_list
        self.idx = idx
        self.dims = dims
        self.intensity = intensity
        self.status = status
        self._links: List["Peak"] = [self]

    @property
    def name(self) -> str:
        return f"{self.peak_list.name}.{self.idx}"

    @property
    def n_dim(self) -> int:
        return len(self.dims)

    def shift(self, dim: int) -> Optional[float]:
        return self.dims[dim].shift

    def set_shift(self, dim: int, value: float):
        self.dims[dim].shift = value

    def copy_to(self, other: "Peak"):
        """Copy shifts, annotations and intensity onto *other* (not links)."""
        other.dims = [PeakDim(d.shift, d.adjusted_shift, d.user) for d in self.dims]
        other.intensity = self.intensity
        other.status = self.status

    def __repr__(self) -> str:
        shifts = " ".join(
            "NA" if d.shift is None else f"{d.shift:.3f}" for d in self.dims)
        return f"Peak({self.name}: {shifts} I={self.intensity:.3g})"


class PeakList:
    """A named list of peaks sharing dimension descriptions.

    Parameters
    ----------
    name : str
    dims : sequence of SpectralDim
    expected_per_system : int, optional
        Number of peaks one spin system is expected to contribute to
        this list.  Defaults to the number of pattern alternatives.
    """

    def __init__(self, name: str, dims: Sequence[SpectralDim],
                 expected_per_system: Optional[int] = None):
        self.name = name
        self.spectral_dims: List[SpectralDim] = list(dims)
        self.peaks: List[Peak] = []
        self.search_dims: List[SearchDim] = []
        self._expected = expected_per_system

    @property
    def n_dim(self) -> int:
        return len(self.spectral_dims)

    def spectral_dim(self, dim: int) -> SpectralDim:
        return self.spectral_dims[dim]

    def add_peak(self, shifts: Sequence[Optional[float]],
                 intensity: float = 1.0) -> Peak:
        if len(shifts) != self.n_dim:
            raise ValueError(
                f"{self.name} has {self.n_dim} dims, got {len(shifts)} shifts")
        peak = Peak(self, len(self.peaks),
                    [PeakDim(None if s is None else float(s)) for s in shifts],
                    intensity)
        self.peaks.append(peak)
        return peak

    def new_peak(self) -> Peak:
        """Append an empty peak (all shifts absent)."""
        return self.add_peak([None] * self.n_dim, 0.0)

    def active_peaks(self) -> List[Peak]:
        return [p for p in self.peaks if p.status >= 0]

    # ── search dimensions ───────────────────────────────────────

    def clear_search_dims(self):
        self.search_dims = []

    def add_search_dim(self, dim: int, tol: float):
        self.search_dims.append(SearchDim(dim, tol))

    # ── patterns ────────────────────────────────────────────────

    def pattern_counts(self) -> List[int]:
        """Per-dimension number of (residue, atom) alternatives."""
        counts = []
        for sdim in self.spectral_dims:
            res, _, atoms = sdim.pattern.partition(".")
            counts.append(len(res.split(",")) * len(atoms.split(",")))
        return counts

    @property
    def expected_count(self) -> int:
        if self._expected is not None:
            return self._expected
        return math.prod(self.pattern_counts())

    # ── links ───────────────────────────────────────────────────

    def unlink_peaks(self):
        for peak in self.peaks:
            rest = [p for p in peak._links if p is not peak]
            for other in rest:
                other._links = rest
            peak._links = [peak]

    def __repr__(self) -> str:
        return f"PeakList({self.name!r}, {self.n_dim}D, {len(self.peaks)} peaks)"


def link_peaks(peak_a: Peak, peak_b: Peak):
    """Merge the link groups of two peaks."""
    if peak_b in peak_a._links:
        return
    group = peak_a._links + [p for p in peak_b._links if p not in peak_a._links]
    # every member shares one list object
    for peak in group:
        peak._links = group


def get_links(peak: Peak) -> List[Peak]:
    """Peaks linked to *peak*, including *peak* itself."""
    return list(peak._links)


# ═══════════════════════════════════════════════════════════════════
# Shift-proximity clustering
# ═══════════════════════════════════════════════════════════════════

def _search_matrix(peaks: Sequence[Peak], dims: Sequence[int],
                   tols: Sequence[float]) -> np.ndarray:
    rows = [[peak.shift(d) / tol for d, tol in zip(dims, tols)] for peak in peaks]
    return np.array(rows, dtype=float).reshape(len(peaks), len(dims))


def cluster_peaks(peak_lists: Sequence[PeakList], origin: PeakList) -> int:
    """Link peaks of every list to their nearest *origin* peak.

    Distances are Euclidean over tolerance-normalised search-dimension
    shifts.  A peak is linked only when every search dimension deviates
    by at most one tolerance.  Origin peaks without partners stay
    single.  All lists must register the same number of search dims.

    Returns
    -------
    int
        Number of links made.
    """
    n_search = len(origin.search_dims)
    origin_peaks = [p for p in origin.active_peaks()
                    if all(p.shift(s.dim) is not None for s in origin.search_dims)]
    if n_search == 0 or not origin_peaks:
        logger.warning("cluster_peaks: nothing to cluster on %s", origin.name)
        return 0

    # both sides scaled by the origin tolerances so distances are comparable
    origin_tols = [s.tol for s in origin.search_dims]
    tree = cKDTree(_search_matrix(
        origin_peaks, [s.dim for s in origin.search_dims], origin_tols))
    n_links = 0
    for peak_list in peak_lists:
        if peak_list is origin:
            continue
        if len(peak_list.search_dims) != n_search:
            raise ValueError(
                f"{peak_list.name} has {len(peak_list.search_dims)} search "
                f"dims, origin {origin.name} has {n_search}")
        candidates = [p for p in peak_list.active_peaks()
                      if all(p.shift(s.dim) is not None for s in peak_list.search_dims)]
        if not candidates:
            continue
        points = _search_matrix(
            candidates, [s.dim for s in peak_list.search_dims], origin_tols)
        _, nearest = tree.query(points)
        for peak, j in zip(candidates, nearest):
            root = origin_peaks[j]
            deltas = []
            for s_org, s_pk in zip(origin.search_dims, peak_list.search_dims):
                deltas.append(abs(root.shift(s_org.dim) - peak.shift(s_pk.dim)) / s_pk.tol)
            if max(deltas) <= 1.0:
                link_peaks(root, peak)
                n_links += 1
    logger.debug("cluster_peaks: %d links onto %s", n_links, origin.name)
    return n_links
