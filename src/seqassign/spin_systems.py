"""SpinSystems — the collection of spin systems for one assignment session.

Responsibilities
----------------
1. **Assembly** — cluster the peaks of several peak lists into spin
   systems, either by exhaustive linkage (:meth:`SpinSystems.assemble`)
   or through the shift-identity clustering collaborator
   (:meth:`SpinSystems.assemble_with_clustering`), or rebuild them from
   existing peak links and annotations
   (:meth:`SpinSystems.build_from_links`).
2. **Pairwise matching** — rank every system as predecessor and
   successor of every other (:meth:`SpinSystems.compare`).
3. **Fragment bookkeeping** — :meth:`SpinSystems.confirm` and
   :meth:`SpinSystems.unconfirm` keep the :class:`SeqFragment` graph
   exactly consistent with the set of confirmed edges: every system is
   in at most one fragment, has at most one confirmed predecessor and
   at most one confirmed successor.

Systems and fragments refer to each other by integer id.  A system's id
is its index in :attr:`SpinSystems.systems`.

Usage
-----
>>> systems = SpinSystems()
>>> systems.assemble_with_clustering([hsqc, hncacb, cbcaconh])
>>> traces = systems.calc_combinations()
>>> systems.compare()
>>> best = systems[0].match_next[0]
>>> systems.confirm(best)
>>> systems.fragment_chains()          # ((0, 5),)
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .config import AssignmentConfig, DEFAULT_CONFIG
from .fragment import SeqFragment
from .matching import SpinSystemMatch, compare_peaks, match_dims
from .peaks import Peak, PeakList, cluster_peaks, get_links
from .spin_system import SpinSystem
from .trace import SearchTrace

logger = logging.getLogger(__name__)

__all__ = ["SpinSystems"]


class SpinSystems:
    """All spin systems of one session plus their fragment graph.

    Parameters
    ----------
    config : AssignmentConfig
        Shared by every system the collection creates.
    """

    def __init__(self, config: AssignmentConfig = DEFAULT_CONFIG):
        self.config = config
        self.systems: List[SpinSystem] = []
        self.fragments: Dict[int, SeqFragment] = {}
        self._next_fragment_id = 0

    def __len__(self) -> int:
        return len(self.systems)

    def __iter__(self) -> Iterator[SpinSystem]:
        return iter(self.systems)

    def __getitem__(self, i: int) -> SpinSystem:
        return self.systems[i]

    def clear(self):
        self.systems = []
        self.fragments = {}
        self._next_fragment_id = 0

    def _new_system(self, root: Peak) -> SpinSystem:
        system = SpinSystem(root, len(self.systems), self.config)
        self.systems.append(system)
        return system

    # ═══════════════════════════════════════════════════════════════
    # Assembly
    # ═══════════════════════════════════════════════════════════════

    def assemble(self, peak_lists: Sequence[PeakList]):
        """Exhaustive single-pass linkage.

        Every unclaimed peak, in peak-list order, seeds a system and
        claims each unclaimed peak of every other list whose
        compatibility, normalised by the seed's total compatibility with
        that list, is positive.
        """
        self.clear()
        for peak_list in peak_lists:
            peak_list.unlink_peaks()
            for peak in peak_list.active_peaks():
                peak.status = 0

        for list_a in peak_lists:
            for pk_a in list_a.peaks:
                if pk_a.status != 0:
                    continue
                system = self._new_system(pk_a)
                pk_a.status = 1
                for list_b in peak_lists:
                    if list_b is list_a:
                        continue
                    a_match = match_dims(list_a, list_b)
                    total = sum(compare_peaks(pk_a, pk_b, a_match, self.config)
                                for pk_b in list_b.active_peaks())
                    for pk_b in list_b.peaks:
                        if pk_b.status != 0:
                            continue
                        f = compare_peaks(pk_a, pk_b, a_match, self.config)
                        if f > 0.0 and f / total > 0.0:
                            system.add_peak(pk_b, f / total)
                            pk_b.status = 1
                logger.debug("system %d at %s: %d peaks", system.id,
                             pk_a.name, len(system.peak_matches))
        logger.info("assembled %d spin systems from %d peak lists",
                    len(self.systems), len(peak_lists))

    def calc_normalization(self, peak_lists: Sequence[PeakList]) -> np.ndarray:
        """Total compatibility of each reference peak with each other list.

        Returns
        -------
        np.ndarray
            Shape ``(n_active_reference_peaks, len(peak_lists) - 1)``;
            the reference list is ``peak_lists[0]``.
        """
        ref_list = peak_lists[0]
        ref_peaks = ref_list.active_peaks()
        others = [pl for pl in peak_lists if pl is not ref_list]
        sums = np.zeros((len(ref_peaks), len(others)))
        for j, list_b in enumerate(others):
            a_match = match_dims(ref_list, list_b)
            peaks_b = list_b.active_peaks()
            for i, pk_a in enumerate(ref_peaks):
                sums[i, j] = sum(compare_peaks(pk_a, pk_b, a_match, self.config)
                                 for pk_b in peaks_b)
        return sums

    def assemble_with_clustering(self, peak_lists: Sequence[PeakList]) -> int:
        """Cluster by shift identity over dims shared by every list.

        Dimensions of the reference list (``peak_lists[0]``) whose
        pattern occurs in every other list become search dimensions;
        :func:`~seqassign.peaks.cluster_peaks` links the peaks and one
        system is built per reference peak.

        Returns
        -------
        int
            Number of systems built.
        """
        self.clear()
        ref_list = peak_lists[0]
        sums = self.calc_normalization(peak_lists)

        use_dim = [True] * ref_list.n_dim
        n_expected = 0
        for peak_list in peak_lists:
            peak_list.unlink_peaks()
            if peak_list is not ref_list:
                for i, j in enumerate(match_dims(ref_list, peak_list)):
                    if j == -1:
                        use_dim[i] = False
            n_expected += peak_list.expected_count
        if not any(use_dim):
            logger.warning("no dimension pattern is shared by all %d peak lists",
                           len(peak_lists))

        list_index: Dict[int, int] = {}
        for peak_list in peak_lists:
            if peak_list is not ref_list:
                list_index[id(peak_list)] = len(list_index)
            peak_list.clear_search_dims()
            for i, j in enumerate(match_dims(ref_list, peak_list)):
                if use_dim[i] and j != -1:
                    peak_list.add_search_dim(j, peak_list.spectral_dim(j).id_tol)

        cluster_peaks(peak_lists, ref_list)

        for i, pk_a in enumerate(ref_list.active_peaks()):
            system = self._new_system(pk_a)
            for pk_b in get_links(pk_a):
                list_b = pk_b.peak_list
                if pk_b is pk_a or list_b is ref_list:
                    continue
                j = list_index.get(id(list_b))
                if j is None:
                    logger.warning("linked peak %s is from an unknown peak list",
                                   pk_b.name)
                    continue
                f = compare_peaks(pk_a, pk_b, match_dims(ref_list, list_b), self.config)
                total = sums[i, j]
                system.add_peak(pk_b, f / total if total > 0.0 else 0.0)
            logger.debug("cluster %s: expected %d, got %d peaks",
                         pk_a.name, n_expected, len(system.peak_matches))
        logger.info("clustered %d spin systems", len(self.systems))
        return len(self.systems)

    def build_from_links(self, peak_lists: Sequence[PeakList]) -> int:
        """Rebuild systems from existing peak links and annotations."""
        self.clear()
        for pk_a in peak_lists[0].active_peaks():
            system = self._new_system(pk_a)
            system.add_linked_peaks()
            system.update_from_annotations()
        self.compare()
        return len(self.systems)

    # ═══════════════════════════════════════════════════════════════
    # Labeling and matching
    # ═══════════════════════════════════════════════════════════════

    def calc_combinations(self) -> List[SearchTrace]:
        """Run the hypothesis search on every system."""
        traces = [system.calc_combinations() for system in self.systems]
        n_labeled = sum(1 for t in traces if t.labeled)
        logger.info("labeled %d of %d spin systems", n_labeled, len(traces))
        return traces

    def compare(self):
        """Rank predecessor and successor candidates for every system."""
        for system in self.systems:
            system.compare_all(self.systems)

    def get(self, i: int, direction: int = 0, p_index: int = 0,
            s_index: int = 0) -> Optional[SpinSystem]:
        """System *i*, or its ranked neighbour candidate.

        ``direction`` -1 returns the *p_index*-th predecessor candidate,
        +1 the *s_index*-th successor candidate; indices past the end
        are clamped to the last candidate.  ``None`` when there is no
        candidate in that direction.
        """
        system = self.systems[i]
        if direction == -1:
            if not system.match_prev:
                return None
            match = system.match_prev[min(p_index, len(system.match_prev) - 1)]
            return self.systems[match.a]
        if direction == 1:
            if not system.match_next:
                return None
            match = system.match_next[min(s_index, len(system.match_next) - 1)]
            return self.systems[match.b]
        return system

    # ═══════════════════════════════════════════════════════════════
    # Fragment bookkeeping
    # ═══════════════════════════════════════════════════════════════

    def _new_fragment(self, matches: Sequence[SpinSystemMatch]) -> SeqFragment:
        fragment = SeqFragment(self._next_fragment_id, matches)
        self._next_fragment_id += 1
        self.fragments[fragment.id] = fragment
        for system_id in fragment.system_ids:
            self.systems[system_id].fragment_id = fragment.id
        return fragment

    def confirm(self, match: SpinSystemMatch) -> bool:
        """Confirm ``match.a → match.b`` and grow the fragment graph.

        Returns False, changing nothing, when ``a`` already has a
        confirmed successor, ``b`` already has a confirmed predecessor,
        or the edge would close a cycle.
        """
        sys_a = self.systems[match.a]
        sys_b = self.systems[match.b]
        if sys_a is sys_b:
            logger.warning("cannot confirm %r: system matched to itself", match)
            return False
        if sys_a.confirmed_next is not None or sys_b.confirmed_prev is not None:
            logger.warning("cannot confirm %r: %d already has a successor or "
                           "%d a predecessor", match, match.a, match.b)
            return False
        frag_a, frag_b = sys_a.fragment_id, sys_b.fragment_id
        if frag_a is not None and frag_a == frag_b:
            logger.warning("cannot confirm %r: would close fragment %d into a cycle",
                           match, frag_a)
            return False

        sys_a.confirmed_next = match
        sys_b.confirmed_prev = match
        if frag_a is not None and frag_b is not None:
            fragment = self.fragments[frag_a]
            tail = self.fragments.pop(frag_b)
            fragment.matches.append(match)
            fragment.matches.extend(tail.matches)
            for system_id in tail.system_ids:
                self.systems[system_id].fragment_id = fragment.id
        elif frag_a is not None:
            fragment = self.fragments[frag_a]
            fragment.matches.append(match)
            sys_b.fragment_id = fragment.id
        elif frag_b is not None:
            fragment = self.fragments[frag_b]
            fragment.matches.insert(0, match)
            sys_a.fragment_id = fragment.id
        else:
            fragment = self._new_fragment([match])
        logger.info("confirmed %d -> %d in fragment %d", match.a, match.b, fragment.id)
        fragment.dump()
        return True

    def unconfirm(self, match: SpinSystemMatch) -> bool:
        """Retract a confirmed edge, splitting its fragment at that edge.

        Returns False when ``match`` is not a confirmed edge.
        """
        sys_a = self.systems[match.a]
        sys_b = self.systems[match.b]
        if not sys_a.is_confirmed(match, prev=False):
            logger.warning("cannot unconfirm %r: not confirmed", match)
            return False
        sys_a.confirmed_next = None
        sys_b.confirmed_prev = None

        fragment = self.fragments[sys_a.fragment_id]
        cut = [m.key for m in fragment.matches].index(match.key)
        left = fragment.matches[:cut]
        right = fragment.matches[cut + 1:]

        if left:
            fragment.matches = left
        else:
            del self.fragments[fragment.id]
            sys_a.fragment_id = None
        if right:
            self._new_fragment(right)
        else:
            sys_b.fragment_id = None
        logger.info("unconfirmed %d -> %d", match.a, match.b)
        return True

    def fragment_chains(self) -> Tuple[Tuple[int, ...], ...]:
        """System-id chain of every fragment, ordered by first system id."""
        return tuple(sorted(tuple(f.system_ids) for f in self.fragments.values()))

    def sorted_systems(self) -> List[SpinSystem]:
        """Fragment heads, longest fragment first, then unconnected systems."""
        fragments = sorted(self.fragments.values(), key=lambda f: -len(f))
        heads = [self.systems[f.first] for f in fragments]
        return heads + [s for s in self.systems if s.fragment_id is None]

    # ── restructuring ───────────────────────────────────────────

    def split(self, system_id: int) -> Optional[SpinSystem]:
        """Split a system in two and register the new one."""
        new_system = self.systems[system_id].split(len(self.systems))
        if new_system is not None:
            self.systems.append(new_system)
        return new_system

    def dump(self):
        for system in self.systems:
            logger.debug("%s", system)
