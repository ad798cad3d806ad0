"""Tests for hypothesis admissibility and joint labeling probability.

Covers:
1. check_pattern — sign, implausible CA, ambiguous inter-residue limits
2. analyze_shifts — consistency term, missing term, forbidden cells,
   glycine correction
3. push_pattern / pop_pattern — consistency rule with rollback
"""

import math

import pytest

from seqassign.config import DEFAULT_CONFIG
from seqassign.patterns import enumerate_patterns
from seqassign.peaks import SpectralDim, PeakList
from seqassign.scoring import (
    empty_cells, shift_range, check_pattern, glycine_rows,
    analyze_shifts, add_to_cells, push_pattern, pop_pattern,
)

CA = DEFAULT_CONFIG.ca_index
CB = DEFAULT_CONFIG.cb_index
HA = DEFAULT_CONFIG.atom_index("ha")


def _make_hncacb():
    return PeakList("hncacb", [
        SpectralDim("H", "i.h", 0.04),
        SpectralDim("N", "i.n", 0.5),
        SpectralDim("C", "i,i-1.ca+,cb-", 0.6),
    ])


def _pattern(peak, label):
    """Pick the reading of *peak* whose carbon dim reads as *label*."""
    for pattern in enumerate_patterns(peak):
        desc = pattern.describe()
        if desc.split()[3] == label:
            return pattern
    raise LookupError(label)


def _ca_peak(shift, intensity=1.0):
    peak_list = PeakList("ca", [SpectralDim("C", "i.ca", 0.6)])
    return peak_list.add_peak([shift], intensity)


# ═══════════════════════════════════════════════════════════════════
# 1. check_pattern
# ═══════════════════════════════════════════════════════════════════

class TestCheckPatternSign:

    def test_positive_required(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        pattern = _pattern(peak, "i.ca")
        assert check_pattern(pattern, 0.5)
        assert not check_pattern(pattern, -0.5)

    def test_negative_required(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 30.0], -1.0)
        pattern = _pattern(peak, "i.cb")
        assert check_pattern(pattern, -0.5)
        assert not check_pattern(pattern, 0.5)


class TestCheckPatternPlausibility:

    def test_ca_below_floor_rejected(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 30.0], 1.0)
        assert not check_pattern(_pattern(peak, "i.ca"), 0.5)

    def test_cb_at_same_shift_allowed(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 30.0], -1.0)
        assert check_pattern(_pattern(peak, "i.cb"), -0.5)

    def test_adjusted_shift_is_used(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        peak.dims[2].adjusted_shift = 30.0
        assert not check_pattern(_pattern(peak, "i.ca"), 0.5)

    def test_raised_floor_from_config(self):
        config = DEFAULT_CONFIG.with_thresholds({"scorer.ca_floor": 60.0})
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        assert check_pattern(_pattern(peak, "i.ca"), 0.5)
        assert not check_pattern(_pattern(peak, "i.ca"), 0.5, config)


class TestCheckPatternAmbiguous:

    def test_strong_inter_rejected(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        assert not check_pattern(_pattern(peak, "i-1.ca"), 0.96)

    def test_weak_inter_allowed(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        assert check_pattern(_pattern(peak, "i-1.ca"), 0.9)

    def test_strong_intra_allowed(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 56.0], 1.0)
        assert check_pattern(_pattern(peak, "i.ca"), 1.0)

    def test_glycine_limit(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 45.0], 1.0)
        pattern = _pattern(peak, "i-1.ca")
        assert check_pattern(pattern, 1.0)
        assert not check_pattern(pattern, 1.25)

    def test_negative_intensity_uses_magnitude(self):
        peak = _make_hncacb().add_peak([8.1, 120.0, 30.0], -1.0)
        assert not check_pattern(_pattern(peak, "i-1.cb"), -0.99)
        assert check_pattern(_pattern(peak, "i-1.cb"), -0.5)


# ═══════════════════════════════════════════════════════════════════
# 2. analyze_shifts
# ═══════════════════════════════════════════════════════════════════

class TestAnalyzeShifts:

    def test_shift_range(self):
        assert shift_range([1.0, 3.0]) == (2.0, 2.0)

    def test_empty_is_all_missing(self):
        # 6 missing in the i-1 row, 17 in the i row
        assert analyze_shifts(empty_cells()) == pytest.approx(math.exp(-23.0))

    def test_consistency_term(self):
        cells = empty_cells()
        cells[0][CA] = [56.0, 56.3]
        # two values 0.15 from the mean, tolerance 0.6; 21 missing
        expected = math.exp(-0.25) ** 2 * math.exp(-21.0)
        assert analyze_shifts(cells) == pytest.approx(expected)

    def test_forbidden_cell_gives_zero(self):
        cells = empty_cells()
        cells[1][HA] = [4.5]
        assert analyze_shifts(cells) == 0.0

    def test_previous_residue_h_forbidden(self):
        cells = empty_cells()
        cells[0][0] = [8.1]
        assert analyze_shifts(cells) == 0.0

    def test_more_than_expected_is_not_forbidden(self):
        cells = empty_cells()
        cells[1][CA] = [56.0, 56.0]
        assert analyze_shifts(cells) > 0.0

    def test_glycine_with_cb_is_zero(self):
        cells = empty_cells()
        cells[1][CA] = [48.0]
        cells[1][CB] = [30.0]
        assert glycine_rows(cells) == (False, True)
        assert analyze_shifts(cells) == 0.0

    def test_glycine_without_cb_not_penalised_for_cb(self):
        gly = empty_cells()
        gly[1][CA] = [48.0]
        other = empty_cells()
        other[1][CA] = [56.0]
        # the glycine row expects no CB, so one fewer missing factor
        assert analyze_shifts(gly) == pytest.approx(analyze_shifts(other) * math.e)

    def test_non_glycine_with_cb(self):
        cells = empty_cells()
        cells[1][CA] = [56.0]
        cells[1][CB] = [30.0]
        assert analyze_shifts(cells) > 0.0

    def test_glycine_is_per_row(self):
        cells = empty_cells()
        cells[0][CA] = [45.0]
        cells[1][CA] = [56.0]
        cells[1][CB] = [30.0]
        assert analyze_shifts(cells) > 0.0


# ═══════════════════════════════════════════════════════════════════
# 3. push_pattern / pop_pattern
# ═══════════════════════════════════════════════════════════════════

class TestConsistency:

    def _patterns(self, *shifts):
        return [enumerate_patterns(_ca_peak(s))[0] for s in shifts]

    def test_close_values_accepted(self):
        cells = empty_cells()
        for pattern in self._patterns(55.2, 55.3):
            assert add_to_cells(cells, pattern)
        assert cells[1][CA] == [55.2, 55.3]

    def test_far_value_rejected_without_side_effects(self):
        cells = empty_cells()
        a, b, c = self._patterns(55.2, 55.3, 60.0)
        assert add_to_cells(cells, a)
        assert add_to_cells(cells, b)
        assert push_pattern(cells, c) is None
        assert cells[1][CA] == [55.2, 55.3]

    def test_compared_against_first_value(self):
        # 56.0 is within 1.5 x 0.6 of 55.3 but not of 55.0
        cells = empty_cells()
        a, b, c = self._patterns(55.0, 55.3, 56.0)
        assert add_to_cells(cells, a)
        assert add_to_cells(cells, b)
        assert not add_to_cells(cells, c)

    def test_rollback_of_partial_push(self):
        hncacb = _make_hncacb()
        cells = empty_cells()
        cells[1][CA] = [60.0]
        peak = hncacb.add_peak([8.1, 120.0, 56.0], 1.0)
        assert push_pattern(cells, _pattern(peak, "i.ca")) is None
        assert cells[1][0] == []
        assert cells[1][1] == []
        assert cells[1][CA] == [60.0]

    def test_pop_restores(self):
        hncacb = _make_hncacb()
        cells = empty_cells()
        peak = hncacb.add_peak([8.1, 120.0, 56.0], 1.0)
        touched = push_pattern(cells, _pattern(peak, "i.ca"))
        assert touched == [(1, 0), (1, 1), (1, CA)]
        pop_pattern(cells, touched)
        assert cells == empty_cells()

    def test_raw_shift_used(self):
        cells = empty_cells()
        peak = _ca_peak(56.0)
        peak.dims[0].adjusted_shift = 70.0
        push_pattern(cells, enumerate_patterns(peak)[0])
        assert cells[1][CA] == [56.0]
