"""Tests for pattern parsing and hypothesis enumeration.

Covers:
1. parse_dim_pattern — grammar, signs, errors
2. enumerate_patterns — cross product, ordering, flags
"""

import pytest

from seqassign.config import PREVIOUS, CURRENT
from seqassign.patterns import (
    PatternError, parse_dim_pattern, enumerate_patterns,
)
from seqassign.peaks import SpectralDim, PeakList


def _make_list(*patterns):
    return PeakList("test", [SpectralDim(f"D{i}", p, 0.5) for i, p in enumerate(patterns)])


# ═══════════════════════════════════════════════════════════════════
# 1. parse_dim_pattern
# ═══════════════════════════════════════════════════════════════════

class TestParseDimPattern:

    def test_single(self):
        dp = parse_dim_pattern("i.h")
        assert dp.residues == (CURRENT,)
        assert dp.atoms == ((0, ""),)

    def test_alternatives_and_signs(self):
        dp = parse_dim_pattern("i,i-1.ca+,cb-")
        assert dp.residues == (CURRENT, PREVIOUS)
        assert dp.atoms == ((4, "+"), (5, "-"))
        assert dp.n_residues == 2

    def test_choices_residue_major(self):
        dp = parse_dim_pattern("i,i-1.ca,cb")
        assert dp.choices == [
            (CURRENT, 4, ""), (CURRENT, 5, ""),
            (PREVIOUS, 4, ""), (PREVIOUS, 5, ""),
        ]

    def test_case_and_whitespace(self):
        dp = parse_dim_pattern(" I , i-1 . CA ")
        assert dp.residues == (CURRENT, PREVIOUS)
        assert dp.atoms == ((4, ""),)

    @pytest.mark.parametrize("bad", ["ih", "j.h", "i.xx", "i.", "i.ca,"])
    def test_errors(self, bad):
        with pytest.raises(PatternError):
            parse_dim_pattern(bad)

    def test_pattern_error_is_value_error(self):
        assert issubclass(PatternError, ValueError)


# ═══════════════════════════════════════════════════════════════════
# 2. enumerate_patterns
# ═══════════════════════════════════════════════════════════════════

class TestEnumeratePatterns:

    def test_single_alternative_gives_one(self):
        peak = _make_list("i.h", "i.n").add_peak([8.1, 120.0])
        patterns = enumerate_patterns(peak)
        assert len(patterns) == 1
        assert patterns[0].offsets == (CURRENT, CURRENT)
        assert patterns[0].atom_indices == (0, 1)
        assert not patterns[0].ambiguous_res
        assert not patterns[0].is_inter

    def test_cross_product_size(self):
        peak = _make_list("i,i-1.ca,cb", "i.h,ha").add_peak([56.0, 8.1])
        assert len(enumerate_patterns(peak)) == 8

    def test_row_major_order(self):
        peak = _make_list("i.ca,cb", "i.h,ha").add_peak([56.0, 8.1])
        combos = [p.atom_indices for p in enumerate_patterns(peak)]
        assert combos == [(4, 0), (4, 3), (5, 0), (5, 3)]

    def test_ambiguous_flag(self):
        peak = _make_list("i.h", "i,i-1.ca").add_peak([8.1, 56.0])
        patterns = enumerate_patterns(peak)
        assert all(p.ambiguous_res for p in patterns)
        assert [p.is_inter for p in patterns] == [False, True]

    def test_sign_flags(self):
        peak = _make_list("i.h", "i.ca+,cb-").add_peak([8.1, 56.0])
        patterns = enumerate_patterns(peak)
        assert [(p.require_sign, p.positive) for p in patterns] == [
            (True, True), (True, False)]

    def test_unsigned_has_no_sign_requirement(self):
        peak = _make_list("i.h").add_peak([8.1])
        assert not enumerate_patterns(peak)[0].require_sign

    def test_explicit_patterns_override_list(self):
        peak = _make_list("i.h").add_peak([8.1])
        patterns = enumerate_patterns(peak, ["i.h,ha"])
        assert len(patterns) == 2

    def test_nothing_rejected_here(self):
        peak = _make_list("i.ca").add_peak([20.0], intensity=-1.0)
        assert len(enumerate_patterns(peak)) == 1

    def test_describe(self):
        peak = _make_list("i.h", "i-1.cb-").add_peak([8.1, 30.0])
        text = enumerate_patterns(peak)[0].describe()
        assert text == "test.0 i.h i-1.cb (-)"
