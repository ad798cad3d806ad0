"""Tests for the ThresholdRegistry and AssignmentConfig wiring.

Covers:
1. ThresholdRegistry: lookup, read-only guard, derived registries,
   diff and sections
2. DEFAULT_THRESHOLDS: structure, production values
3. Integration: overridden thresholds change scoring and matching
"""

import pytest

from seqassign.thresholds import ThresholdRegistry, DEFAULT_THRESHOLDS
from seqassign.config import AssignmentConfig, DEFAULT_CONFIG


@pytest.fixture
def tolerances():
    return ThresholdRegistry(
        {"tolerance.h": 0.04, "tolerance.n": 0.5, "scorer.gly_ca": 50.0},
        name="nh",
    )


# ═══════════════════════════════════════════════════════════════════
# 1. ThresholdRegistry
# ═══════════════════════════════════════════════════════════════════

class TestRegistryLookup:

    def test_values_by_key(self, tolerances):
        assert tolerances["tolerance.n"] == 0.5
        assert "tolerance.h" in tolerances
        assert "tolerance.cb" not in tolerances
        assert len(tolerances) == 3
        assert sorted(tolerances) == ["scorer.gly_ca", "tolerance.h", "tolerance.n"]

    def test_unknown_key_raises(self, tolerances):
        with pytest.raises(KeyError):
            tolerances["tolerance.cb"]

    def test_get_falls_back(self, tolerances):
        assert tolerances.get("tolerance.h") == 0.04
        assert tolerances.get("tolerance.cb") == 0.0
        assert tolerances.get("tolerance.cb", 0.6) == 0.6

    def test_to_dict_is_detached(self, tolerances):
        plain = tolerances.to_dict()
        plain["tolerance.n"] = 5.0
        assert tolerances["tolerance.n"] == 0.5

    def test_repr_and_default_name(self, tolerances):
        assert repr(tolerances) == "ThresholdRegistry('nh', 3 keys)"
        assert ThresholdRegistry({}).name == "custom"


class TestRegistryReadOnly:

    def test_item_assignment_rejected(self, tolerances):
        with pytest.raises(TypeError, match="immutable"):
            tolerances["tolerance.n"] = 0.3

    def test_source_dict_is_copied(self):
        source = {"tolerance.ca": 0.6}
        reg = ThresholdRegistry(source)
        source["tolerance.ca"] = 6.0
        assert reg["tolerance.ca"] == 0.6

    def test_equality_ignores_name(self):
        a = ThresholdRegistry({"tolerance.ca": 0.6}, name="a")
        b = ThresholdRegistry({"tolerance.ca": 0.6}, name="b")
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1
        assert a != {"tolerance.ca": 0.6}


class TestRegistryReplace:

    def test_override_leaves_original(self, tolerances):
        wide = tolerances.replace({"tolerance.n": 1.0})
        assert wide["tolerance.n"] == 1.0
        assert wide["tolerance.h"] == 0.04
        assert tolerances["tolerance.n"] == 0.5

    def test_unknown_override_raises(self, tolerances):
        with pytest.raises(KeyError, match="Unknown threshold key"):
            tolerances.replace({"tolerance.nn": 1.0})

    def test_derived_names(self, tolerances):
        assert tolerances.replace({"tolerance.n": 1.0}).name == "nh+"
        assert tolerances.replace({"tolerance.n": 1.0}, name="wide-n").name == "wide-n"

    def test_no_overrides_is_equal_copy(self, tolerances):
        assert tolerances.replace({}) == tolerances


class TestRegistryDiff:

    def test_identical(self, tolerances):
        assert tolerances.diff(tolerances) == {}

    def test_changed_value(self, tolerances):
        harsher = tolerances.replace({"scorer.gly_ca": 48.0})
        assert harsher.diff(tolerances) == {"scorer.gly_ca": (48.0, 50.0)}

    def test_one_sided_keys(self):
        small = ThresholdRegistry({"tolerance.h": 0.04})
        large = ThresholdRegistry({"tolerance.h": 0.04, "tolerance.ha": 0.04})
        assert small.diff(large) == {"tolerance.ha": (None, 0.04)}
        assert large.diff(small) == {"tolerance.ha": (0.04, None)}


class TestRegistrySections:

    def test_section(self, tolerances):
        assert tolerances.section("tolerance") == {"tolerance.h": 0.04, "tolerance.n": 0.5}
        assert tolerances.section("match") == {}

    def test_sections_skip_undotted_keys(self):
        reg = ThresholdRegistry({"tolerance.h": 0.04, "scorer.gly_ca": 50.0, "scale": 2.0})
        assert reg.sections == ("scorer", "tolerance")


# ═══════════════════════════════════════════════════════════════════
# 2. DEFAULT_THRESHOLDS validation
# ═══════════════════════════════════════════════════════════════════

class TestDefaultThresholds:

    def test_name(self):
        assert DEFAULT_THRESHOLDS.name == "production"

    def test_has_expected_sections(self):
        assert set(DEFAULT_THRESHOLDS.sections) == {
            "tolerance", "scorer", "search", "match",
        }

    def test_one_tolerance_per_atom_type(self):
        assert len(DEFAULT_THRESHOLDS.section("tolerance")) == 6

    @pytest.mark.parametrize("key,expected", [
        ("tolerance.h", 0.04),
        ("tolerance.n", 0.5),
        ("tolerance.c", 0.6),
        ("tolerance.ha", 0.04),
        ("tolerance.ca", 0.6),
        ("tolerance.cb", 0.6),
        ("scorer.ca_floor", 38.0),
        ("scorer.gly_ca", 50.0),
        ("scorer.ambiguous_limit", 0.95),
        ("scorer.ambiguous_limit_gly", 1.2),
        ("scorer.missing_log_prob", -1.0),
        ("search.consistency_factor", 1.5),
        ("match.max_deviation", 2.0),
    ])
    def test_production_values(self, key, expected):
        assert DEFAULT_THRESHOLDS[key] == pytest.approx(expected)


# ═══════════════════════════════════════════════════════════════════
# 3. Integration: registry changes behaviour
# ═══════════════════════════════════════════════════════════════════

class TestRegistryIntegration:

    def test_default_config_uses_production_registry(self):
        assert DEFAULT_CONFIG.thresholds is DEFAULT_THRESHOLDS

    def test_with_thresholds_roundtrip(self):
        custom = DEFAULT_CONFIG.with_thresholds({"tolerance.ca": 0.3})
        diff = custom.thresholds.diff(DEFAULT_THRESHOLDS)
        assert diff == {"tolerance.ca": (0.3, 0.6)}
        assert custom.tolerance(custom.ca_index) == pytest.approx(0.3)
        assert DEFAULT_CONFIG.tolerance(DEFAULT_CONFIG.ca_index) == pytest.approx(0.6)

    def test_with_thresholds_unknown_key_raises(self):
        with pytest.raises(KeyError):
            DEFAULT_CONFIG.with_thresholds({"tolerance.zz": 1.0})

    def test_missing_log_prob_changes_scoring(self):
        from seqassign.scoring import empty_cells, analyze_shifts
        cells = empty_cells()
        cells[1][0].append(8.1)
        p_default = analyze_shifts(cells)
        harsher = DEFAULT_CONFIG.with_thresholds({"scorer.missing_log_prob": -2.0})
        p_harsh = analyze_shifts(cells, harsher)
        assert p_harsh < p_default
        assert p_harsh == pytest.approx(p_default ** 2)

    def test_config_requires_tolerance_for_every_atom(self):
        reg = ThresholdRegistry({k: v for k, v in DEFAULT_THRESHOLDS.items()
                                 if k != "tolerance.cb"})
        with pytest.raises(KeyError):
            AssignmentConfig(thresholds=reg)

    def test_public_api_exports(self):
        import seqassign
        assert seqassign.DEFAULT_THRESHOLDS is DEFAULT_THRESHOLDS
        assert seqassign.DEFAULT_CONFIG is DEFAULT_CONFIG
