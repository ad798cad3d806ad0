"""seqassign: NMR spin-system assembly and sequential matching.

Clusters peaks from several multidimensional peak lists into spin
systems, labels every peak dimension with an atom type and residue
offset by a probabilistic hypothesis search, scores spin systems as
sequential neighbours and keeps chains of confirmed neighbours as
fragments.
"""
from .thresholds import ThresholdRegistry, DEFAULT_THRESHOLDS
from .config import (
    ATOM_TYPES, PREVIOUS, CURRENT,
    AssignmentConfig, DEFAULT_CONFIG,
    format_label, parse_label,
)

# Peak store
from .peaks import (
    SpectralDim, SearchDim, PeakDim, Peak, PeakList,
    link_peaks, get_links, cluster_peaks,
)

# Hypotheses
from .patterns import (
    PatternError, DimPattern, ResAtomPattern,
    parse_dim_pattern, enumerate_patterns,
)
from .scoring import check_pattern, analyze_shifts
from .trace import PeakCandidates, SearchTrace

# Systems and fragments
from .matching import match_dims, compare_peaks, SpinSystemMatch
from .spin_system import PeakMatch, AtomPresent, SpinSystem
from .fragment import SeqFragment
from .spin_systems import SpinSystems

__all__ = [
    # Configuration
    "ThresholdRegistry", "DEFAULT_THRESHOLDS",
    "ATOM_TYPES", "PREVIOUS", "CURRENT",
    "AssignmentConfig", "DEFAULT_CONFIG",
    "format_label", "parse_label",
    # Peak store
    "SpectralDim", "SearchDim", "PeakDim", "Peak", "PeakList",
    "link_peaks", "get_links", "cluster_peaks",
    # Hypotheses
    "PatternError", "DimPattern", "ResAtomPattern",
    "parse_dim_pattern", "enumerate_patterns",
    "check_pattern", "analyze_shifts",
    "PeakCandidates", "SearchTrace",
    # Systems and fragments
    "match_dims", "compare_peaks", "SpinSystemMatch",
    "PeakMatch", "AtomPresent", "SpinSystem",
    "SeqFragment", "SpinSystems",
]

__version__ = "0.1.0"
