from .cut_scanner import BestCut, CutScanner, ScanResult, find_last_bin_above
from .exceptions import (
    AnalysisError,
    BranchMissingError,
    ClassifierError,
    ConfigurationError,
    DataLoadError,
    HistogramError,
    OptimizationError,
    PreconditionViolation,
)
from .score_histogram import ScoreHistogram

__all__ = [
    "AnalysisError",
    "BestCut",
    "BranchMissingError",
    "ClassifierError",
    "ConfigurationError",
    "CutScanner",
    "DataLoadError",
    "HistogramError",
    "OptimizationError",
    "PreconditionViolation",
    "ScanResult",
    "ScoreHistogram",
    "find_last_bin_above",
]
