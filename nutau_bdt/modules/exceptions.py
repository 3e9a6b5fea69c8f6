"""
Custom exceptions for the nu_tau classification pipeline

Provides a hierarchy of exceptions for better error handling and diagnostics.
All custom exceptions inherit from AnalysisError for easy catching.
"""


class AnalysisError(Exception):
    """
    Base exception for all analysis pipeline errors

    All custom exceptions inherit from this class, allowing users to catch
    all analysis-specific errors with a single except clause.
    """
    pass


class ConfigurationError(AnalysisError):
    """
    Raised when configuration is invalid or missing required fields

    Examples:
    - Missing required config file
    - Unknown channel or classifier method name
    - Missing required config sections
    """
    pass


class DataLoadError(AnalysisError):
    """
    Raised when sample files cannot be loaded

    Examples:
    - File not found
    - Missing tree in ROOT file
    - Empty normalization histogram
    """
    pass


class BranchMissingError(AnalysisError):
    """
    Raised when required branch is not found in a tree

    Examples:
    - Missing kinematic branch (e.g., kink, p2ry)
    - Missing event weight branch (OscillationP)
    """
    def __init__(self, branch_name: str, file_path: str = None):
        """
        Initialize BranchMissingError

        Args:
            branch_name: Name of the missing branch
            file_path: Optional path to the file being read
        """
        self.branch_name = branch_name
        self.file_path = file_path

        message = f"Required branch '{branch_name}' not found"
        if file_path:
            message += f" in file: {file_path}"

        super().__init__(message)


class ClassifierError(AnalysisError):
    """
    Raised when a classifier cannot be trained, loaded or evaluated

    Examples:
    - Only one class present in the training sample
    - Persisted model file missing
    """
    pass


class HistogramError(AnalysisError):
    """
    Raised when a score histogram is malformed

    Examples:
    - Bin edges not strictly increasing
    - Edge and weight arrays of different length
    - Scaling a histogram with zero integral
    """
    pass


class OptimizationError(AnalysisError):
    """
    Raised when cut optimization fails
    """
    pass


class PreconditionViolation(OptimizationError):
    """
    Raised when the inputs of a cut scan violate its preconditions

    Examples:
    - Empty histograms
    - Signal and background histograms with different binning
    - Zero total signal weight
    """
    pass
