"""Exceptions raised by the KDPI decision-curve analysis.

Per-record and per-threshold errors are normally caught by the caller and
turned into a counted exclusion or an invalid result row. Only
``PercentileTableError``, ``EmptyCohortError`` and ``ConfigurationError``
stop a run.
"""


class KDPIAnalysisError(Exception):
    """Base class for all analysis errors."""
    pass


class ConfigurationError(KDPIAnalysisError):
    """Raised when a column mapping or calibration constant is missing or invalid."""
    pass


class MissingInputError(KDPIAnalysisError):
    """Raised when a covariate required by the KDRI formula is absent."""
    pass


class UnmappableRiskError(KDPIAnalysisError):
    """Raised when a KDRI value falls outside every percentile-table range."""
    pass


class DegeneratePartitionError(KDPIAnalysisError):
    """Raised when a threshold leaves the accept or reject group empty."""
    pass


class NumericDivergenceError(KDPIAnalysisError):
    """Raised when predicted survival is 1 and the odds term is undefined."""
    pass


class PercentileTableError(KDPIAnalysisError):
    """Raised when the percentile table is missing, empty or malformed."""
    pass


class EmptyCohortError(KDPIAnalysisError):
    """Raised when no records remain for the analysis."""
    pass
