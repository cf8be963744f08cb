"""
Error types raised by the zone engine.

Fatal errors derive from ZoneCalculationError and abort a calculation without
caching anything. FeatureGeometryError is recoverable: callers log it and
skip the offending feature.
"""


class ZoneCalculationError(Exception):
    """Raised when a zone calculation cannot produce a meaningful result."""
    pass


class DegenerateStudyAreaError(ZoneCalculationError):
    """Raised when the study area is missing, empty or not a polygon."""
    pass


class NoCandidateAreaError(ZoneCalculationError):
    """Raised when no open water outside the constraints was found."""
    pass


class NoZonesProducedError(ZoneCalculationError):
    """Raised when every zone candidate was discarded during synthesis or optimization."""
    pass


class CalculationCancelledError(ZoneCalculationError):
    """Raised at a checkpoint once cancellation has been requested."""
    pass


class FeatureGeometryError(ValueError):
    """Raised when a single feature's geometry cannot be interpreted."""
    pass
