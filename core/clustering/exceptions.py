"""
Error types raised by the clustering engine.

Validation, insufficient-data and quality errors are raised immediately and
are never retried inside the engine: continuing would produce statistically
meaningless clusters. ConvergenceLimit is a warning, not an error.
"""


class ClusteringError(Exception):
    """
    Base class for clustering failures.

    Carries an optional context dict (user counts, thresholds, ...) that is
    appended to the message so log lines are self-describing.
    """

    def __init__(self, message, context=None):
        self.context = context or {}
        super().__init__(message)

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


class ValidationError(ClusteringError, ValueError):
    """Malformed input: matrix dimensions, id counts, K out of bounds."""


class InsufficientDataError(ClusteringError):
    """Not enough users, statements or group votes to compute anything."""


class QualityError(ClusteringError):
    """PCA explains too little variance for the clusters to mean anything."""


class ConvergenceLimit(RuntimeWarning):
    """K-means hit its iteration cap; the best-effort result is still used."""
