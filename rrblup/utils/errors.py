"""
Error and warning classes for genomic prediction
"""


class GenomicPredictionError(ValueError):
    """Base class for all pyRRBLUP errors"""


class DimensionError(GenomicPredictionError):
    """Shape mismatch between matrices/vectors, or an empty matrix"""


class NumericalInstabilityError(GenomicPredictionError):
    """Singular or ill-conditioned relationship or system matrix"""


class InvalidParameterError(GenomicPredictionError):
    """Heritability, shrinkage or configuration value out of its valid range"""


class DegenerateInputError(GenomicPredictionError):
    """No variance left to apportion across markers"""


class SingularSystemError(GenomicPredictionError):
    """Regularized normal equations could not be solved"""


class MarkerMismatchError(GenomicPredictionError):
    """Training and prediction marker sets differ"""


class MissingDataError(GenomicPredictionError):
    """An individual exceeds the configured missing-call rate"""


class NonConvergenceError(NumericalInstabilityError):
    """Variance components did not converge and the caller required convergence"""


class CrossValidationError(GenomicPredictionError):
    """Every cross-validation repetition failed"""


class ConvergenceWarning(UserWarning):
    """Iteration bound reached without convergence; the value is still returned"""


class LeastSquaresFallbackWarning(UserWarning):
    """Cholesky factorization failed and a least-squares solve was used instead"""


class HeritabilityBoundaryWarning(UserWarning):
    """Estimated heritability sits on the edge of (0, 1)"""


# Errors that a single cross-validation repetition may record instead of raising.
NUMERICAL_ERRORS = (
    NumericalInstabilityError,
    InvalidParameterError,
    DegenerateInputError,
    SingularSystemError,
)
