"""
Exception hierarchy for oncosurv.

All exceptions inherit from OncosurvError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class OncosurvError(Exception):
    """Base exception for all oncosurv errors."""
    pass


class ValidationError(OncosurvError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.
    """
    pass


class DataDomainError(ValidationError):
    """
    Data values fall outside their declared domain.

    Raised for out-of-range categorical codes and for missing values in
    fields a model requires.

    Attributes:
        column: Name of the offending column, if known
        values: The offending values (deduplicated)
    """

    def __init__(
        self,
        message: str,
        column: str | None = None,
        values: tuple | None = None,
    ):
        super().__init__(message)
        self.column = column
        self.values = values


class InsufficientImputationsError(ValidationError):
    """
    Fewer than two imputations were requested or survived.

    Between-imputation variance is undefined for M < 2.

    Attributes:
        m: Number of imputations available
    """

    def __init__(self, message: str, m: int):
        super().__init__(message)
        self.m = m


class NumericalError(OncosurvError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically the number of columns)
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class UndefinedMedianError(NumericalError):
    """
    Survival curve never reaches 0.5 within follow-up.

    Attributes:
        min_survival: Lowest survival probability on the curve
    """

    def __init__(self, message: str, min_survival: float | None = None):
        super().__init__(message)
        self.min_survival = min_survival


class ConvergenceError(OncosurvError):
    """
    Iterative algorithm failed to converge.

    Raised when the Cox Newton-Raphson iteration fails to meet its
    convergence criterion within the maximum number of iterations.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'diverging')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold


class ImputationError(OncosurvError):
    """
    A model fit on one completed dataset failed.

    Attributes:
        imputation: Zero-based index of the failing imputation
    """

    def __init__(self, message: str, imputation: int):
        super().__init__(message)
        self.imputation = imputation
