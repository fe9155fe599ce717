"""
Core infrastructure for oncosurv.

Shared abstractions used by every domain subpackage (cohort, survival,
imputation).

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and linear algebra kernels
"""

from oncosurv.core.result import Result
from oncosurv.core.exceptions import (
    OncosurvError,
    ValidationError,
    DimensionError,
    DataDomainError,
    InsufficientImputationsError,
    NumericalError,
    SingularMatrixError,
    UndefinedMedianError,
    ConvergenceError,
    ImputationError,
)

__all__ = [
    # Result
    "Result",
    # Exceptions
    "OncosurvError",
    "ValidationError",
    "DimensionError",
    "DataDomainError",
    "InsufficientImputationsError",
    "NumericalError",
    "SingularMatrixError",
    "UndefinedMedianError",
    "ConvergenceError",
    "ImputationError",
]
