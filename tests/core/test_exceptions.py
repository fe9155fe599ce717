"""
Tests for the oncosurv exception hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via OncosurvError)
    - Diagnostic attributes on the data-domain, numerical and imputation errors
    - Default attribute values (None for optional attributes)
"""

import pytest

from oncosurv.core.exceptions import (
    ConvergenceError,
    DataDomainError,
    DimensionError,
    ImputationError,
    InsufficientImputationsError,
    NumericalError,
    OncosurvError,
    SingularMatrixError,
    UndefinedMedianError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via OncosurvError."""

    @pytest.mark.parametrize("exc, parent", [
        (DimensionError("wrong shape"), ValidationError),
        (DataDomainError("code 7"), ValidationError),
        (InsufficientImputationsError("M < 2", m=1), ValidationError),
        (SingularMatrixError("singular"), NumericalError),
        (UndefinedMedianError("no median"), NumericalError),
        (ConvergenceError("stuck", iterations=20), OncosurvError),
        (ImputationError("fit failed", imputation=2), OncosurvError),
    ])
    def test_parent(self, exc, parent):
        assert isinstance(exc, parent)
        assert isinstance(exc, OncosurvError)

    def test_convergence_error_is_not_numerical_error(self):
        err = ConvergenceError("did not converge", iterations=100)
        assert not isinstance(err, NumericalError)

    def test_imputation_error_is_not_validation_error(self):
        err = ImputationError("fit failed", imputation=0)
        assert not isinstance(err, ValidationError)


# ═══════════════════════════════════════════════════════════════════════
# Diagnostic attributes
# ═══════════════════════════════════════════════════════════════════════


class TestDataDomainError:

    def test_attributes(self):
        err = DataDomainError("Smoking: codes (7,) outside (0, 1, 2)",
                              column="Smoking", values=(7,))
        assert err.column == "Smoking"
        assert err.values == (7,)
        assert "outside" in str(err)

    def test_defaults_are_none(self):
        err = DataDomainError("bad")
        assert err.column is None
        assert err.values is None


class TestSingularMatrixError:

    def test_all_attributes(self):
        err = SingularMatrixError(
            "X: rank-deficient",
            matrix_name="X",
            condition_number=1e18,
            rank=3,
            expected_rank=4,
        )
        assert str(err) == "X: rank-deficient"
        assert err.matrix_name == "X"
        assert err.condition_number == 1e18
        assert err.rank == 3
        assert err.expected_rank == 4

    def test_defaults_are_none(self):
        err = SingularMatrixError("singular")
        assert err.matrix_name is None
        assert err.condition_number is None
        assert err.rank is None
        assert err.expected_rank is None


class TestConvergenceError:

    def test_all_attributes(self):
        err = ConvergenceError(
            "Newton-Raphson did not converge",
            iterations=20,
            final_change=1e-4,
            reason="max_iterations",
            threshold=1e-9,
        )
        assert err.iterations == 20
        assert err.final_change == 1e-4
        assert err.reason == "max_iterations"
        assert err.threshold == 1e-9

    def test_defaults_are_none(self):
        err = ConvergenceError("failed", iterations=10)
        assert err.final_change is None
        assert err.reason is None
        assert err.threshold is None


class TestImputationErrors:

    def test_imputation_index(self):
        with pytest.raises(ImputationError) as exc_info:
            raise ImputationError("model fit failed on imputation 3 of 5", imputation=2)
        assert exc_info.value.imputation == 2

    def test_insufficient_imputations_m(self):
        err = InsufficientImputationsError("M < 2", m=1)
        assert err.m == 1

    def test_undefined_median(self):
        err = UndefinedMedianError("never reaches 0.5", min_survival=0.62)
        assert err.min_survival == pytest.approx(0.62)
