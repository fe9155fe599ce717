"""
Tests for input validation utilities.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from oncosurv.core.compute.linalg import qr_solve
from oncosurv.core.exceptions import DimensionError, SingularMatrixError, ValidationError
from oncosurv.core.validation import (
    center_within_strata,
    check_array,
    check_column_rank,
    check_consistent_length,
    check_finite,
    check_informative_columns,
    check_min_samples,
    check_ndim,
)


class TestCheckArray:

    def test_int_promoted_to_float(self):
        result = check_array([1, 2, 3], "x")
        assert result.dtype == np.float64

    def test_bool_promoted_to_float(self):
        result = check_array(np.array([True, False]), "event")
        assert_allclose(result, [1.0, 0.0])

    def test_rejects_strings(self):
        with pytest.raises(ValidationError, match="Smoking"):
            check_array(np.array(["Never", "<10 PY"]), "Smoking")

    def test_rejects_mixed_types(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array([1, "a", None], "X")


class TestSimpleChecks:

    def test_finite(self):
        check_finite(np.array([1.0, 2.0]), "x")
        with pytest.raises(ValidationError, match="1 NaN"):
            check_finite(np.array([1.0, np.nan]), "x")

    def test_ndim(self):
        with pytest.raises(DimensionError, match="expected 2D"):
            check_ndim(np.zeros(3), 2, "X")

    def test_consistent_length(self):
        with pytest.raises(DimensionError, match="time=3, event=2"):
            check_consistent_length(np.zeros(3), np.zeros(2), names=("time", "event"))

    def test_min_samples(self):
        with pytest.raises(ValidationError, match="at least 2"):
            check_min_samples(np.zeros(1), 2, "time")


class TestStrataChecks:

    def test_center_within_strata(self):
        X = np.array([[1.0], [3.0], [10.0], [20.0]])
        strata = np.array(["a", "a", "b", "b"])
        assert_allclose(center_within_strata(X, strata).ravel(), [-1, 1, -5, 5])

    def test_constant_column_rejected(self):
        X = np.column_stack([np.arange(6.0), np.ones(6)])
        with pytest.raises(ValidationError, match="carry no information"):
            check_informative_columns(X, "X", column_names=["age", "const"])

    def test_constant_within_every_stratum_rejected(self):
        # Column equals the stratum indicator: no variation inside any stratum
        strata = np.array([0, 0, 0, 1, 1, 1])
        X = np.column_stack([np.arange(6.0), strata.astype(float)])
        with pytest.raises(ValidationError, match=r"\['site'\].*within every stratum"):
            check_informative_columns(X, "X", strata, ["age", "site"])

    def test_varies_within_one_stratum_accepted(self):
        strata = np.array([0, 0, 0, 1, 1, 1])
        X = np.array([[0.0], [0.0], [0.0], [0.0], [1.0], [0.0]])
        check_informative_columns(X, "X", strata)

    def test_empty_design_rejected(self):
        with pytest.raises(ValidationError, match="no columns"):
            check_informative_columns(np.zeros((5, 0)), "X")


class TestCheckColumnRank:

    def test_full_rank_returns_condition_number(self, rng):
        X = rng.standard_normal((50, 3))
        cond = check_column_rank(X, "X")
        assert 1.0 <= cond < 100.0

    def test_collinear_raises(self, rng):
        x1 = rng.standard_normal(40)
        x2 = rng.standard_normal(40)
        X = np.column_stack([x1, x2, x1 + x2])
        with pytest.raises(SingularMatrixError) as exc_info:
            check_column_rank(X, "X")
        assert exc_info.value.rank == 2
        assert exc_info.value.expected_rank == 3

    def test_full_dummy_set_is_collinear(self):
        # Indicators for every level sum to the implicit baseline
        levels = np.arange(30) % 3
        X = np.eye(3)[levels]
        with pytest.raises(SingularMatrixError, match="multicollinearity"):
            check_column_rank(X, "X")

    def test_empty_design_rejected(self):
        with pytest.raises(ValidationError, match="no columns"):
            check_column_rank(np.zeros((5, 0)), "X")


class TestQRSolve:

    def test_least_squares(self, rng):
        X = np.column_stack([np.ones(30), rng.standard_normal(30)])
        beta_true = np.array([1.5, -0.5])
        y = X @ beta_true
        beta, qr = qr_solve(X, y)
        assert_allclose(beta, beta_true, atol=1e-10)
        assert qr.rank == 2

    def test_rank_deficient_raises(self):
        X = np.column_stack([np.ones(5), np.ones(5)])
        with pytest.raises(SingularMatrixError):
            qr_solve(X, np.arange(5.0))
