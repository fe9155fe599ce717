"""
Input validation utilities for oncosurv.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from oncosurv.core.exceptions import (
    DimensionError,
    SingularMatrixError,
    ValidationError,
)


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a floating-point numpy array.

    Rejects inputs that result in object dtype (indicating mixed types or
    non-numeric data, e.g. an unencoded categorical column).

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise ValidationError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if result.dtype == bool:
        result = result.astype(np.float64)

    if not np.issubdtype(result.dtype, np.number):
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    if not np.issubdtype(result.dtype, np.floating):
        result = result.astype(np.float64)

    return result


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(array: NDArray[np.floating[Any]], ndim: int, name: str) -> None:
    """
    Verify array has exactly the specified number of dimensions.

    Raises:
        DimensionError: If array has wrong number of dimensions
    """
    if array.ndim != ndim:
        raise DimensionError(
            f"{name}: expected {ndim}D array, got {array.ndim}D with shape {array.shape}"
        )


def check_consistent_length(
    *arrays: NDArray,
    names: tuple[str, ...]
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_min_samples(array: NDArray, min_samples: int, name: str) -> None:
    """
    Verify array has at least the minimum number of samples.

    Raises:
        ValidationError: If array has fewer than min_samples
    """
    n = array.shape[0]
    if n < min_samples:
        raise ValidationError(
            f"{name}: requires at least {min_samples} samples, got {n}"
        )


def center_within_strata(
    X: NDArray[np.floating[Any]],
    strata: NDArray | None,
) -> NDArray[np.floating[Any]]:
    """Subtract per-stratum column means (overall means when strata is None)."""
    if strata is None:
        return X - X.mean(axis=0)
    Xc = np.empty_like(X)
    for level in np.unique(strata):
        mask = strata == level
        Xc[mask] = X[mask] - X[mask].mean(axis=0)
    return Xc


def check_informative_columns(
    X: NDArray[np.floating[Any]],
    name: str,
    strata: NDArray | None = None,
    column_names: list[str] | None = None,
) -> None:
    """
    Verify every column varies within at least one stratum.

    A column that is constant inside every stratum contributes nothing to
    a (stratified) partial likelihood.

    Raises:
        ValidationError: If any column carries no information
    """
    if X.shape[1] == 0:
        raise ValidationError(f"{name}: no columns")
    Xc = center_within_strata(X, strata)
    scale = np.maximum(np.max(np.abs(X), axis=0), 1.0)
    spread = np.max(np.abs(Xc), axis=0) / scale
    dead = np.where(spread <= 1e-12)[0]

    if len(dead) > 0:
        labels = (
            [column_names[i] for i in dead] if column_names is not None
            else dead.tolist()
        )
        where = "within every stratum" if strata is not None else ""
        raise ValidationError(
            f"{name}: columns {labels} are constant {where}".rstrip()
            + " and carry no information"
        )


def check_column_rank(
    X: NDArray[np.floating[Any]],
    name: str,
    strata: NDArray | None = None,
) -> float:
    """
    Verify the (within-stratum centred) matrix has full column rank.

    Cox models have no intercept, so the rank check runs on the centred
    design: a full set of indicator columns for one factor is collinear
    with the implicit baseline and is caught here.

    Returns:
        Condition number of the centred matrix

    Raises:
        SingularMatrixError: If matrix is rank-deficient
    """
    n, p = X.shape
    if p == 0:
        raise ValidationError(f"{name}: no columns")
    Xc = center_within_strata(X, strata)
    singular_values = np.linalg.svd(Xc, compute_uv=False)
    tol = max(n, p) * np.finfo(np.float64).eps * (
        singular_values[0] if len(singular_values) else 0.0
    )
    rank = int(np.sum(singular_values > tol))

    if rank > 0 and singular_values[-1] > 0:
        condition_number = float(singular_values[0] / singular_values[-1])
    else:
        condition_number = float('inf')

    if rank < p:
        raise SingularMatrixError(
            f"{name}: rank-deficient (rank={rank}, expected={p}). "
            f"This indicates perfect multicollinearity.",
            matrix_name=name,
            condition_number=condition_number,
            rank=rank,
            expected_rank=p,
        )

    return condition_number
