"""
Reference (treatment) coding of covariates into a numeric design matrix.

A categorical covariate with k observed levels becomes k-1 indicator
columns named "var[level]"; the omitted level is the reference. Numeric
covariates pass through unchanged. There is no intercept column: the Cox
baseline hazard plays that role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from oncosurv.core.exceptions import DataDomainError, ValidationError


@dataclass(frozen=True)
class EncodedCovariates:
    """Numeric design matrix with its column bookkeeping.

    Attributes:
        X: (n, p) design matrix
        names: column labels, "var[level]" for indicator columns
        terms: covariate -> column positions in X
        references: categorical covariate -> reference level
        index: row index of the source frame
    """
    X: NDArray
    names: tuple[str, ...]
    terms: dict[str, tuple[int, ...]]
    references: dict[str, object]
    index: pd.Index

    @property
    def p(self) -> int:
        return self.X.shape[1]

    def columns_of(self, covariate: str) -> tuple[int, ...]:
        if covariate not in self.terms:
            raise KeyError(
                f"'{covariate}' is not in the design. Available: {tuple(self.terms)}"
            )
        return self.terms[covariate]


def is_categorical(series: pd.Series) -> bool:
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or series.dtype == object
        or pd.api.types.is_string_dtype(series.dtype)
    )


def as_categorical(series: pd.Series) -> pd.Categorical:
    """Categorical view with unused levels removed."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        return series.cat.remove_unused_categories().values
    return pd.Categorical(series)


def indicator_matrix(
    series: pd.Series,
    reference=None,
) -> tuple[NDArray, list, object]:
    """k-1 indicator columns for one categorical series.

    Returns
    -------
    (columns, levels, reference)
        columns : (n, k-1) float matrix
        levels : the k-1 non-reference levels, in category order
        reference : the omitted level
    """
    cat = as_categorical(series)
    levels = list(cat.categories)
    if len(levels) < 2:
        observed = f"only level {levels[0]!r}" if levels else "no observed levels"
        raise ValidationError(
            f"{series.name}: {observed}; a covariate with a single level "
            f"carries no information"
        )
    if reference is None:
        reference = levels[0]
    elif reference not in levels:
        raise ValidationError(
            f"{series.name}: reference level {reference!r} not among observed "
            f"levels {levels}"
        )

    kept = [lvl for lvl in levels if lvl != reference]
    codes = np.asarray(cat.codes)
    columns = np.zeros((len(cat), len(kept)), dtype=np.float64)
    for j, lvl in enumerate(kept):
        columns[:, j] = codes == levels.index(lvl)
    return columns, kept, reference


def encode_covariates(
    df: pd.DataFrame,
    covariates: Sequence[str],
    reference: Mapping[str, object] | None = None,
) -> EncodedCovariates:
    """Build the reference-coded design matrix for a model.

    Parameters
    ----------
    df : DataFrame
        Prepared cohort (see prepare_cohort()).
    covariates : sequence of str
        Columns to include, in order.
    reference : mapping or None
        covariate -> reference level; the first observed level otherwise.

    Raises
    ------
    DataDomainError
        If a requested covariate has missing values. Drop incomplete rows
        (complete_cases) or impute first.
    ValidationError
        If a categorical covariate has fewer than two observed levels.
    """
    reference = dict(reference or {})
    unknown = [c for c in covariates if c not in df.columns]
    if unknown:
        raise ValidationError(f"unknown covariates: {unknown}")
    if not covariates:
        raise ValidationError("at least one covariate is required")

    blocks = []
    names: list[str] = []
    terms: dict[str, tuple[int, ...]] = {}
    refs: dict[str, object] = {}

    for covariate in covariates:
        series = df[covariate]
        n_missing = int(series.isna().sum())
        if n_missing:
            raise DataDomainError(
                f"{covariate}: {n_missing} missing values; use complete_cases() "
                f"or impute before fitting",
                column=covariate,
            )

        start = len(names)
        if is_categorical(series):
            columns, kept, ref = indicator_matrix(series, reference.get(covariate))
            blocks.append(columns)
            names.extend(f"{covariate}[{lvl}]" for lvl in kept)
            refs[covariate] = ref
        else:
            blocks.append(series.to_numpy(dtype=np.float64).reshape(-1, 1))
            names.append(covariate)
        terms[covariate] = tuple(range(start, len(names)))

    X = np.hstack(blocks) if blocks else np.zeros((len(df), 0))
    return EncodedCovariates(
        X=X,
        names=tuple(names),
        terms=terms,
        references=refs,
        index=df.index,
    )
