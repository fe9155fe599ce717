"""
ImputationDesign: validated input for chained-equations imputation.

Normalises column types (categorical columns become pandas categoricals,
numeric columns float64), fixes the conditional model of every incomplete
column and the predictors it is regressed on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from oncosurv.cohort.encoding import is_categorical
from oncosurv.core.exceptions import InsufficientImputationsError, ValidationError
from oncosurv.imputation._methods import (
    CATEGORICAL_METHODS,
    METHODS,
    NUMERIC_METHODS,
)


def default_method(series: pd.Series) -> str:
    """mice's defaults: pmm for numeric, logreg for binary, polyreg otherwise."""
    if not is_categorical(series):
        return "pmm"
    n_levels = series.astype("category").cat.categories.size
    return "logreg" if n_levels <= 2 else "polyreg"


def check_m(m: int) -> None:
    if m < 2:
        raise InsufficientImputationsError(
            f"M < 2: between-imputation variance is undefined with m={m}; "
            f"at least two imputations are required",
            m=m,
        )


@dataclass(frozen=True)
class ImputationDesign:
    """Immutable imputation input.

    Parameters
    ----------
    data : DataFrame
        Incomplete table with normalised dtypes.
    methods : dict
        Incomplete column -> conditional model.
    predictors : dict
        Incomplete column -> predictor columns.
    visit_sequence : tuple of str
        Incomplete columns, left to right.
    """

    data: pd.DataFrame
    methods: dict[str, str]
    predictors: dict[str, tuple[str, ...]]
    visit_sequence: tuple[str, ...]

    @classmethod
    def for_mice(
        cls,
        df: pd.DataFrame,
        *,
        methods: Mapping[str, str] | None = None,
        predictors: Mapping[str, Sequence[str]] | None = None,
    ) -> ImputationDesign:
        """Create and validate an imputation design.

        Raises
        ------
        ValidationError
            Empty table, a column with fewer than two observed values, an
            unknown method, or a method that does not fit the column type.
        """
        if not isinstance(df, pd.DataFrame):
            raise ValidationError(
                f"df must be a pandas DataFrame, got {type(df).__name__}"
            )
        if len(df) == 0 or df.shape[1] == 0:
            raise ValidationError("df must have at least one row and one column")

        data = df.copy()
        for column in data.columns:
            series = data[column]
            if is_categorical(series) or pd.api.types.is_bool_dtype(series):
                if not isinstance(series.dtype, pd.CategoricalDtype):
                    data[column] = series.astype("category")
            elif pd.api.types.is_numeric_dtype(series):
                data[column] = series.astype(np.float64)
            else:
                raise ValidationError(
                    f"{column}: unsupported dtype {series.dtype} for imputation"
                )

        n_missing = data.isna().sum()
        visit = tuple(c for c in data.columns if n_missing[c] > 0)

        for column in visit:
            n_observed = len(data) - int(n_missing[column])
            if n_observed < 2:
                raise ValidationError(
                    f"{column}: {n_observed} observed values; at least 2 are "
                    f"needed to fit its imputation model"
                )

        methods = dict(methods or {})
        unknown = [c for c in methods if c not in data.columns]
        if unknown:
            raise ValidationError(f"methods given for unknown columns: {unknown}")

        resolved = {}
        for column in visit:
            method = methods.get(column) or default_method(data[column])
            if method not in METHODS:
                raise ValidationError(
                    f"{column}: unknown method '{method}'; choose from {METHODS}"
                )
            categorical = isinstance(data[column].dtype, pd.CategoricalDtype)
            if categorical and method not in CATEGORICAL_METHODS:
                raise ValidationError(
                    f"{column}: method '{method}' needs a numeric column; "
                    f"use one of {CATEGORICAL_METHODS}"
                )
            if not categorical and method not in NUMERIC_METHODS:
                raise ValidationError(
                    f"{column}: method '{method}' needs a categorical column; "
                    f"use one of {NUMERIC_METHODS}"
                )
            if method == "logreg" and data[column].cat.categories.size > 2:
                raise ValidationError(
                    f"{column}: logreg needs a binary column, got "
                    f"{data[column].cat.categories.size} levels; use polyreg"
                )
            resolved[column] = method

        predictors = dict(predictors or {})
        resolved_predictors = {}
        for column in visit:
            chosen = tuple(predictors.get(
                column, [c for c in data.columns if c != column]
            ))
            bad = [c for c in chosen if c not in data.columns or c == column]
            if bad:
                raise ValidationError(f"{column}: invalid predictors {bad}")
            resolved_predictors[column] = chosen

        return cls(
            data=data,
            methods=resolved,
            predictors=resolved_predictors,
            visit_sequence=visit,
        )

    @property
    def n(self) -> int:
        return len(self.data)

    @property
    def where(self) -> pd.DataFrame:
        """Missing-value mask."""
        return self.data.isna()
