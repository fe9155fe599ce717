"""
One chained-equations (fully conditional specification) chain.

    initialise: each missing entry <- random draw from the column's
                observed values
    repeat maxit times:
        for each incomplete column c in the visit sequence:
            X <- reference-coded predictors of c, current imputations
            refit c's conditional model on its observed rows
            replace c's missing entries with draws from that model

A chain owns its Generator and reads the incomplete table only, so the M
chains of an ensemble are independent.
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from oncosurv.cohort.encoding import encode_covariates, is_categorical
from oncosurv.imputation._methods import IMPUTERS, usable_columns


def initial_fill(
    data: pd.DataFrame,
    where: pd.DataFrame,
    columns: Sequence[str],
    rng: np.random.Generator,
) -> pd.DataFrame:
    filled = data.copy()
    for column in columns:
        mask = where[column].to_numpy()
        observed = data.loc[~mask, column].to_numpy()
        filled.loc[mask, column] = rng.choice(observed, size=int(mask.sum()))
    return filled


def _predictor_matrix(filled: pd.DataFrame, predictors: Sequence[str]) -> NDArray:
    n = len(filled)
    # Single-level categoricals carry nothing for the conditional model
    predictors = [
        c for c in predictors
        if not (is_categorical(filled[c]) and filled[c].nunique() < 2)
    ]
    if not predictors:
        return np.ones((n, 1))
    X = encode_covariates(filled, predictors).X
    return np.hstack([np.ones((n, 1)), X])


def _draw_column(
    filled: pd.DataFrame,
    data: pd.DataFrame,
    column: str,
    mask: NDArray,
    method: str,
    predictors: Sequence[str],
    rng: np.random.Generator,
    donors: int,
) -> None:
    X = _predictor_matrix(filled, predictors)
    keep = usable_columns(X[~mask])
    X_obs, X_mis = X[~mask][:, keep], X[mask][:, keep]
    imputer = IMPUTERS[method]

    if not is_categorical(data[column]):
        y = data.loc[~mask, column].to_numpy(dtype=np.float64)
        filled.loc[mask, column] = imputer(y, X_obs, X_mis, rng, donors=donors)
        return

    categories = data[column].cat.categories
    observed_codes = data[column].cat.codes.to_numpy()[~mask]
    levels, codes = np.unique(observed_codes, return_inverse=True)
    labels = np.asarray(categories[levels], dtype=object)
    if len(levels) == 1:
        draws = np.zeros(int(mask.sum()), dtype=np.int64)
    else:
        draws = imputer(codes, X_obs, X_mis, rng, n_levels=len(levels), donors=donors)
    filled.loc[mask, column] = labels[draws]


def _imputed_mean(filled: pd.DataFrame, column: str, mask: NDArray) -> float:
    values = filled.loc[mask, column]
    if isinstance(values.dtype, pd.CategoricalDtype):
        return float(values.cat.codes.mean())
    return float(pd.to_numeric(values).mean())


def run_chain(
    data: pd.DataFrame,
    methods: Mapping[str, str],
    predictors: Mapping[str, Sequence[str]],
    visit_sequence: Sequence[str],
    maxit: int,
    seed: np.random.SeedSequence,
    donors: int = 5,
) -> tuple[pd.DataFrame, dict[str, NDArray]]:
    """Run one chain and return the completed table and its chain means.

    Parameters
    ----------
    data : DataFrame
        Incomplete table; categorical columns carry pandas categoricals.
    methods : mapping
        Incomplete column -> method name.
    predictors : mapping
        Incomplete column -> predictor columns.
    visit_sequence : sequence of str
        Order in which incomplete columns are visited each iteration.
    seed : SeedSequence
        Child seed owned by this chain.
    """
    rng = np.random.default_rng(seed)
    where = data.isna()
    filled = initial_fill(data, where, visit_sequence, rng)
    means = {column: np.empty(maxit) for column in visit_sequence}

    for iteration in range(maxit):
        for column in visit_sequence:
            mask = where[column].to_numpy()
            _draw_column(
                filled, data, column, mask, methods[column],
                predictors[column], rng, donors,
            )
            means[column][iteration] = _imputed_mean(filled, column, mask)

    return filled, means
