"""
Shared parameter types for multiple imputation and pooling.

Each dataclass is a frozen payload carried inside a Result[P] envelope.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd
from numpy.typing import NDArray


@dataclass(frozen=True)
class MICEParams:
    """Ensemble of completed datasets from chained equations.

    Attributes:
        datasets: M completed copies of the input table
        where: missing-value mask of the input table
        methods: column -> conditional model ("pmm", "norm", "logreg",
            "polyreg"); complete columns are absent
        visit_sequence: order in which incomplete columns are imputed
        chain_means: column -> (M, maxit) mean of the imputed values per
            iteration (category codes for categorical columns)
        m: number of imputations
        maxit: iterations per chain
        seed: entropy of the root SeedSequence
    """
    datasets: tuple[pd.DataFrame, ...]
    where: pd.DataFrame
    methods: dict[str, str]
    visit_sequence: tuple[str, ...]
    chain_means: dict[str, NDArray]
    m: int
    maxit: int
    seed: int


@dataclass(frozen=True)
class ImputedFits:
    """Per-imputation model fits that survived the failure policy.

    Attributes:
        fits: fitted models, in imputation order
        indices: zero-based imputation index of each fit
        excluded: imputation index -> failure message
        m: number of imputations attempted
    """
    fits: tuple
    indices: tuple[int, ...]
    excluded: dict[int, str]
    m: int

    def __len__(self) -> int:
        return len(self.fits)

    def __iter__(self):
        return iter(self.fits)


@dataclass(frozen=True)
class PooledParams:
    """Rubin's-rules pooled estimates.

    Attributes:
        names: term labels
        estimates: q̄, mean of the per-imputation estimates
        within: ū, mean within-imputation covariance (p, p)
        between: b, between-imputation covariance (p, p), ddof=1
        total: t = ū + (1 + 1/M) b
        standard_errors: sqrt(diag(t))
        z_statistics: q̄ / se
        p_values: two-sided normal p-values
        ci_lower, ci_upper: normal-quantile interval on the estimate scale
        df: Barnard-Rubin degrees of freedom per term
        riv: relative increase in variance due to nonresponse
        lambda_: proportion of total variance due to missingness
        fmi: fraction of missing information
        m: number of pooled fits
        conf_level: interval coverage
        df_complete: complete-data degrees of freedom used for df
    """
    names: tuple[str, ...]
    estimates: NDArray
    within: NDArray
    between: NDArray
    total: NDArray
    standard_errors: NDArray
    z_statistics: NDArray
    p_values: NDArray
    ci_lower: NDArray
    ci_upper: NDArray
    df: NDArray
    riv: NDArray
    lambda_: NDArray
    fmi: NDArray
    m: int
    conf_level: float
    df_complete: float
