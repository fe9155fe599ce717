"""
Public API for multiple imputation.

    mice(df, m=5, maxit=5, seed=None) → MICESolution
    fit_imputed(imputed, fit, on_failure="abort") → ImputedFits
    pool(fits) → PooledSolution
    pool_estimates(estimates, variances) → PooledSolution
"""

from __future__ import annotations

import warnings
from typing import Callable, Literal, Mapping, Sequence

import numpy as np
from joblib import Parallel, delayed

from oncosurv.core.compute.timing import Timer
from oncosurv.core.exceptions import (
    ImputationError,
    InsufficientImputationsError,
    OncosurvError,
    ValidationError,
)
from oncosurv.core.result import Result
from oncosurv.core.validation import check_array, check_finite
from oncosurv.imputation._chain import run_chain
from oncosurv.imputation._common import ImputedFits, MICEParams
from oncosurv.imputation._pool import rubin_pool
from oncosurv.imputation.design import ImputationDesign, check_m
from oncosurv.imputation.solution import MICESolution, PooledSolution


def mice(
    df,
    *,
    m: int = 5,
    maxit: int = 5,
    methods: Mapping[str, str] | None = None,
    predictors: Mapping[str, Sequence[str]] | None = None,
    seed: int | None = None,
    donors: int = 5,
    n_jobs: int = 1,
) -> MICESolution:
    """Multivariate imputation by chained equations.

    Follows R's mice::mice(): each incomplete column is regressed on the
    other columns with its own conditional model, cycling maxit times per
    chain; M chains give M completed datasets.

    Parameters
    ----------
    df : DataFrame
        Table with missing values. Categorical columns (category, object,
        string or bool dtype) are imputed with logreg/polyreg, numeric ones
        with pmm unless `methods` says otherwise.
    m : int
        Number of imputations. Must be at least 2.
    maxit : int
        Iterations per chain.
    methods : mapping, optional
        Column -> "pmm", "norm", "logreg" or "polyreg".
    predictors : mapping, optional
        Column -> predictor columns. Default: every other column.
    seed : int, optional
        Root seed. Each chain draws from its own child of
        SeedSequence(seed), so results do not depend on n_jobs.
    donors : int
        Candidate donors for predictive mean matching.
    n_jobs : int
        Chains run in parallel through joblib when n_jobs != 1.

    Returns
    -------
    MICESolution

    Raises
    ------
    InsufficientImputationsError
        If m < 2.
    """
    check_m(m)
    if maxit < 1:
        raise ValidationError(f"maxit must be >= 1, got {maxit}")
    if donors < 1:
        raise ValidationError(f"donors must be >= 1, got {donors}")

    design = ImputationDesign.for_mice(df, methods=methods, predictors=predictors)
    root = np.random.SeedSequence(seed)
    children = root.spawn(m)

    warnings_list = []
    timer = Timer()
    timer.start()

    with timer.section("chains"):
        if not design.visit_sequence:
            warnings_list.append(
                "no missing values; the completed datasets are identical"
            )
            outputs = [(design.data.copy(), {}) for _ in range(m)]
        else:
            outputs = Parallel(n_jobs=n_jobs)(
                delayed(run_chain)(
                    design.data,
                    design.methods,
                    design.predictors,
                    design.visit_sequence,
                    maxit,
                    child,
                    donors,
                )
                for child in children
            )

    timer.stop()

    chain_means = {
        column: np.vstack([means[column] for _, means in outputs])
        for column in design.visit_sequence
    }

    params = MICEParams(
        datasets=tuple(data for data, _ in outputs),
        where=design.where,
        methods=design.methods,
        visit_sequence=design.visit_sequence,
        chain_means=chain_means,
        m=m,
        maxit=maxit,
        seed=int(root.entropy),
    )

    return MICESolution(_result=Result(
        params=params,
        info={"method": "mice", "m": m, "maxit": maxit, "n_jobs": n_jobs},
        timing=timer.result(),
        backend_name="cpu_mice",
        warnings=tuple(warnings_list),
    ))


def fit_imputed(
    imputed,
    fit: Callable,
    *,
    on_failure: Literal["abort", "exclude"] = "abort",
) -> ImputedFits:
    """Fit the same model on every completed dataset.

    Parameters
    ----------
    imputed : MICESolution or sequence of DataFrame
        Completed datasets.
    fit : callable
        DataFrame -> fitted model (e.g. a CoxSolution).
    on_failure : str
        "abort" (default) raises ImputationError naming the failing
        imputation. "exclude" drops it with a RuntimeWarning; at least two
        fits must remain.

    Raises
    ------
    ImputationError
        A fit failed and on_failure="abort".
    InsufficientImputationsError
        Fewer than two datasets, or fewer than two surviving fits.
    """
    if on_failure not in ("abort", "exclude"):
        raise ValidationError(
            f"on_failure must be 'abort' or 'exclude', got '{on_failure}'"
        )
    datasets = imputed.datasets if isinstance(imputed, MICESolution) else tuple(imputed)
    m = len(datasets)
    check_m(m)

    fits, indices, excluded = [], [], {}
    for i, data in enumerate(datasets):
        try:
            fits.append(fit(data))
        except OncosurvError as exc:
            if on_failure == "abort":
                raise ImputationError(
                    f"model fit failed on imputation {i + 1} of {m}: {exc}",
                    imputation=i,
                ) from exc
            excluded[i] = str(exc)
            warnings.warn(
                f"imputation {i + 1} of {m} excluded from the pool: {exc}",
                RuntimeWarning,
                stacklevel=2,
            )
            continue
        indices.append(i)

    if len(fits) < 2:
        raise InsufficientImputationsError(
            f"M < 2: only {len(fits)} of {m} imputations produced a fit",
            m=len(fits),
        )

    return ImputedFits(
        fits=tuple(fits),
        indices=tuple(indices),
        excluded=excluded,
        m=m,
    )


def _pooled(
    estimates: np.ndarray,
    covariances: np.ndarray,
    names: tuple[str, ...],
    conf_level: float,
    df_complete: float,
    excluded: tuple[int, ...] = (),
) -> PooledSolution:
    if not 0 < conf_level < 1:
        raise ValidationError(f"conf_level must be in (0, 1), got {conf_level}")

    timer = Timer()
    timer.start()
    params = rubin_pool(estimates, covariances, names, conf_level, df_complete)
    timer.stop()

    warnings_list = [
        f"imputation {i + 1} excluded from the pool" for i in excluded
    ]
    return PooledSolution(_result=Result(
        params=params,
        info={"method": "Rubin's rules", "m": params.m, "excluded": excluded},
        timing=timer.result(),
        backend_name="cpu_pool",
        warnings=tuple(warnings_list),
    ))


def pool(
    fits,
    *,
    conf_level: float = 0.95,
    df_complete: float | None = None,
) -> PooledSolution:
    """Pool fitted models with Rubin's rules.

    Parameters
    ----------
    fits : ImputedFits or sequence of fitted models
        Each model exposes `names`, `coefficients` and `covariance`
        (CoxSolution does).
    conf_level : float
        Interval coverage.
    df_complete : float, optional
        Complete-data degrees of freedom for the Barnard-Rubin correction.
        Default n - p of the first fit, as in mice::pool(); infinite when
        the fits do not report n_observations.

    Raises
    ------
    InsufficientImputationsError
        Fewer than two fits.
    ValidationError
        Fits with different terms.
    """
    excluded = ()
    if isinstance(fits, ImputedFits):
        excluded = tuple(sorted(fits.excluded))
        fits = fits.fits
    fits = list(fits)
    check_m(len(fits))

    names = tuple(fits[0].names)
    for i, f in enumerate(fits[1:], start=2):
        if tuple(f.names) != names:
            raise ValidationError(
                f"fit {i} has terms {tuple(f.names)}, expected {names}; "
                f"every imputation must be fitted with the same model"
            )

    estimates = np.vstack([np.asarray(f.coefficients, dtype=np.float64) for f in fits])
    covariances = np.stack([np.asarray(f.covariance, dtype=np.float64) for f in fits])

    if df_complete is None:
        n = getattr(fits[0], "n_observations", None)
        df_complete = float(n - len(names)) if n is not None else np.inf

    return _pooled(estimates, covariances, names, conf_level, df_complete, excluded)


def pool_estimates(
    estimates,
    variances,
    *,
    names: Sequence[str] | None = None,
    conf_level: float = 0.95,
    df_complete: float = np.inf,
) -> PooledSolution:
    """Pool raw per-imputation estimates with Rubin's rules.

    Parameters
    ----------
    estimates : array-like, (M,) or (M, p)
    variances : array-like, (M,), (M, p) or (M, p, p)
        Within-imputation variances (diagonal) or covariance matrices.
    """
    est = check_array(estimates, "estimates")
    if est.ndim == 1:
        est = est.reshape(-1, 1)
    m, p = est.shape
    check_m(m)

    var = check_array(variances, "variances")
    if var.ndim == 1:
        var = var.reshape(-1, 1)
    if var.ndim == 2:
        if var.shape != (m, p):
            raise ValidationError(
                f"variances has shape {var.shape}, expected {(m, p)}"
            )
        if np.any(var < 0):
            raise ValidationError("variances must be non-negative")
        covariances = np.stack([np.diag(row) for row in var])
    elif var.shape == (m, p, p):
        covariances = var
    else:
        raise ValidationError(
            f"variances has shape {var.shape}, expected {(m, p)} or {(m, p, p)}"
        )

    check_finite(est, "estimates")
    check_finite(covariances, "variances")

    if names is None:
        names = tuple(f"x{i}" for i in range(p))
    names = tuple(str(s) for s in names)
    if len(names) != p:
        raise ValidationError(f"names must have {p} entries, got {len(names)}")

    return _pooled(est, covariances, names, conf_level, df_complete)
