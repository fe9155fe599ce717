"""
Public API for survival analysis.

    kaplan_meier(time, event, strata=None) → KMSolution | StratifiedKMSolution
    survdiff(time, event, group) → LogRankSolution
    coxph(time, event, X, strata=None) → CoxSolution
    cox_zph(fit) → ZPHSolution
    nelson_aalen(time, event) → NDArray
    schoenfeld_residuals(fit) → DataFrame

Each function validates inputs, creates a SurvivalDesign, runs the kernel,
and wraps the Result in a Solution.
"""

from __future__ import annotations

from typing import Literal

import pandas as pd
from numpy.typing import NDArray

from oncosurv.core.compute.timing import Timer
from oncosurv.core.exceptions import ValidationError
from oncosurv.core.result import Result
from oncosurv.core.validation import check_column_rank, check_informative_columns
from oncosurv.survival._cox import cox_fit
from oncosurv.survival._cox import schoenfeld_residuals as _schoenfeld
from oncosurv.survival._km import kaplan_meier_fit, kaplan_meier_strata, nelson_aalen_at
from oncosurv.survival._logrank import logrank_test
from oncosurv.survival._zph import TRANSFORMS, zph_test
from oncosurv.survival.design import SurvivalDesign
from oncosurv.survival.solution import (
    CoxSolution,
    KMSolution,
    LogRankSolution,
    StratifiedKMSolution,
    ZPHSolution,
)

# Centred-design condition number above which coxph records a warning
CONDITION_THRESHOLD = 1e8


def _check_conf_level(conf_level: float) -> None:
    if conf_level <= 0 or conf_level >= 1:
        raise ValidationError(
            f"conf_level must be in (0, 1), got {conf_level}"
        )


def kaplan_meier(
    time,
    event,
    *,
    strata=None,
    conf_level: float = 0.95,
    conf_type: Literal["log", "plain", "log-log"] = "log",
) -> KMSolution | StratifiedKMSolution:
    """Kaplan-Meier survival curve estimation.

    Matches R's survival::survfit(Surv(time, event) ~ strata).

    Parameters
    ----------
    time : array-like
        Time to event or censoring.
    event : array-like
        Event indicator (1=event, 0=censored).
    strata : array-like or None
        Stratum labels; one curve per level when given.
    conf_level : float
        Confidence level for CI (default 0.95).
    conf_type : str
        CI transformation: "log" (R default), "plain", "log-log".

    Returns
    -------
    KMSolution, or StratifiedKMSolution when strata is given
    """
    design = SurvivalDesign.for_survival(time, event, strata=strata)
    _check_conf_level(conf_level)

    if conf_type not in ("log", "plain", "log-log"):
        raise ValidationError(
            f"conf_type must be 'log', 'plain', or 'log-log', "
            f"got '{conf_type}'"
        )

    timer = Timer()
    timer.start()

    if design.strata is None:
        curves = [kaplan_meier_fit(
            design.time, design.event,
            conf_level=conf_level,
            conf_type=conf_type,
        )]
    else:
        curves = kaplan_meier_strata(
            design.time, design.event, design.strata,
            conf_level=conf_level,
            conf_type=conf_type,
            levels=design.strata_levels,
        )

    timer.stop()

    solutions = [
        KMSolution(_result=Result(
            params=params,
            info={"method": "Kaplan-Meier", "stratum": params.stratum},
            timing=timer.result(),
            backend_name="cpu_km",
            warnings=(),
        ))
        for params in curves
    ]

    if design.strata is None:
        return solutions[0]
    return StratifiedKMSolution(solutions)


def survdiff(
    time,
    event,
    group,
    *,
    rho: float = 0.0,
) -> LogRankSolution:
    """Log-rank test (and G-rho family).

    Matches R's survival::survdiff().

    Parameters
    ----------
    time : array-like
        Time to event or censoring.
    event : array-like
        Event indicator (1=event, 0=censored).
    group : array-like
        Group labels (e.g. smoking exposure level).
    rho : float
        rho=0 (default) gives the log-rank test, rho=1 Peto & Peto.

    Returns
    -------
    LogRankSolution
    """
    design = SurvivalDesign.for_survival(time, event, strata=group)

    if rho < 0:
        raise ValidationError(f"rho must be non-negative, got {rho}")

    timer = Timer()
    timer.start()

    params = logrank_test(
        design.time, design.event, design.strata,
        rho=rho,
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "Log-rank test", "rho": rho},
        timing=timer.result(),
        backend_name="cpu_logrank",
        warnings=(),
    )

    return LogRankSolution(_result=result)


def coxph(
    time,
    event,
    X,
    *,
    names=None,
    strata=None,
    ties: Literal["efron", "breslow"] = "efron",
    tol: float = 1e-9,
    max_iter: int = 20,
    conf_level: float = 0.95,
    condition_threshold: float = CONDITION_THRESHOLD,
) -> CoxSolution:
    """Cox proportional hazards model.

    Matches R's survival::coxph().

    Parameters
    ----------
    time : array-like
        Time to event or censoring.
    event : array-like
        Event indicator (1=event, 0=censored).
    X : array-like
        Covariate matrix (n, p). No intercept; the baseline hazard absorbs it.
    names : sequence of str or None
        Column labels for X (e.g. from encode_covariates()).
    strata : array-like or None
        Stratum labels. Coefficients are shared; baseline hazards are
        stratum-specific and never estimated.
    ties : str
        Method for handling tied event times: "efron" (default) or "breslow".
    tol : float
        Convergence tolerance for Newton-Raphson.
    max_iter : int
        Maximum Newton-Raphson iterations; reaching it raises
        ConvergenceError.
    conf_level : float
        Confidence level for hazard-ratio intervals.
    condition_threshold : float
        Condition number of the centred design above which a warning is
        recorded on the result.

    Returns
    -------
    CoxSolution

    Raises
    ------
    ValidationError
        No events, or a covariate carries no information.
    SingularMatrixError
        Collinear covariates.
    ConvergenceError
        Iteration cap reached.
    """
    design = SurvivalDesign.for_survival(time, event, X, strata=strata, names=names)

    if design.X is None:
        raise ValidationError("X (covariates) is required for coxph()")
    if design.p == 0:
        raise ValidationError("X has no columns; coxph() needs at least one covariate")

    if ties not in ("efron", "breslow"):
        raise ValidationError(
            f"ties must be 'efron' or 'breslow', got '{ties}'"
        )
    if tol <= 0:
        raise ValidationError(f"tol must be positive, got {tol}")
    if max_iter < 1:
        raise ValidationError(f"max_iter must be >= 1, got {max_iter}")
    _check_conf_level(conf_level)

    if design.n_events == 0:
        raise ValidationError(
            "no events observed; the partial likelihood is undefined"
        )

    names = design.names or tuple(f"x{i}" for i in range(design.p))

    timer = Timer()
    timer.start()

    with timer.section("validation"):
        check_informative_columns(design.X, "X", design.strata, list(names))
        condition_number = check_column_rank(design.X, "X", design.strata)

    warnings_list = []
    if condition_number > condition_threshold:
        warnings_list.append(
            f"design is ill-conditioned (condition number {condition_number:.3g}); "
            f"estimates may be unstable"
        )

    with timer.section("newton_raphson"):
        params = cox_fit(
            design.time, design.event, design.X,
            strata=design.strata,
            names=names,
            ties=ties,
            tol=tol,
            max_iter=max_iter,
            conf_level=conf_level,
            condition_number=condition_number,
        )

    timer.stop()

    result = Result(
        params=params,
        info={
            "method": "Cox PH",
            "ties": ties,
            "n_iter": params.n_iter,
            "stratified": design.strata is not None,
        },
        timing=timer.result(),
        backend_name="cpu_cox",
        warnings=tuple(warnings_list),
    )

    return CoxSolution(_result=result, _design=design)


def cox_zph(
    fit: CoxSolution,
    *,
    transform: Literal["km", "rank", "identity", "log"] = "km",
    alpha: float = 0.05,
) -> ZPHSolution:
    """Test the proportional-hazards assumption of a fitted Cox model.

    Classic Grambsch-Therneau score test on scaled Schoenfeld residuals,
    one 1-df test per covariate plus a global p-df test.

    Parameters
    ----------
    fit : CoxSolution
        Result of coxph().
    transform : str
        Time scale for the trend: "km" (default), "rank", "identity", "log".
    alpha : float
        Level at which covariates are flagged in ZPHSolution.violations.

    Returns
    -------
    ZPHSolution
    """
    design = fit.design
    if design is None:
        raise ValidationError(
            "cox_zph() needs a CoxSolution produced by coxph()"
        )
    if transform not in TRANSFORMS:
        raise ValidationError(
            f"transform must be one of {TRANSFORMS}, got '{transform}'"
        )
    if not 0 < alpha < 1:
        raise ValidationError(f"alpha must be in (0, 1), got {alpha}")

    timer = Timer()
    timer.start()

    params = zph_test(
        fit.params,
        design.time, design.event, design.X, design.strata,
        transform=transform,
        alpha=alpha,
    )

    timer.stop()

    warnings_list = []
    for name, p in zip(params.names, params.p_values):
        if p < alpha:
            warnings_list.append(
                f"proportional hazards rejected for '{name}' (p={p:.4g})"
            )
    if params.global_p_value < alpha:
        warnings_list.append(
            f"global proportional hazards test rejected "
            f"(p={params.global_p_value:.4g})"
        )

    result = Result(
        params=params,
        info={"method": "cox.zph", "transform": transform},
        timing=timer.result(),
        backend_name="cpu_zph",
        warnings=tuple(warnings_list),
    )

    return ZPHSolution(_result=result)


def nelson_aalen(time, event) -> NDArray:
    """Nelson-Aalen cumulative hazard at each subject's own follow-up time.

    Used as an auxiliary predictor when imputing covariates of a survival
    model (White & Royston, 2009).
    """
    design = SurvivalDesign.for_survival(time, event)
    return nelson_aalen_at(design.time, design.event)


def schoenfeld_residuals(fit: CoxSolution) -> pd.DataFrame:
    """Unscaled Schoenfeld residuals of a fitted Cox model.

    One row per death, sorted by event time: the observed covariate vector
    minus its risk-set weighted mean at the fitted coefficients.
    """
    design = fit.design
    if design is None:
        raise ValidationError(
            "schoenfeld_residuals() needs a CoxSolution produced by coxph()"
        )
    times, resid, rows = _schoenfeld(
        fit.coefficients,
        design.time, design.event, design.X, design.strata,
        fit.ties,
    )
    frame = pd.DataFrame(resid, columns=list(fit.names))
    frame.insert(0, "time", times)
    frame.index = pd.Index(rows, name="row")
    return frame
