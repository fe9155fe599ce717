"""
Proportional-hazards diagnostics.

Test of Grambsch & Therneau (1994), in the form used by R's
survival::cox.zph() before version 3.0:

    r_i      Schoenfeld residuals at β̂ (one row per death, sorted by time)
    r*_i     = d · r_i V  (scaled residuals, without β̂ added)
    g        transformed event times, centred: x = g - mean(g)
    T_j      = (x' r*_j)^2 / (d · V_jj · Σ x²)        ~ χ²(1)
    T_global = (x' r) V (x' r)' · d / Σ x²             ~ χ²(p)

A significant T_j means the log hazard ratio of covariate j drifts with
g(t). The complementary log-log transform is the graphical companion:
parallel log(-log S(t)) curves against log t support proportional hazards.

References:
    Grambsch, P. M. & Therneau, T. M. (1994). Proportional hazards tests
        and diagnostics based on weighted residuals. Biometrika, 81(3).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from oncosurv.core.exceptions import ValidationError
from oncosurv.survival._common import CloglogCurve, CoxParams, KMParams, ZPHParams
from oncosurv.survival._cox import schoenfeld_residuals
from oncosurv.survival._km import kaplan_meier_fit

TRANSFORMS = ("km", "rank", "identity", "log")


def transform_times(
    event_times: NDArray,
    time: NDArray,
    event: NDArray,
    transform: str,
) -> NDArray:
    """g(t) evaluated at the sorted death times."""
    if transform == "identity":
        return event_times.astype(np.float64)
    if transform == "log":
        if np.any(event_times <= 0):
            raise ValidationError("log transform requires positive event times")
        return np.log(event_times)
    if transform == "rank":
        return stats.rankdata(event_times)
    if transform == "km":
        km = kaplan_meier_fit(time, event, conf_level=0.95, conf_type="plain")
        idx = np.searchsorted(km.time, event_times, side="right") - 1
        surv = np.where(idx >= 0, km.survival[np.maximum(idx, 0)], 1.0)
        return 1.0 - surv
    raise ValidationError(
        f"transform must be one of {TRANSFORMS}, got '{transform}'"
    )


def zph_test(
    fit: CoxParams,
    time: NDArray,
    event: NDArray,
    X: NDArray,
    strata: NDArray | None,
    transform: str = "km",
    alpha: float = 0.05,
) -> ZPHParams:
    """Per-covariate and global test of proportional hazards.

    Parameters
    ----------
    fit : CoxParams
        Fitted model; its β and covariance are used.
    time, event, X, strata : NDArray
        The data the model was fitted on.
    transform : str
        Time scale g(t): "km" (R default), "rank", "identity", "log".
    alpha : float
        Level at which covariates are flagged as violating PH.
    """
    beta = fit.coefficients
    V = fit.covariance
    p = len(beta)

    event_times, resid, _ = schoenfeld_residuals(
        beta, time, event, X, strata, fit.ties
    )
    d = len(event_times)
    if d < 2:
        raise ValidationError(
            f"cox_zph needs at least 2 events, got {d}"
        )

    g = transform_times(event_times, time, event, transform)
    xx = g - np.mean(g)
    sxx = float(np.sum(xx ** 2))
    if sxx == 0:
        raise ValidationError(
            "transformed event times are constant; the test is undefined"
        )

    r2 = resid @ V * d
    test = xx @ r2
    chisq = test ** 2 / (np.diag(V) * d * sxx)
    p_values = stats.chi2.sf(chisq, 1)

    with np.errstate(invalid='ignore', divide='ignore'):
        rho = np.array([
            np.corrcoef(xx, r2[:, j])[0, 1] if np.std(r2[:, j]) > 0 else 0.0
            for j in range(p)
        ])

    test_global = xx @ resid
    global_chisq = float(test_global @ V @ test_global * d / sxx)
    global_p = float(stats.chi2.sf(global_chisq, p))

    return ZPHParams(
        names=fit.names,
        chisq=chisq,
        p_values=p_values,
        rho=rho,
        global_chisq=global_chisq,
        global_df=p,
        global_p_value=global_p,
        transform=transform,
        event_times=event_times,
        transformed_times=g,
        scaled_residuals=r2 + beta,
        alpha=alpha,
    )


def cloglog_curve(km: KMParams) -> CloglogCurve:
    """log(-log S(t)) against log t for one Kaplan-Meier curve."""
    keep = (km.survival > 0) & (km.survival < 1) & (km.time > 0)
    t = km.time[keep]
    return CloglogCurve(
        stratum=km.stratum,
        time=t,
        log_time=np.log(t),
        cloglog=np.log(-np.log(km.survival[keep])),
    )
