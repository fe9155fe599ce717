"""
Kaplan-Meier product-limit estimator.

Matches R's survival::survfit(Surv(time, event) ~ strata):
- Product-limit survival estimate: S(t) = ∏(1 - d_j / n_j)
- Greenwood variance: Var(S(t)) = S(t)^2 * Σ(d_j / (n_j * (n_j - d_j)))
- Confidence intervals via log, plain, or log-log transformation

Subjects censored at an event time are still at risk at that time and
leave the risk set immediately afterwards (R convention).

References:
    Kaplan, E. L., & Meier, P. (1958). Nonparametric estimation from
        incomplete observations. JASA, 53(282), 457-481.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from oncosurv.core.exceptions import ValidationError
from oncosurv.survival._common import KMParams


def kaplan_meier_fit(
    time: NDArray,
    event: NDArray,
    conf_level: float,
    conf_type: str,
    stratum=None,
) -> KMParams:
    """Compute one Kaplan-Meier survival curve.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    conf_level : float
        Confidence level for CI (e.g. 0.95).
    conf_type : str
        CI type: "log" (default, matches R), "plain", "log-log".
    stratum : object
        Label recorded on the curve.

    Returns
    -------
    KMParams
    """
    n_total = len(time)
    n_events_total = int(np.sum(event))

    uniq, inverse = np.unique(time, return_inverse=True)
    deaths_all = np.bincount(inverse, weights=event, minlength=len(uniq))
    leaving_all = np.bincount(inverse, minlength=len(uniq)).astype(np.float64)
    censored_all = leaving_all - deaths_all

    # At risk just before each distinct time: everyone not yet removed
    removed_before = np.concatenate([[0.0], np.cumsum(leaving_all)[:-1]])
    n_risk_all = n_total - removed_before

    is_event_time = deaths_all > 0
    out_time = uniq[is_event_time]
    out_n_risk = n_risk_all[is_event_time]
    out_n_events = deaths_all[is_event_time]

    # Censored in [t_j, t_{j+1}): assign every distinct time to the last
    # event time at or before it; censoring before the first event is dropped
    owner = np.cumsum(is_event_time) - 1
    has_owner = owner >= 0
    out_n_censored = np.bincount(
        owner[has_owner],
        weights=censored_all[has_owner],
        minlength=len(out_time),
    ).astype(np.float64)

    # Product-limit estimate
    survival = np.cumprod(1.0 - out_n_events / out_n_risk)

    # Greenwood; when n_j == d_j the curve hits 0 and the term is undefined
    denom = out_n_risk * (out_n_risk - out_n_events)
    denom = np.where(denom > 0, denom, np.inf)
    greenwood_sum = np.cumsum(out_n_events / denom)
    se = np.sqrt(survival ** 2 * greenwood_sum)

    z = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower, ci_upper = _compute_ci(survival, se, z, conf_type)

    return KMParams(
        time=out_time,
        survival=survival,
        n_risk=out_n_risk,
        n_events=out_n_events,
        n_censored=out_n_censored,
        se=se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=conf_level,
        conf_type=conf_type,
        n_observations=n_total,
        n_events_total=n_events_total,
        max_time=float(np.max(time)),
        stratum=stratum,
    )


def kaplan_meier_strata(
    time: NDArray,
    event: NDArray,
    strata: NDArray,
    conf_level: float,
    conf_type: str,
    levels: tuple | None = None,
) -> list[KMParams]:
    """One curve per stratum level, in `levels` order (sorted if None)."""
    curves = []
    for level in (np.unique(strata) if levels is None else levels):
        mask = strata == level
        curves.append(
            kaplan_meier_fit(
                time[mask], event[mask],
                conf_level=conf_level,
                conf_type=conf_type,
                stratum=level.item() if hasattr(level, "item") else level,
            )
        )
    return curves


def _compute_ci(
    survival: NDArray,
    se: NDArray,
    z: float,
    conf_type: str,
) -> tuple[NDArray, NDArray]:
    """Compute CI for survival function, clipped to [0, 1]."""
    if conf_type == "plain":
        ci_lower = survival - z * se
        ci_upper = survival + z * se

    elif conf_type == "log":
        # exp(log(S) ± z * se / S)
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            se_log = se / survival
            ci_lower = np.exp(log_s - z * se_log)
            ci_upper = np.exp(log_s + z * se_log)

    elif conf_type == "log-log":
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            log_neg_log_s = np.log(-log_s)
            se_loglog = se / (survival * np.abs(log_s))
            ci_lower = np.exp(-np.exp(log_neg_log_s + z * se_loglog))
            ci_upper = np.exp(-np.exp(log_neg_log_s - z * se_loglog))
    else:
        raise ValidationError(
            f"Unknown conf_type '{conf_type}'. "
            f"Choose from 'log', 'plain', 'log-log'."
        )

    ci_lower = np.clip(ci_lower, 0.0, 1.0)
    ci_upper = np.clip(ci_upper, 0.0, 1.0)

    # S=0 or S=1 edge cases
    ci_lower = np.where(np.isnan(ci_lower), 0.0, ci_lower)
    ci_upper = np.where(np.isnan(ci_upper), 1.0, ci_upper)

    return ci_lower, ci_upper


def nelson_aalen_at(time: NDArray, event: NDArray) -> NDArray:
    """Nelson-Aalen cumulative hazard H(t_i) evaluated at each subject's time.

    H(t) = Σ_{t_j <= t} d_j / n_j, counting ties at t_i.
    """
    n = len(time)
    uniq, inverse = np.unique(time, return_inverse=True)
    deaths = np.bincount(inverse, weights=event, minlength=len(uniq))
    leaving = np.bincount(inverse, minlength=len(uniq)).astype(np.float64)
    n_risk = n - np.concatenate([[0.0], np.cumsum(leaving)[:-1]])
    cumhaz = np.cumsum(deaths / n_risk)
    return cumhaz[inverse]
