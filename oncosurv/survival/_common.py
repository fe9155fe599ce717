"""
Parameter payloads for survival analysis results.

Each dataclass is a frozen payload carried inside a Result[P] envelope.
"""

from __future__ import annotations

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class KMParams:
    """Kaplan-Meier survival curve parameters for one stratum.

    Matches the output of R's survival::survfit().
    """

    time: NDArray                # (m,) unique event times
    survival: NDArray            # (m,) S(t) at each event time
    n_risk: NDArray              # (m,) number at risk just before each time
    n_events: NDArray            # (m,) events at each time
    n_censored: NDArray          # (m,) censored in [t_j, t_{j+1})
    se: NDArray                  # (m,) Greenwood standard error
    ci_lower: NDArray            # (m,) lower CI for S(t)
    ci_upper: NDArray            # (m,) upper CI for S(t)
    conf_level: float
    conf_type: str               # "log" (default), "plain", "log-log"
    n_observations: int
    n_events_total: int
    max_time: float              # last follow-up time (event or censoring)
    stratum: object = None       # stratum label, None when unstratified


@dataclass(frozen=True)
class LogRankParams:
    """Log-rank test parameters.

    Matches the output of R's survival::survdiff().
    """

    statistic: float             # chi-squared statistic
    df: int                      # degrees of freedom (n_groups - 1)
    p_value: float
    n_groups: int
    observed: NDArray            # (n_groups,) observed events per group
    expected: NDArray            # (n_groups,) expected events per group
    variance: NDArray            # (n_groups, n_groups) variance of O - E
    n_per_group: NDArray         # (n_groups,) subjects per group
    rho: float                   # weight parameter (0=log-rank, 1=Peto-Peto)
    group_labels: NDArray


@dataclass(frozen=True)
class CoxParams:
    """Cox proportional hazards model parameters.

    Matches the output of R's survival::coxph().
    """

    coefficients: NDArray        # (p,) log hazard ratios
    hazard_ratios: NDArray       # (p,) exp(coef)
    standard_errors: NDArray     # (p,) from observed information matrix
    covariance: NDArray          # (p, p) inverse information at beta-hat
    ci_lower: NDArray            # (p,) lower CI for the hazard ratio
    ci_upper: NDArray            # (p,) upper CI for the hazard ratio
    z_statistics: NDArray        # (p,) coef / se
    p_values: NDArray            # (p,) two-sided Wald test
    loglik: tuple[float, float]  # (null log-lik, model log-lik)
    score_test: float            # score (log-rank) statistic at beta = 0
    wald_test: float             # global Wald statistic
    concordance: float           # Harrell's C-statistic
    names: tuple[str, ...]
    n_events: int
    n_observations: int
    n_iter: int
    converged: bool
    ties: str                    # "efron" or "breslow"
    conf_level: float
    strata_levels: tuple | None  # None when unstratified
    condition_number: float      # centred design condition number


@dataclass(frozen=True)
class ZPHParams:
    """Proportional-hazards test parameters.

    Matches the classic (Grambsch-Therneau) form of R's survival::cox.zph().
    """

    names: tuple[str, ...]
    chisq: NDArray               # (p,) per-covariate statistic, 1 df each
    p_values: NDArray            # (p,)
    rho: NDArray                 # (p,) correlation of scaled residual with g(t)
    global_chisq: float          # p df
    global_df: int
    global_p_value: float
    transform: str               # "km", "rank", "identity" or "log"
    event_times: NDArray         # (d,) event times in sorted order
    transformed_times: NDArray   # (d,) g(t)
    scaled_residuals: NDArray    # (d, p) beta + d * r @ V
    alpha: float


@dataclass(frozen=True)
class CloglogCurve:
    """Complementary log-log transform of one stratum's survival curve.

    Points with S(t) in {0, 1} have no finite transform and are dropped.
    """

    stratum: object
    time: NDArray                # (k,) event times kept
    log_time: NDArray            # (k,) log(t)
    cloglog: NDArray             # (k,) log(-log(S(t)))
