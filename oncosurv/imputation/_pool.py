"""
Rubin's rules for combining estimates across imputations.

    q̄ = (1/M) Σ q_i
    ū = (1/M) Σ U_i
    b = (1/(M-1)) Σ (q_i - q̄)(q_i - q̄)'
    t = ū + (1 + 1/M) b

Per-term diagnostics follow R's mice::pool():
    riv    = (1 + 1/M) b / ū
    λ      = (1 + 1/M) b / t
    df_old = (M - 1) / λ²
    df_obs = (ν_com + 1) / (ν_com + 3) · ν_com · (1 - λ)
    df     = df_old · df_obs / (df_old + df_obs)      (Barnard & Rubin, 1999)
    fmi    = (riv + 2 / (df + 3)) / (1 + riv)

References:
    Rubin, D.B. (1987). Multiple Imputation for Nonresponse in Surveys.
    Barnard, J. & Rubin, D.B. (1999). Small-sample degrees of freedom with
    multiple imputation. Biometrika 86(4), 948-955.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from oncosurv.imputation._common import PooledParams


def barnard_rubin_df(lambda_: NDArray, m: int, df_complete: float) -> NDArray:
    with np.errstate(divide="ignore", invalid="ignore"):
        df_old = np.where(lambda_ > 0, (m - 1) / lambda_ ** 2, np.inf)
    if not np.isfinite(df_complete):
        return df_old
    df_obs = (df_complete + 1) / (df_complete + 3) * df_complete * (1 - lambda_)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(
            np.isinf(df_old), df_obs, df_old * df_obs / (df_old + df_obs)
        )


def rubin_pool(
    estimates: NDArray,
    covariances: NDArray,
    names: tuple[str, ...],
    conf_level: float = 0.95,
    df_complete: float = np.inf,
) -> PooledParams:
    """Pool M estimate vectors and their covariance matrices.

    Parameters
    ----------
    estimates : (M, p)
    covariances : (M, p, p)
    """
    m, p = estimates.shape
    q_bar = estimates.mean(axis=0)
    u_bar = covariances.mean(axis=0)
    dev = estimates - q_bar
    b = dev.T @ dev / (m - 1)
    t = u_bar + (1.0 + 1.0 / m) * b

    u_diag = np.diag(u_bar)
    b_diag = np.diag(b)
    t_diag = np.diag(t)
    se = np.sqrt(t_diag)

    inflation = (1.0 + 1.0 / m) * b_diag
    riv = inflation / u_diag
    lambda_ = inflation / t_diag
    df = barnard_rubin_df(lambda_, m, df_complete)
    fmi = (riv + 2.0 / (df + 3.0)) / (1.0 + riv)

    z = q_bar / se
    p_values = 2.0 * stats.norm.sf(np.abs(z))
    z_crit = stats.norm.ppf(1.0 - (1.0 - conf_level) / 2.0)

    return PooledParams(
        names=tuple(names),
        estimates=q_bar,
        within=u_bar,
        between=b,
        total=t,
        standard_errors=se,
        z_statistics=z,
        p_values=p_values,
        ci_lower=q_bar - z_crit * se,
        ci_upper=q_bar + z_crit * se,
        df=df,
        riv=riv,
        lambda_=lambda_,
        fmi=fmi,
        m=m,
        conf_level=conf_level,
        df_complete=float(df_complete),
    )
