"""
Log-rank test (G-rho family) for comparing survival curves across groups.

Matches R's survival::survdiff(Surv(time, event) ~ group, rho=0).

Algorithm:
    At each distinct event time t_j:
       n_kj = number at risk in group k, d_kj = events in group k
       N_j, D_j = totals
       E_kj = n_kj * D_j / N_j
       w_j = S_hat(t_j-)^rho (pooled KM just before t_j)
    U = Σ_j w_j (d_j - E_j);  V = Σ_j w_j^2 * hypergeometric covariance
    statistic = U[:k-1]' V[:k-1, :k-1]^{-1} U[:k-1]  ~ χ²(k - 1)

References:
    Harrington, D. P. & Fleming, T. R. (1982). A class of rank test
        procedures for censored survival data. Biometrika, 69(3), 553-566.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from oncosurv.core.exceptions import ValidationError
from oncosurv.survival._common import LogRankParams


def logrank_test(
    time: NDArray,
    event: NDArray,
    group: NDArray,
    rho: float = 0.0,
) -> LogRankParams:
    """Compute log-rank test (G-rho family).

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    group : NDArray
        (n,) group labels.
    rho : float
        0 is the standard log-rank test, 1 is Peto & Peto.

    Returns
    -------
    LogRankParams
    """
    unique_groups, group_idx = np.unique(group, return_inverse=True)
    n_groups = len(unique_groups)

    if n_groups < 2:
        raise ValidationError(
            f"Need at least 2 groups for log-rank test, got {n_groups}"
        )

    n_per_group = np.bincount(group_idx, minlength=n_groups).astype(np.float64)

    uniq, time_idx = np.unique(time, return_inverse=True)
    m_all = len(uniq)

    # (distinct time x group) tables of deaths and departures
    d_table = np.zeros((m_all, n_groups), dtype=np.float64)
    leave_table = np.zeros((m_all, n_groups), dtype=np.float64)
    np.add.at(d_table, (time_idx, group_idx), event)
    np.add.at(leave_table, (time_idx, group_idx), 1.0)

    removed_before = np.vstack([
        np.zeros((1, n_groups)),
        np.cumsum(leave_table, axis=0)[:-1],
    ])
    risk_table = n_per_group[np.newaxis, :] - removed_before

    keep = d_table.sum(axis=1) > 0
    d_kg = d_table[keep]
    n_kg = risk_table[keep]

    if d_kg.shape[0] == 0:
        return LogRankParams(
            statistic=0.0,
            df=n_groups - 1,
            p_value=1.0,
            n_groups=n_groups,
            observed=np.zeros(n_groups, dtype=np.float64),
            expected=np.zeros(n_groups, dtype=np.float64),
            variance=np.zeros((n_groups, n_groups), dtype=np.float64),
            n_per_group=n_per_group,
            rho=rho,
            group_labels=unique_groups,
        )

    D_j = d_kg.sum(axis=1)
    N_j = n_kg.sum(axis=1)

    if rho == 0.0:
        weights = np.ones(len(D_j), dtype=np.float64)
    else:
        surv = np.cumprod(1.0 - D_j / N_j)
        s_before = np.concatenate([[1.0], surv[:-1]])
        weights = s_before ** rho

    expected_kj = n_kg * (D_j / N_j)[:, np.newaxis]
    observed = np.sum(weights[:, np.newaxis] * d_kg, axis=0)
    expected = np.sum(weights[:, np.newaxis] * expected_kj, axis=0)

    # Hypergeometric covariance, zero where N_j == 1
    with np.errstate(divide='ignore', invalid='ignore'):
        factor = np.where(
            N_j > 1,
            weights ** 2 * D_j * (N_j - D_j) / (N_j ** 2 * (N_j - 1)),
            0.0,
        )
    V = np.zeros((n_groups, n_groups), dtype=np.float64)
    for j in range(len(D_j)):
        nk = n_kg[j]
        V += factor[j] * (np.diag(nk * N_j[j]) - np.outer(nk, nk))

    # The K x K system is singular (Σ(O - E) = 0); drop the last group
    df = n_groups - 1
    u = (observed - expected)[:df]
    V_sub = V[:df, :df]
    try:
        statistic = float(u @ np.linalg.solve(V_sub, u))
    except np.linalg.LinAlgError:
        statistic = float(u @ np.linalg.pinv(V_sub) @ u)

    statistic = max(statistic, 0.0)
    p_value = float(stats.chi2.sf(statistic, df))

    return LogRankParams(
        statistic=statistic,
        df=df,
        p_value=p_value,
        n_groups=n_groups,
        observed=observed,
        expected=expected,
        variance=V,
        n_per_group=n_per_group,
        rho=rho,
        group_labels=unique_groups,
    )
