"""
Cox Proportional Hazards model via Newton-Raphson.

Implements Efron's and Breslow's methods for tied event times and
stratification, matching R's survival::coxph().

Algorithm:
    Initialize β = 0
    For iteration 1..max_iter:
        Compute: partial log-likelihood L(β), score U(β), information I(β)
        β_new = β + I(β)^{-1} @ U(β), halving the step while L decreases
        Converged when |1 - L_old / L_new| < tol or max|Δβ| < tol

Efron's partial likelihood (default):
    L(β) = Σ_{j: event times} [ Σ_{i ∈ D_j} x_i @ β
            - Σ_{s=0}^{d_j-1} log(Σ_{l ∈ R_j} exp(x_l @ β)
                - (s/d_j) * Σ_{i ∈ D_j} exp(x_i @ β)) ]

    where D_j = set of events at time t_j, d_j = |D_j|,
          R_j = risk set at time t_j (alive just before t_j).

Breslow drops the (s/d_j) correction. A stratified model sums L, U and I
over strata; risk sets never cross stratum boundaries.

Risk-set sums are reverse cumulative sums over subjects sorted by time,
so one evaluation costs O(n p²) instead of O(n m p²).

References:
    Cox, D. R. (1972). Regression models and life-tables. JRSS-B, 34(2), 187-220.
    Efron, B. (1977). The efficiency of Cox's likelihood function for
        censored data. JASA, 72(359), 557-565.
    Therneau, T. M. & Grambsch, P. M. (2000). Modeling Survival Data.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from oncosurv.core.exceptions import ConvergenceError, SingularMatrixError
from oncosurv.survival._common import CoxParams

# Newton steps are capped so exp(X @ β) cannot overflow between halvings
MAX_STEP = 5.0
MAX_HALVINGS = 30


@dataclass(frozen=True)
class RiskSets:
    """Time-sorted data of one stratum with its event-time bookkeeping."""

    time: NDArray            # (n_s,) ascending
    event: NDArray           # (n_s,)
    X: NDArray               # (n_s, p)
    original_index: NDArray  # (n_s,) row positions in the caller's arrays
    death_rows: NDArray      # (D,) rows with event == 1, ascending time
    death_slot: NDArray      # (D,) distinct event time index of each death
    event_times: NDArray     # (k,) distinct event times
    first_at_risk: NDArray   # (k,) first sorted row with time >= t_j
    n_deaths: NDArray        # (k,)
    frac: NDArray            # (D,) Efron fraction s / d_j (zeros for Breslow)

    @classmethod
    def build(
        cls,
        time: NDArray,
        event: NDArray,
        X: NDArray,
        index: NDArray,
        ties: str,
    ) -> RiskSets:
        order = np.argsort(time, kind="stable")
        t = time[order]
        e = event[order]
        death_rows = np.nonzero(e == 1)[0]
        event_times, death_slot = np.unique(t[death_rows], return_inverse=True)
        first_at_risk = np.searchsorted(t, event_times, side="left")
        n_deaths = np.bincount(death_slot, minlength=len(event_times))

        if ties == "efron" and len(death_rows) > 0:
            starts = np.cumsum(n_deaths) - n_deaths
            position = np.arange(len(death_rows)) - np.repeat(starts, n_deaths)
            frac = position / np.repeat(n_deaths, n_deaths)
        else:
            frac = np.zeros(len(death_rows), dtype=np.float64)

        return cls(
            time=t,
            event=e,
            X=X[order],
            original_index=index[order],
            death_rows=death_rows,
            death_slot=death_slot,
            event_times=event_times,
            first_at_risk=first_at_risk,
            n_deaths=n_deaths,
            frac=frac.astype(np.float64),
        )

    def weighted_means(self, beta: NDArray) -> tuple[float, NDArray, NDArray, NDArray]:
        """Risk-set quantities at β, one row per death.

        Returns
        -------
        (loglik, mean, second, denom)
            loglik : stratum partial log-likelihood
            mean : (D, p) risk-set weighted covariate mean (Efron-adjusted)
            second : (D, p, p) weighted second moment
            denom : (D,) Efron-adjusted risk-set weight sum
        """
        X = self.X
        k = len(self.event_times)
        p = X.shape[1]

        eta = X @ beta
        shift = np.max(eta) if len(eta) else 0.0
        w = np.exp(eta - shift)

        S0 = np.cumsum(w[::-1])[::-1][self.first_at_risk]
        wX = w[:, np.newaxis] * X
        S1 = np.cumsum(wX[::-1], axis=0)[::-1][self.first_at_risk]
        wXX = wX[:, :, np.newaxis] * X[:, np.newaxis, :]
        S2 = np.cumsum(wXX[::-1], axis=0)[::-1][self.first_at_risk]

        rows = self.death_rows
        slot = self.death_slot
        dS0 = np.bincount(slot, weights=w[rows], minlength=k)
        dS1 = np.zeros((k, p))
        np.add.at(dS1, slot, wX[rows])
        dS2 = np.zeros((k, p, p))
        np.add.at(dS2, slot, wXX[rows])

        frac = self.frac
        denom = S0[slot] - frac * dS0[slot]
        mean = (S1[slot] - frac[:, np.newaxis] * dS1[slot]) / denom[:, np.newaxis]
        second = (
            S2[slot] - frac[:, np.newaxis, np.newaxis] * dS2[slot]
        ) / denom[:, np.newaxis, np.newaxis]

        with np.errstate(divide='ignore'):
            loglik = float(np.sum(eta[rows] - shift) - np.sum(np.log(denom)))

        return loglik, mean, second, denom

    def evaluate(self, beta: NDArray) -> tuple[float, NDArray, NDArray]:
        """(loglik, score, information) contributed by this stratum."""
        loglik, mean, second, _ = self.weighted_means(beta)
        score = self.X[self.death_rows].sum(axis=0) - mean.sum(axis=0)
        info = second.sum(axis=0) - np.einsum('ij,ik->jk', mean, mean)
        return loglik, score, info

    def schoenfeld(self, beta: NDArray) -> NDArray:
        """(D, p) Schoenfeld residuals; tied deaths share the averaged mean."""
        _, mean, _, _ = self.weighted_means(beta)
        k = len(self.event_times)
        xbar = np.zeros((k, self.X.shape[1]))
        np.add.at(xbar, self.death_slot, mean)
        xbar /= np.maximum(self.n_deaths, 1)[:, np.newaxis]
        return self.X[self.death_rows] - xbar[self.death_slot]


def build_risk_sets(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    strata: NDArray | None,
    ties: str,
) -> list[RiskSets]:
    """Split into strata (a single group when strata is None)."""
    index = np.arange(len(time))
    if strata is None:
        return [RiskSets.build(time, event, X, index, ties)]
    groups = []
    for level in np.unique(strata):
        mask = strata == level
        groups.append(
            RiskSets.build(time[mask], event[mask], X[mask], index[mask], ties)
        )
    return groups


def _evaluate(groups: list[RiskSets], beta: NDArray) -> tuple[float, NDArray, NDArray]:
    p = len(beta)
    loglik = 0.0
    score = np.zeros(p, dtype=np.float64)
    info = np.zeros((p, p), dtype=np.float64)
    for g in groups:
        ll, u, i = g.evaluate(beta)
        loglik += ll
        score += u
        info += i
    return loglik, score, info


def cox_fit(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    strata: NDArray | None = None,
    names: tuple[str, ...] | None = None,
    ties: str = "efron",
    tol: float = 1e-9,
    max_iter: int = 20,
    conf_level: float = 0.95,
    condition_number: float = float('nan'),
) -> CoxParams:
    """Fit a (stratified) Cox proportional hazards model.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    X : NDArray
        (n, p) covariate matrix (NO intercept).
    strata : NDArray or None
        (n,) stratum labels; baseline hazards differ by stratum.
    names : tuple of str
        Column labels for X.
    ties : str
        "efron" (default) or "breslow".
    tol : float
        Convergence tolerance.
    max_iter : int
        Maximum Newton-Raphson iterations.
    conf_level : float
        Confidence level for hazard-ratio intervals.
    condition_number : float
        Condition number from input validation, recorded on the result.

    Returns
    -------
    CoxParams

    Raises
    ------
    ConvergenceError
        If max_iter iterations pass without meeting the criterion.
    SingularMatrixError
        If the information matrix cannot be inverted.
    """
    n, p = X.shape
    if names is None:
        names = tuple(f"x{i}" for i in range(p))

    groups = build_risk_sets(time, event, X, strata, ties)

    beta = np.zeros(p, dtype=np.float64)
    loglik, score, info = _evaluate(groups, beta)
    null_loglik = loglik
    score_test = _quadratic_form(score, info, "information at beta=0")

    converged = False
    n_iter = 0
    change = float('inf')

    for iteration in range(1, max_iter + 1):
        n_iter = iteration
        try:
            step = np.linalg.solve(info, score)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                f"Information matrix is singular at iteration {iteration}",
                matrix_name="information",
            ) from e

        max_step = np.max(np.abs(step))
        if max_step > MAX_STEP:
            step = step * (MAX_STEP / max_step)

        beta_new = beta + step
        loglik_new, score_new, info_new = _evaluate(groups, beta_new)

        halvings = 0
        while (not np.isfinite(loglik_new) or loglik_new < loglik) \
                and halvings < MAX_HALVINGS:
            step = step / 2.0
            beta_new = beta + step
            loglik_new, score_new, info_new = _evaluate(groups, beta_new)
            halvings += 1

        change = float(np.max(np.abs(beta_new - beta)))
        rel_loglik = abs(1.0 - loglik / loglik_new) if loglik_new != 0 else 0.0

        beta, loglik, score, info = beta_new, loglik_new, score_new, info_new

        if change < tol or rel_loglik < tol:
            converged = True
            break

    if not converged:
        raise ConvergenceError(
            f"Newton-Raphson did not converge in {max_iter} iterations "
            f"(max |change in beta| = {change:.3g})",
            iterations=n_iter,
            final_change=change,
            reason="max_iterations",
            threshold=tol,
        )

    try:
        covariance = np.linalg.inv(info)
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(
            "Information matrix at the estimate is singular; "
            "standard errors are undefined",
            matrix_name="information",
        ) from e

    se = np.sqrt(np.maximum(np.diag(covariance), 0.0))
    z = np.where(se > 0, beta / np.where(se > 0, se, 1.0), 0.0)
    p_values = 2.0 * stats.norm.sf(np.abs(z))

    z_crit = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower = np.exp(beta - z_crit * se)
    ci_upper = np.exp(beta + z_crit * se)

    wald_test = float(beta @ info @ beta)

    strata_levels = None
    if strata is not None:
        strata_levels = tuple(
            s.item() if hasattr(s, "item") else s for s in np.unique(strata)
        )

    return CoxParams(
        coefficients=beta,
        hazard_ratios=np.exp(beta),
        standard_errors=se,
        covariance=covariance,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        z_statistics=z,
        p_values=p_values,
        loglik=(null_loglik, loglik),
        score_test=score_test,
        wald_test=wald_test,
        concordance=concordance(X @ beta, time, event, strata),
        names=tuple(names),
        n_events=int(np.sum(event)),
        n_observations=n,
        n_iter=n_iter,
        converged=converged,
        ties=ties,
        conf_level=conf_level,
        strata_levels=strata_levels,
        condition_number=condition_number,
    )


def _quadratic_form(u: NDArray, info: NDArray, what: str) -> float:
    try:
        return float(u @ np.linalg.solve(info, u))
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(
            f"Cannot compute score test: {what} is singular",
            matrix_name="information",
        ) from e


def concordance(
    eta: NDArray,
    time: NDArray,
    event: NDArray,
    strata: NDArray | None = None,
) -> float:
    """Harrell's concordance statistic (C-statistic).

    C = P(eta_i > eta_j | T_i < T_j, event_i = 1), pairs within strata.
    """
    same = (
        np.ones((len(time), len(time)), dtype=bool) if strata is None
        else strata[:, np.newaxis] == strata[np.newaxis, :]
    )
    usable = (
        (event[:, np.newaxis] == 1)
        & (time[:, np.newaxis] < time[np.newaxis, :])
        & same
    )
    diff = eta[:, np.newaxis] - eta[np.newaxis, :]

    concordant = np.sum(usable & (diff > 0))
    tied = np.sum(usable & (diff == 0))
    total = np.sum(usable)

    if total == 0:
        return 0.5
    return float((concordant + 0.5 * tied) / total)


def schoenfeld_residuals(
    beta: NDArray,
    time: NDArray,
    event: NDArray,
    X: NDArray,
    strata: NDArray | None,
    ties: str,
) -> tuple[NDArray, NDArray, NDArray]:
    """Schoenfeld residuals at β for every death, sorted by event time.

    Returns
    -------
    (times, residuals, rows)
        times : (D,) event time of each death
        residuals : (D, p) observed minus risk-set expected covariates
        rows : (D,) position of each death in the caller's arrays
    """
    groups = build_risk_sets(time, event, X, strata, ties)
    times, resid, rows = [], [], []
    for g in groups:
        times.append(g.time[g.death_rows])
        resid.append(g.schoenfeld(beta))
        rows.append(g.original_index[g.death_rows])

    times = np.concatenate(times)
    resid = np.vstack(resid) if resid else np.zeros((0, X.shape[1]))
    rows = np.concatenate(rows)
    order = np.argsort(times, kind="stable")
    return times[order], resid[order], rows[order]
