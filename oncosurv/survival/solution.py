"""
Solution wrappers for survival analysis results.

Each Solution wraps a Result[Params] and exposes user-friendly properties
with R-style summary() methods and pandas views for reporting code.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from oncosurv.core.exceptions import UndefinedMedianError
from oncosurv.core.result import Result
from oncosurv.survival._common import (
    CloglogCurve,
    CoxParams,
    KMParams,
    LogRankParams,
    ZPHParams,
)
from oncosurv.survival._zph import cloglog_curve
from oncosurv.survival.design import SurvivalDesign


class KMSolution:
    """Kaplan-Meier survival curve solution.

    Properties mirror R's survfit() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[KMParams]) -> None:
        self._result = _result

    @property
    def time(self):
        """Unique event times."""
        return self._result.params.time

    @property
    def survival(self):
        """S(t) at each event time."""
        return self._result.params.survival

    @property
    def n_risk(self):
        """Number at risk just before each event time."""
        return self._result.params.n_risk

    @property
    def n_events(self):
        return self._result.params.n_events

    @property
    def n_censored(self):
        return self._result.params.n_censored

    @property
    def se(self):
        """Greenwood standard error of S(t)."""
        return self._result.params.se

    @property
    def ci_lower(self):
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def conf_type(self) -> str:
        return self._result.params.conf_type

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_events_total(self) -> int:
        return self._result.params.n_events_total

    @property
    def stratum(self):
        return self._result.params.stratum

    @property
    def params(self) -> KMParams:
        return self._result.params

    @property
    def median_survival(self) -> float | None:
        """Median survival time (smallest t where S(t) <= 0.5), None if NA."""
        idx = self.survival <= 0.5
        if not idx.any():
            return None
        return float(self.time[idx][0])

    def median(self, strict: bool = False) -> float | None:
        """Median survival; with strict=True a curve that never reaches
        0.5 raises UndefinedMedianError instead of returning None."""
        median = self.median_survival
        if median is None and strict:
            lowest = float(self.survival[-1]) if len(self.survival) else 1.0
            raise UndefinedMedianError(
                f"survival never drops to 0.5 within follow-up "
                f"(lowest S(t) = {lowest:.4f})",
                min_survival=lowest,
            )
        return median

    def step_function(self) -> tuple[np.ndarray, np.ndarray]:
        """(time, survival) of the right-continuous step function,
        starting at (0, 1.0). A death at time 0 replaces that point."""
        if len(self.time) and self.time[0] == 0.0:
            return self.time.copy(), self.survival.copy()
        return (
            np.concatenate([[0.0], self.time]),
            np.concatenate([[1.0], self.survival]),
        )

    def survival_at(self, t) -> np.ndarray:
        """S(t) for arbitrary times (right-continuous)."""
        t = np.atleast_1d(np.asarray(t, dtype=np.float64))
        if len(self.time) == 0:
            return np.ones_like(t)
        idx = np.searchsorted(self.time, t, side="right") - 1
        return np.where(idx >= 0, self.survival[np.maximum(idx, 0)], 1.0)

    def cloglog(self) -> CloglogCurve:
        """log(-log S(t)) against log t."""
        return cloglog_curve(self._result.params)

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({
            "time": self.time,
            "n_risk": self.n_risk,
            "n_events": self.n_events,
            "n_censored": self.n_censored,
            "survival": self.survival,
            "se": self.se,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
        })
        if self.stratum is not None:
            frame.insert(0, "stratum", self.stratum)
        return frame

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """R-style summary of Kaplan-Meier fit."""
        lines = []
        header = "Call: kaplan_meier()"
        if self.stratum is not None:
            header += f"  stratum={self.stratum}"
        lines.append(header)
        lines.append("")
        lines.append(
            f"  n={self.n_observations}, "
            f"events={self.n_events_total}"
        )

        median = self.median_survival
        median_str = f"{median:.4g}" if median is not None else "NA"
        lines.append(f"  median survival = {median_str}")
        lines.append("")

        ci_pct = int(round(self.conf_level * 100))
        lines.append(
            f"  {'time':>8s}  {'n.risk':>8s}  {'n.event':>8s}  "
            f"{'survival':>10s}  {'se':>10s}  "
            f"{f'lower {ci_pct}%':>10s}  {f'upper {ci_pct}%':>10s}"
        )

        m = len(self.time)
        show = min(m, 20)
        for i in range(show):
            lines.append(
                f"  {self.time[i]:8.4g}  {self.n_risk[i]:8.0f}  "
                f"{self.n_events[i]:8.0f}  "
                f"{self.survival[i]:10.6f}  {self.se[i]:10.6f}  "
                f"{self.ci_lower[i]:10.6f}  {self.ci_upper[i]:10.6f}"
            )
        if m > 20:
            lines.append(f"  ... ({m - 20} more rows)")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"KMSolution(n={self.n_observations}, "
            f"events={self.n_events_total}, "
            f"median={self.median_survival})"
        )


class StratifiedKMSolution:
    """One Kaplan-Meier curve per stratum level."""

    __slots__ = ('_curves',)

    def __init__(self, curves: list[KMSolution]) -> None:
        self._curves = {c.stratum: c for c in curves}

    @property
    def levels(self) -> tuple:
        return tuple(self._curves.keys())

    @property
    def curves(self) -> dict:
        return dict(self._curves)

    def __getitem__(self, level) -> KMSolution:
        if level not in self._curves:
            raise KeyError(
                f"No curve for stratum {level!r}. Available: {self.levels}"
            )
        return self._curves[level]

    def __iter__(self):
        return iter(self._curves.values())

    def __len__(self) -> int:
        return len(self._curves)

    @property
    def medians(self) -> dict:
        """Median survival per stratum (None where undefined)."""
        return {level: c.median_survival for level, c in self._curves.items()}

    def cloglog(self) -> dict:
        return {level: c.cloglog() for level, c in self._curves.items()}

    def to_frame(self) -> pd.DataFrame:
        return pd.concat([c.to_frame() for c in self._curves.values()],
                         ignore_index=True)

    def summary(self) -> str:
        return "\n\n".join(c.summary() for c in self._curves.values())

    def __repr__(self) -> str:
        return f"StratifiedKMSolution(levels={self.levels})"


class LogRankSolution:
    """Log-rank test solution.

    Properties mirror R's survdiff() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[LogRankParams]) -> None:
        self._result = _result

    @property
    def statistic(self) -> float:
        return self._result.params.statistic

    @property
    def df(self) -> int:
        return self._result.params.df

    @property
    def p_value(self) -> float:
        return self._result.params.p_value

    @property
    def n_groups(self) -> int:
        return self._result.params.n_groups

    @property
    def observed(self):
        return self._result.params.observed

    @property
    def expected(self):
        return self._result.params.expected

    @property
    def variance(self):
        return self._result.params.variance

    @property
    def n_per_group(self):
        return self._result.params.n_per_group

    @property
    def rho(self) -> float:
        return self._result.params.rho

    @property
    def group_labels(self):
        return self._result.params.group_labels

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """R-style summary of log-rank test."""
        lines = []
        lines.append("Call: survdiff()")
        lines.append("")

        lines.append(f"  {'':>12s}  {'N':>6s}  {'Observed':>10s}  {'Expected':>10s}  {'(O-E)^2/E':>10s}")
        for i in range(self.n_groups):
            oe = ((self.observed[i] - self.expected[i]) ** 2
                  / self.expected[i]) if self.expected[i] > 0 else 0
            label = str(self.group_labels[i])
            lines.append(
                f"  {label:>12s}  {self.n_per_group[i]:6.0f}  "
                f"{self.observed[i]:10.1f}  {self.expected[i]:10.1f}  "
                f"{oe:10.3f}"
            )

        lines.append("")
        lines.append(
            f"  Chisq= {self.statistic:.4f} on {self.df} degrees of freedom, "
            f"p= {self.p_value:.4g}"
        )

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"LogRankSolution(chisq={self.statistic:.4f}, "
            f"df={self.df}, p={self.p_value:.4g})"
        )


class CoxSolution:
    """Cox proportional hazards solution.

    Properties mirror R's coxph() output. The fit itself is immutable;
    summary() and to_frame() only format it. The design the model was
    fitted on is kept for residual diagnostics.
    """

    __slots__ = ('_result', '_design')

    def __init__(
        self,
        _result: Result[CoxParams],
        _design: SurvivalDesign | None = None,
    ) -> None:
        self._result = _result
        self._design = _design

    @property
    def design(self) -> SurvivalDesign | None:
        return self._design

    @property
    def params(self) -> CoxParams:
        return self._result.params

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def coefficients(self):
        return self._result.params.coefficients

    @property
    def hazard_ratios(self):
        return self._result.params.hazard_ratios

    @property
    def standard_errors(self):
        return self._result.params.standard_errors

    @property
    def covariance(self):
        return self._result.params.covariance

    @property
    def ci_lower(self):
        """Lower confidence bound for the hazard ratio."""
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        """Upper confidence bound for the hazard ratio."""
        return self._result.params.ci_upper

    @property
    def z_statistics(self):
        return self._result.params.z_statistics

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def loglik(self):
        return self._result.params.loglik

    @property
    def likelihood_ratio_test(self) -> float:
        return 2.0 * (self.loglik[1] - self.loglik[0])

    @property
    def score_test(self) -> float:
        return self._result.params.score_test

    @property
    def wald_test(self) -> float:
        return self._result.params.wald_test

    @property
    def concordance(self) -> float:
        return self._result.params.concordance

    @property
    def n_events(self) -> int:
        return self._result.params.n_events

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def ties(self) -> str:
        return self._result.params.ties

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def strata_levels(self):
        return self._result.params.strata_levels

    @property
    def condition_number(self) -> float:
        return self._result.params.condition_number

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def to_frame(self) -> pd.DataFrame:
        """One row per covariate level: coef, se, HR, CI, z, p."""
        return pd.DataFrame(
            {
                "coef": self.coefficients,
                "se": self.standard_errors,
                "hazard_ratio": self.hazard_ratios,
                "ci_lower": self.ci_lower,
                "ci_upper": self.ci_upper,
                "z": self.z_statistics,
                "p_value": self.p_values,
            },
            index=pd.Index(self.names, name="term"),
        )

    def summary(self) -> str:
        """R-style summary of Cox PH fit."""
        lines = []
        call = "Call: coxph()"
        if self.strata_levels is not None:
            call += f"  strata: {len(self.strata_levels)} levels"
        lines.append(call)
        lines.append("")
        lines.append(
            f"  n= {self.n_observations}, "
            f"number of events= {self.n_events}"
        )
        lines.append("")

        width = max([10] + [len(s) for s in self.names])
        ci_pct = int(round(self.conf_level * 100))
        lines.append(
            f"  {'':>{width}s}  {'coef':>10s}  {'exp(coef)':>10s}  "
            f"{'se(coef)':>10s}  {f'lower .{ci_pct}':>10s}  {f'upper .{ci_pct}':>10s}  "
            f"{'z':>8s}  {'Pr(>|z|)':>10s}"
        )
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>{width}s}  {self.coefficients[i]:10.6f}  "
                f"{self.hazard_ratios[i]:10.6f}  "
                f"{self.standard_errors[i]:10.6f}  "
                f"{self.ci_lower[i]:10.4f}  {self.ci_upper[i]:10.4f}  "
                f"{self.z_statistics[i]:8.4f}  "
                f"{self.p_values[i]:10.4g}"
            )

        p = len(self.coefficients)
        lines.append("")
        lines.append(f"  Concordance= {self.concordance:.4f}")
        lines.append(
            f"  Likelihood ratio test= {self.likelihood_ratio_test:.4f} on {p} df"
        )
        lines.append(f"  Wald test           = {self.wald_test:.4f} on {p} df")
        lines.append(f"  Score (logrank) test= {self.score_test:.4f} on {p} df")
        for w in self.warnings:
            lines.append(f"  Warning: {w}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CoxSolution(n={self.n_observations}, "
            f"events={self.n_events}, "
            f"concordance={self.concordance:.4f})"
        )


class ZPHSolution:
    """Proportional-hazards test solution (R's cox.zph)."""

    __slots__ = ('_result',)

    def __init__(self, _result: Result[ZPHParams]) -> None:
        self._result = _result

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def chisq(self):
        return self._result.params.chisq

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def rho(self):
        return self._result.params.rho

    @property
    def global_chisq(self) -> float:
        return self._result.params.global_chisq

    @property
    def global_df(self) -> int:
        return self._result.params.global_df

    @property
    def global_p_value(self) -> float:
        return self._result.params.global_p_value

    @property
    def transform(self) -> str:
        return self._result.params.transform

    @property
    def alpha(self) -> float:
        return self._result.params.alpha

    @property
    def event_times(self):
        return self._result.params.event_times

    @property
    def transformed_times(self):
        return self._result.params.transformed_times

    @property
    def scaled_residuals(self):
        return self._result.params.scaled_residuals

    @property
    def violations(self) -> tuple[str, ...]:
        """Covariates whose PH test is significant at alpha."""
        return tuple(
            name for name, p in zip(self.names, self.p_values) if p < self.alpha
        )

    @property
    def global_violation(self) -> bool:
        return self.global_p_value < self.alpha

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(
            {"rho": self.rho, "chisq": self.chisq, "df": 1, "p_value": self.p_values},
            index=pd.Index(self.names, name="term"),
        )
        frame.loc["GLOBAL"] = [np.nan, self.global_chisq, self.global_df,
                               self.global_p_value]
        return frame

    def summary(self) -> str:
        lines = ["Call: cox_zph()", ""]
        width = max([10] + [len(s) for s in self.names])
        lines.append(
            f"  {'':>{width}s}  {'rho':>8s}  {'chisq':>10s}  {'df':>4s}  {'p':>10s}"
        )
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>{width}s}  {self.rho[i]:8.4f}  {self.chisq[i]:10.4f}  "
                f"{1:>4d}  {self.p_values[i]:10.4g}"
            )
        lines.append(
            f"  {'GLOBAL':>{width}s}  {'':>8s}  {self.global_chisq:10.4f}  "
            f"{self.global_df:>4d}  {self.global_p_value:10.4g}"
        )
        lines.append("")
        lines.append(f"  transform: {self.transform}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ZPHSolution(global_chisq={self.global_chisq:.4f}, "
            f"df={self.global_df}, p={self.global_p_value:.4g})"
        )
