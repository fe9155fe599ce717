"""
The two analysis variants over a prepared cohort.

    complete_case_analysis(df) → CompleteCaseReport
        complete cases → Kaplan-Meier + log-rank per stratification
        variable → univariate Cox per covariate → multivariate Cox →
        cox.zph → stratified refit for each categorical covariate that
        violates proportional hazards

    imputed_analysis(df) → ImputedReport
        mice (event indicator and Nelson-Aalen cumulative hazard as
        auxiliary predictors) → multivariate Cox per completed dataset →
        Rubin's rules

Both variants fit their Cox models through fit_cox(). Competing risks are
not modelled: the event is death from any cause.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from oncosurv.cohort.encoding import encode_covariates, is_categorical
from oncosurv.cohort.recode import complete_cases
from oncosurv.config import AnalysisConfig, CoxConfig
from oncosurv.core.exceptions import ValidationError
from oncosurv.imputation import ImputedFits, MICESolution, PooledSolution
from oncosurv.imputation import fit_imputed, mice, pool
from oncosurv.survival import (
    CoxSolution,
    LogRankSolution,
    StratifiedKMSolution,
    ZPHSolution,
    cox_zph,
    coxph,
    kaplan_meier,
    nelson_aalen,
    survdiff,
)

DEFAULT_COVARIATES = ("AgeGroup", "Sex", "Site")
CUMHAZ_COLUMN = "cumhaz"


def fit_cox(
    df: pd.DataFrame,
    covariates: Sequence[str],
    *,
    strata: str | None = None,
    reference: Mapping[str, object] | None = None,
    config: CoxConfig | None = None,
    time: str = "time",
    event: str = "event",
) -> CoxSolution:
    """Reference-code the covariates and fit a Cox model.

    Parameters
    ----------
    df : DataFrame
        Complete table (no missing values in the model columns).
    covariates : sequence of str
        Model terms; categorical terms expand to k-1 indicators.
    strata : str, optional
        Column whose levels get their own baseline hazard.
    reference : mapping, optional
        Covariate -> reference level.
    config : CoxConfig, optional
        Engine settings.
    """
    config = config or CoxConfig()
    missing = [c for c in (time, event) if c not in df.columns]
    if missing:
        raise ValidationError(f"columns missing from the table: {missing}")
    if strata is not None and strata not in df.columns:
        raise ValidationError(f"unknown strata column '{strata}'")

    encoded = encode_covariates(df, covariates, reference)
    return coxph(
        df[time].to_numpy(dtype=np.float64),
        df[event].to_numpy(dtype=np.float64),
        encoded.X,
        names=encoded.names,
        strata=None if strata is None else df[strata].to_numpy(),
        ties=config.ties,
        tol=config.tol,
        max_iter=config.max_iter,
        conf_level=config.conf_level,
        condition_threshold=config.condition_threshold,
    )


def violating_covariates(
    zph: ZPHSolution,
    covariates: Sequence[str],
) -> tuple[str, ...]:
    """Covariates with at least one model term that violates PH."""
    flagged = set(zph.violations)
    out = []
    for covariate in covariates:
        terms = [
            name for name in zph.names
            if name == covariate or name.startswith(f"{covariate}[")
        ]
        if flagged.intersection(terms):
            out.append(covariate)
    return tuple(out)


@dataclass(frozen=True)
class StratifiedRefit:
    """Remedy for a PH violation: the covariate becomes a stratum."""
    covariate: str
    fit: CoxSolution
    zph: ZPHSolution


@dataclass(frozen=True)
class CompleteCaseReport:
    """Everything the complete-case variant produces."""
    data: pd.DataFrame
    n_dropped: int
    exposure: str
    covariates: tuple[str, ...]
    kaplan_meier: dict[str, StratifiedKMSolution]
    logrank: dict[str, LogRankSolution]
    univariate: dict[str, CoxSolution]
    multivariate: CoxSolution
    zph: ZPHSolution
    stratified: dict[str, StratifiedRefit]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ph_violations(self) -> tuple[str, ...]:
        return violating_covariates(self.zph, self.covariates)

    def summary(self) -> str:
        lines = [
            "Complete-case analysis",
            f"  n = {len(self.data)} ({self.n_dropped} incomplete rows dropped)",
            "",
        ]
        for variable, test in self.logrank.items():
            medians = self.kaplan_meier[variable].medians
            lines.append(
                f"  {variable}: log-rank chisq={test.statistic:.3f} on "
                f"{test.df} df, p={test.p_value:.4g}; medians {medians}"
            )
        lines.append("")
        lines.append(self.multivariate.summary())
        lines.append("")
        lines.append(self.zph.summary())
        for covariate, refit in self.stratified.items():
            lines.append("")
            lines.append(f"Stratified on {covariate}:")
            lines.append(refit.fit.summary())
        for w in self.warnings:
            lines.append(f"Warning: {w}")
        return "\n".join(lines)


@dataclass(frozen=True)
class ImputedReport:
    """Everything the imputed variant produces."""
    imputed: MICESolution
    fits: ImputedFits
    pooled: PooledSolution
    exposure: str
    covariates: tuple[str, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def summary(self) -> str:
        lines = [self.imputed.summary(), "", self.pooled.summary()]
        for w in self.warnings:
            lines.append(f"Warning: {w}")
        return "\n".join(lines)


def _model_terms(exposure: str, covariates: Sequence[str]) -> tuple[str, ...]:
    return (exposure, *[c for c in covariates if c != exposure])


def complete_case_analysis(
    df: pd.DataFrame,
    *,
    exposure: str = "Smoking",
    covariates: Sequence[str] = DEFAULT_COVARIATES,
    km_strata: Sequence[str] | None = None,
    reference: Mapping[str, object] | None = None,
    config: AnalysisConfig | None = None,
) -> CompleteCaseReport:
    """Complete-case survival analysis of a prepared cohort.

    Parameters
    ----------
    df : DataFrame
        Output of prepare_cohort() (columns time, event, ...).
    exposure : str
        Main exposure; first term of every multivariate model.
    covariates : sequence of str
        Adjustment covariates.
    km_strata : sequence of str, optional
        Variables to draw Kaplan-Meier curves and log-rank tests for.
        Default: the exposure only.
    config : AnalysisConfig, optional

    Returns
    -------
    CompleteCaseReport

    Notes
    -----
    A categorical adjustment covariate that violates PH at config.alpha is
    moved from the linear predictor into the strata. The exposure itself
    is never stratified away; its violation is reported only.
    """
    config = config or AnalysisConfig()
    terms = _model_terms(exposure, covariates)
    km_strata = tuple(km_strata) if km_strata is not None else (exposure,)

    data = complete_cases(df, ["time", "event", *terms, *km_strata])
    n_dropped = len(df) - len(data)
    notes = []
    if n_dropped:
        notes.append(f"{n_dropped} rows with missing analysis variables dropped")

    time = data["time"].to_numpy(dtype=np.float64)
    event = data["event"].to_numpy(dtype=np.float64)

    km, logrank = {}, {}
    for variable in km_strata:
        groups = data[variable].to_numpy()
        km[variable] = kaplan_meier(
            time, event,
            strata=data[variable],
            conf_level=config.cox.conf_level,
            conf_type=config.km_conf_type,
        )
        logrank[variable] = survdiff(time, event, groups)

    univariate = {
        term: fit_cox(data, [term], reference=reference, config=config.cox)
        for term in terms
    }
    multivariate = fit_cox(data, terms, reference=reference, config=config.cox)
    zph = cox_zph(multivariate, transform=config.zph_transform, alpha=config.alpha)

    stratified = {}
    for covariate in violating_covariates(zph, terms):
        message = f"proportional hazards violated for {covariate}"
        if covariate == exposure:
            message += "; exposure kept in the model, effect is time-averaged"
        elif not is_categorical(data[covariate]):
            message += "; continuous covariate, no stratified remedy"
        elif len(terms) == 1:
            message += "; no covariates left after stratification"
        else:
            remaining = [t for t in terms if t != covariate]
            refit = fit_cox(
                data, remaining,
                strata=covariate, reference=reference, config=config.cox,
            )
            stratified[covariate] = StratifiedRefit(
                covariate=covariate,
                fit=refit,
                zph=cox_zph(refit, transform=config.zph_transform, alpha=config.alpha),
            )
            message += "; refitted with it as a stratum"
        notes.append(message)
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    return CompleteCaseReport(
        data=data,
        n_dropped=n_dropped,
        exposure=exposure,
        covariates=terms,
        kaplan_meier=km,
        logrank=logrank,
        univariate=univariate,
        multivariate=multivariate,
        zph=zph,
        stratified=stratified,
        warnings=tuple(notes),
    )


def imputed_analysis(
    df: pd.DataFrame,
    *,
    exposure: str = "Smoking",
    covariates: Sequence[str] = DEFAULT_COVARIATES,
    auxiliary: Sequence[str] = (),
    reference: Mapping[str, object] | None = None,
    config: AnalysisConfig | None = None,
) -> ImputedReport:
    """Multiple-imputation survival analysis of a cohort with missing values.

    The imputation model contains the model terms, any auxiliary columns,
    the event indicator and the Nelson-Aalen cumulative hazard at each
    subject's follow-up time (White & Royston, 2009). Follow-up time itself
    is not a predictor.

    Parameters
    ----------
    df : DataFrame
        Prepared cohort; time and event must be complete.
    exposure, covariates : see complete_case_analysis()
    auxiliary : sequence of str
        Extra columns used only as imputation predictors (e.g. HPV status
        proxies).
    config : AnalysisConfig, optional
        config.imputation sets m, maxit, seed, donors, n_jobs and the
        failure policy.

    Raises
    ------
    InsufficientImputationsError
        If config.imputation.m < 2.
    ImputationError
        A per-imputation fit failed under on_failure="abort".
    """
    config = config or AnalysisConfig()
    imp = config.imputation
    terms = _model_terms(exposure, covariates)

    unknown = [c for c in ("time", "event", *terms, *auxiliary) if c not in df.columns]
    if unknown:
        raise ValidationError(f"unknown columns: {unknown}")

    frame = df[[*terms, *auxiliary, "event"]].copy()
    frame[CUMHAZ_COLUMN] = nelson_aalen(df["time"], df["event"])

    imputed = mice(
        frame,
        m=imp.m,
        maxit=imp.maxit,
        seed=imp.seed,
        donors=imp.donors,
        n_jobs=imp.n_jobs,
    )

    time = df["time"]

    def fit(completed: pd.DataFrame) -> CoxSolution:
        return fit_cox(
            completed.assign(time=time), terms,
            reference=reference, config=config.cox,
        )

    fits = fit_imputed(imputed, fit, on_failure=imp.on_failure)
    pooled = pool(fits, conf_level=config.cox.conf_level)

    notes = list(imputed.warnings) + list(pooled.warnings)
    return ImputedReport(
        imputed=imputed,
        fits=fits,
        pooled=pooled,
        exposure=exposure,
        covariates=terms,
        warnings=tuple(notes),
    )
