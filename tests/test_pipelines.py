"""
End-to-end tests of the complete-case and the imputed analysis.
"""

import warnings

import numpy as np
import pandas as pd
import pytest

from oncosurv import complete_case_analysis, fit_cox, imputed_analysis
from oncosurv.cohort import prepare_cohort
from oncosurv.config import AnalysisConfig, ImputationConfig
from oncosurv.core.exceptions import (
    DataDomainError,
    InsufficientImputationsError,
    ValidationError,
)
from oncosurv.pipelines import CUMHAZ_COLUMN, violating_covariates

SMOKING = ["Never", "<10 PY", ">=10 PY"]
SMOKING_TERMS = ("Smoking[<10 PY]", "Smoking[>=10 PY]")


@pytest.fixture
def cohort(raw_cohort):
    return prepare_cohort(raw_cohort)


@pytest.fixture
def crossing_site(exp_quantiles):
    """Site B has a falling hazard, site A a constant one; smoking has no effect."""
    t0 = exp_quantiles(100)
    smoking = np.array(SMOKING)[np.arange(200) % 3]
    return pd.DataFrame({
        "time": np.concatenate([t0, t0 ** (1.0 / 0.3)]),
        "event": np.ones(200, dtype=int),
        "Smoking": pd.Categorical(smoking, categories=SMOKING, ordered=True),
        "Site": np.repeat(["A", "B"], 100).astype(object),
    })


def quiet(func, *args, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return func(*args, **kwargs)


class TestFitCox:

    def test_exposure_terms(self, cohort):
        fit = fit_cox(cohort, ["Smoking"])
        assert fit.names == SMOKING_TERMS
        assert np.all(fit.hazard_ratios > 0)
        assert np.all(np.isfinite(fit.ci_lower)) and np.all(np.isfinite(fit.ci_upper))
        # Simulated hazards rise with pack-years
        assert fit.hazard_ratios[1] > 1.0

    def test_reference_override(self, cohort):
        fit = fit_cox(cohort, ["Smoking"], reference={"Smoking": ">=10 PY"})
        assert fit.names == ("Smoking[Never]", "Smoking[<10 PY]")

    def test_adjusted_model(self, cohort):
        fit = fit_cox(cohort, ["Smoking", "AgeGroup", "Sex", "Site"])
        assert fit.names[:2] == SMOKING_TERMS
        assert "Sex[Male]" in fit.names
        assert fit.n_observations == len(cohort)

    def test_stratified(self, cohort):
        fit = fit_cox(cohort, ["Smoking"], strata="Site")
        assert set(fit.strata_levels) == {"Oral cavity", "Oropharynx", "Larynx"}

    def test_missing_covariate_values(self, cohort):
        cohort.loc[cohort.index[:3], "Sex"] = np.nan
        with pytest.raises(DataDomainError, match="Sex"):
            fit_cox(cohort, ["Smoking", "Sex"])

    def test_single_level_covariate_rejected(self, cohort):
        men = cohort.assign(Sex="Male")
        with pytest.raises(ValidationError, match="Sex: only level 'Male'"):
            fit_cox(men, ["Smoking", "Sex"])
        with pytest.raises(ValidationError, match="single level"):
            fit_cox(men, ["Sex"])

    def test_single_level_after_subsetting(self, cohort):
        never = cohort[cohort["Smoking"] == "Never"]
        with pytest.raises(ValidationError, match="Smoking: only level 'Never'"):
            fit_cox(never, ["Smoking", "Sex"])

    def test_unknown_strata(self, cohort):
        with pytest.raises(ValidationError, match="strata"):
            fit_cox(cohort, ["Smoking"], strata="Country")

    def test_missing_time_column(self, cohort):
        with pytest.raises(ValidationError, match="time"):
            fit_cox(cohort.drop(columns="time"), ["Smoking"])


class TestCompleteCaseAnalysis:

    def test_report(self, cohort):
        cohort.loc[cohort.index[:5], "Site"] = np.nan
        report = quiet(complete_case_analysis, cohort)

        assert report.n_dropped == 5
        assert len(report.data) == len(cohort) - 5
        assert report.covariates == ("Smoking", "AgeGroup", "Sex", "Site")
        assert report.multivariate.names[:2] == SMOKING_TERMS
        assert set(report.univariate) == set(report.covariates)
        assert report.zph.names == report.multivariate.names
        assert any("5 rows" in w for w in report.warnings)

    def test_kaplan_meier_and_logrank_by_exposure(self, cohort):
        report = quiet(complete_case_analysis, cohort, km_strata=["Smoking", "Sex"])
        assert set(report.kaplan_meier) == {"Smoking", "Sex"}
        assert report.kaplan_meier["Smoking"].levels == tuple(SMOKING)
        assert report.logrank["Smoking"].df == 2
        assert report.logrank["Sex"].df == 1

    def test_summary(self, cohort):
        report = quiet(complete_case_analysis, cohort)
        text = report.summary()
        assert "Complete-case analysis" in text
        assert "log-rank" in text
        assert "cox_zph()" in text

    def test_violating_covariate_is_stratified(self, crossing_site):
        with pytest.warns(RuntimeWarning, match="violated for Site"):
            report = complete_case_analysis(crossing_site, covariates=["Site"])

        assert "Site" in report.ph_violations
        refit = report.stratified["Site"]
        assert refit.fit.strata_levels == ("A", "B")
        assert refit.fit.names == SMOKING_TERMS
        assert refit.zph.names == SMOKING_TERMS
        assert "Stratified on Site" in report.summary()

    def test_exposure_is_never_stratified(self, crossing_site):
        df = crossing_site.assign(
            Smoking=pd.Categorical(
                np.where(crossing_site["Site"] == "A", "Never", ">=10 PY"),
                categories=["Never", ">=10 PY"],
            )
        )
        with pytest.warns(RuntimeWarning, match="exposure kept in the model"):
            report = complete_case_analysis(df, covariates=[])
        assert report.stratified == {}
        assert violating_covariates(report.zph, ["Smoking"]) == ("Smoking",)


class TestImputedAnalysis:

    @pytest.fixture
    def incomplete(self, cohort, rng):
        cohort = cohort.copy()
        cohort.loc[rng.choice(cohort.index, 12, replace=False), "Site"] = np.nan
        cohort.loc[rng.choice(cohort.index, 10, replace=False), "Sex"] = np.nan
        return cohort

    @pytest.fixture
    def config(self):
        return AnalysisConfig(imputation=ImputationConfig(m=3, maxit=2, seed=1))

    def test_pooled_report(self, incomplete, config):
        report = imputed_analysis(incomplete, config=config)

        assert report.imputed.m == 3
        assert set(report.imputed.visit_sequence) == {"Sex", "Site"}
        assert len(report.fits) == 3
        assert report.pooled.m == 3
        assert report.pooled.names[:2] == SMOKING_TERMS
        assert np.all(report.pooled.standard_errors > 0)
        assert np.all((report.pooled.fmi >= 0) & (report.pooled.fmi <= 1))

    def test_imputation_model_uses_cumulative_hazard(self, incomplete, config):
        report = imputed_analysis(incomplete, config=config)
        completed = report.imputed.complete(0)
        assert CUMHAZ_COLUMN in completed.columns
        assert "event" in completed.columns
        assert "time" not in completed.columns

    def test_auxiliary_columns(self, incomplete, config):
        report = imputed_analysis(incomplete, auxiliary=["Grade"], config=config)
        assert "Grade" in report.imputed.complete(0).columns
        assert report.pooled.names[:2] == SMOKING_TERMS

    def test_reproducible(self, incomplete, config):
        a = imputed_analysis(incomplete, config=config)
        b = imputed_analysis(incomplete, config=config)
        np.testing.assert_allclose(a.pooled.coefficients, b.pooled.coefficients)

    def test_summary(self, incomplete, config):
        text = imputed_analysis(incomplete, config=config).summary()
        assert "Chained Equations" in text
        assert "Rubin's rules" in text

    def test_single_imputation_rejected(self, incomplete):
        config = AnalysisConfig(imputation=ImputationConfig(m=1))
        with pytest.raises(InsufficientImputationsError, match="M < 2"):
            imputed_analysis(incomplete, config=config)

    def test_unknown_auxiliary(self, incomplete, config):
        with pytest.raises(ValidationError, match="unknown columns"):
            imputed_analysis(incomplete, auxiliary=["HPV"], config=config)
