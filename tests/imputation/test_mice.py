"""
Tests for chained-equations imputation and per-imputation model fitting.
"""

import numpy as np
import pandas as pd
import pytest
from joblib import parallel_backend
from numpy.testing import assert_allclose

from oncosurv.core.exceptions import (
    ImputationError,
    InsufficientImputationsError,
    ValidationError,
)
from oncosurv.imputation import ImputationDesign, MICESolution, fit_imputed, mice


@pytest.fixture
def incomplete(rng):
    n = 120
    sex = rng.choice(["Male", "Female"], size=n).astype(object)
    site = rng.choice(["Oral cavity", "Oropharynx", "Larynx"], size=n).astype(object)
    age = rng.normal(62.0, 9.0, size=n).round(1)
    bmi = rng.normal(25.0, 4.0, size=n).round(1)
    event = rng.integers(0, 2, size=n).astype(float)

    age[rng.choice(n, 15, replace=False)] = np.nan
    bmi[rng.choice(n, 10, replace=False)] = np.nan
    sex[rng.choice(n, 10, replace=False)] = None
    site[rng.choice(n, 12, replace=False)] = None
    return pd.DataFrame({
        "Age": age, "BMI": bmi, "Sex": sex, "Site": site, "event": event,
    })


class TestImputationDesign:

    def test_default_methods(self, incomplete):
        design = ImputationDesign.for_mice(incomplete)
        assert design.visit_sequence == ("Age", "BMI", "Sex", "Site")
        assert design.methods == {
            "Age": "pmm", "BMI": "pmm", "Sex": "logreg", "Site": "polyreg",
        }
        assert design.n == 120
        assert isinstance(design.data["Sex"].dtype, pd.CategoricalDtype)

    def test_default_predictors_are_other_columns(self, incomplete):
        design = ImputationDesign.for_mice(incomplete)
        assert design.predictors["Age"] == ("BMI", "Sex", "Site", "event")

    def test_method_type_mismatch(self, incomplete):
        with pytest.raises(ValidationError, match="needs a categorical column"):
            ImputationDesign.for_mice(incomplete, methods={"Age": "logreg"})
        with pytest.raises(ValidationError, match="needs a numeric column"):
            ImputationDesign.for_mice(incomplete, methods={"Sex": "pmm"})

    def test_logreg_needs_binary(self, incomplete):
        with pytest.raises(ValidationError, match="use polyreg"):
            ImputationDesign.for_mice(incomplete, methods={"Site": "logreg"})

    def test_unknown_method(self, incomplete):
        with pytest.raises(ValidationError, match="unknown method"):
            ImputationDesign.for_mice(incomplete, methods={"Age": "cart"})

    def test_invalid_predictors(self, incomplete):
        with pytest.raises(ValidationError, match="invalid predictors"):
            ImputationDesign.for_mice(incomplete, predictors={"Age": ["Age", "Stage"]})

    def test_too_few_observed(self, incomplete):
        incomplete["Grade"] = [None] * 119 + ["G2"]
        with pytest.raises(ValidationError, match="at least 2"):
            ImputationDesign.for_mice(incomplete)

    def test_not_a_frame(self):
        with pytest.raises(ValidationError, match="DataFrame"):
            ImputationDesign.for_mice(np.zeros((3, 2)))


class TestMice:

    def test_completes_every_dataset(self, incomplete):
        imp = mice(incomplete, m=3, maxit=2, seed=11)
        assert isinstance(imp, MICESolution)
        assert len(imp) == 3
        for completed in imp:
            assert not completed.isna().any().any()
            assert completed.shape == incomplete.shape

    def test_observed_values_untouched(self, incomplete):
        imp = mice(incomplete, m=2, maxit=2, seed=11)
        observed = incomplete.notna()
        for completed in imp:
            for column in ("Age", "BMI"):
                mask = observed[column]
                assert_allclose(completed.loc[mask, column], incomplete.loc[mask, column])
            for column in ("Sex", "Site"):
                mask = observed[column]
                assert (completed.loc[mask, column].astype(str)
                        == incomplete.loc[mask, column]).all()

    def test_pmm_draws_observed_values(self, incomplete):
        imp = mice(incomplete, m=2, maxit=3, seed=5)
        donors = set(incomplete["Age"].dropna())
        for completed in imp:
            assert set(completed.loc[imp.where["Age"], "Age"]) <= donors

    def test_categorical_draws_are_levels(self, incomplete):
        imp = mice(incomplete, m=2, maxit=2, seed=5)
        for completed in imp:
            assert isinstance(completed["Site"].dtype, pd.CategoricalDtype)
            assert set(completed["Site"]) <= {"Oral cavity", "Oropharynx", "Larynx"}
            assert set(completed["Sex"]) <= {"Male", "Female"}

    def test_norm_method(self, incomplete):
        imp = mice(incomplete, m=2, maxit=2, seed=5, methods={"BMI": "norm"})
        assert imp.methods["BMI"] == "norm"
        for completed in imp:
            assert np.all(np.isfinite(completed["BMI"]))

    def test_seed_reproduces(self, incomplete):
        a = mice(incomplete, m=2, maxit=2, seed=2024)
        b = mice(incomplete, m=2, maxit=2, seed=2024)
        assert a.seed == 2024
        for x, y in zip(a, b):
            pd.testing.assert_frame_equal(x, y)

    def test_chains_differ(self, incomplete):
        imp = mice(incomplete, m=2, maxit=2, seed=3)
        first, second = imp.imputed_values("Age")[1], imp.imputed_values("Age")[2]
        assert not np.array_equal(first.to_numpy(), second.to_numpy())

    def test_seed_recorded_when_drawn(self, incomplete):
        imp = mice(incomplete, m=2, maxit=1)
        again = mice(incomplete, m=2, maxit=1, seed=imp.seed)
        pd.testing.assert_frame_equal(imp.complete(0), again.complete(0))

    def test_parallel_matches_serial(self, incomplete):
        serial = mice(incomplete, m=3, maxit=2, seed=7, n_jobs=1)
        with parallel_backend("threading"):
            parallel = mice(incomplete, m=3, maxit=2, seed=7, n_jobs=2)
        for x, y in zip(serial, parallel):
            pd.testing.assert_frame_equal(x, y)

    def test_chain_means(self, incomplete):
        imp = mice(incomplete, m=3, maxit=4, seed=1)
        assert set(imp.chain_means) == {"Age", "BMI", "Sex", "Site"}
        assert imp.chain_means["Age"].shape == (3, 4)

    def test_no_missing_values(self, incomplete):
        complete = incomplete.dropna().reset_index(drop=True)
        imp = mice(complete, m=2, seed=1)
        assert imp.visit_sequence == ()
        assert any("no missing values" in w for w in imp.warnings)
        assert_allclose(imp.complete(0)["Age"], complete["Age"])

    def test_restricted_predictors(self, incomplete):
        imp = mice(incomplete, m=2, maxit=1, seed=1, predictors={"Age": ["event"]})
        assert not imp.complete(1)["Age"].isna().any()


class TestMiceSolution:

    def test_views(self, incomplete):
        imp = mice(incomplete, m=2, maxit=1, seed=9)
        long = imp.long()
        assert len(long) == 2 * len(incomplete)
        assert sorted(long[".imp"].unique()) == [1, 2]

        values = imp.imputed_values("Age")
        assert values.shape == (int(incomplete["Age"].isna().sum()), 2)
        with pytest.raises(KeyError):
            imp.imputed_values("event")
        with pytest.raises(IndexError):
            imp.complete(2)

    def test_complete_returns_copy(self, incomplete):
        imp = mice(incomplete, m=2, maxit=1, seed=9)
        copy = imp.complete(0)
        copy["Age"] = 0.0
        assert not (imp.complete(0)["Age"] == 0.0).all()

    def test_summary(self, incomplete):
        imp = mice(incomplete, m=2, maxit=1, seed=9)
        text = imp.summary()
        assert "Chained Equations" in text
        assert "polyreg" in text
        assert "MICESolution(m=2" in repr(imp)


class TestMiceValidation:

    def test_single_imputation(self, incomplete):
        with pytest.raises(InsufficientImputationsError, match="M < 2"):
            mice(incomplete, m=1)

    def test_maxit(self, incomplete):
        with pytest.raises(ValidationError, match="maxit"):
            mice(incomplete, maxit=0)

    def test_donors(self, incomplete):
        with pytest.raises(ValidationError, match="donors"):
            mice(incomplete, donors=0)


class TestFitImputed:

    @pytest.fixture
    def datasets(self):
        return [pd.DataFrame({"x": [float(i), 1.0, 2.0]}) for i in range(3)]

    def test_fits_every_dataset(self, datasets):
        fits = fit_imputed(datasets, lambda df: df["x"].sum())
        assert fits.fits == (3.0, 4.0, 5.0)
        assert fits.indices == (0, 1, 2)
        assert fits.excluded == {}
        assert len(fits) == 3

    def test_abort_names_the_imputation(self, datasets):
        def fit(df):
            if df["x"].iloc[0] == 1.0:
                raise ValidationError("singular design")
            return df["x"].sum()

        with pytest.raises(ImputationError, match="imputation 2 of 3") as exc_info:
            fit_imputed(datasets, fit)
        assert exc_info.value.imputation == 1
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_exclude_drops_with_warning(self, datasets):
        def fit(df):
            if df["x"].iloc[0] == 1.0:
                raise ValidationError("singular design")
            return df["x"].sum()

        with pytest.warns(RuntimeWarning, match="imputation 2 of 3 excluded"):
            fits = fit_imputed(datasets, fit, on_failure="exclude")
        assert fits.indices == (0, 2)
        assert fits.excluded == {1: "singular design"}
        assert fits.m == 3

    def test_exclude_needs_two_survivors(self, datasets):
        def fit(df):
            if df["x"].iloc[0] > 0:
                raise ValidationError("no events")
            return 0.0

        with pytest.warns(RuntimeWarning):
            with pytest.raises(InsufficientImputationsError, match="only 1 of 3"):
                fit_imputed(datasets, fit, on_failure="exclude")

    def test_unexpected_errors_propagate(self, datasets):
        def fit(df):
            raise KeyError("time")

        with pytest.raises(KeyError):
            fit_imputed(datasets, fit)

    def test_invalid_policy(self, datasets):
        with pytest.raises(ValidationError, match="on_failure"):
            fit_imputed(datasets, lambda df: 0, on_failure="ignore")

    def test_single_dataset(self, datasets):
        with pytest.raises(InsufficientImputationsError):
            fit_imputed(datasets[:1], lambda df: 0)
