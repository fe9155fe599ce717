"""
Tests for dataset preparation: recoding, bucketing and event derivation.
"""

import numpy as np
import pandas as pd
import pytest

from oncosurv.cohort import (
    bucket,
    bucket_age,
    bucket_bmi,
    collapse_stage,
    complete_cases,
    derive_event,
    prepare_cohort,
    recode_exposure,
)
from oncosurv.config import CohortSchema, RecodeConfig
from oncosurv.core.exceptions import DataDomainError, ValidationError


class TestRecodeExposure:

    def test_codes_to_ordered_levels(self):
        result = recode_exposure(pd.Series([0, 1, 2, 1], name="Smoking"))
        assert list(result.astype(str)) == ["Never", "<10 PY", ">=10 PY", "<10 PY"]
        assert result.cat.ordered
        assert list(result.cat.categories) == ["Never", "<10 PY", ">=10 PY"]

    def test_float_codes_accepted(self):
        result = recode_exposure(pd.Series([0.0, 2.0]))
        assert list(result.astype(str)) == ["Never", ">=10 PY"]

    def test_out_of_domain_becomes_missing(self):
        result = recode_exposure(pd.Series([0, 7, 2, -1], name="Smoking"))
        assert result.isna().tolist() == [False, True, False, True]

    def test_out_of_domain_never_defaults(self):
        result = recode_exposure(pd.Series([9, 9, 9]))
        assert result.isna().all()

    def test_strict_raises_with_codes(self):
        with pytest.raises(DataDomainError, match="Smoking") as exc_info:
            recode_exposure(pd.Series([0, 7, 7], name="Smoking"), strict=True)
        assert exc_info.value.values == (7,)
        assert exc_info.value.column == "Smoking"

    def test_missing_stays_missing(self):
        result = recode_exposure(pd.Series([0, np.nan, 1]))
        assert result.isna().tolist() == [False, True, False]


class TestBucketing:

    def test_age_left_closed(self):
        result = bucket_age(pd.Series([49.9, 50.0, 59.99, 60.0, 70.0, 85.0]))
        assert list(result.astype(str)) == ["<50", "50-59", "50-59", "60-69", ">=70", ">=70"]
        assert result.name == "AgeGroup"

    def test_bmi_who_classes(self):
        result = bucket_bmi(pd.Series([17.0, 18.5, 24.99, 25.0, 30.0]))
        assert list(result.astype(str)) == [
            "Underweight", "Normal", "Normal", "Overweight", "Obese",
        ]

    def test_missing_stays_missing(self):
        result = bucket_bmi(pd.Series([np.nan, 22.0]))
        assert result.isna().tolist() == [True, False]

    def test_custom_breakpoints(self):
        config = RecodeConfig(age_breakpoints=(65.0,), age_labels=("<65", ">=65"))
        result = bucket_age(pd.Series([64.0, 65.0]), config)
        assert list(result.astype(str)) == ["<65", ">=65"]

    def test_label_count_checked(self):
        with pytest.raises(ValidationError, match="need 3 labels"):
            bucket(pd.Series([1.0]), (1.0, 2.0), ("a", "b"))

    def test_breakpoints_must_increase(self):
        with pytest.raises(ValidationError, match="strictly increasing"):
            bucket(pd.Series([1.0]), (2.0, 1.0), ("a", "b", "c"))


class TestCollapseStage:

    def test_substages_collapse(self):
        result = collapse_stage(pd.Series(["IVA", "IVB", "ivc ", "IIIA", "II", None]))
        assert list(result.iloc[:5].astype(str)) == ["IV", "IV", "IV", "III", "II"]
        assert pd.isna(result.iloc[5])


class TestDeriveEvent:

    def test_labels(self):
        result = derive_event(pd.Series(["Dead", "Alive", "dead", "Deceased"]))
        assert result.tolist() == [1, 0, 1, 1]

    def test_unknown_status_raises(self):
        with pytest.raises(DataDomainError, match="unrecognised"):
            derive_event(pd.Series(["Dead", "Lost"]))

    def test_missing_status_raises(self):
        with pytest.raises(DataDomainError, match="missing"):
            derive_event(pd.Series(["Dead", None]))


class TestPrepareCohort:

    def test_columns_and_types(self, raw_cohort):
        df = prepare_cohort(raw_cohort)
        for column in ("time", "event", "Smoking", "AgeGroup", "Sex", "Site",
                       "Grade", "Stage", "BMI", "BMICategory", "CurrentSmoker"):
            assert column in df.columns
        assert df["time"].dtype == np.float64
        assert set(df["event"].unique()) <= {0, 1}
        assert isinstance(df["Smoking"].dtype, pd.CategoricalDtype)
        assert set(df["Stage"].dropna().astype(str)) <= {"I", "II", "III", "IV"}

    def test_no_rows_dropped_and_input_untouched(self, raw_cohort):
        before = raw_cohort.copy()
        df = prepare_cohort(raw_cohort)
        assert len(df) == len(raw_cohort)
        pd.testing.assert_frame_equal(raw_cohort, before)

    def test_vital_status_column(self, raw_cohort):
        raw = raw_cohort.drop(columns="Cens")
        raw["Status"] = np.where(raw_cohort["Cens"] == 1, "Dead", "Alive")
        df = prepare_cohort(raw, CohortSchema(vital_status="Status"))
        assert df["event"].tolist() == raw_cohort["Cens"].tolist()

    def test_negative_time_rejected(self, raw_cohort):
        raw = raw_cohort.copy()
        raw.loc[0, "Time"] = -1.0
        with pytest.raises(DataDomainError, match="non-negative"):
            prepare_cohort(raw)

    def test_missing_required_column(self, raw_cohort):
        with pytest.raises(DataDomainError, match="Sex"):
            prepare_cohort(raw_cohort.drop(columns="Sex"))

    def test_strict_recode(self, raw_cohort):
        raw = raw_cohort.copy()
        raw.loc[3, "Smoking"] = 5
        df = prepare_cohort(raw)
        assert pd.isna(df.loc[3, "Smoking"])
        with pytest.raises(DataDomainError):
            prepare_cohort(raw, config=RecodeConfig(strict=True))

    def test_optional_columns_skipped(self, raw_cohort):
        schema = CohortSchema(grade=None, stage=None, bmi=None, current_smoker=None)
        df = prepare_cohort(raw_cohort, schema)
        assert "Stage" not in df.columns
        assert "BMICategory" not in df.columns


class TestCompleteCases:

    def test_drops_only_incomplete_rows(self):
        df = pd.DataFrame({"a": [1.0, np.nan, 3.0], "b": ["x", "y", None]})
        assert complete_cases(df, ["a"]).index.tolist() == [0, 2]
        assert complete_cases(df, ["a", "b"]).index.tolist() == [0]

    def test_unknown_column(self):
        with pytest.raises(ValidationError, match="unknown"):
            complete_cases(pd.DataFrame({"a": [1]}), ["b"])
