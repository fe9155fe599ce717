"""
Dataset preparation for the survival analyses.

Public API:
    prepare_cohort(df, schema, config) -> DataFrame
    complete_cases(df, columns) -> DataFrame
    encode_covariates(df, covariates, reference) -> EncodedCovariates
    crosstab(df, by, variables) -> CrosstabResult
    missing_patterns(df) -> PatternSummary
"""

from oncosurv.cohort.describe import CrosstabResult, crosstab
from oncosurv.cohort.encoding import EncodedCovariates, encode_covariates
from oncosurv.cohort.patterns import MissingPattern, PatternSummary, missing_patterns
from oncosurv.cohort.recode import (
    bucket,
    bucket_age,
    bucket_bmi,
    collapse_stage,
    complete_cases,
    derive_event,
    prepare_cohort,
    recode_codes,
    recode_exposure,
)

__all__ = [
    "prepare_cohort",
    "complete_cases",
    "recode_codes",
    "recode_exposure",
    "bucket",
    "bucket_age",
    "bucket_bmi",
    "collapse_stage",
    "derive_event",
    "encode_covariates",
    "EncodedCovariates",
    "crosstab",
    "CrosstabResult",
    "missing_patterns",
    "MissingPattern",
    "PatternSummary",
]
