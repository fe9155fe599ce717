"""
Dataset preparation: recoding of the raw cohort table.

Every recode returns a new pandas object; the input frame is never
modified. Out-of-domain codes become missing values (or raise
DataDomainError with strict=True); they never fall back to a default level.
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from oncosurv.config import CohortSchema, RecodeConfig
from oncosurv.core.exceptions import DataDomainError, ValidationError


def _out_of_domain(series: pd.Series, allowed) -> pd.Series:
    return series.notna() & ~series.isin(list(allowed))


def recode_codes(
    codes: pd.Series,
    mapping: Mapping,
    *,
    name: str | None = None,
    ordered: bool = True,
    strict: bool = False,
) -> pd.Series:
    """Map raw codes to an ordered categorical.

    Parameters
    ----------
    codes : Series
        Raw codes (e.g. 0/1/2).
    mapping : Mapping
        code -> label; label order follows the mapping order.
    strict : bool
        Raise DataDomainError on unknown codes instead of mapping them to
        missing.
    """
    codes = pd.Series(codes)
    name = name or codes.name
    # Registry exports sometimes store integer codes as floats (1.0)
    lookup = dict(mapping)
    lookup.update({float(k): v for k, v in mapping.items()
                   if isinstance(k, (int, np.integer))})

    bad = _out_of_domain(codes, lookup.keys())
    if bad.any() and strict:
        values = tuple(pd.unique(codes[bad]).tolist())
        raise DataDomainError(
            f"{name}: codes {values} are outside {tuple(mapping.keys())}",
            column=name,
            values=values,
        )

    labels = list(dict.fromkeys(mapping.values()))
    mapped = codes.map(lookup)
    return pd.Series(
        pd.Categorical(mapped, categories=labels, ordered=ordered),
        index=codes.index,
        name=name,
    )


def recode_exposure(
    codes: pd.Series,
    mapping: Mapping | None = None,
    *,
    strict: bool = False,
) -> pd.Series:
    """Smoking history {0, 1, 2} -> {Never, <10 PY, >=10 PY}."""
    mapping = mapping if mapping is not None else RecodeConfig().smoking_codes
    return recode_codes(codes, mapping, strict=strict)


def bucket(
    values: pd.Series,
    breakpoints: Sequence[float],
    labels: Sequence[str],
) -> pd.Series:
    """Left-closed fixed-breakpoint bucketing into an ordered categorical.

    breakpoints (b1, ..., bk) give k+1 intervals
    (-inf, b1), [b1, b2), ..., [bk, inf). Missing stays missing.
    """
    if len(labels) != len(breakpoints) + 1:
        raise ValidationError(
            f"need {len(breakpoints) + 1} labels for {len(breakpoints)} "
            f"breakpoints, got {len(labels)}"
        )
    if np.any(np.diff(breakpoints) <= 0):
        raise ValidationError(
            f"breakpoints must be strictly increasing, got {tuple(breakpoints)}"
        )

    values = pd.to_numeric(pd.Series(values), errors="coerce")
    edges = [-np.inf, *breakpoints, np.inf]
    return pd.cut(values, bins=edges, labels=list(labels), right=False,
                  ordered=True)


def bucket_age(age: pd.Series, config: RecodeConfig | None = None) -> pd.Series:
    config = config or RecodeConfig()
    return bucket(age, config.age_breakpoints, config.age_labels).rename("AgeGroup")


def bucket_bmi(bmi: pd.Series, config: RecodeConfig | None = None) -> pd.Series:
    config = config or RecodeConfig()
    return bucket(bmi, config.bmi_breakpoints, config.bmi_labels).rename("BMICategory")


def collapse_stage(
    stage: pd.Series,
    mapping: Mapping | None = None,
) -> pd.Series:
    """Collapse sub-stages (IVA/IVB -> IV) into an unordered categorical."""
    mapping = mapping if mapping is not None else RecodeConfig().stage_collapse
    stage = pd.Series(stage)
    cleaned = stage.where(stage.isna(), stage.astype(str).str.strip().str.upper())
    collapsed = cleaned.replace(dict(mapping))
    return collapsed.astype("category").rename(stage.name)


def derive_event(
    vital_status: pd.Series,
    dead_values: Sequence = RecodeConfig.dead_values,
    alive_values: Sequence = RecodeConfig.alive_values,
) -> pd.Series:
    """0/1 event indicator (death from any cause) from a vital-status column.

    Raises
    ------
    DataDomainError
        On missing or unrecognised status values.
    """
    status = pd.Series(vital_status)
    if status.isna().any():
        raise DataDomainError(
            f"{status.name}: {int(status.isna().sum())} missing vital status values",
            column=status.name,
        )
    known = list(dead_values) + list(alive_values)
    bad = ~status.isin(known)
    if bad.any():
        values = tuple(pd.unique(status[bad]).tolist())
        raise DataDomainError(
            f"{status.name}: unrecognised vital status {values}",
            column=status.name,
            values=values,
        )
    return status.isin(list(dead_values)).astype(np.int64).rename("event")


def prepare_cohort(
    df: pd.DataFrame,
    schema: CohortSchema | None = None,
    config: RecodeConfig | None = None,
) -> pd.DataFrame:
    """Select analysis columns and apply every recode.

    Output columns: time, event, Smoking, [CurrentSmoker], Age, AgeGroup,
    Sex, Site, [Grade], [Stage], [BMI, BMICategory], plus schema.extra.
    No rows are dropped; see complete_cases().

    Raises
    ------
    DataDomainError
        Missing required columns, negative or missing follow-up time,
        unknown vital status, or (with config.strict) unknown codes.
    """
    schema = schema or CohortSchema()
    config = config or RecodeConfig()

    required = [schema.time, schema.smoking, schema.age, schema.sex, schema.site]
    required.append(schema.vital_status or schema.event)
    missing_cols = [c for c in required if c not in df.columns]
    if missing_cols:
        raise DataDomainError(
            f"required columns missing from the table: {missing_cols}",
            values=tuple(missing_cols),
        )

    out = pd.DataFrame(index=df.index)

    time = pd.to_numeric(df[schema.time], errors="coerce")
    if time.isna().any() or (time < 0).any():
        raise DataDomainError(
            f"{schema.time}: follow-up time must be present and non-negative "
            f"({int(time.isna().sum())} missing, {int((time < 0).sum())} negative)",
            column=schema.time,
        )
    out["time"] = time.astype(np.float64)

    if schema.vital_status is not None:
        out["event"] = derive_event(
            df[schema.vital_status], config.dead_values, config.alive_values
        )
    else:
        out["event"] = derive_event(df[schema.event], (1, "1"), (0, "0"))

    out["Smoking"] = recode_exposure(
        df[schema.smoking], config.smoking_codes, strict=config.strict
    ).values
    if schema.current_smoker is not None and schema.current_smoker in df.columns:
        out["CurrentSmoker"] = recode_codes(
            df[schema.current_smoker], config.current_smoker_codes,
            ordered=False, strict=config.strict,
        ).values

    out["Age"] = pd.to_numeric(df[schema.age], errors="coerce")
    out["AgeGroup"] = bucket_age(out["Age"], config).values
    out["Sex"] = df[schema.sex].astype("category")
    out["Site"] = df[schema.site].astype("category")

    if schema.grade is not None and schema.grade in df.columns:
        out["Grade"] = df[schema.grade].astype("category")
    if schema.stage is not None and schema.stage in df.columns:
        out["Stage"] = collapse_stage(df[schema.stage], config.stage_collapse).values
    if schema.bmi is not None and schema.bmi in df.columns:
        out["BMI"] = pd.to_numeric(df[schema.bmi], errors="coerce")
        out["BMICategory"] = bucket_bmi(out["BMI"], config).values

    for column in schema.extra:
        out[column] = df[column]

    return out


def complete_cases(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Rows with every listed analysis variable present (complete-case set)."""
    unknown = [c for c in columns if c not in df.columns]
    if unknown:
        raise ValidationError(f"unknown columns: {unknown}")
    return df.loc[df[list(columns)].notna().all(axis=1)].copy()
