"""
Missingness pattern analysis for the cohort table.

Identifies which combinations of variables are missing together, ahead of
choosing between the complete-case and the imputed analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from oncosurv.core.exceptions import ValidationError


@dataclass
class MissingPattern:
    """One distinct missingness pattern."""
    pattern_id: int
    observed: tuple
    missing: tuple
    n_cases: int
    percent_cases: float
    rows: pd.Index

    @property
    def n_missing(self) -> int:
        return len(self.missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def __repr__(self) -> str:
        return (f"MissingPattern(id={self.pattern_id}, n_cases={self.n_cases}, "
                f"missing={list(self.missing)})")


@dataclass
class PatternSummary:
    """All missingness patterns of a table."""
    patterns: List[MissingPattern]
    columns: tuple
    total_cases: int
    overall_missing_rate: float
    complete_cases: int
    column_missing_rates: Dict[str, float]

    @property
    def n_patterns(self) -> int:
        return len(self.patterns)

    @property
    def complete_cases_percent(self) -> float:
        return 100.0 * self.complete_cases / self.total_cases if self.total_cases else 0.0

    @property
    def incomplete_columns(self) -> tuple:
        return tuple(c for c in self.columns if self.column_missing_rates[c] > 0)

    def to_frame(self) -> pd.DataFrame:
        """Pattern matrix like R's md.pattern(): 1 observed, 0 missing."""
        rows = []
        for p in self.patterns:
            row = {c: int(c in p.observed) for c in self.columns}
            row["n_cases"] = p.n_cases
            row["n_missing"] = p.n_missing
            rows.append(row)
        return pd.DataFrame(rows, index=pd.Index(
            [p.pattern_id for p in self.patterns], name="pattern"))

    def __str__(self) -> str:
        lines = [
            "Missingness Pattern Summary",
            "=" * 40,
            f"Total patterns: {self.n_patterns}",
            f"Total cases: {self.total_cases}",
            f"Overall missing rate: {self.overall_missing_rate:.1%}",
            f"Complete cases: {self.complete_cases} ({self.complete_cases_percent:.1f}%)",
        ]
        for column in self.incomplete_columns:
            lines.append(f"  {column}: {self.column_missing_rates[column]:.1%} missing")
        return "\n".join(lines)


def missing_patterns(
    df: pd.DataFrame,
    columns: Sequence[str] | None = None,
) -> PatternSummary:
    """
    Identify the distinct missingness patterns of a table.

    Each row is keyed by its observed-indicator string ("1101") and the
    patterns are sorted by frequency (most common first).

    Parameters
    ----------
    df : DataFrame
        Table with missing values (NaN/None/NaT), any column dtypes.
    columns : sequence of str, optional
        Restrict the analysis to these columns.

    Returns
    -------
    PatternSummary
    """
    columns = tuple(df.columns if columns is None else columns)
    unknown = [c for c in columns if c not in df.columns]
    if unknown:
        raise ValidationError(f"unknown columns: {unknown}")
    if not columns:
        raise ValidationError("at least one column is required")
    if len(df) < 1:
        raise ValidationError("table must have at least one row")

    observed = df[list(columns)].notna().to_numpy()
    n_obs = observed.shape[0]

    keys = np.array(["".join(row) for row in np.where(observed, "1", "0")])
    unique_ids, first_rows, counts = np.unique(
        keys, return_index=True, return_counts=True
    )

    patterns = []
    for key, first, count in zip(unique_ids, first_rows, counts):
        vector = observed[first]
        patterns.append(MissingPattern(
            pattern_id=0,
            observed=tuple(c for c, o in zip(columns, vector) if o),
            missing=tuple(c for c, o in zip(columns, vector) if not o),
            n_cases=int(count),
            percent_cases=100.0 * count / n_obs,
            rows=df.index[keys == key],
        ))

    patterns.sort(key=lambda p: (-p.n_cases, p.n_missing))
    for i, pattern in enumerate(patterns):
        pattern.pattern_id = i + 1

    complete = sum(p.n_cases for p in patterns if p.is_complete)
    rates = {c: float(1.0 - observed[:, j].mean()) for j, c in enumerate(columns)}

    return PatternSummary(
        patterns=patterns,
        columns=columns,
        total_cases=n_obs,
        overall_missing_rate=float(1.0 - observed.mean()),
        complete_cases=complete,
        column_missing_rates=rates,
    )
