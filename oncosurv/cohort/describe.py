"""
Descriptive tables by exposure group (Table 1).

Counts and column percentages of each categorical variable across the
levels of the exposure, with a Pearson chi-square test of independence.
Missing values are tabulated as their own row so that the denominators
match the cohort size.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats

from oncosurv.core.exceptions import ValidationError

MISSING_LABEL = "Missing"


@dataclass(frozen=True)
class CrosstabResult:
    """Per-variable count tables and independence tests.

    Attributes:
        by: exposure column
        counts: variable -> (levels x exposure) count table
        percents: variable -> column percentages of counts
        tests: one row per variable (chisq, df, p_value)
        warnings: sparse-table notes
    """
    by: str
    counts: dict[str, pd.DataFrame]
    percents: dict[str, pd.DataFrame]
    tests: pd.DataFrame
    warnings: tuple[str, ...] = ()

    def to_frame(self) -> pd.DataFrame:
        """Long table: variable, level, then "n (%)" per exposure level."""
        blocks = []
        for variable, counts in self.counts.items():
            pct = self.percents[variable]
            cells = counts.astype(int).astype(str) + " (" + pct.round(1).astype(str) + "%)"
            cells.columns = [str(c) for c in cells.columns]
            cells.insert(0, "level", [str(i) for i in counts.index])
            cells.insert(0, "variable", variable)
            blocks.append(cells.reset_index(drop=True))
        return pd.concat(blocks, ignore_index=True) if blocks else pd.DataFrame()

    def summary(self) -> str:
        lines = [f"Characteristics by {self.by}", "=" * 60]
        for variable, counts in self.counts.items():
            row = self.tests.loc[variable]
            p_text = "NA" if np.isnan(row["p_value"]) else f"{row['p_value']:.4g}"
            lines.append(f"{variable}  (chisq={row['chisq']:.3f}, df={int(row['df'])}, p={p_text})")
            lines.append(counts.to_string())
            lines.append("")
        for w in self.warnings:
            lines.append(f"Warning: {w}")
        return "\n".join(lines)


def _tabulate(df: pd.DataFrame, variable: str, by: str) -> pd.DataFrame:
    rows = df[variable]
    if isinstance(rows.dtype, pd.CategoricalDtype):
        rows = rows.cat.remove_unused_categories()
    if rows.isna().any():
        rows = rows.astype(object).where(rows.notna(), MISSING_LABEL)
    return pd.crosstab(rows, df[by], dropna=False)


def crosstab(
    df: pd.DataFrame,
    by: str,
    variables: Sequence[str],
) -> CrosstabResult:
    """Counts, column percentages and chi-square tests by exposure.

    Parameters
    ----------
    df : DataFrame
        Prepared cohort.
    by : str
        Exposure column (columns of each table).
    variables : sequence of str
        Categorical variables to tabulate (rows of each table).

    Returns
    -------
    CrosstabResult

    Notes
    -----
    The test follows R's chisq.test(): Yates' continuity correction for
    2x2 tables, none otherwise. The "Missing" row is excluded from the
    test. A variable with fewer than two observed levels gets NaN.
    """
    unknown = [c for c in (by, *variables) if c not in df.columns]
    if unknown:
        raise ValidationError(f"unknown columns: {unknown}")
    if df[by].isna().any():
        raise ValidationError(
            f"{by}: exposure has {int(df[by].isna().sum())} missing values"
        )

    counts, percents, tests, notes = {}, {}, [], []
    for variable in variables:
        table = _tabulate(df, variable, by)
        counts[variable] = table
        totals = table.sum(axis=0).replace(0, np.nan)
        percents[variable] = (100.0 * table / totals).fillna(0.0)

        observed = table.drop(index=MISSING_LABEL, errors="ignore")
        observed = observed.loc[observed.sum(axis=1) > 0, observed.sum(axis=0) > 0]
        if observed.shape[0] < 2 or observed.shape[1] < 2:
            tests.append((variable, np.nan, 0, np.nan))
            continue

        chisq, p_value, dof, expected = stats.chi2_contingency(observed.to_numpy())
        tests.append((variable, float(chisq), int(dof), float(p_value)))
        if np.mean(expected < 5) > 0.2:
            notes.append(
                f"{variable}: more than 20% of expected counts are below 5; "
                f"the chi-square approximation may be poor"
            )

    test_frame = pd.DataFrame(
        tests, columns=["variable", "chisq", "df", "p_value"]
    ).set_index("variable")

    return CrosstabResult(
        by=by,
        counts=counts,
        percents=percents,
        tests=test_frame,
        warnings=tuple(notes),
    )
