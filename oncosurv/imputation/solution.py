"""
Solution types for multiple imputation.

MICESolution wraps the ensemble of completed datasets; PooledSolution the
Rubin's-rules combination of per-imputation model fits.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from oncosurv.core.result import Result
from oncosurv.imputation._common import MICEParams, PooledParams


class MICESolution:
    """Ensemble of M completed datasets.

    Iterating yields the completed DataFrames in imputation order.
    """

    def __init__(self, _result: Result[MICEParams]) -> None:
        self._result = _result

    @property
    def params(self) -> MICEParams:
        return self._result.params

    @property
    def datasets(self) -> tuple[pd.DataFrame, ...]:
        return self._result.params.datasets

    @property
    def m(self) -> int:
        return self._result.params.m

    @property
    def maxit(self) -> int:
        return self._result.params.maxit

    @property
    def seed(self) -> int:
        """Root seed; pass it back to mice() to reproduce the ensemble."""
        return self._result.params.seed

    @property
    def where(self) -> pd.DataFrame:
        return self._result.params.where

    @property
    def methods(self) -> dict[str, str]:
        return self._result.params.methods

    @property
    def visit_sequence(self) -> tuple[str, ...]:
        return self._result.params.visit_sequence

    @property
    def chain_means(self) -> dict[str, np.ndarray]:
        return self._result.params.chain_means

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def timing(self):
        return self._result.timing

    def complete(self, i: int) -> pd.DataFrame:
        """The i-th completed dataset (zero-based), as a copy."""
        if not 0 <= i < self.m:
            raise IndexError(f"imputation index {i} out of range for m={self.m}")
        return self.datasets[i].copy()

    def long(self) -> pd.DataFrame:
        """All completed datasets stacked, with an '.imp' column (1..M)."""
        frames = [
            df.assign(**{".imp": i + 1}) for i, df in enumerate(self.datasets)
        ]
        return pd.concat(frames)

    def imputed_values(self, column: str) -> pd.DataFrame:
        """Imputed entries of one column: rows are subjects, columns imputations."""
        if column not in self.visit_sequence:
            raise KeyError(f"'{column}' had no missing values")
        mask = self.where[column]
        return pd.DataFrame(
            {i + 1: df.loc[mask, column] for i, df in enumerate(self.datasets)}
        )

    def __iter__(self):
        return iter(self.datasets)

    def __len__(self) -> int:
        return self.m

    def summary(self) -> str:
        n_missing = self.where.sum()
        lines = [
            "Multivariate Imputation by Chained Equations",
            f"  m = {self.m}, maxit = {self.maxit}, seed = {self.seed}",
            "",
            f"  {'column':<20s}  {'method':<8s}  {'missing':>8s}",
        ]
        for column in self.visit_sequence:
            lines.append(
                f"  {column:<20s}  {self.methods[column]:<8s}  {int(n_missing[column]):>8d}"
            )
        for w in self.warnings:
            lines.append(f"  Warning: {w}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"MICESolution(m={self.m}, maxit={self.maxit}, "
            f"imputed={list(self.visit_sequence)})"
        )


class PooledSolution:
    """Rubin's-rules pooled inference.

    Estimates are on the coefficient (log hazard) scale; hazard ratios and
    their interval are exponentiated.
    """

    def __init__(self, _result: Result[PooledParams]) -> None:
        self._result = _result

    @property
    def params(self) -> PooledParams:
        return self._result.params

    @property
    def names(self) -> tuple[str, ...]:
        return self._result.params.names

    @property
    def coefficients(self):
        return self._result.params.estimates

    @property
    def standard_errors(self):
        return self._result.params.standard_errors

    @property
    def covariance(self):
        """Total variance t."""
        return self._result.params.total

    @property
    def within_variance(self):
        return self._result.params.within

    @property
    def between_variance(self):
        return self._result.params.between

    @property
    def hazard_ratios(self):
        return np.exp(self._result.params.estimates)

    @property
    def ci_lower(self):
        """Lower confidence bound for the hazard ratio."""
        return np.exp(self._result.params.ci_lower)

    @property
    def ci_upper(self):
        """Upper confidence bound for the hazard ratio."""
        return np.exp(self._result.params.ci_upper)

    @property
    def z_statistics(self):
        return self._result.params.z_statistics

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def df(self):
        return self._result.params.df

    @property
    def riv(self):
        return self._result.params.riv

    @property
    def lambda_(self):
        return self._result.params.lambda_

    @property
    def fmi(self):
        return self._result.params.fmi

    @property
    def m(self) -> int:
        return self._result.params.m

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def excluded(self) -> tuple[int, ...]:
        return tuple(self._result.info.get("excluded", ()))

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def timing(self):
        return self._result.timing

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "coef": self.coefficients,
                "se": self.standard_errors,
                "hazard_ratio": self.hazard_ratios,
                "ci_lower": self.ci_lower,
                "ci_upper": self.ci_upper,
                "z": self.z_statistics,
                "p_value": self.p_values,
                "df": self.df,
                "riv": self.riv,
                "lambda": self.lambda_,
                "fmi": self.fmi,
            },
            index=pd.Index(self.names, name="term"),
        )

    def summary(self) -> str:
        ci_pct = int(round(self.conf_level * 100))
        width = max([10] + [len(s) for s in self.names])
        lines = [
            f"Pooled estimates (Rubin's rules), m = {self.m}",
            "",
            f"  {'':>{width}s}  {'coef':>10s}  {'exp(coef)':>10s}  {'se':>10s}  "
            f"{f'lower .{ci_pct}':>10s}  {f'upper .{ci_pct}':>10s}  "
            f"{'p':>10s}  {'fmi':>6s}",
        ]
        for i, name in enumerate(self.names):
            lines.append(
                f"  {name:>{width}s}  {self.coefficients[i]:10.6f}  "
                f"{self.hazard_ratios[i]:10.6f}  {self.standard_errors[i]:10.6f}  "
                f"{self.ci_lower[i]:10.4f}  {self.ci_upper[i]:10.4f}  "
                f"{self.p_values[i]:10.4g}  {self.fmi[i]:6.3f}"
            )
        for w in self.warnings:
            lines.append(f"  Warning: {w}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"PooledSolution(m={self.m}, terms={len(self.names)})"
