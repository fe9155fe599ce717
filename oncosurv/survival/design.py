"""
SurvivalDesign: immutable container for time-to-event data.

Wraps time, event indicator, optional covariates, and optional strata.
Validates inputs at construction time; all downstream code trusts clean data.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from oncosurv.core.exceptions import DataDomainError, ValidationError
from oncosurv.core.validation import (
    check_array,
    check_consistent_length,
    check_min_samples,
    check_ndim,
)


@dataclass(frozen=True)
class SurvivalDesign:
    """Immutable survival data container.

    Parameters
    ----------
    time : NDArray
        Time to event or censoring. Non-negative.
    event : NDArray
        Event indicator: 1 = event observed, 0 = censored.
    X : NDArray or None
        Covariate matrix (n, p). None for KM / log-rank.
    strata : NDArray or None
        Strata labels for stratified analyses.
    names : tuple of str or None
        Column labels of X.
    strata_levels : tuple or None
        Observed strata levels in category order when strata was a pandas
        categorical, else None (sorted order).
    """

    time: NDArray
    event: NDArray
    X: NDArray | None
    strata: NDArray | None
    names: tuple[str, ...] | None
    strata_levels: tuple | None = None

    @classmethod
    def for_survival(
        cls,
        time,
        event,
        X=None,
        *,
        strata=None,
        names=None,
    ) -> SurvivalDesign:
        """Create and validate survival data.

        Raises
        ------
        ValidationError
            If shapes are inconsistent or there are no observations.
        DataDomainError
            If time is negative or missing, or event is not 0/1.
        """
        time = check_array(time, "time").ravel()
        event = check_array(event, "event").ravel()

        check_min_samples(time, 1, "time")
        check_consistent_length(time, event, names=("time", "event"))

        if np.any(np.isnan(time)):
            raise DataDomainError(
                f"time: {int(np.sum(np.isnan(time)))} missing values",
                column="time",
            )
        if np.any(time < 0):
            bad = tuple(np.unique(time[time < 0]).tolist())
            raise DataDomainError(
                f"time must be non-negative, got {bad}",
                column="time",
                values=bad,
            )

        if not np.all(np.isin(event, [0.0, 1.0])):
            bad = tuple(np.unique(event[~np.isin(event, [0.0, 1.0])]).tolist())
            raise DataDomainError(
                f"event must contain only 0 and 1, got {bad}",
                column="event",
                values=bad,
            )

        X_arr = None
        if X is not None:
            X_arr = check_array(X, "X")
            if X_arr.ndim == 1:
                X_arr = X_arr.reshape(-1, 1)
            check_ndim(X_arr, 2, "X")
            check_consistent_length(time, X_arr, names=("time", "X"))
            if np.any(~np.isfinite(X_arr)):
                cols = np.where(np.any(~np.isfinite(X_arr), axis=0))[0]
                raise DataDomainError(
                    f"X: missing or non-finite values in columns {cols.tolist()}; "
                    f"impute or drop incomplete rows before fitting",
                    column="X",
                )

        if names is not None:
            names = tuple(str(s) for s in names)
            if X_arr is None or len(names) != X_arr.shape[1]:
                raise ValidationError(
                    f"names must have one entry per column of X, got {len(names)}"
                )

        strata_arr = None
        strata_levels = None
        if strata is not None:
            if isinstance(getattr(strata, "dtype", None), pd.CategoricalDtype):
                observed = pd.Categorical(strata).remove_unused_categories()
                strata_levels = tuple(str(s) for s in observed.categories)
                strata = np.asarray(strata, dtype=object)
            strata_arr = np.asarray(strata).ravel()
            check_consistent_length(time, strata_arr, names=("time", "strata"))
            if strata_arr.dtype == object or np.issubdtype(strata_arr.dtype, np.floating):
                missing = np.array([
                    s is None or (isinstance(s, float) and np.isnan(s))
                    for s in strata_arr
                ])
                if missing.any():
                    raise DataDomainError(
                        f"strata: {int(missing.sum())} missing labels",
                        column="strata",
                    )
                if strata_arr.dtype == object:
                    strata_arr = strata_arr.astype(str)

        return cls(
            time=time,
            event=event,
            X=X_arr,
            strata=strata_arr,
            names=names,
            strata_levels=strata_levels,
        )

    @property
    def n(self) -> int:
        """Number of observations."""
        return len(self.time)

    @property
    def p(self) -> int | None:
        """Number of covariates (None if no covariates)."""
        return self.X.shape[1] if self.X is not None else None

    @property
    def n_events(self) -> int:
        """Number of observed events."""
        return int(np.sum(self.event))
