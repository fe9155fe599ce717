"""
Survival analysis.

Public API:
    kaplan_meier(...) -> KMSolution | StratifiedKMSolution
    survdiff(...) -> LogRankSolution
    coxph(...) -> CoxSolution
    cox_zph(...) -> ZPHSolution
    nelson_aalen(...) -> NDArray
    schoenfeld_residuals(...) -> DataFrame
"""

from oncosurv.survival.design import SurvivalDesign
from oncosurv.survival.solution import (
    CoxSolution,
    KMSolution,
    LogRankSolution,
    StratifiedKMSolution,
    ZPHSolution,
)
from oncosurv.survival.solvers import (
    cox_zph,
    coxph,
    kaplan_meier,
    nelson_aalen,
    schoenfeld_residuals,
    survdiff,
)

__all__ = [
    "kaplan_meier",
    "survdiff",
    "coxph",
    "cox_zph",
    "nelson_aalen",
    "schoenfeld_residuals",
    "SurvivalDesign",
    "KMSolution",
    "StratifiedKMSolution",
    "LogRankSolution",
    "CoxSolution",
    "ZPHSolution",
]
