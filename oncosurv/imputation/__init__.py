"""
Multiple imputation by chained equations and Rubin's-rules pooling.

Public API:
    mice(df, m=5, maxit=5, seed=None) -> MICESolution
    fit_imputed(imputed, fit, on_failure="abort") -> ImputedFits
    pool(fits) -> PooledSolution
    pool_estimates(estimates, variances) -> PooledSolution
"""

from oncosurv.imputation._common import ImputedFits
from oncosurv.imputation.design import ImputationDesign
from oncosurv.imputation.solution import MICESolution, PooledSolution
from oncosurv.imputation.solvers import fit_imputed, mice, pool, pool_estimates

__all__ = [
    "mice",
    "fit_imputed",
    "pool",
    "pool_estimates",
    "ImputationDesign",
    "ImputedFits",
    "MICESolution",
    "PooledSolution",
]
