"""
oncosurv: survival analysis of a head-and-neck cancer cohort.

Recoding, Kaplan-Meier and log-rank comparisons, Cox proportional-hazards
models with proportional-hazards diagnostics, and multiple imputation with
Rubin's-rules pooling, arranged as two analysis pipelines.

Submodules:
    cohort: Dataset preparation and descriptive tables
    survival: Kaplan-Meier, log-rank, Cox PH, cox.zph
    imputation: Chained-equations imputation and pooling
    pipelines: Complete-case and multiple-imputation analyses
    config: Default breakpoints, tolerances and imputation settings
"""

__version__ = "0.1.0"

from oncosurv import cohort
from oncosurv import imputation
from oncosurv import survival
from oncosurv.pipelines import complete_case_analysis, fit_cox, imputed_analysis

__all__ = [
    "__version__",
    "cohort",
    "survival",
    "imputation",
    "complete_case_analysis",
    "imputed_analysis",
    "fit_cox",
]
