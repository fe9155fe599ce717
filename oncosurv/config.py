"""
Configuration defaults for oncosurv.

Every constant the analysis depends on (categorisation breakpoints,
convergence tolerances, imputation count, random seed) lives here as a
frozen dataclass and is passed explicitly to the functions that use it.
Nothing reads global state.

    >>> from oncosurv.config import AnalysisConfig, ImputationConfig
    >>> cfg = AnalysisConfig(imputation=ImputationConfig(m=20, seed=2024))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


# Smoking history codes as recorded by the registry
SMOKING_LEVELS = ("Never", "<10 PY", ">=10 PY")
SMOKING_CODES = {0: "Never", 1: "<10 PY", 2: ">=10 PY"}

CURRENT_SMOKER_CODES = {0: "No", 1: "Yes"}

# WHO adult BMI classes; intervals are left-closed: [18.5, 25) is Normal
BMI_BREAKPOINTS = (18.5, 25.0, 30.0)
BMI_LABELS = ("Underweight", "Normal", "Overweight", "Obese")

AGE_BREAKPOINTS = (50.0, 60.0, 70.0)
AGE_LABELS = ("<50", "50-59", "60-69", ">=70")

STAGE_COLLAPSE = {
    "IIIA": "III",
    "IIIB": "III",
    "IVA": "IV",
    "IVB": "IV",
    "IVC": "IV",
}


@dataclass(frozen=True)
class CohortSchema:
    """Column names of the raw table handed over by the loader."""
    time: str = "Time"
    event: str = "Cens"
    vital_status: str | None = None
    smoking: str = "Smoking"
    current_smoker: str | None = "CurrentSmoker"
    age: str = "Age"
    sex: str = "Sex"
    site: str = "Site"
    grade: str | None = "Grade"
    stage: str | None = "Stage"
    bmi: str | None = "BMI"
    extra: tuple[str, ...] = ()


@dataclass(frozen=True)
class RecodeConfig:
    """Breakpoints and code maps for dataset preparation."""
    smoking_codes: dict = field(default_factory=lambda: dict(SMOKING_CODES))
    current_smoker_codes: dict = field(
        default_factory=lambda: dict(CURRENT_SMOKER_CODES)
    )
    age_breakpoints: tuple[float, ...] = AGE_BREAKPOINTS
    age_labels: tuple[str, ...] = AGE_LABELS
    bmi_breakpoints: tuple[float, ...] = BMI_BREAKPOINTS
    bmi_labels: tuple[str, ...] = BMI_LABELS
    stage_collapse: dict = field(default_factory=lambda: dict(STAGE_COLLAPSE))
    dead_values: tuple = (1, "1", "Dead", "dead", "Deceased")
    alive_values: tuple = (0, "0", "Alive", "alive")
    strict: bool = False


@dataclass(frozen=True)
class CoxConfig:
    """Cox engine settings."""
    ties: Literal["efron", "breslow"] = "efron"
    tol: float = 1e-9
    max_iter: int = 20
    conf_level: float = 0.95
    # Centred-design condition number above which a warning is recorded
    condition_threshold: float = 1e8


@dataclass(frozen=True)
class ImputationConfig:
    """Chained-equations imputation settings."""
    m: int = 5
    maxit: int = 5
    seed: int | None = None
    donors: int = 5
    n_jobs: int = 1
    on_failure: Literal["abort", "exclude"] = "abort"


@dataclass(frozen=True)
class AnalysisConfig:
    """Settings shared by both pipeline variants."""
    recode: RecodeConfig = field(default_factory=RecodeConfig)
    cox: CoxConfig = field(default_factory=CoxConfig)
    imputation: ImputationConfig = field(default_factory=ImputationConfig)
    alpha: float = 0.05
    zph_transform: Literal["km", "rank", "identity", "log"] = "km"
    km_conf_type: Literal["log", "plain", "log-log"] = "log"
