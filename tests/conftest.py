"""
pytest configuration and shared fixtures.
"""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def raw_cohort(rng):
    """Raw registry table: 215 subjects, 3-level smoking exposure, no missing data."""
    n = 215
    smoking = np.arange(n) % 3
    hazard = np.array([0.02, 0.03, 0.045])[smoking]
    time = rng.exponential(1.0 / hazard)
    censor = rng.uniform(12.0, 120.0, size=n)
    return pd.DataFrame({
        "Time": np.minimum(time, censor) + 0.1,
        "Cens": (time <= censor).astype(int),
        "Smoking": smoking,
        "CurrentSmoker": rng.integers(0, 2, size=n),
        "Age": rng.normal(62.0, 9.0, size=n).round(1),
        "Sex": rng.choice(["Male", "Female"], size=n, p=[0.7, 0.3]),
        "Site": rng.choice(["Oral cavity", "Oropharynx", "Larynx"], size=n),
        "Grade": rng.choice(["G1", "G2", "G3"], size=n),
        "Stage": rng.choice(["I", "II", "III", "IVA", "IVB"], size=n),
        "BMI": rng.normal(25.5, 4.0, size=n).round(1),
    })


@pytest.fixture
def exp_quantiles():
    """Deterministic 'sample' of n exponential(rate) event times.

    Quantile i is -log(1 - (i + 0.5) / n) / rate, so tests that assert on
    p-values do not depend on a random draw.
    """
    def make(n: int, rate: float = 1.0) -> np.ndarray:
        u = (np.arange(n) + 0.5) / n
        return -np.log(1.0 - u) / rate
    return make
