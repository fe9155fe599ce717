"""
Tests for cox_zph() (Grambsch-Therneau proportional-hazards test) and
Schoenfeld residuals.

R reference code:
    library(survival)
    fit <- coxph(Surv(time, event) ~ group)
    cox.zph(fit, transform="km", terms=FALSE)
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from oncosurv.core.exceptions import ValidationError
from oncosurv.survival import (
    CoxSolution,
    ZPHSolution,
    cox_zph,
    coxph,
    schoenfeld_residuals,
)


# Tied deaths at t = 1, 2 and 5; Efron fit coef 0.3602808. Expected chisq
# use the (x - mean x)'r form with V = var(coef), one term per death.
TIED_TIME = np.array([1, 1, 1, 2, 2, 3, 3, 4, 5, 5, 6, 6], dtype=np.float64)
TIED_EVENT = np.array([1, 1, 0, 1, 1, 1, 0, 1, 1, 1, 1, 0], dtype=np.float64)
TIED_X = np.array([0.5, 1.2, -0.3, 0.8, 0.0, 1.5, -1.0, 0.2, 1.1, -0.4, 0.3, 0.9])


@pytest.fixture
def tied():
    return coxph(TIED_TIME, TIED_EVENT, TIED_X, names=["x"])


@pytest.fixture
def proportional(exp_quantiles):
    """Exposed hazard is exactly twice the unexposed hazard."""
    t0 = exp_quantiles(100)
    time = np.concatenate([t0, t0 / 2.0])
    X = np.repeat([0.0, 1.0], 100).reshape(-1, 1)
    return coxph(time, np.ones(200), X, names=["exposed"])


@pytest.fixture
def crossing(exp_quantiles):
    """Exposed group follows a Weibull with shape 0.3: its hazard falls
    steeply over time while the unexposed hazard stays constant."""
    t0 = exp_quantiles(100)
    time = np.concatenate([t0, t0 ** (1.0 / 0.3)])
    X = np.repeat([0.0, 1.0], 100).reshape(-1, 1)
    return coxph(time, np.ones(200), X, names=["exposed"])


class TestCoxZPH:

    def test_proportional_hazards_not_rejected(self, proportional):
        zph = cox_zph(proportional)
        assert isinstance(zph, ZPHSolution)
        assert zph.p_values[0] > 0.05
        assert zph.violations == ()
        assert not zph.global_violation
        assert zph.warnings == ()

    def test_time_varying_effect_rejected(self, crossing):
        zph = cox_zph(crossing)
        assert zph.p_values[0] < 0.05
        assert zph.violations == ("exposed",)
        assert zph.global_violation
        assert any("exposed" in w for w in zph.warnings)

    def test_single_covariate_global_equals_term(self, crossing):
        zph = cox_zph(crossing)
        assert zph.global_df == 1
        assert_allclose(zph.global_chisq, zph.chisq[0], rtol=1e-10)
        assert_allclose(zph.global_p_value, zph.p_values[0], rtol=1e-10)

    @pytest.mark.parametrize("transform", ["km", "rank", "identity", "log"])
    def test_transforms(self, crossing, transform):
        zph = cox_zph(crossing, transform=transform)
        assert zph.transform == transform
        assert 0.0 <= zph.p_values[0] <= 1.0
        assert len(zph.transformed_times) == len(zph.event_times) == 200

    def test_identity_uses_event_times(self, proportional):
        zph = cox_zph(proportional, transform="identity")
        assert_allclose(zph.transformed_times, zph.event_times)
        assert np.all(np.diff(zph.event_times) >= 0)

    def test_alpha_controls_flagging(self, crossing):
        zph = cox_zph(crossing, alpha=1e-300)
        assert zph.alpha == 1e-300
        assert zph.violations == ()

    def test_to_frame_and_summary(self, crossing):
        zph = cox_zph(crossing)
        frame = zph.to_frame()
        assert list(frame.index) == ["exposed", "GLOBAL"]
        assert list(frame.columns) == ["rho", "chisq", "df", "p_value"]
        s = zph.summary()
        assert "GLOBAL" in s
        assert "transform: km" in s
        assert "ZPHSolution" in repr(zph)


class TestCoxZPHReference:

    @pytest.mark.parametrize("transform, expected", [
        ("km", 1.0513956399),
        ("identity", 0.9439192670),
        ("rank", 0.8845626118),
    ])
    def test_chisq_with_tied_deaths(self, tied, transform, expected):
        zph = cox_zph(tied, transform=transform)
        assert_allclose(zph.chisq, [expected], rtol=1e-5)
        assert_allclose(zph.global_chisq, expected, rtol=1e-5)
        assert len(zph.event_times) == 9

    def test_tied_residuals_share_risk_set_mean(self, tied):
        resid = schoenfeld_residuals(tied)
        assert_allclose(
            resid["x"].to_numpy(),
            [-0.0565619679, 0.6434380321, 0.2286267916, -0.5713732084,
             0.9051291768, -0.3203480366, 0.5016944020, -0.9983055980,
             -0.3322995918],
            rtol=1e-5,
        )
        assert_allclose(resid["x"].sum(), 0.0, atol=1e-6)


class TestCoxZPHValidation:

    def test_unknown_transform(self, proportional):
        with pytest.raises(ValidationError, match="transform"):
            cox_zph(proportional, transform="sqrt")

    def test_alpha_range(self, proportional):
        with pytest.raises(ValidationError, match="alpha"):
            cox_zph(proportional, alpha=1.0)

    def test_needs_fitted_design(self, proportional):
        detached = CoxSolution(proportional._result)
        with pytest.raises(ValidationError, match="coxph"):
            cox_zph(detached)


class TestSchoenfeldResiduals:

    def test_one_row_per_death(self, proportional):
        resid = schoenfeld_residuals(proportional)
        assert list(resid.columns) == ["time", "exposed"]
        assert resid.index.name == "row"
        assert len(resid) == proportional.n_events
        assert np.all(np.diff(resid["time"].to_numpy()) >= 0)

    def test_sum_to_score_at_estimate(self):
        time = np.array([3, 5, 7, 11, 13, 15, 2, 4, 6, 8,
                         10, 12, 14, 16, 18, 20, 1, 9, 17, 19], dtype=np.float64)
        event = np.array([1, 1, 0, 1, 1, 0, 1, 0, 1, 1,
                          0, 1, 1, 0, 1, 1, 1, 1, 0, 1], dtype=np.float64)
        x = np.array([0.5, 1.2, -0.3, 0.8, -0.5, 1.0, -1.2, 0.3, 0.7, -0.8,
                      1.5, -0.2, 0.4, -1.0, 0.9, -0.6, 1.1, -0.4, 0.2, -0.1])
        fit = coxph(time, event, x, names=["x"])
        resid = schoenfeld_residuals(fit)
        # Without ties the residuals add up to the score, which is 0 at the MLE
        assert resid["x"].sum() == pytest.approx(0.0, abs=1e-4)
        assert np.all(event[resid.index.to_numpy()] == 1)
