"""
Tests for CFL monitors and the TimeStepWizard (meltflow/solvers/time_stepping.py).
"""

import math

import pytest
import numpy as np
from numpy.testing import assert_allclose

from meltflow.errors import ConfigurationError
from meltflow.solvers import TimeStepWizard, advective_cfl, diffusive_cfl


class TestMonitors:

    def test_advective(self):
        assert_allclose(advective_cfl(2.0, 10.0), 0.2)

    def test_advective_at_rest(self):
        assert advective_cfl(2.0, math.inf) == 0.0

    def test_advective_zero_timescale(self):
        assert math.isinf(advective_cfl(1.0, 0.0))

    def test_diffusive_uses_larger_coefficient(self, channel_grid):
        # Δ_min = 31.25 m
        assert_allclose(diffusive_cfl(10.0, 1e-3, 2e-3, channel_grid), 10.0 * 2e-3 / 31.25**2)
        assert_allclose(diffusive_cfl(10.0, 5e-3, 2e-3, channel_grid), 10.0 * 5e-3 / 31.25**2)


class TestWizardValidation:

    @pytest.mark.parametrize("kwargs", [
        {"cfl": 0.0},
        {"cfl": -0.1},
        {"dt": 0.0},
        {"max_dt": -1.0},
        {"dt": 40.0, "max_dt": 30.0},
        {"max_change": 1.0},
        {"max_change": 0.5},
        {"cfl": math.nan},
    ])
    def test_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            TimeStepWizard(**kwargs)

    def test_defaults(self):
        wizard = TimeStepWizard()
        assert (wizard.cfl, wizard.dt, wizard.max_change, wizard.max_dt) == (0.3, 1.0, 1.2, 30.0)


class TestWizardUpdate:

    def test_grows_by_at_most_max_change(self):
        wizard = TimeStepWizard(cfl=0.3, dt=1.0, max_change=1.2, max_dt=30.0)
        # CFL = 1/1000, far below target
        assert_allclose(wizard.update(1000.0), 1.2)
        assert_allclose(wizard.dt, 1.2)

    def test_shrinks_by_at_most_max_change(self):
        wizard = TimeStepWizard(cfl=0.3, dt=10.0, max_change=1.2, max_dt=30.0)
        # CFL = 10, far above target
        assert_allclose(wizard.update(1.0), 10.0 / 1.2)

    def test_exact_target(self):
        wizard = TimeStepWizard(cfl=0.3, dt=10.0, max_change=1.2, max_dt=30.0)
        # CFL = 10 / 30 = 1/3 → ratio 0.9
        assert_allclose(wizard.update(30.0), 9.0)

    def test_capped_at_max_dt(self):
        wizard = TimeStepWizard(cfl=0.3, dt=28.0, max_change=1.2, max_dt=30.0)
        assert wizard.update(1e9) == 30.0

    def test_at_rest_keeps_dt(self, log_messages):
        wizard = TimeStepWizard(cfl=0.3, dt=3.0, max_change=1.2, max_dt=30.0)
        assert wizard.update(math.inf) == 3.0
        assert wizard.dt == 3.0
        assert any("keeping Δt" in m for m in log_messages)

    def test_nan_keeps_dt(self):
        wizard = TimeStepWizard(dt=2.0)
        assert wizard.update(math.nan) == 2.0

    def test_zero_timescale_keeps_dt(self):
        wizard = TimeStepWizard(dt=2.0)
        assert wizard.update(0.0) == 2.0

    def test_ratio_bounds_property(self, rng):
        """Δt'/Δt always lies within [1/max_change, max_change], and Δt' ≤ max_dt."""
        for _ in range(500):
            max_change = 1.0 + rng.uniform(0.01, 2.0)
            max_dt = rng.uniform(1.0, 100.0)
            dt = rng.uniform(1e-3, max_dt)
            wizard = TimeStepWizard(cfl=rng.uniform(0.01, 1.0), dt=dt,
                                    max_change=max_change, max_dt=max_dt)
            timescale = 10.0 ** rng.uniform(-3, 6)
            new_dt = wizard.update(timescale)
            ratio = new_dt / dt
            assert 1.0 / max_change - 1e-12 <= ratio <= max_change + 1e-12
            assert 0.0 < new_dt <= max_dt
