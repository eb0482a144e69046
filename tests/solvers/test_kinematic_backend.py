"""
Tests for the solver contract helpers and the kinematic backend
(meltflow/solvers/backend.py, meltflow/solvers/kinematic.py).
"""

import math

import pytest
import numpy as np
from numpy.testing import assert_allclose

from meltflow.errors import SolverFault
from meltflow.forcing import Point, RelaxationForcing
from meltflow.solvers import (
    KinematicBackend, KinematicSettings, OceanState, cell_advection_timescale,
)


class TestOceanState:

    def test_zeros_and_fields(self, small_grid):
        state = OceanState.zeros(small_grid)
        names = set(state.fields())
        assert names == {"u", "v", "w", "T", "S", "meltwater", "nu", "kappaT", "kappaS"}
        assert all(a.shape == small_grid.shape for a in state.fields().values())

    def test_extras_visible(self, small_grid):
        state = OceanState.zeros(small_grid)
        state.extras["b"] = np.ones(small_grid.shape)
        assert "b" in state.fields()
        assert state["b"].sum() == small_grid.n_cells

    def test_unknown_field(self, small_grid):
        with pytest.raises(KeyError):
            OceanState.zeros(small_grid)["rho"]

    def test_copy_is_deep(self, small_grid):
        state = OceanState.zeros(small_grid)
        copy = state.copy()
        copy.T[...] = 1.0
        assert not state.T.any()


class TestAdvectionTimescale:

    def test_at_rest(self, channel_grid):
        assert math.isinf(cell_advection_timescale(channel_grid, 0.0, 0.0, 0.0))

    def test_minimum_over_axes(self, channel_grid):
        # Δx = Δy = 312.5 m, Δz = 31.25 m
        assert_allclose(cell_advection_timescale(channel_grid, 1.0, 0.0, 0.0), 312.5)
        assert_allclose(cell_advection_timescale(channel_grid, 1.0, 0.0, 0.1), 312.5)
        assert_allclose(cell_advection_timescale(channel_grid, 0.1, 0.0, 1.0), 31.25)

    def test_nan_propagates(self, channel_grid):
        assert math.isnan(cell_advection_timescale(channel_grid, math.nan, 0.0, 0.0))


class TestKinematicBackend:

    def test_initial_state(self, small_grid):
        backend = KinematicBackend(small_grid, settings=KinematicSettings(
            velocity=(0.0, 0.1, 0.0), viscosity=1e-3, diffusivity=2e-3))
        state = backend.initial_state(np.full(small_grid.shape, 1.0), np.full(small_grid.shape, 34.0))
        assert np.all(state.v == 0.1)
        assert np.all(state.kappaS == 2e-3)
        assert backend.max_abs_velocity(state) == (0.0, 0.1, 0.0)
        assert backend.max_diffusivity(state) == (1e-3, 2e-3)
        assert_allclose(backend.cell_advection_timescale(state), 1000.0)

    def test_uniform_field_at_rest_is_steady(self, small_grid):
        backend = KinematicBackend(small_grid)
        T0 = np.full(small_grid.shape, 2.0)
        state = backend.initial_state(T0, np.full(small_grid.shape, 34.0))
        backend.advance(state, 1.0, 10)
        assert_allclose(state.T, 2.0)
        assert backend.steps_taken == 10

    def test_relaxation_pulls_towards_target(self, small_grid):
        forcing = RelaxationForcing(small_grid, [Point(index=(1, 1, 1), targets={"T": -1.0}, rate=0.1)])
        backend = KinematicBackend(small_grid, forcing, KinematicSettings(diffusivity=0.0, viscosity=0.0))
        state = backend.initial_state(small_grid.zeros(), np.full(small_grid.shape, 34.0))
        backend.advance(state, 1.0, 1)
        # One forward Euler step: T = 0 + 1 · (-0.1 · (0 - (-1)))
        assert_allclose(state.T[1, 1, 1], -0.1)
        assert state.T[0, 0, 0] == 0.0
        # Salinity has no target
        assert_allclose(state.S, 34.0)

    def test_upwind_advection_moves_tracer_downstream(self, small_grid):
        backend = KinematicBackend(small_grid, settings=KinematicSettings(
            velocity=(0.0, 1.0, 0.0), viscosity=0.0, diffusivity=0.0))
        C = small_grid.zeros()
        C[:, 2, :] = 1.0
        state = backend.initial_state(small_grid.zeros(), small_grid.zeros(), C)
        # Δy = 100 m, so a 10 s step moves a tenth of the cell
        backend.advance(state, 10.0, 1)
        assert_allclose(state.meltwater[:, 2, :], 0.9)
        assert_allclose(state.meltwater[:, 3, :], 0.1)
        assert_allclose(state.meltwater[:, 1, :], 0.0)

    def test_blow_up_raises_solver_fault(self, small_grid):
        backend = KinematicBackend(small_grid, settings=KinematicSettings(
            velocity=(0.0, 0.0, 0.0), viscosity=1e3, diffusivity=1e3))
        rng = np.random.default_rng(0)
        state = backend.initial_state(rng.normal(size=small_grid.shape), small_grid.zeros())
        with pytest.raises(SolverFault):
            backend.advance(state, 1e3, 200)
