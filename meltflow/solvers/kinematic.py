"""
Kinematic reference backend.

A deliberately small solver collaborator: velocities and turbulent
diffusivities are prescribed and held fixed, and the tracers are stepped
with forward Euler using

    ∂c/∂t = -u·∇c (first-order upwind) + κ ∇²c + F_c

with zero-gradient walls on every side. F_c is the relaxation forcing for
T and S; the meltwater tracer is passive. It exists to drive the control
loop in examples and tests, not to model ocean dynamics.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt

from meltflow.constants import TRACERS
from meltflow.errors import SolverFault
from meltflow.forcing import RelaxationForcing
from meltflow.grid import GridDescriptor
from .backend import OceanState, cell_advection_timescale, max_abs, max_value

NDArrayFloat = npt.NDArray[np.floating]


@dataclass
class KinematicSettings:
    """Prescribed flow for the kinematic backend."""
    velocity: Tuple[float, float, float] = (0.0, 0.0, 0.0)  # (u, v, w) [m/s]
    viscosity: float = 1e-4     # ν [m²/s]
    diffusivity: float = 1e-4   # κ for T and S [m²/s]


def _upwind_advection(c: NDArrayFloat, vel: NDArrayFloat, axis: int,
                      spacing: float) -> NDArrayFloat:
    """-vel · ∂c/∂x_axis with first-order upwinding."""
    padded = np.pad(c, [(1, 1) if a == axis else (0, 0) for a in range(3)], mode="edge")
    n = c.shape[axis]
    back = np.take(padded, range(0, n), axis=axis)
    fwd = np.take(padded, range(2, n + 2), axis=axis)
    grad = np.where(vel > 0.0, c - back, fwd - c) / spacing
    return -vel * grad


def _laplacian(c: NDArrayFloat, axis: int, spacing: float) -> NDArrayFloat:
    padded = np.pad(c, [(1, 1) if a == axis else (0, 0) for a in range(3)], mode="edge")
    n = c.shape[axis]
    back = np.take(padded, range(0, n), axis=axis)
    fwd = np.take(padded, range(2, n + 2), axis=axis)
    return (fwd - 2.0 * c + back) / spacing**2


class KinematicBackend:
    """Prescribed-flow tracer stepper implementing the SolverBackend contract."""

    def __init__(self, grid: GridDescriptor,
                 forcing: Optional[RelaxationForcing] = None,
                 settings: Optional[KinematicSettings] = None) -> None:
        self.grid = grid
        self.forcing = forcing
        self.settings = settings if settings is not None else KinematicSettings()
        self.steps_taken = 0

    def initial_state(self, T0: NDArrayFloat, S0: NDArrayFloat,
                      meltwater0: Optional[NDArrayFloat] = None) -> OceanState:
        """State with the prescribed flow and the given initial tracers."""
        state = OceanState.zeros(self.grid)
        u, v, w = self.settings.velocity
        state.u[...] = u
        state.v[...] = v
        state.w[...] = w
        state.nu[...] = self.settings.viscosity
        state.kappaT[...] = self.settings.diffusivity
        state.kappaS[...] = self.settings.diffusivity
        state.T[...] = T0
        state.S[...] = S0
        if meltwater0 is not None:
            state.meltwater[...] = meltwater0
        return state

    def _tendency(self, state: OceanState, name: str) -> NDArrayFloat:
        c = getattr(state, name)
        kappa = state.kappaS if name == "S" else state.kappaT
        G = np.zeros_like(c)
        for axis, (vel, spacing) in enumerate(zip((state.u, state.v, state.w), self.grid.spacing)):
            G += _upwind_advection(c, vel, axis, spacing)
            G += kappa * _laplacian(c, axis, spacing)
        if self.forcing is not None and name in self.forcing.tracers:
            G += self.forcing.tendency_field(name, c)
        return G

    def advance(self, state: OceanState, dt: float, n_steps: int) -> OceanState:
        """Take `n_steps` forward Euler steps of size `dt` in place."""
        for _ in range(n_steps):
            tendencies = {name: self._tendency(state, name) for name in TRACERS}
            for name, G in tendencies.items():
                getattr(state, name)[...] += dt * G
            self.steps_taken += 1

            for name in TRACERS:
                if not np.all(np.isfinite(getattr(state, name))):
                    raise SolverFault(
                        f"Non-finite {name} after step {self.steps_taken} (Δt = {dt:.5g} s)"
                    )
        return state

    def cell_advection_timescale(self, state: OceanState) -> float:
        return cell_advection_timescale(self.grid, *self.max_abs_velocity(state))

    def max_abs_velocity(self, state: OceanState) -> Tuple[float, float, float]:
        return max_abs(state.u), max_abs(state.v), max_abs(state.w)

    def max_diffusivity(self, state: OceanState) -> Tuple[float, float]:
        return max_value(state.nu), max(max_value(state.kappaT), max_value(state.kappaS))
