"""
Adaptive global time stepping for the outer simulation loop.

Stability monitors:

    advective CFL = Δt / τ_adv          τ_adv: minimum cell-crossing time
    diffusive CFL = Δt · max(ν, κ) / Δ_min²

Controller update (once per outer iteration):

    Δt' = Δt · cfl_target / CFL_adv
    Δt' / Δt clamped to [1/max_change, max_change]
    Δt' clamped to (0, max_Δt]

When the advective CFL is zero or not finite (e.g. fluid at rest) the
previous Δt is kept.
"""

import math
from dataclasses import dataclass

from loguru import logger

from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor

# Smallest CFL the controller divides by
CFL_EPSILON = 1e-12


def advective_cfl(dt: float, timescale: float) -> float:
    """Advective Courant number Δt / τ_adv (0 when τ_adv is infinite)."""
    if math.isinf(timescale):
        return 0.0
    if timescale <= 0.0:
        return math.inf
    return dt / timescale


def diffusive_cfl(dt: float, nu_max: float, kappa_max: float,
                  grid: GridDescriptor) -> float:
    """Diffusive Courant number Δt · max(ν, κ) / Δ_min²."""
    return dt * max(nu_max, kappa_max) / grid.min_spacing**2


@dataclass
class TimeStepWizard:
    """
    Step-size controller driven by a target advective CFL number.

    The only mutable field is `dt`; it always stays in (0, max_dt].
    """
    cfl: float = 0.3
    dt: float = 1.0
    max_change: float = 1.2
    max_dt: float = 30.0

    def __post_init__(self):
        if not (math.isfinite(self.cfl) and self.cfl > 0.0):
            raise ConfigurationError(f"Target CFL must be positive, got {self.cfl!r}")
        if not (math.isfinite(self.dt) and self.dt > 0.0):
            raise ConfigurationError(f"Initial Δt must be positive, got {self.dt!r}")
        if not (math.isfinite(self.max_dt) and self.max_dt > 0.0):
            raise ConfigurationError(f"max_Δt must be positive, got {self.max_dt!r}")
        if self.dt > self.max_dt:
            raise ConfigurationError(f"Initial Δt={self.dt} exceeds max_Δt={self.max_dt}")
        if not (math.isfinite(self.max_change) and self.max_change > 1.0):
            raise ConfigurationError(f"max_change must be > 1, got {self.max_change!r}")

    def new_dt(self, cfl_now: float) -> float:
        """Next Δt for the current advective CFL, without committing it."""
        if not math.isfinite(cfl_now) or cfl_now <= CFL_EPSILON:
            return self.dt

        ratio = self.cfl / cfl_now
        ratio = min(max(ratio, 1.0 / self.max_change), self.max_change)

        return min(self.dt * ratio, self.max_dt)

    def update(self, timescale: float) -> float:
        """
        Commit a new Δt from the solver's cell advection timescale.

        Returns the new Δt.
        """
        cfl_now = advective_cfl(self.dt, timescale)
        dt_new = self.new_dt(cfl_now)

        if not math.isfinite(cfl_now) or cfl_now <= CFL_EPSILON:
            logger.debug(f"Advective CFL is {cfl_now:.3g}; keeping Δt = {self.dt:.5g} s")

        self.dt = dt_new
        return dt_new
