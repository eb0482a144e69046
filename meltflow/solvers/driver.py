"""
Simulation driver: the outer time loop.

Each outer iteration:

    1. advance the solver by n_inner sub-steps at the current Δt
    2. run meltwater maintenance on the passive tracer
    3. poll the output scheduler
    4. evaluate CFL numbers and let the wizard choose the next Δt
    5. log a progress line

The loop stops once the clock reaches end_time. Writers are closed on
normal termination and on any error; errors are never retried.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from loguru import logger

from meltflow.constants import DAY, KM
from meltflow.errors import ConfigurationError, SolverFault
from meltflow.forcing import MeltwaterMaintenance, RelaxationForcing
from meltflow.grid import GridDescriptor
from meltflow.io import OutputScheduler
from meltflow.utils import prettytime
from .backend import OceanState, SolverBackend
from .time_stepping import TimeStepWizard, advective_cfl, diffusive_cfl


@dataclass
class SimulationClock:
    """Simulation time [s] and sub-step count."""
    time: float = 0.0
    iteration: int = 0

    def tick(self, dt: float, n_steps: int) -> None:
        self.time += n_steps * dt
        self.iteration += n_steps


class RunStatus(Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


class ProgressReport(NamedTuple):
    """One progress line's worth of diagnostics."""
    progress: float          # Percent of end_time reached
    iteration: int
    time: float              # [s]
    umax: float
    vmax: float
    wmax: float
    cfl: float               # Advective CFL of the batch just taken
    nu_max: float
    kappa_max: float
    diffusive_cfl: float
    next_dt: float
    walltime_per_step: float  # [s]


def format_progress(report: ProgressReport) -> str:
    """
    One progress line.

    `CFL` and `νκCFL` are those of the batch just taken, at the Δt that
    was used for it; `next Δt` is the step chosen for the following batch.
    Logs that print the CFL after the step-size update would show the
    value at the next Δt instead.
    """
    return (
        f"[{report.progress:06.2f}%] i: {report.iteration:d}, "
        f"t: {report.time / DAY:5.2f} days, "
        f"umax: ({report.umax:6.3g}, {report.vmax:6.3g}, {report.wmax:6.3g}) m/s, "
        f"CFL: {report.cfl:6.4g}, "
        f"νκmax: ({report.nu_max:6.3g}, {report.kappa_max:6.3g}), "
        f"νκCFL: {report.diffusive_cfl:6.4g}, "
        f"next Δt: {report.next_dt:8.5g} s, "
        f"⟨wall time⟩: {prettytime(report.walltime_per_step)}"
    )


@dataclass
class SimulationContext:
    """
    Everything the loop reads or mutates, passed explicitly.

    `metadata` carries descriptive values for the start-up banner
    (latitude, Coriolis parameter, source kind, ...).
    """
    grid: GridDescriptor
    backend: SolverBackend
    state: OceanState
    wizard: TimeStepWizard
    scheduler: OutputScheduler
    end_time: float
    n_inner: int = 50
    forcing: Optional[RelaxationForcing] = None
    maintenance: Optional[MeltwaterMaintenance] = None
    clock: SimulationClock = field(default_factory=SimulationClock)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not (math.isfinite(self.end_time) and self.end_time > 0.0):
            raise ConfigurationError(f"end_time must be positive, got {self.end_time!r}")
        if isinstance(self.n_inner, bool) or not isinstance(self.n_inner, int) or self.n_inner < 1:
            raise ConfigurationError(f"Inner batch size must be a positive integer, got {self.n_inner!r}")


class Simulation:
    """Runs a SimulationContext to end_time."""

    def __init__(self, context: SimulationContext) -> None:
        self.context = context
        self.status = RunStatus.RUNNING
        self.progress_history: List[ProgressReport] = []

    def banner(self) -> List[str]:
        """Start-up summary lines."""
        g = self.context.grid
        lines = [
            "Simulating ocean dynamics of meltwater outflow from beneath Antarctic ice shelves",
            f"        N : {g.Nx}, {g.Ny}, {g.Nz}",
            f"        L : {g.Lx / KM:.3g}, {g.Ly / KM:.3g}, {g.Lz / KM:.3g} [km]",
            f"        Δ : {g.dx:.3g}, {g.dy:.3g}, {g.dz:.3g} [m]",
            f"     days : {self.context.end_time / DAY:.3g}",
        ]
        for key, value in self.context.metadata.items():
            lines.append(f"{key:>9} : {value}")
        return lines

    def step(self) -> ProgressReport:
        """One outer iteration."""
        ctx = self.context
        if self.status is RunStatus.TERMINATED:
            raise RuntimeError("Simulation has already terminated")

        dt = ctx.wizard.dt
        start = time.perf_counter()

        ctx.state = ctx.backend.advance(ctx.state, dt, ctx.n_inner)
        ctx.clock.tick(dt, ctx.n_inner)

        if ctx.maintenance is not None:
            ctx.maintenance.apply(ctx.state.meltwater)

        walltime = time.perf_counter() - start

        ctx.scheduler.poll(ctx.clock.time, ctx.state)

        umax, vmax, wmax = ctx.backend.max_abs_velocity(ctx.state)
        if not all(math.isfinite(x) for x in (umax, vmax, wmax)):
            raise SolverFault(
                f"Non-finite velocity at iteration {ctx.clock.iteration} "
                f"(umax={umax}, vmax={vmax}, wmax={wmax})"
            )
        nu_max, kappa_max = ctx.backend.max_diffusivity(ctx.state)
        timescale = ctx.backend.cell_advection_timescale(ctx.state)

        cfl = advective_cfl(dt, timescale)
        dcfl = diffusive_cfl(dt, nu_max, kappa_max, ctx.grid)
        next_dt = ctx.wizard.update(timescale)

        report = ProgressReport(
            progress=100.0 * ctx.clock.time / ctx.end_time,
            iteration=ctx.clock.iteration,
            time=ctx.clock.time,
            umax=umax, vmax=vmax, wmax=wmax,
            cfl=cfl,
            nu_max=nu_max, kappa_max=kappa_max,
            diffusive_cfl=dcfl,
            next_dt=next_dt,
            walltime_per_step=walltime / ctx.n_inner,
        )
        self.progress_history.append(report)
        logger.bind(progress=True).info(format_progress(report))
        return report

    def run(self) -> OceanState:
        """
        Iterate until clock.time >= end_time, then close all writers.

        Any exception from the solver, the maintenance step or a writer
        terminates the run; writers are still closed and the exception is
        re-raised.
        """
        ctx = self.context

        logger.info(f"{'='*60}")
        for line in self.banner():
            logger.info(line)
        logger.info(f"{'='*60}")

        aborted = False
        try:
            while ctx.clock.time < ctx.end_time:
                self.step()
        except BaseException as e:
            aborted = True
            logger.error(f"Simulation aborted at iteration {ctx.clock.iteration} "
                         f"(t = {ctx.clock.time:.6g} s): {type(e).__name__}: {e}")
            raise
        finally:
            self.status = RunStatus.TERMINATED
            try:
                ctx.scheduler.close()
            except Exception as close_error:
                if not aborted:
                    raise
                logger.error(f"Closing output writers also failed: {close_error}")

        logger.info(f"Simulation finished: {ctx.clock.iteration} steps, "
                    f"t = {ctx.clock.time / DAY:.3f} days, "
                    f"{len(self.progress_history)} outer iterations")
        return ctx.state
