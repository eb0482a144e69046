"""
Solver components for the meltwater outflow simulation.

This package provides:
    - Adaptive time-step control (CFL monitors, TimeStepWizard)
    - The solver collaborator contract and a kinematic reference backend
    - The simulation driver loop and a factory that builds it from config
"""

from .time_stepping import (
    TimeStepWizard,
    advective_cfl,
    diffusive_cfl,
)

from .backend import (
    OceanState,
    SolverBackend,
    cell_advection_timescale,
)

from .kinematic import (
    KinematicBackend,
    KinematicSettings,
)

from .driver import (
    Simulation,
    SimulationClock,
    SimulationContext,
    RunStatus,
    ProgressReport,
    format_progress,
)

from .factory import (
    build_simulation,
    coriolis_parameter,
)

__all__ = [
    # Time stepping
    'TimeStepWizard',
    'advective_cfl',
    'diffusive_cfl',
    # Backend
    'OceanState',
    'SolverBackend',
    'cell_advection_timescale',
    'KinematicBackend',
    'KinematicSettings',
    # Driver
    'Simulation',
    'SimulationClock',
    'SimulationContext',
    'RunStatus',
    'ProgressReport',
    'format_progress',
    # Factory
    'build_simulation',
    'coriolis_parameter',
]
