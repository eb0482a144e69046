"""
Contract between the simulation loop and the physics solver.

The solver owns the prognostic fields and advances them; the loop only
asks for a batch of steps at a given Δt and for a few extrema.
"""

from dataclasses import dataclass, field, fields as dataclass_fields
from typing import Dict, Optional, Protocol, Tuple

import numpy as np
import numpy.typing as npt

from meltflow.grid import GridDescriptor

NDArrayFloat = npt.NDArray[np.floating]


@dataclass
class OceanState:
    """
    Cell-centred model fields, each of shape grid.shape.

    Velocities u, v, w [m/s]; temperature T [°C]; salinity S [g/kg];
    meltwater concentration [-]; turbulent viscosity nu and diffusivities
    kappaT, kappaS [m²/s].
    """
    u: NDArrayFloat
    v: NDArrayFloat
    w: NDArrayFloat
    T: NDArrayFloat
    S: NDArrayFloat
    meltwater: NDArrayFloat
    nu: NDArrayFloat
    kappaT: NDArrayFloat
    kappaS: NDArrayFloat
    extras: Dict[str, NDArrayFloat] = field(default_factory=dict)

    @classmethod
    def zeros(cls, grid: GridDescriptor) -> 'OceanState':
        """State with every field set to zero."""
        return cls(**{f.name: grid.zeros() for f in dataclass_fields(cls) if f.name != "extras"})

    def fields(self) -> Dict[str, NDArrayFloat]:
        """All named arrays, including any solver-specific extras."""
        named = {f.name: getattr(self, f.name) for f in dataclass_fields(self) if f.name != "extras"}
        named.update(self.extras)
        return named

    def __getitem__(self, name: str) -> NDArrayFloat:
        try:
            return self.fields()[name]
        except KeyError:
            raise KeyError(f"Unknown field '{name}' (available: {sorted(self.fields())})") from None

    def copy(self) -> 'OceanState':
        copied = {f.name: getattr(self, f.name).copy() for f in dataclass_fields(self) if f.name != "extras"}
        return OceanState(**copied, extras={k: v.copy() for k, v in self.extras.items()})


class SolverBackend(Protocol):
    """
    Physics solver collaborator.

    `advance` is a blocking call that may run in parallel internally. It
    raises SolverFault (or any other exception) when the integration fails;
    the loop does not retry.
    """

    def advance(self, state: OceanState, dt: float, n_steps: int) -> OceanState:
        ...

    def cell_advection_timescale(self, state: OceanState) -> float:
        """Minimum cell-crossing time [s]; inf for a fluid at rest."""
        ...

    def max_abs_velocity(self, state: OceanState) -> Tuple[float, float, float]:
        """(max|u|, max|v|, max|w|)."""
        ...

    def max_diffusivity(self, state: OceanState) -> Tuple[float, float]:
        """(max ν, max κ)."""
        ...


def cell_advection_timescale(grid: GridDescriptor, umax: float, vmax: float,
                             wmax: float) -> float:
    """min(Δx/|u|, Δy/|v|, Δz/|w|), ignoring components at rest."""
    timescale = np.inf
    for spacing, speed in zip(grid.spacing, (umax, vmax, wmax)):
        if speed > 0.0:
            timescale = min(timescale, spacing / speed)
        elif speed != speed:
            return float("nan")
    return float(timescale)


def max_abs(array: NDArrayFloat) -> float:
    return float(np.max(np.abs(array))) if array.size else 0.0


def max_value(array: NDArrayFloat, default: Optional[float] = 0.0) -> float:
    return float(np.max(array)) if array.size else default
