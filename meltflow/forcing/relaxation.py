"""
Relaxation forcing engine.

For every tracer X and cell (i, j, k) the forcing is the sum over every
region r whose membership predicate matches the cell:

    F_X(i,j,k) = Σ_r -λ_r (X(i,j,k) - X_target,r(k))

Regions stack additively, so a cell inside both the source and the sponge
band feels both restoring terms.

The regions are compiled once into flat tables (corner indices, rates and a
per-tracer target table indexed by k) so the per-cell evaluation is a short
loop over regions with no allocation. The cell kernel is a numba function
that solver backends can call from their own compiled loops.
"""

from typing import Callable, Dict, Iterable, NamedTuple, Optional, Sequence

import numpy as np
import numpy.typing as npt
from loguru import logger
from numba import njit, prange

from meltflow.constants import ACTIVE_TRACERS
from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor
from .regions import Region

NDArrayFloat = npt.NDArray[np.floating]


class ForcingTables(NamedTuple):
    """Compiled region tables for one tracer."""
    lo: np.ndarray      # (n_regions, 3) int64, inclusive lower corners
    hi: np.ndarray      # (n_regions, 3) int64, inclusive upper corners
    rate: np.ndarray    # (n_regions,) λ, zero where the region has no target for the tracer
    target: np.ndarray  # (n_regions, Nz) target value per depth


# =============================================================================
# Numba Kernels
# =============================================================================

@njit(cache=True)
def relaxation_tendency_cell(i: int, j: int, k: int, value: float,
                             lo: np.ndarray, hi: np.ndarray,
                             rate: np.ndarray, target: np.ndarray) -> float:
    """Forcing for one cell; exactly 0.0 outside every region."""
    F = 0.0
    for r in range(rate.shape[0]):
        if (lo[r, 0] <= i <= hi[r, 0] and
                lo[r, 1] <= j <= hi[r, 1] and
                lo[r, 2] <= k <= hi[r, 2]):
            F -= rate[r] * (value - target[r, k])
    return F


@njit(cache=True, parallel=True)
def _relaxation_tendency_field(field: np.ndarray, out: np.ndarray,
                               lo: np.ndarray, hi: np.ndarray,
                               rate: np.ndarray, target: np.ndarray) -> None:
    """Evaluate the cell kernel over a whole field into `out`."""
    Nx, Ny, Nz = field.shape
    for i in prange(Nx):
        for j in range(Ny):
            for k in range(Nz):
                out[i, j, k] = relaxation_tendency_cell(
                    i, j, k, field[i, j, k], lo, hi, rate, target
                )


# =============================================================================
# Engine
# =============================================================================

class RelaxationForcing:
    """
    Localized relaxation forcing over a fixed set of regions.

    Regions are validated against the grid at construction; an invalid
    region raises ConfigurationError. The engine never mutates tracer
    fields.
    """

    grid: GridDescriptor
    regions: tuple
    tracers: tuple

    def __init__(self, grid: GridDescriptor, regions: Iterable[Region],
                 tracers: Sequence[str] = ACTIVE_TRACERS) -> None:
        self.grid = grid
        self.regions = tuple(regions)
        self.tracers = tuple(tracers)

        for region in self.regions:
            region.validate(grid)

        self._tables: Dict[str, ForcingTables] = {
            tracer: self._compile(tracer) for tracer in self.tracers
        }

        logger.debug(f"Relaxation forcing compiled: {len(self.regions)} region(s) "
                     f"for tracers {self.tracers}")

    def _compile(self, tracer: str) -> ForcingTables:
        n = len(self.regions)
        Nz = self.grid.Nz
        lo = np.zeros((n, 3), dtype=np.int64)
        hi = np.zeros((n, 3), dtype=np.int64)
        rate = np.zeros(n)
        target = np.zeros((n, Nz))

        for r, region in enumerate(self.regions):
            lo[r], hi[r] = region.bounds(self.grid)
            if region.target(tracer, 0) is None:
                continue
            rate[r] = region.rate
            target[r] = [region.target(tracer, k) for k in range(Nz)]

        return ForcingTables(lo=lo, hi=hi, rate=rate, target=target)

    def tables(self, tracer: str) -> ForcingTables:
        """Compiled tables for `tracer`, for use inside solver kernels."""
        try:
            return self._tables[tracer]
        except KeyError:
            raise ConfigurationError(
                f"Tracer '{tracer}' is not forced (forced tracers: {self.tracers})"
            ) from None

    def tendency(self, tracer: str, i: int, j: int, k: int, value: float) -> float:
        """Forcing for a single cell, evaluated region by region."""
        F = 0.0
        for region in self.regions:
            if region.matches(i, j, k):
                F += region.contribution(tracer, k, value)
        return F

    def cell_function(self, tracer: str) -> Callable[[int, int, int, float], float]:
        """
        Per-cell hook `F(i, j, k, value)` backed by the compiled kernel.
        """
        lo, hi, rate, target = self.tables(tracer)

        def forcing(i: int, j: int, k: int, value: float) -> float:
            return relaxation_tendency_cell(i, j, k, value, lo, hi, rate, target)

        return forcing

    def tendency_field(self, tracer: str, field: NDArrayFloat,
                       out: Optional[NDArrayFloat] = None) -> NDArrayFloat:
        """Forcing for every cell of `field` (shape grid.shape)."""
        if field.shape != self.grid.shape:
            raise ValueError(f"Field shape {field.shape} does not match grid {self.grid.shape}")
        if out is None:
            out = np.empty(self.grid.shape)
        field = np.ascontiguousarray(field, dtype=np.float64)
        lo, hi, rate, target = self.tables(tracer)
        _relaxation_tendency_field(field, out, lo, hi, rate, target)
        return out

    def tendencies(self, fields: Dict[str, NDArrayFloat]) -> Dict[str, NDArrayFloat]:
        """Forcing fields for every forced tracer present in `fields`."""
        return {
            tracer: self.tendency_field(tracer, fields[tracer])
            for tracer in self.tracers if tracer in fields
        }

    def __len__(self) -> int:
        return len(self.regions)
