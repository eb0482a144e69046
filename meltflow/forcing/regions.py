"""
Relaxation regions: where, towards what, and how fast tracers are restored.

Each region is a variant of a small sum type:

    Point(index)            a single cell (i, j, k)
    Line(j, k)              every i at fixed (j, k), e.g. an inlet spanning x
    Box(lo, hi)             an inclusive block of cells
    SpongeLayer(axis, start)  a boundary band along one axis, relaxed
                              towards a depth profile rather than a constant

Every variant restores a tracer X at rate λ:

    F_X = -λ (X - X_target)

Indices are 0-based and k runs from the bottom cell upward.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import numpy as np

from meltflow.constants import axis_index, AXES
from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor

Index3 = Tuple[int, int, int]


def _check_rate(rate: float) -> None:
    if not (math.isfinite(rate) and rate > 0.0):
        raise ConfigurationError(f"Relaxation rate λ must be positive and finite, got {rate!r}")


def _check_targets(targets: Dict[str, float]) -> None:
    for tracer, value in targets.items():
        if not math.isfinite(value):
            raise ConfigurationError(f"Target for tracer '{tracer}' must be finite, got {value!r}")


def _check_index(grid: GridDescriptor, index: Index3, what: str) -> None:
    if not grid.contains(*index):
        raise ConfigurationError(f"{what} {tuple(index)} lies outside grid of shape {grid.shape}")


@dataclass(frozen=True)
class Point:
    """Single-cell relaxation region."""

    index: Index3
    targets: Dict[str, float] = field(default_factory=dict)
    rate: float = 1.0 / 60.0

    kind = "point"

    def matches(self, i: int, j: int, k: int) -> bool:
        return (i, j, k) == tuple(self.index)

    def target(self, tracer: str, k: int) -> Optional[float]:
        return self.targets.get(tracer)

    def contribution(self, tracer: str, k: int, value: float) -> float:
        """Restoring tendency for a matching cell (0 if the tracer has no target)."""
        target = self.target(tracer, k)
        if target is None:
            return 0.0
        return -self.rate * (value - target)

    def bounds(self, grid: GridDescriptor) -> Tuple[Index3, Index3]:
        index = tuple(int(n) for n in self.index)
        return index, index

    def validate(self, grid: GridDescriptor) -> None:
        _check_rate(self.rate)
        _check_targets(self.targets)
        if len(self.index) != 3:
            raise ConfigurationError(f"Point index needs 3 components, got {self.index}")
        _check_index(grid, self.index, "Point source")


@dataclass(frozen=True)
class Line:
    """All cells along x at fixed (j, k)."""

    j: int
    k: int
    targets: Dict[str, float] = field(default_factory=dict)
    rate: float = 1.0 / 60.0

    kind = "line"

    def matches(self, i: int, j: int, k: int) -> bool:
        return (j, k) == (self.j, self.k)

    def target(self, tracer: str, k: int) -> Optional[float]:
        return self.targets.get(tracer)

    def contribution(self, tracer: str, k: int, value: float) -> float:
        target = self.target(tracer, k)
        if target is None:
            return 0.0
        return -self.rate * (value - target)

    def bounds(self, grid: GridDescriptor) -> Tuple[Index3, Index3]:
        return (0, int(self.j), int(self.k)), (grid.Nx - 1, int(self.j), int(self.k))

    def validate(self, grid: GridDescriptor) -> None:
        _check_rate(self.rate)
        _check_targets(self.targets)
        _check_index(grid, (0, self.j, self.k), "Line source (i, j, k)")


@dataclass(frozen=True)
class Box:
    """Inclusive block of cells lo <= (i, j, k) <= hi."""

    lo: Index3
    hi: Index3
    targets: Dict[str, float] = field(default_factory=dict)
    rate: float = 1.0 / 60.0

    kind = "box"

    @classmethod
    def from_extent(cls, grid: GridDescriptor,
                    lo_m: Tuple[float, float, float],
                    hi_m: Tuple[float, float, float],
                    targets: Dict[str, float],
                    rate: float) -> 'Box':
        """
        Build a box from corners given in metres from the axis origins
        (left wall, southern wall, bottom).
        """
        lo = tuple(grid.index_of(a, d) for a, d in enumerate(lo_m))
        hi = tuple(grid.index_of(a, d) for a, d in enumerate(hi_m))
        return cls(lo=lo, hi=hi, targets=dict(targets), rate=rate)

    def matches(self, i: int, j: int, k: int) -> bool:
        lo, hi = self.lo, self.hi
        return lo[0] <= i <= hi[0] and lo[1] <= j <= hi[1] and lo[2] <= k <= hi[2]

    def target(self, tracer: str, k: int) -> Optional[float]:
        return self.targets.get(tracer)

    def contribution(self, tracer: str, k: int, value: float) -> float:
        target = self.target(tracer, k)
        if target is None:
            return 0.0
        return -self.rate * (value - target)

    def bounds(self, grid: GridDescriptor) -> Tuple[Index3, Index3]:
        return tuple(int(n) for n in self.lo), tuple(int(n) for n in self.hi)

    def validate(self, grid: GridDescriptor) -> None:
        _check_rate(self.rate)
        _check_targets(self.targets)
        if len(self.lo) != 3 or len(self.hi) != 3:
            raise ConfigurationError(f"Box corners need 3 components, got {self.lo} and {self.hi}")
        if any(l > h for l, h in zip(self.lo, self.hi)):
            raise ConfigurationError(f"Box corner lo={self.lo} exceeds hi={self.hi}")
        _check_index(grid, self.lo, "Box corner lo")
        _check_index(grid, self.hi, "Box corner hi")


@dataclass(frozen=True, eq=False)
class SpongeLayer:
    """
    Boundary band covering every cell with index >= `start` along `axis`,
    relaxing each tracer towards a reference profile indexed by depth (k).
    
    Use `SpongeLayer.boundary_band` to cover the last `width` cells.
    """

    axis: Union[str, int]
    start: int
    profiles: Dict[str, np.ndarray] = field(default_factory=dict)
    rate: float = 1.0 / 60.0

    kind = "sponge"

    @classmethod
    def boundary_band(cls, grid: GridDescriptor, axis: Union[str, int], width: int,
                      profiles: Dict[str, np.ndarray], rate: float) -> 'SpongeLayer':
        """Sponge over the last `width` cells of `axis`."""
        try:
            n = grid.size_along(axis)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if not (1 <= width <= n):
            raise ConfigurationError(f"Sponge width {width} must lie in [1, {n}] along {axis}")
        return cls(axis=axis, start=n - width, profiles=dict(profiles), rate=rate)

    @property
    def axis_number(self) -> int:
        return axis_index(self.axis)

    def width(self, grid: GridDescriptor) -> int:
        return grid.shape[self.axis_number] - self.start

    def matches(self, i: int, j: int, k: int) -> bool:
        return (i, j, k)[self.axis_number] >= self.start

    def target(self, tracer: str, k: int) -> Optional[float]:
        profile = self.profiles.get(tracer)
        if profile is None:
            return None
        return float(profile[k])

    def contribution(self, tracer: str, k: int, value: float) -> float:
        target = self.target(tracer, k)
        if target is None:
            return 0.0
        return -self.rate * (value - target)

    def bounds(self, grid: GridDescriptor) -> Tuple[Index3, Index3]:
        lo = [0, 0, 0]
        hi = [grid.Nx - 1, grid.Ny - 1, grid.Nz - 1]
        lo[self.axis_number] = int(self.start)
        return tuple(lo), tuple(hi)

    def validate(self, grid: GridDescriptor) -> None:
        _check_rate(self.rate)
        try:
            a = self.axis_number
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if not (0 <= self.start < grid.shape[a]):
            raise ConfigurationError(
                f"Sponge start {self.start} outside [0, {grid.shape[a] - 1}] along {AXES[a]}"
            )
        for tracer, profile in self.profiles.items():
            profile = np.asarray(profile)
            if profile.shape != (grid.Nz,):
                raise ConfigurationError(
                    f"Sponge profile for '{tracer}' has shape {profile.shape}, expected ({grid.Nz},)"
                )
            if not np.all(np.isfinite(profile)):
                raise ConfigurationError(f"Sponge profile for '{tracer}' contains non-finite values")


Region = Union[Point, Line, Box, SpongeLayer]


def region_mask(region: Region, grid: GridDescriptor) -> np.ndarray:
    """Boolean mask of the cells covered by `region`."""
    lo, hi = region.bounds(grid)
    mask = np.zeros(grid.shape, dtype=bool)
    mask[lo[0]:hi[0] + 1, lo[1]:hi[1] + 1, lo[2]:hi[2] + 1] = True
    return mask


def region_slices(region: Region, grid: GridDescriptor) -> Tuple[slice, slice, slice]:
    """Array slices selecting the cells covered by `region`."""
    lo, hi = region.bounds(grid)
    return tuple(slice(l, h + 1) for l, h in zip(lo, hi))
