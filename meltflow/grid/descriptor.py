"""
Structured grid descriptor for the ocean model domain.

The domain spans x ∈ [-Lx/2, Lx/2], y ∈ [0, Ly], z ∈ [-Lz, 0] and is
divided into Nx × Ny × Nz uniform cells. Indices are 0-based; k = 0 is the
bottom cell and k = Nz - 1 the surface.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import numpy.typing as npt

from meltflow.constants import axis_index
from meltflow.errors import ConfigurationError

NDArrayFloat = npt.NDArray[np.floating]


@dataclass(frozen=True)
class GridDescriptor:
    """Immutable regular grid geometry."""
    
    Nx: int
    Ny: int
    Nz: int
    Lx: float
    Ly: float
    Lz: float
    
    def __post_init__(self):
        for name in ("Nx", "Ny", "Nz"):
            n = getattr(self, name)
            if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 1:
                raise ConfigurationError(f"Grid size {name} must be a positive integer, got {n!r}")
        for name in ("Lx", "Ly", "Lz"):
            L = getattr(self, name)
            if not (math.isfinite(L) and L > 0):
                raise ConfigurationError(f"Domain extent {name} must be positive and finite, got {L!r}")
    
    @classmethod
    def from_tuples(cls, size: Tuple[int, int, int],
                    extent: Tuple[float, float, float]) -> 'GridDescriptor':
        """Build from (Nx, Ny, Nz) and (Lx, Ly, Lz)."""
        if len(size) != 3 or len(extent) != 3:
            raise ConfigurationError(f"Grid size and extent need 3 components, got {size} and {extent}")
        Nx, Ny, Nz = (int(n) if isinstance(n, float) and n.is_integer() else n for n in size)
        Lx, Ly, Lz = (float(L) for L in extent)
        return cls(Nx, Ny, Nz, Lx, Ly, Lz)
    
    @property
    def shape(self) -> Tuple[int, int, int]:
        """Cell counts (Nx, Ny, Nz)."""
        return (self.Nx, self.Ny, self.Nz)
    
    @property
    def extent(self) -> Tuple[float, float, float]:
        """Domain lengths (Lx, Ly, Lz)."""
        return (self.Lx, self.Ly, self.Lz)
    
    @property
    def dx(self) -> float:
        return self.Lx / self.Nx
    
    @property
    def dy(self) -> float:
        return self.Ly / self.Ny
    
    @property
    def dz(self) -> float:
        return self.Lz / self.Nz
    
    @property
    def spacing(self) -> Tuple[float, float, float]:
        """Cell spacings (Δx, Δy, Δz)."""
        return (self.dx, self.dy, self.dz)
    
    @property
    def min_spacing(self) -> float:
        """Smallest of Δx, Δy, Δz."""
        return min(self.spacing)
    
    @property
    def n_cells(self) -> int:
        return self.Nx * self.Ny * self.Nz
    
    @property
    def xC(self) -> NDArrayFloat:
        """Cell-centre x coordinates (Nx,)."""
        return -0.5 * self.Lx + (np.arange(self.Nx) + 0.5) * self.dx
    
    @property
    def yC(self) -> NDArrayFloat:
        """Cell-centre y coordinates (Ny,)."""
        return (np.arange(self.Ny) + 0.5) * self.dy
    
    @property
    def zC(self) -> NDArrayFloat:
        """Cell-centre z coordinates (Nz,), bottom to surface."""
        return -self.Lz + (np.arange(self.Nz) + 0.5) * self.dz
    
    def size_along(self, axis) -> int:
        """Number of cells along an axis ('x', 'y', 'z' or 0-2)."""
        return self.shape[axis_index(axis)]
    
    def contains(self, i: int, j: int, k: int) -> bool:
        """True if (i, j, k) is a valid cell index."""
        return 0 <= i < self.Nx and 0 <= j < self.Ny and 0 <= k < self.Nz
    
    def index_of(self, axis, distance: float) -> int:
        """
        Index of the cell containing a point `distance` metres from the
        origin of an axis (left wall, southern wall, or bottom).
        
        Points on a cell face belong to the cell below them, so
        distance = L maps to the last cell.
        """
        a = axis_index(axis)
        N, L = self.shape[a], self.extent[a]
        if not (0.0 <= distance <= L):
            raise ConfigurationError(
                f"Distance {distance} m lies outside the domain along "
                f"{'xyz'[a]} (0 to {L} m)"
            )
        return max(int(math.ceil(distance * N / L)) - 1, 0)
    
    def zeros(self) -> NDArrayFloat:
        """A zero-filled cell-centred field."""
        return np.zeros(self.shape)
    
    def __str__(self) -> str:
        return (f"GridDescriptor({self.Nx}×{self.Ny}×{self.Nz}, "
                f"L=({self.Lx:.4g}, {self.Ly:.4g}, {self.Lz:.4g}) m)")
