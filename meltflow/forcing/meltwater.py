"""
Passive meltwater tracer maintenance.

Runs once per outer iteration between solver advances and mutates the
meltwater concentration field in place. The available steps are:

    pin          set C = 1 in every source region
    zero_sponge  set C = 0 in the sponge band
    normalize    clip C to C >= 0, then divide by max(C) when max(C) > 0

The order in which these run differs between model setups, so it is chosen
with a MeltwaterPolicy.
"""

from enum import Enum
from typing import Iterable, Optional, Tuple

import numpy as np
import numpy.typing as npt
from loguru import logger

from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor
from .regions import Region, SpongeLayer, region_slices

NDArrayFloat = npt.NDArray[np.floating]


class MeltwaterPolicy(Enum):
    """Ordered maintenance steps applied after each batch of solver steps."""

    PIN = ("pin",)
    PIN_NORMALIZE = ("pin", "normalize")
    PIN_ZERO_SPONGE = ("pin", "zero_sponge")
    PIN_ZERO_SPONGE_NORMALIZE = ("pin", "zero_sponge", "normalize")
    PIN_NORMALIZE_ZERO_SPONGE = ("pin", "normalize", "zero_sponge")

    @property
    def steps(self) -> Tuple[str, ...]:
        return self.value

    @property
    def needs_sponge(self) -> bool:
        return "zero_sponge" in self.value

    @classmethod
    def from_name(cls, name: str) -> 'MeltwaterPolicy':
        """Look up a policy by name, e.g. 'pin_normalize' or 'pin-zero-sponge'."""
        key = name.strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            valid = ", ".join(p.name.lower() for p in cls)
            raise ConfigurationError(f"Unknown meltwater policy '{name}' (valid: {valid})") from None


def normalize_concentration(C: NDArrayFloat) -> NDArrayFloat:
    """
    Clip negative values to zero, then scale so the maximum is 1.

    An all-zero field is left at zero. Operates in place and returns C.
    """
    np.maximum(C, 0.0, out=C)
    C_max = C.max() if C.size else 0.0
    if C_max > 0.0:
        C /= C_max
    return C


class MeltwaterMaintenance:
    """Bulk maintenance of the meltwater tracer."""

    def __init__(self, grid: GridDescriptor,
                 sources: Iterable[Region],
                 policy: MeltwaterPolicy = MeltwaterPolicy.PIN_NORMALIZE,
                 sponge: Optional[SpongeLayer] = None) -> None:
        self.grid = grid
        self.sources = tuple(sources)
        self.policy = policy
        self.sponge = sponge

        if policy.needs_sponge and sponge is None:
            raise ConfigurationError(
                f"Meltwater policy {policy.name} zeroes the sponge band but no sponge layer is configured"
            )
        for region in self.sources:
            region.validate(grid)
        if sponge is not None:
            sponge.validate(grid)

        self._source_slices = [region_slices(r, grid) for r in self.sources]
        self._sponge_slices = region_slices(sponge, grid) if sponge is not None else None

    def initial_field(self) -> NDArrayFloat:
        """Meltwater concentration at t = 0: 1 in the source, 0 elsewhere."""
        C = self.grid.zeros()
        self.pin(C)
        return C

    def pin(self, C: NDArrayFloat) -> None:
        for sl in self._source_slices:
            C[sl] = 1.0

    def zero_sponge(self, C: NDArrayFloat) -> None:
        if self._sponge_slices is not None:
            C[self._sponge_slices] = 0.0

    def normalize(self, C: NDArrayFloat) -> None:
        normalize_concentration(C)

    def apply(self, C: NDArrayFloat) -> NDArrayFloat:
        """Run the policy's steps, in order, on C (in place)."""
        if C.shape != self.grid.shape:
            raise ValueError(f"Meltwater field shape {C.shape} does not match grid {self.grid.shape}")
        for step in self.policy.steps:
            getattr(self, step)(C)
        return C

    def __repr__(self) -> str:
        return (f"MeltwaterMaintenance(policy={self.policy.name}, "
                f"sources={len(self.sources)}, sponge={self.sponge is not None})")
