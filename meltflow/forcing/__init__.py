"""
Localized relaxation forcing.

This package provides:
    - Relaxation regions (point, line, box, sponge layer)
    - The forcing engine evaluated per cell by the solver
    - Meltwater tracer maintenance policies
"""

from .regions import (
    Point,
    Line,
    Box,
    SpongeLayer,
    Region,
    region_mask,
    region_slices,
)

from .relaxation import (
    RelaxationForcing,
    ForcingTables,
    relaxation_tendency_cell,
)

from .meltwater import (
    MeltwaterPolicy,
    MeltwaterMaintenance,
    normalize_concentration,
)

__all__ = [
    # Regions
    'Point',
    'Line',
    'Box',
    'SpongeLayer',
    'Region',
    'region_mask',
    'region_slices',
    # Forcing engine
    'RelaxationForcing',
    'ForcingTables',
    'relaxation_tendency_cell',
    # Meltwater
    'MeltwaterPolicy',
    'MeltwaterMaintenance',
    'normalize_concentration',
]
