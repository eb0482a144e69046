"""
Grid module.

Immutable description of the regular Cartesian model grid: sizes,
extents, spacings, cell centres and index helpers.
"""

from .descriptor import GridDescriptor

__all__ = ['GridDescriptor']
