"""
I/O module for the simulation loop.

Provides persistence sinks and the multi-rate output scheduler.
"""

from .output import (
    NpzSeriesWriter,
    VTKSeriesWriter,
    Payload,
    OUTPUT_ATTRIBUTES,
    attributes_for,
    write_vtk,
    open_sink,
)

from .scheduler import (
    FieldSelector,
    SliceSelector,
    ReductionSelector,
    WriterSchedule,
    OutputScheduler,
    selector_from_spec,
)

__all__ = [
    # Sinks
    'NpzSeriesWriter',
    'VTKSeriesWriter',
    'Payload',
    'OUTPUT_ATTRIBUTES',
    'attributes_for',
    'write_vtk',
    'open_sink',
    # Scheduling
    'FieldSelector',
    'SliceSelector',
    'ReductionSelector',
    'WriterSchedule',
    'OutputScheduler',
    'selector_from_spec',
]
