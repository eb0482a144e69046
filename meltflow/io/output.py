"""
Persistence sinks for scheduled output.

Every sink implements

    write(name, payload, time)  -> path of the file written
    close()                     -> path of the series index

A payload is a set of named arrays with per-array attributes (longname,
units). Two formats are provided:

- NumPy `.npz`, one file per write, indexed by a `<base>.series.json`
  file written on close.
- Legacy VTK ASCII (`STRUCTURED_POINTS` with CELL_DATA), one file per
  write, indexed by a ParaView `<base>.vtk.series` file written on close.

Write errors propagate to the caller: a failed write is fatal.
"""

import json
import os
from typing import Dict, List, NamedTuple, Tuple

import numpy as np
from loguru import logger

from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor


# Attributes attached to every saved field
OUTPUT_ATTRIBUTES: Dict[str, Dict[str, str]] = {
    "u": {"longname": "Velocity in the x-direction", "units": "m/s"},
    "v": {"longname": "Velocity in the y-direction", "units": "m/s"},
    "w": {"longname": "Velocity in the z-direction", "units": "m/s"},
    "T": {"longname": "Temperature", "units": "C"},
    "S": {"longname": "Salinity", "units": "g/kg"},
    "meltwater": {"longname": "Meltwater concentration", "units": "1"},
    "nu": {"longname": "Nonlinear LES viscosity", "units": "m^2/s"},
    "kappaT": {"longname": "Nonlinear LES diffusivity for temperature", "units": "m^2/s"},
    "kappaS": {"longname": "Nonlinear LES diffusivity for salinity", "units": "m^2/s"},
}


def attributes_for(name: str) -> Dict[str, str]:
    """Attributes for a field name, with a bare fallback for unknown fields."""
    return dict(OUTPUT_ATTRIBUTES.get(name, {"longname": name, "units": ""}))


class Payload(NamedTuple):
    """Named arrays plus their attributes."""
    arrays: Dict[str, np.ndarray]
    attributes: Dict[str, Dict[str, str]]


class NpzSeriesWriter:
    """
    Write each payload to `<base>_<nnnnnn>.npz`.

    Example
    -------
    >>> writer = NpzSeriesWriter("output/run_fields")
    >>> writer.write("fields", payload, time=300.0)
    >>> writer.close()  # Writes output/run_fields.series.json
    """

    accepts_scalars = True

    def __init__(self, base_filename: str) -> None:
        self.base_filename = base_filename
        self.entries: List[Dict] = []
        self.attributes: Dict[str, Dict[str, str]] = {}
        self.closed = False

        output_dir = os.path.dirname(base_filename)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

    def write(self, name: str, payload: Payload, time: float) -> str:
        if self.closed:
            raise RuntimeError(f"Write to closed writer {self.base_filename}")

        filename = f"{self.base_filename}_{len(self.entries):06d}.npz"
        np.savez(filename, time=np.float64(time), **payload.arrays)

        self.entries.append({
            "name": name,
            "time": float(time),
            "file": os.path.basename(filename),
            "arrays": sorted(payload.arrays),
        })
        self.attributes.update(payload.attributes)
        return filename

    def close(self) -> str:
        """Write the `.series.json` index. Safe to call more than once."""
        if self.closed:
            return f"{self.base_filename}.series.json"

        series_filename = f"{self.base_filename}.series.json"
        with open(series_filename, 'w') as f:
            json.dump({
                "files": self.entries,
                "attributes": self.attributes,
            }, f, indent=2)

        self.closed = True
        logger.debug(f"Closed {self.base_filename}: {len(self.entries)} file(s)")
        return series_filename


class VTKSeriesWriter:
    """
    Write each payload as a legacy VTK structured-points file.

    Arrays must be 3-D: full fields, or slices that keep the sliced axis
    with length 1. Scalars (0-d arrays) cannot be represented and raise
    ValueError; the scheduler rejects scalar selectors for this sink at
    registration.
    """

    accepts_scalars = False

    def __init__(self, base_filename: str, grid: GridDescriptor) -> None:
        self.base_filename = base_filename
        self.grid = grid
        self.solutions: Dict[int, Tuple[str, float]] = {}
        self.closed = False

        output_dir = os.path.dirname(base_filename)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

    def write(self, name: str, payload: Payload, time: float) -> str:
        if self.closed:
            raise RuntimeError(f"Write to closed writer {self.base_filename}")

        n = len(self.solutions)
        filename = f"{self.base_filename}_{n:06d}.vtk"
        write_vtk(filename, self.grid, payload, title=f"{name} t={time:.6g}s")
        self.solutions[n] = (filename, float(time))
        return filename

    def close(self) -> str:
        """Write `.vtk.series` file for ParaView time series loading."""
        series_filename = f"{self.base_filename}.vtk.series"
        if self.closed:
            return series_filename

        with open(series_filename, 'w') as f:
            f.write('{\n')
            f.write('  "file-series-version" : "1.0",\n')
            f.write('  "files" : [\n')

            sorted_items = sorted(self.solutions.items())
            for idx, (_, (vtk_file, time)) in enumerate(sorted_items):
                comma = "," if idx < len(sorted_items) - 1 else ""
                vtk_basename = os.path.basename(vtk_file)
                f.write(f'    {{ "name" : "{vtk_basename}", "time" : {time} }}{comma}\n')

            f.write('  ]\n')
            f.write('}\n')

        self.closed = True
        logger.debug(f"Closed {self.base_filename}: {len(self.solutions)} file(s)")
        return series_filename


def write_vtk(filename: str, grid: GridDescriptor, payload: Payload,
              title: str = "Meltwater outflow") -> str:
    """
    Write a payload of equally-shaped 3-D arrays to a legacy VTK file.

    The arrays are cell data on a STRUCTURED_POINTS dataset with the grid's
    spacing and the domain's lower corner as origin.

    Returns
    -------
    str
        Path to the written file.
    """
    if not filename.endswith('.vtk'):
        filename = filename + '.vtk'

    arrays = payload.arrays
    shapes = {a.shape for a in arrays.values()}
    if len(shapes) != 1:
        raise ValueError(f"VTK output needs arrays of one shape, got {sorted(shapes)}")
    shape = shapes.pop()
    if len(shape) != 3:
        raise ValueError(f"VTK output needs 3-D arrays, got shape {shape}")

    nx, ny, nz = shape
    n_cells = nx * ny * nz

    with open(filename, 'w') as f:
        f.write("# vtk DataFile Version 3.0\n")
        f.write(f"{title}\n")
        f.write("ASCII\n")
        f.write("DATASET STRUCTURED_POINTS\n")
        f.write(f"DIMENSIONS {nx + 1} {ny + 1} {nz + 1}\n")
        f.write(f"ORIGIN {-0.5 * grid.Lx:.10e} 0.0 {-grid.Lz:.10e}\n")
        f.write(f"SPACING {grid.dx:.10e} {grid.dy:.10e} {grid.dz:.10e}\n")
        f.write(f"\nCELL_DATA {n_cells}\n")

        for name, data in arrays.items():
            _write_scalar_field(f, name, data)

    return filename


def _write_scalar_field(f, name: str, data: np.ndarray):
    """Write a scalar field to VTK file (x varies fastest)."""
    f.write(f"SCALARS {name} float 1\n")
    f.write("LOOKUP_TABLE default\n")
    for value in np.asarray(data, dtype=float).ravel(order='F'):
        f.write(f"{value:.10e}\n")


def open_sink(fmt: str, base_filename: str, grid: GridDescriptor):
    """Create a sink for an output format name ('npz' or 'vtk')."""
    fmt = fmt.lower()
    if fmt == "npz":
        return NpzSeriesWriter(base_filename)
    if fmt == "vtk":
        return VTKSeriesWriter(base_filename, grid)
    raise ConfigurationError(f"Unknown output format '{fmt}' (expected 'npz' or 'vtk')")
