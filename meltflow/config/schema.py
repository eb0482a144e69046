"""
Configuration schema for meltwater outflow simulations.

Dataclass-based configuration that can be loaded from YAML or constructed programmatically.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Union, Dict, Any


Duration = Union[float, str]   # Seconds, or a string such as "5 minutes"


@dataclass
class GridConfig:
    """Regular grid: cells per axis and domain extent [m]."""

    size: List[int] = field(default_factory=lambda: [32, 32, 32])
    extent: List[float] = field(default_factory=lambda: [10000.0, 10000.0, 1000.0])


@dataclass
class PhysicsConfig:
    """Descriptive physical parameters reported in the banner."""

    latitude: float = -75.0                 # φ [degrees]
    equation_of_state: str = "roquet"       # "linear" or "roquet"
    closure: str = "AnisotropicMinimumDissipation"


@dataclass
class InitialConfig:
    """Initial T and S, linear in depth: [bottom, top]."""

    temperature: List[float] = field(default_factory=lambda: [-1.0, -1.8])
    salinity: List[float] = field(default_factory=lambda: [34.6, 34.2])


@dataclass
class ForcingConfig:
    """Meltwater source, optional sponge layer, and meltwater maintenance."""

    # Source kind: "point", "line" or "box"
    source: str = "point"

    # Point: (i, j, k). Line: only j and k are used. None = centre of the southern wall.
    index: Optional[List[int]] = None

    # Box corners, inclusive. In cell indices, or metres from the
    # left wall / southern wall / bottom when box_units == "m".
    box_lo: Optional[List[float]] = None
    box_hi: Optional[List[float]] = None
    box_units: str = "index"

    temperature: float = -1.0      # T_source [°C]
    salinity: float = 33.95        # S_source [g/kg]
    rate: float = 1.0 / 60.0       # λ [1/s]

    # Sponge band at the far end of sponge_axis, relaxed towards the
    # initial profiles. Width in cells, or in metres via sponge_width_m.
    sponge_axis: str = "y"
    sponge_width: int = 0
    sponge_width_m: Optional[float] = None

    meltwater_policy: str = "pin_normalize"


@dataclass
class TimeSteppingConfig:
    """Run length and adaptive step-size control."""

    end_time: Duration = "7 days"
    cfl: float = 0.3
    initial_dt: Duration = 1.0
    max_change: float = 1.2
    max_dt: Duration = 30.0
    n_inner: int = 50              # Solver steps per outer iteration


@dataclass
class BackendConfig:
    """Solver collaborator settings."""

    kind: str = "kinematic"
    velocity: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    viscosity: float = 1e-4
    diffusivity: float = 1e-4


def default_writers() -> List[Dict[str, Any]]:
    """3-D fields every 6 hours plus four slices every 5 minutes."""
    return [
        {"name": "fields", "interval": "6 hours", "kind": "fields"},
        {"name": "middepth_xy_slice", "interval": "5 minutes", "kind": "slice",
         "axis": "z", "index": "source"},
        {"name": "surface_xy_slice", "interval": "5 minutes", "kind": "slice",
         "axis": "z", "index": "last"},
        {"name": "calving_front_xz_slice", "interval": "5 minutes", "kind": "slice",
         "axis": "y", "index": 0},
        {"name": "along_channel_yz_slice", "interval": "5 minutes", "kind": "slice",
         "axis": "x", "index": "source"},
    ]


@dataclass
class OutputConfig:
    """Output configuration."""

    directory: str = "output"
    # Formatted with {source} and {eos}
    prefix: str = "ice_shelf_meltwater_outflow_{source}_{eos}_"
    format: str = "npz"            # "npz" or "vtk"
    fields: List[str] = field(default_factory=lambda: [
        "u", "v", "w", "T", "S", "meltwater", "nu", "kappaT", "kappaS"])
    writers: List[Dict[str, Any]] = field(default_factory=default_writers)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    show_time: bool = True
    file: Optional[str] = None      # Also log to this file


@dataclass
class SimulationConfig:
    """Complete simulation configuration."""

    grid: GridConfig = field(default_factory=GridConfig)
    physics: PhysicsConfig = field(default_factory=PhysicsConfig)
    initial: InitialConfig = field(default_factory=InitialConfig)
    forcing: ForcingConfig = field(default_factory=ForcingConfig)
    time_stepping: TimeSteppingConfig = field(default_factory=TimeSteppingConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)


# Preset configurations
def point_source_preset() -> Dict[str, Any]:
    """Point source at the centre of the southern wall of a 10 km channel."""
    return {
        "forcing": {"source": "point"},
    }


def line_source_preset() -> Dict[str, Any]:
    """Line source spanning the width of the southern wall."""
    return {
        "forcing": {"source": "line"},
    }


def box_model_2d_preset() -> Dict[str, Any]:
    """
    Two-dimensional (y, z) box model: box source at the calving front,
    400 m sponge at the northern boundary.
    """
    return {
        "grid": {"size": [1, 256, 64], "extent": [5000.0 / 256, 5000.0, 300.0]},
        "initial": {"temperature": [1.0, 3.0], "salinity": [34.0, 34.0]},
        "forcing": {
            "source": "box",
            "box_lo": [1.0, 1.0, 1.0],
            "box_hi": [5000.0 / 256, 50.0, 10.0],
            "box_units": "m",
            "temperature": 3.0,
            "salinity": 34.0,
            "sponge_axis": "y",
            "sponge_width_m": 400.0,
            "meltwater_policy": "pin_zero_sponge",
        },
        "time_stepping": {"cfl": 0.2, "max_dt": 10.0, "n_inner": 20},
        "output": {
            "prefix": "ice_shelf_meltwater_outflow_2d_{eos}_",
            "writers": [
                {"name": "fields", "interval": "6 hours", "kind": "fields"},
                {"name": "along_channel_yz_slice", "interval": "5 minutes", "kind": "slice",
                 "axis": "x", "index": 0},
            ],
        },
    }


PRESETS = {
    "point-source": point_source_preset,
    "line-source": line_source_preset,
    "box-model-2d": box_model_2d_preset,
}
