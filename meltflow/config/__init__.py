"""
Configuration module for meltwater outflow simulations.

Provides YAML-based configuration with dataclass schema.
"""

from .schema import (
    SimulationConfig,
    GridConfig,
    PhysicsConfig,
    InitialConfig,
    ForcingConfig,
    TimeSteppingConfig,
    BackendConfig,
    OutputConfig,
    LoggingConfig,
    PRESETS,
    point_source_preset,
    line_source_preset,
    box_model_2d_preset,
)

from .loader import (
    load_yaml,
    from_dict,
    apply_cli_overrides,
    save_yaml,
    parse_duration,
)

__all__ = [
    # Schema classes
    'SimulationConfig',
    'GridConfig',
    'PhysicsConfig',
    'InitialConfig',
    'ForcingConfig',
    'TimeSteppingConfig',
    'BackendConfig',
    'OutputConfig',
    'LoggingConfig',
    # Presets
    'PRESETS',
    'point_source_preset',
    'line_source_preset',
    'box_model_2d_preset',
    # Loader functions
    'load_yaml',
    'from_dict',
    'apply_cli_overrides',
    'save_yaml',
    'parse_duration',
]
