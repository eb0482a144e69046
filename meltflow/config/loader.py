"""
YAML configuration loader with validation.
"""

import math
import re
import yaml
from pathlib import Path
from typing import Dict, Any, Union
from dataclasses import fields, is_dataclass

from meltflow.constants import SECOND, MINUTE, HOUR, DAY
from meltflow.errors import ConfigurationError
from .schema import (
    SimulationConfig, GridConfig, PhysicsConfig, InitialConfig, ForcingConfig,
    TimeSteppingConfig, BackendConfig, OutputConfig, LoggingConfig, PRESETS,
)


SECTIONS = {
    'grid': GridConfig,
    'physics': PhysicsConfig,
    'initial': InitialConfig,
    'forcing': ForcingConfig,
    'time_stepping': TimeSteppingConfig,
    'backend': BackendConfig,
    'output': OutputConfig,
    'logging': LoggingConfig,
}

DURATION_UNITS = {
    '': SECOND, 's': SECOND, 'sec': SECOND, 'second': SECOND, 'seconds': SECOND,
    'min': MINUTE, 'minute': MINUTE, 'minutes': MINUTE,
    'h': HOUR, 'hr': HOUR, 'hour': HOUR, 'hours': HOUR,
    'd': DAY, 'day': DAY, 'days': DAY,
}

_DURATION_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([A-Za-z]*)\s*$")


def parse_duration(value: Union[float, int, str]) -> float:
    """
    Convert a duration to seconds.

    Accepts plain numbers (seconds) or strings such as "30", "5 minutes",
    "6 hours", "7 days", "1.5 hr".

    Raises
    ------
    ConfigurationError
        Unparseable string, unknown unit, or non-finite value.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match is None:
            raise ConfigurationError(f"Invalid duration: {value!r}")
        number, unit = match.groups()
        unit = unit.lower()
        if unit not in DURATION_UNITS:
            raise ConfigurationError(f"Unknown time unit '{unit}' in duration {value!r}")
        seconds = float(number) * DURATION_UNITS[unit]
    else:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if not math.isfinite(seconds):
        raise ConfigurationError(f"Duration must be finite, got {value!r}")
    return seconds


def _merge_dict(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_type(value, field_type):
    """Coerce value to the expected field type."""
    # Handle string representations of numbers (e.g., "1e-4")
    if field_type == float and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"Expected a number, got {value!r}") from None
    if field_type == float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if field_type == int and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"Expected an integer, got {value!r}") from None
    return value


def _dict_to_dataclass(cls, data: dict):
    """Convert a nested dictionary to a dataclass instance."""
    if not is_dataclass(cls):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section for {cls.__name__} must be a mapping, got {data!r}")

    field_types = {f.name: f.type for f in fields(cls)}
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            continue  # Skip unknown fields

        field_type = field_types[key]

        if is_dataclass(field_type) and isinstance(value, dict):
            kwargs[key] = _dict_to_dataclass(field_type, value)
        else:
            kwargs[key] = _coerce_type(value, field_type)

    return cls(**kwargs)


def load_yaml(path: Union[str, Path]) -> SimulationConfig:
    """
    Load simulation configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        SimulationConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigurationError: If the document is not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    return from_dict(data)


def from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """
    Create SimulationConfig from a dictionary.

    A `preset` key selects one of PRESETS as the base; any other keys
    override it. Missing values take the schema defaults and unknown keys
    are ignored.
    """
    data = dict(data)
    preset = data.pop('preset', None)
    if preset:
        if preset not in PRESETS:
            raise ConfigurationError(
                f"Unknown preset '{preset}' (valid: {', '.join(sorted(PRESETS))})"
            )
        data = _merge_dict(PRESETS[preset](), data)

    config_dict = {}
    for name, cls in SECTIONS.items():
        if name in data and data[name] is not None:
            config_dict[name] = _dict_to_dataclass(cls, data[name])

    return SimulationConfig(**config_dict)


def apply_cli_overrides(config: SimulationConfig, args) -> SimulationConfig:
    """
    Apply command-line argument overrides to a configuration.

    Only overrides values that were explicitly set (not None).

    Args:
        config: Base configuration
        args: argparse.Namespace with CLI arguments

    Returns:
        Updated SimulationConfig
    """
    config_dict = config.to_dict()

    # Map CLI args to config paths
    cli_mapping = {
        'end_time': ('time_stepping', 'end_time'),
        'cfl': ('time_stepping', 'cfl'),
        'max_dt': ('time_stepping', 'max_dt'),
        'n_inner': ('time_stepping', 'n_inner'),
        'output_dir': ('output', 'directory'),
        'output_format': ('output', 'format'),
        'log_level': ('logging', 'level'),
        'log_file': ('logging', 'file'),
    }

    for cli_name, config_path in cli_mapping.items():
        if hasattr(args, cli_name):
            value = getattr(args, cli_name)
            if value is not None:
                target = config_dict
                for key in config_path[:-1]:
                    target = target[key]
                target[config_path[-1]] = value

    return from_dict(config_dict)


def save_yaml(config: SimulationConfig, path: Union[str, Path]) -> None:
    """Save configuration to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
