"""
Simulation Factory Module.

Builds a ready-to-run Simulation from a SimulationConfig, so that the CLI,
the example configurations and the tests all assemble the grid, forcing,
meltwater maintenance, time-step control and output the same way.

All validation happens here, before the loop starts; anything invalid
raises ConfigurationError.
"""

import math
import os
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger

from meltflow.config import SimulationConfig, parse_duration
from meltflow.config.schema import ForcingConfig, GridConfig
from meltflow.constants import OMEGA_EARTH, S_NAME, T_NAME, axis_index
from meltflow.errors import ConfigurationError
from meltflow.forcing import (
    Box, Line, MeltwaterMaintenance, MeltwaterPolicy, Point, Region,
    RelaxationForcing, SpongeLayer,
)
from meltflow.grid import GridDescriptor
from meltflow.io import OutputScheduler, open_sink, selector_from_spec
from .driver import Simulation, SimulationContext
from .kinematic import KinematicBackend, KinematicSettings
from .time_stepping import TimeStepWizard

EOS_NAMES = {
    "linear": "LinearEOS",
    "roquet": "RoquetEOS",
}


def coriolis_parameter(latitude: float) -> float:
    """f = 2 Ω sin φ [1/s] on an f-plane at `latitude` degrees."""
    return 2.0 * OMEGA_EARTH * math.sin(math.radians(latitude))


def eos_name(name: str) -> str:
    try:
        return EOS_NAMES[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown equation of state '{name}' (valid: {', '.join(EOS_NAMES)})"
        ) from None


def build_grid(cfg: GridConfig) -> GridDescriptor:
    if len(cfg.size) != 3 or len(cfg.extent) != 3:
        raise ConfigurationError(
            f"Grid size and extent need 3 components, got {cfg.size} and {cfg.extent}"
        )
    return GridDescriptor.from_tuples(tuple(cfg.size), tuple(float(L) for L in cfg.extent))


def linear_profile(grid: GridDescriptor, bottom_top: List[float]) -> np.ndarray:
    """Profile over k, linear from the bottom cell to the surface cell."""
    if len(bottom_top) != 2:
        raise ConfigurationError(f"Profile needs [bottom, top] values, got {bottom_top}")
    bottom, top = (float(v) for v in bottom_top)
    if not (math.isfinite(bottom) and math.isfinite(top)):
        raise ConfigurationError(f"Profile values must be finite, got {bottom_top}")
    return np.linspace(bottom, top, grid.Nz)


def default_source_index(grid: GridDescriptor) -> Tuple[int, int, int]:
    """Middle of the southern wall at mid-depth."""
    return max(grid.Nx // 2 - 1, 0), 0, max(grid.Nz // 2 - 1, 0)


def build_source(grid: GridDescriptor, cfg: ForcingConfig) -> Tuple[Region, Tuple[int, int, int]]:
    """
    The meltwater source region and its anchor cell (used to place
    slices at "source").
    """
    targets = {T_NAME: float(cfg.temperature), S_NAME: float(cfg.salinity)}
    rate = float(cfg.rate)

    index = tuple(cfg.index) if cfg.index is not None else default_source_index(grid)
    if len(index) != 3:
        raise ConfigurationError(f"Source index needs 3 components, got {cfg.index}")

    kind = cfg.source.lower()
    if kind == "point":
        return Point(index=index, targets=targets, rate=rate), index
    if kind == "line":
        return Line(j=index[1], k=index[2], targets=targets, rate=rate), index
    if kind == "box":
        if cfg.box_lo is None or cfg.box_hi is None:
            raise ConfigurationError("Box source needs box_lo and box_hi")
        if cfg.box_units == "m":
            box = Box.from_extent(grid, tuple(cfg.box_lo), tuple(cfg.box_hi), targets, rate)
        elif cfg.box_units == "index":
            box = Box(lo=tuple(cfg.box_lo), hi=tuple(cfg.box_hi), targets=targets, rate=rate)
        else:
            raise ConfigurationError(f"box_units must be 'index' or 'm', got '{cfg.box_units}'")
        return box, tuple(box.lo)
    raise ConfigurationError(f"Unknown source kind '{cfg.source}' (expected point, line or box)")


def build_sponge(grid: GridDescriptor, cfg: ForcingConfig,
                 profiles: Dict[str, np.ndarray]) -> Optional[SpongeLayer]:
    """Sponge band at the far end of cfg.sponge_axis, or None if disabled."""
    try:
        a = axis_index(cfg.sponge_axis)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    width = cfg.sponge_width
    if cfg.sponge_width_m is not None:
        if not (math.isfinite(cfg.sponge_width_m) and cfg.sponge_width_m > 0.0):
            raise ConfigurationError(f"sponge_width_m must be positive, got {cfg.sponge_width_m}")
        width = int(math.ceil(cfg.sponge_width_m * grid.shape[a] / grid.extent[a]))
    if width == 0:
        return None
    return SpongeLayer.boundary_band(grid, cfg.sponge_axis, width, profiles, float(cfg.rate))


def _resolve_index(value, axis, grid: GridDescriptor, anchor: Tuple[int, int, int]) -> int:
    """Slice index from an integer, "source" or "last"."""
    a = axis_index(axis)
    if value == "source":
        return int(anchor[a])
    if value == "last":
        return grid.shape[a] - 1
    return value


def build_scheduler(config: SimulationConfig, grid: GridDescriptor,
                    anchor: Tuple[int, int, int], prefix: str,
                    known_fields: Optional[Iterable[str]] = None) -> OutputScheduler:
    out = config.output
    scheduler = OutputScheduler(grid, known_fields)
    default_fields = tuple(out.fields)

    for spec in out.writers:
        if "name" not in spec or "interval" not in spec:
            raise ConfigurationError(f"Writer needs 'name' and 'interval': {spec}")
        spec = dict(spec)
        if spec.get("kind") == "slice" and "axis" in spec and "index" in spec:
            try:
                spec["index"] = _resolve_index(spec["index"], spec["axis"], grid, anchor)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e

        selector = selector_from_spec(spec, default_fields)
        sink = open_sink(out.format, os.path.join(out.directory, prefix + spec["name"]), grid)
        scheduler.add(spec["name"], parse_duration(spec["interval"]), selector, sink)

    return scheduler


def build_simulation(config: SimulationConfig) -> Simulation:
    """
    Assemble a Simulation from a configuration.

    Parameters
    ----------
    config : SimulationConfig
        Complete configuration (see meltflow.config).

    Returns
    -------
    Simulation
        Ready to `run()`; the state holds the initial condition.

    Raises
    ------
    ConfigurationError
        Any invalid setting: grid, region placement, rates, policy,
        time-step bounds, output schedule.
    """
    grid = build_grid(config.grid)
    fcfg = config.forcing

    T0 = linear_profile(grid, config.initial.temperature)
    S0 = linear_profile(grid, config.initial.salinity)

    source, anchor = build_source(grid, fcfg)
    sponge = build_sponge(grid, fcfg, {T_NAME: T0, S_NAME: S0})
    regions = [source] if sponge is None else [source, sponge]

    forcing = RelaxationForcing(grid, regions)
    policy = MeltwaterPolicy.from_name(fcfg.meltwater_policy)
    maintenance = MeltwaterMaintenance(grid, [source], policy=policy, sponge=sponge)

    bcfg = config.backend
    if bcfg.kind != "kinematic":
        raise ConfigurationError(f"Unknown backend '{bcfg.kind}' (available: kinematic)")
    if len(bcfg.velocity) != 3:
        raise ConfigurationError(f"Backend velocity needs 3 components, got {bcfg.velocity}")
    backend = KinematicBackend(grid, forcing, KinematicSettings(
        velocity=tuple(float(v) for v in bcfg.velocity),
        viscosity=float(bcfg.viscosity),
        diffusivity=float(bcfg.diffusivity),
    ))
    state = backend.initial_state(
        np.broadcast_to(T0, grid.shape),
        np.broadcast_to(S0, grid.shape),
        maintenance.initial_field(),
    )

    ts = config.time_stepping
    wizard = TimeStepWizard(
        cfl=float(ts.cfl),
        dt=parse_duration(ts.initial_dt),
        max_change=float(ts.max_change),
        max_dt=parse_duration(ts.max_dt),
    )

    eos = eos_name(config.physics.equation_of_state)
    prefix = config.output.prefix.format(source=source.kind, eos=eos)
    scheduler = build_scheduler(config, grid, anchor, prefix, known_fields=state.fields())

    latitude = float(config.physics.latitude)
    metadata = {
        "φ": f"{latitude:.3g} [latitude]",
        "f": f"{coriolis_parameter(latitude):.3e} [s⁻¹]",
        "source": source.kind,
        "T_source": f"{fcfg.temperature:.2f} [°C]",
        "S_source": f"{fcfg.salinity:.2f} [g/kg]",
        "closure": config.physics.closure,
        "EoS": eos,
        "meltwater": policy.name.lower(),
    }

    context = SimulationContext(
        grid=grid,
        backend=backend,
        state=state,
        wizard=wizard,
        scheduler=scheduler,
        end_time=parse_duration(ts.end_time),
        n_inner=ts.n_inner,
        forcing=forcing,
        maintenance=maintenance,
        metadata=metadata,
    )
    scheduler.check_cadence(context.n_inner * wizard.max_dt)

    logger.debug(f"Built simulation on {grid}: {len(forcing)} forcing region(s), "
                 f"{len(scheduler)} output stream(s) in {config.output.directory}")
    return Simulation(context)
