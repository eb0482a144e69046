"""
Multi-rate output scheduling.

Each WriterSchedule pairs a selector (what to save) with a sink (where to
save it) and an interval in simulation time. The scheduler is polled once
per outer iteration; every schedule whose next fire time has been reached
fires, in registration order.

Cadence is anchored to multiples of the interval: after a fire,
next_fire_time advances by whole intervals (next += interval) rather than
being reset to t + interval, so irregular outer-iteration lengths do not
accumulate drift. A schedule fires at most once per poll; cadence points
already passed are skipped.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union

import numpy as np
from loguru import logger

from meltflow.constants import axis_index, AXES
from meltflow.errors import ConfigurationError
from meltflow.grid import GridDescriptor
from .output import Payload, attributes_for


class Sink(Protocol):
    def write(self, name: str, payload: Payload, time: float) -> Any:
        ...

    def close(self) -> Any:
        ...


# =============================================================================
# Selectors
# =============================================================================

def _check_field_names(names, known_fields: Optional[Iterable[str]]) -> None:
    if known_fields is None:
        return
    known = set(known_fields)
    unknown = [name for name in names if name not in known]
    if unknown:
        raise ConfigurationError(
            f"Unknown output field(s) {unknown} (available: {sorted(known)})"
        )


@dataclass(frozen=True)
class FieldSelector:
    """Full 3-D copies of the named fields."""
    fields: Tuple[str, ...]

    is_scalar = False

    def validate(self, grid: GridDescriptor, known_fields: Optional[Iterable[str]] = None) -> None:
        if not self.fields:
            raise ConfigurationError("Field selector needs at least one field")
        _check_field_names(self.fields, known_fields)

    def __call__(self, state) -> Payload:
        arrays = {name: np.array(state[name], copy=True) for name in self.fields}
        return Payload(arrays, {name: attributes_for(name) for name in self.fields})


@dataclass(frozen=True)
class SliceSelector:
    """
    A single-index slice of the named fields along one axis.

    The sliced axis is kept with length 1, e.g. a z-slice of an
    (Nx, Ny, Nz) field has shape (Nx, Ny, 1).
    """
    fields: Tuple[str, ...]
    axis: Union[str, int]
    index: int

    is_scalar = False

    def validate(self, grid: GridDescriptor, known_fields: Optional[Iterable[str]] = None) -> None:
        if not self.fields:
            raise ConfigurationError("Slice selector needs at least one field")
        _check_field_names(self.fields, known_fields)
        try:
            a = axis_index(self.axis)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        n = grid.shape[a]
        if isinstance(self.index, bool) or not isinstance(self.index, (int, np.integer)):
            raise ConfigurationError(f"Slice index must be an integer, got {self.index!r}")
        if not (0 <= self.index < n):
            raise ConfigurationError(
                f"Slice index {self.index} along {AXES[a]} outside [0, {n - 1}]"
            )

    def __call__(self, state) -> Payload:
        a = axis_index(self.axis)
        arrays = {name: np.take(state[name], [self.index], axis=a) for name in self.fields}
        return Payload(arrays, {name: attributes_for(name) for name in self.fields})


REDUCTIONS = {
    "max": np.max,
    "min": np.min,
    "max_abs": lambda a: np.max(np.abs(a)),
    "mean": np.mean,
}


@dataclass(frozen=True)
class ReductionSelector:
    """A scalar derived from one field, saved as `<field>_<reduction>`."""
    field: str
    reduction: str = "max"

    is_scalar = True

    @property
    def output_name(self) -> str:
        return f"{self.field}_{self.reduction}"

    def validate(self, grid: GridDescriptor, known_fields: Optional[Iterable[str]] = None) -> None:
        if self.reduction not in REDUCTIONS:
            raise ConfigurationError(
                f"Unknown reduction '{self.reduction}' (valid: {sorted(REDUCTIONS)})"
            )
        _check_field_names((self.field,), known_fields)

    def __call__(self, state) -> Payload:
        value = np.asarray(REDUCTIONS[self.reduction](state[self.field]), dtype=float)
        attrs = attributes_for(self.field)
        attrs["longname"] = f"{self.reduction} of {attrs['longname']}"
        return Payload({self.output_name: value}, {self.output_name: attrs})


Selector = Union[FieldSelector, SliceSelector, ReductionSelector]


def selector_from_spec(spec: Dict[str, Any], default_fields: Tuple[str, ...]) -> Selector:
    """
    Build a selector from a configuration mapping.

    Examples
    --------
    {"kind": "fields"}
    {"kind": "slice", "axis": "z", "index": 16, "fields": ["T", "meltwater"]}
    {"kind": "reduction", "field": "nu", "reduction": "max"}
    """
    kind = spec.get("kind", "fields")
    fields = tuple(spec.get("fields") or default_fields)
    if kind == "fields":
        return FieldSelector(fields=fields)
    if kind == "slice":
        if "axis" not in spec or "index" not in spec:
            raise ConfigurationError(f"Slice selector needs 'axis' and 'index': {spec}")
        return SliceSelector(fields=fields, axis=spec["axis"], index=spec["index"])
    if kind == "reduction":
        if "field" not in spec:
            raise ConfigurationError(f"Reduction selector needs 'field': {spec}")
        return ReductionSelector(field=spec["field"], reduction=spec.get("reduction", "max"))
    raise ConfigurationError(f"Unknown selector kind '{kind}' (expected fields, slice or reduction)")


# =============================================================================
# Schedules
# =============================================================================

@dataclass
class WriterSchedule:
    """One named output stream with its own cadence."""
    name: str
    interval: float
    selector: Selector
    sink: Sink
    next_fire_time: Optional[float] = None
    n_fires: int = 0

    def __post_init__(self):
        if self.next_fire_time is None:
            self.next_fire_time = self.interval

    def due(self, time: float) -> bool:
        return time >= self.next_fire_time

    def fire(self, time: float, state) -> None:
        """Write the selected data and advance the cadence."""
        payload = self.selector(state)
        self.sink.write(self.name, payload, time)
        self.n_fires += 1

        self.next_fire_time += self.interval
        skipped = 0
        while self.next_fire_time <= time:
            self.next_fire_time += self.interval
            skipped += 1
        if skipped:
            logger.warning(f"Output '{self.name}' skipped {skipped} cadence point(s) at "
                           f"t={time:.6g}s: the outer iteration outran its {self.interval:.6g}s interval")


class OutputScheduler:
    """
    Ordered collection of writer schedules polled by the simulation loop.

    If `known_fields` is given, every selector's field names are checked
    against it at registration.
    """

    def __init__(self, grid: GridDescriptor,
                 known_fields: Optional[Iterable[str]] = None) -> None:
        self.grid = grid
        self.known_fields = None if known_fields is None else tuple(known_fields)
        self.schedules: List[WriterSchedule] = []
        self.closed = False

    def add(self, name: str, interval: float, selector: Selector, sink: Sink) -> WriterSchedule:
        """
        Register a schedule. Selector bounds and field names are checked
        against the grid and the known fields.

        Raises
        ------
        ConfigurationError
            Non-positive interval, duplicate name, invalid selector, or a
            scalar selector paired with a sink that cannot store scalars.
        """
        if not (math.isfinite(interval) and interval > 0.0):
            raise ConfigurationError(f"Output interval for '{name}' must be positive, got {interval!r}")
        if any(s.name == name for s in self.schedules):
            raise ConfigurationError(f"Duplicate output schedule name '{name}'")
        selector.validate(self.grid, self.known_fields)
        if selector.is_scalar and not getattr(sink, "accepts_scalars", True):
            raise ConfigurationError(
                f"Output '{name}' produces scalars, which {type(sink).__name__} cannot store"
            )

        schedule = WriterSchedule(name=name, interval=float(interval), selector=selector, sink=sink)
        self.schedules.append(schedule)
        logger.debug(f"Registered output '{name}' every {interval:.6g}s")
        return schedule

    def check_cadence(self, batch_length: float) -> List[str]:
        """
        Warn about schedules whose interval is shorter than the longest
        outer iteration (`n_inner · max_dt`); they can fire at most once
        per poll and will drop cadence points. Returns their names.
        """
        short = []
        for schedule in self.schedules:
            if schedule.interval < batch_length:
                logger.warning(
                    f"Output '{schedule.name}' interval {schedule.interval:.6g}s is shorter than "
                    f"an outer iteration can last ({batch_length:.6g}s); some of its outputs may be skipped"
                )
                short.append(schedule.name)
        return short

    def poll(self, time: float, state) -> List[str]:
        """Fire every due schedule; returns the names that fired."""
        if self.closed:
            raise RuntimeError("Output scheduler polled after close()")
        fired = []
        for schedule in self.schedules:
            if schedule.due(time):
                schedule.fire(time, state)
                fired.append(schedule.name)
        if fired:
            logger.debug(f"t={time:.6g}s wrote output: {', '.join(fired)}")
        return fired

    def close(self) -> None:
        """
        Close every sink. All sinks are attempted; the first failure is
        re-raised afterwards.
        """
        if self.closed:
            return
        self.closed = True

        first_error: Optional[BaseException] = None
        for schedule in self.schedules:
            try:
                schedule.sink.close()
            except Exception as e:
                logger.error(f"Failed to close output '{schedule.name}': {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def __len__(self) -> int:
        return len(self.schedules)

    def __iter__(self):
        return iter(self.schedules)
