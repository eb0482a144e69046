"""
Global constants for the meltwater outflow simulation.

Units are SI; durations are expressed in seconds.
"""

# Time units [s]
SECOND = 1.0
MINUTE = 60.0
HOUR = 60.0 * MINUTE
DAY = 24.0 * HOUR

# Length units [m]
METER = 1.0
KM = 1000.0

# Earth
OMEGA_EARTH = 7.292115e-5  # Rotation rate [s⁻¹]

# Tracers carried by the model
T_NAME = "T"
S_NAME = "S"
MELTWATER_NAME = "meltwater"
ACTIVE_TRACERS = (T_NAME, S_NAME)
TRACERS = (T_NAME, S_NAME, MELTWATER_NAME)

# Axis names, in array order
AXES = ("x", "y", "z")


def axis_index(axis) -> int:
    """
    Return the array axis for an axis name ('x', 'y', 'z') or integer.

    Raises
    ------
    ValueError
        If the axis is not recognised.
    """
    if isinstance(axis, str):
        name = axis.lower()
        if name not in AXES:
            raise ValueError(f"Unknown axis '{axis}', expected one of {AXES}")
        return AXES.index(name)
    if isinstance(axis, int) and 0 <= axis < 3:
        return axis
    raise ValueError(f"Unknown axis {axis!r}, expected one of {AXES} or 0-2")
