"""Human-readable durations for progress reports."""

from meltflow.constants import MINUTE, HOUR, DAY


def prettytime(t: float) -> str:
    """
    Format a duration in seconds with a sensible unit.

    >>> prettytime(0.0025)
    '2.500 ms'
    >>> prettytime(90)
    '1.500 min'
    """
    if t != t:
        return "NaN"
    if t < 1e-6:
        value, units = t * 1e9, "ns"
    elif t < 1e-3:
        value, units = t * 1e6, "μs"
    elif t < 1.0:
        value, units = t * 1e3, "ms"
    elif t < MINUTE:
        value, units = t, "s"
    elif t < HOUR:
        value, units = t / MINUTE, "min"
    elif t < DAY:
        value, units = t / HOUR, "hr"
    else:
        value, units = t / DAY, "days"
    return f"{value:.3f} {units}"
