"""Exceptions raised by the simulation core."""


class ConfigurationError(ValueError):
    """Invalid setup detected before the time loop starts."""
    pass


class SolverFault(RuntimeError):
    """The solver collaborator failed (e.g. NaN from a numerical instability)."""
    pass
