"""Exceptions raised by the fractional-step solver."""


class ConfigurationError(ValueError):
    """Invalid grid, parameters or operator dimensions detected before stepping."""


class NumericalBreakdownError(RuntimeError):
    """A linear solve produced NaN/Inf values (typically an unstable timestep)."""
