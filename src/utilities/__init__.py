"""Cross-project utilities (errors and output files)."""

# Keep __init__ lightweight to avoid circular imports during Hydra startup.
from utilities.errors import ConfigurationError, NumericalBreakdownError  # noqa: F401
from utilities.io import OutputWriter, load_force_log, load_iteration_log, load_snapshot  # noqa: F401

__all__ = [
    "ConfigurationError",
    "NumericalBreakdownError",
    "OutputWriter",
    "load_force_log",
    "load_iteration_log",
    "load_snapshot",
]
