"""Dimension checks for assembled operators."""

from utilities.errors import ConfigurationError


def check_shape(matrix, shape, name: str):
    """Raise ConfigurationError unless `matrix` has the expected shape."""
    if tuple(matrix.shape) != tuple(shape):
        raise ConfigurationError(
            f"Operator {name} has shape {tuple(matrix.shape)}, expected {tuple(shape)}"
        )
    return matrix
