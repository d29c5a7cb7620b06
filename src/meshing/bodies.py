"""Immersed bodies represented by Lagrangian markers.

A body is a closed curve sampled by markers. Stationary bodies keep their
reference coordinates; moving bodies follow a prescribed rigid motion made of
a constant translation, harmonic oscillations in x and y, and a constant
rotation about a centre.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from utilities.errors import ConfigurationError


@dataclass
class Oscillation:
    """Harmonic displacement: amplitude * sin(2*pi*frequency*t + phase)."""

    amplitude: float = 0.0
    frequency: float = 0.0
    phase: float = 0.0

    def displacement(self, t: float) -> float:
        return self.amplitude * math.sin(2.0 * math.pi * self.frequency * t + self.phase)

    def velocity(self, t: float) -> float:
        w = 2.0 * math.pi * self.frequency
        return self.amplitude * w * math.cos(w * t + self.phase)


@dataclass
class Body:
    """Marker set with an optional prescribed rigid-body motion."""

    x0: np.ndarray
    y0: np.ndarray
    name: str = "body"
    velocity: Tuple[float, float] = (0.0, 0.0)
    x_oscillation: Oscillation = field(default_factory=Oscillation)
    y_oscillation: Oscillation = field(default_factory=Oscillation)
    omega: float = 0.0
    center: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        self.x0 = np.asarray(self.x0, dtype=np.float64)
        self.y0 = np.asarray(self.y0, dtype=np.float64)
        if self.x0.shape != self.y0.shape or self.x0.ndim != 1:
            raise ConfigurationError(f"Body '{self.name}': x and y must be 1D arrays of equal length")
        if self.x0.size == 0:
            raise ConfigurationError(f"Body '{self.name}' has no markers")
        if self.center is None:
            self.center = (float(self.x0.mean()), float(self.y0.mean()))

    @property
    def num_points(self) -> int:
        return self.x0.size

    @property
    def is_moving(self) -> bool:
        return (
            any(v != 0.0 for v in self.velocity)
            or self.x_oscillation.amplitude != 0.0
            or self.y_oscillation.amplitude != 0.0
            or self.omega != 0.0
        )

    def position(self, t: float):
        """Marker coordinates (x, y) at time t."""
        if not self.is_moving:
            return self.x0, self.y0

        xc, yc = self.center
        theta = self.omega * t
        c, s = math.cos(theta), math.sin(theta)
        dx, dy = self.x0 - xc, self.y0 - yc
        shift_x = self.velocity[0] * t + self.x_oscillation.displacement(t)
        shift_y = self.velocity[1] * t + self.y_oscillation.displacement(t)

        x = xc + c * dx - s * dy + shift_x
        y = yc + s * dx + c * dy + shift_y
        return x, y

    def marker_velocity(self, t: float):
        """Prescribed marker velocities (u, v) at time t."""
        if not self.is_moving:
            return np.zeros_like(self.x0), np.zeros_like(self.y0)

        x, y = self.position(t)
        xc = self.center[0] + self.velocity[0] * t + self.x_oscillation.displacement(t)
        yc = self.center[1] + self.velocity[1] * t + self.y_oscillation.displacement(t)
        u = self.velocity[0] + self.x_oscillation.velocity(t) - self.omega * (y - yc)
        v = self.velocity[1] + self.y_oscillation.velocity(t) + self.omega * (x - xc)
        return u, v


def circle(center=(0.0, 0.0), radius: float = 0.5, n_points: int = 64, **kwargs) -> Body:
    """Circle sampled by `n_points` equally spaced markers."""
    if radius <= 0.0 or n_points < 3:
        raise ConfigurationError("A circle needs a positive radius and at least 3 markers")
    theta = 2.0 * np.pi * np.arange(n_points) / n_points
    x = center[0] + radius * np.cos(theta)
    y = center[1] + radius * np.sin(theta)
    return Body(x, y, center=tuple(center), **kwargs)


def load_body(filepath, **kwargs) -> Body:
    """Read markers from a text file.

    The first line holds the number of markers, followed by one ``x y`` pair
    per line.
    """
    filepath = Path(filepath)
    with open(filepath) as f:
        n_points = int(f.readline().split()[0])
        coords = np.loadtxt(f, ndmin=2)
    if coords.shape != (n_points, 2):
        raise ConfigurationError(
            f"{filepath}: expected {n_points} markers with 2 coordinates, got {coords.shape}"
        )
    kwargs.setdefault("name", filepath.stem)
    return Body(coords[:, 0], coords[:, 1], **kwargs)


class BodySystem:
    """All bodies of a simulation, stacked into one marker set."""

    def __init__(self, bodies: List[Body]):
        self.bodies = list(bodies)
        self.offsets = np.cumsum([0] + [b.num_points for b in self.bodies])

    @property
    def num_points(self) -> int:
        return int(self.offsets[-1])

    @property
    def is_moving(self) -> bool:
        return any(b.is_moving for b in self.bodies)

    def __len__(self):
        return len(self.bodies)

    def positions(self, t: float):
        if not self.bodies:
            return np.zeros(0), np.zeros(0)
        xy = [b.position(t) for b in self.bodies]
        return np.concatenate([p[0] for p in xy]), np.concatenate([p[1] for p in xy])

    def velocities(self, t: float):
        if not self.bodies:
            return np.zeros(0), np.zeros(0)
        uv = [b.marker_velocity(t) for b in self.bodies]
        return np.concatenate([w[0] for w in uv]), np.concatenate([w[1] for w in uv])
