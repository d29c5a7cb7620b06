"""Discretization strategy interface.

A strategy supplies the variant-specific pieces of the fractional-step
algorithm; the time-stepping driver owns the state and calls these hooks.
"""

from abc import ABC, abstractmethod

import numpy as np


class Discretization(ABC):
    """Builds operators and right-hand-side pieces for one solver variant."""

    name = ""

    def __init__(self, grid, boundary, bodies, nu: float):
        self.grid = grid
        self.boundary = boundary
        self.bodies = bodies
        self.nu = nu

    @property
    @abstractmethod
    def num_lambda(self) -> int:
        """Length of the multiplier vector (pressure plus any body forces)."""

    @property
    def is_moving(self) -> bool:
        """True if the coupling operator changes with time."""
        return False

    @property
    def nullspace(self):
        """Null vector of the coupling: constant pressure, zero forces."""
        z = np.zeros(self.num_lambda)
        z[: self.grid.num_p] = 1.0
        return z

    @abstractmethod
    def build_laplacian(self):
        """Return (L, Lb)."""

    @abstractmethod
    def build_implicit_operator(self, M, L, coefficient: float):
        """Return A = M - coefficient * L."""

    @abstractmethod
    def build_coupling(self, t: float):
        """Return QT (num_lambda x num_q) at time t."""

    @abstractmethod
    def build_boundary_rhs(self, bc, t: float):
        """Return bc2, the known part of the constraint QT q = bc2."""

    @abstractmethod
    def build_explicit_term(self, q, bc):
        """Return the explicit convection term H."""

    @abstractmethod
    def compute_forces(self, q, lam, bc, weight: float):
        """Return the sub-step force contribution (fx, fy)."""
