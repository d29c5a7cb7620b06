"""Immersed-boundary projection (Taira & Colonius 2007).

Body forces are Lagrange multipliers solved together with pressure: the
coupling operator stacks the divergence with the interpolation operator E,
and the constraint rows of the markers prescribe the body velocity.
"""

import numpy as np
from scipy.sparse import vstack

from solvers.forces import body_forces
from solvers.operators import check_shape, regularization
from utilities.errors import ConfigurationError
from .base import Discretization
from .navier_stokes import NavierStokesDiscretization


class TairaColoniusDiscretization(Discretization):
    """Navier-Stokes discretization plus no-slip constraints on body markers."""

    name = "taira_colonius"

    def __init__(self, grid, boundary, bodies, nu: float = 0.01):
        if bodies is None or bodies.num_points == 0:
            raise ConfigurationError("Solver type 'taira_colonius' needs at least one body")
        super().__init__(grid, boundary, bodies, nu)
        self.fluid = NavierStokesDiscretization(grid, boundary, nu=nu)

    @property
    def num_lambda(self) -> int:
        return self.grid.num_p + 2 * self.bodies.num_points

    @property
    def is_moving(self) -> bool:
        return self.bodies.is_moving

    def build_laplacian(self):
        return self.fluid.build_laplacian()

    def build_implicit_operator(self, M, L, coefficient: float):
        return self.fluid.build_implicit_operator(M, L, coefficient)

    def build_coupling(self, t: float):
        xb, yb = self.bodies.positions(t)
        E = regularization(self.grid, xb, yb)
        QT = vstack([self.fluid.build_coupling(t), E], format="csr")
        return check_shape(QT, (self.num_lambda, self.grid.num_q), "QT")

    def build_boundary_rhs(self, bc, t: float):
        ub, vb = self.bodies.velocities(t)
        return np.concatenate([self.fluid.build_boundary_rhs(bc, t), ub, vb])

    def build_explicit_term(self, q, bc):
        return self.fluid.build_explicit_term(q, bc)

    def compute_forces(self, q, lam, bc, weight: float):
        return body_forces(lam, self.grid.num_p, self.bodies.num_points)
