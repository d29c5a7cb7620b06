"""Plain Navier-Stokes discretization: pressure is the only multiplier."""

from solvers.boundary import flatten
from solvers.forces import wall_traction
from solvers.operators import convection_term, divergence, implicit_operator, laplacian
from utilities.errors import ConfigurationError
from .base import Discretization


class NavierStokesDiscretization(Discretization):
    """Staggered-grid projection method without immersed bodies."""

    name = "navier_stokes"

    def __init__(self, grid, boundary, bodies=None, nu: float = 0.01):
        if bodies is not None and len(bodies) > 0:
            raise ConfigurationError(
                "Solver type 'navier_stokes' does not support bodies; use 'taira_colonius'"
            )
        super().__init__(grid, boundary, bodies, nu)
        self._QT, self._Db = divergence(grid)

    @property
    def num_lambda(self) -> int:
        return self.grid.num_p

    def build_laplacian(self):
        return laplacian(self.grid)

    def build_implicit_operator(self, M, L, coefficient: float):
        return implicit_operator(M, L, coefficient)

    def build_coupling(self, t: float):
        return self._QT

    def build_boundary_rhs(self, bc, t: float):
        return self._Db @ flatten(bc, self.grid)

    def build_explicit_term(self, q, bc):
        return convection_term(self.grid, q, bc)

    def compute_forces(self, q, lam, bc, weight: float):
        return wall_traction(self.grid, q, lam[: self.grid.num_p], bc, self.nu, weight)
