"""Solver construction from the configured solver type."""

from enum import Enum

from solvers.base_solver import FractionalStepSolver
from solvers.datastructures import Parameters
from solvers.variants import NavierStokesDiscretization, TairaColoniusDiscretization
from utilities.errors import ConfigurationError


class SolverType(str, Enum):
    NAVIER_STOKES = "navier_stokes"
    TAIRA_COLONIUS = "taira_colonius"


DISCRETIZATIONS = {
    SolverType.NAVIER_STOKES: NavierStokesDiscretization,
    SolverType.TAIRA_COLONIUS: TairaColoniusDiscretization,
}


def create_solver(params=None, **kwargs) -> FractionalStepSolver:
    """Create a FractionalStepSolver for ``params.solver_type``.

    Parameters
    ----------
    params : Parameters, optional
        Parameters object. If not provided, kwargs are used to create params
        (this is the target used by hydra ``instantiate``).
    """
    if params is None:
        params = Parameters(**kwargs)
    try:
        solver_type = SolverType(str(getattr(params.solver_type, "value", params.solver_type)).lower())
    except ValueError:
        options = ", ".join(t.value for t in SolverType)
        raise ConfigurationError(f"Unknown solver type '{params.solver_type}' (choose from: {options})")
    params.solver_type = solver_type.value
    return FractionalStepSolver(params, discretization=DISCRETIZATIONS[solver_type])
