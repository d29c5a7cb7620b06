"""Fractional-step solver framework.

Solver Hierarchy:
-----------------
FractionalStepSolver (time-stepping driver, owns SolverState)
└── Discretization (strategy)
    ├── NavierStokesDiscretization (projection, pressure only)
    └── TairaColoniusDiscretization (immersed boundary, pressure + body forces)
"""

from .datastructures import (
    Parameters,
    LinearSolverParameters,
    DomainParameters,
    AxisParameters,
    BoundaryParameters,
    BodyParameters,
    SolverState,
    OperatorSet,
    Metrics,
    Fields,
    TimeSeries,
)
from .base_solver import FractionalStepSolver, SolverStatus
from .factory import SolverType, create_solver


__all__ = [
    # Driver
    "FractionalStepSolver",
    "SolverStatus",
    "SolverType",
    "create_solver",
    # Data structures
    "Parameters",
    "LinearSolverParameters",
    "DomainParameters",
    "AxisParameters",
    "BoundaryParameters",
    "BodyParameters",
    "SolverState",
    "OperatorSet",
    "Metrics",
    "Fields",
    "TimeSeries",
]
