from .scipy_solver import PRECONDITIONERS, SolveReport, build_preconditioner, scipy_solver

__all__ = ["PRECONDITIONERS", "SolveReport", "build_preconditioner", "scipy_solver"]
