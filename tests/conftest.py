"""Pytest configuration and fixtures for the fractional-step solver tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def uniform_grid():
    """Uniform 6x5 grid on [0, 1.2] x [0, 1] (square cells, nx != ny)."""
    from meshing.cartesian import CartesianGrid

    return CartesianGrid.uniform(6, 5, Lx=1.2, Ly=1.0)


@pytest.fixture
def stretched_grid():
    """Nonuniform grid with one stretched segment per axis direction."""
    from meshing.cartesian import AxisSegment, CartesianGrid

    return CartesianGrid.from_segments(
        0.0, [AxisSegment(0.4, 3, 0.8), AxisSegment(1.0, 4, 1.2)],
        0.0, [AxisSegment(1.0, 5, 1.1)],
    )


def evaluate_fields(grid, fu, fv):
    """Fluxes and boundary buffers of the velocity field (fu(x, y), fv(x, y))."""
    from solvers.boundary import EdgeValues

    XU, YU = np.meshgrid(grid.xu, grid.yu)
    XV, YV = np.meshgrid(grid.xv, grid.yv)
    q = grid.flux_from_velocity(fu(XU, YU), fv(XV, YV))

    x0, x1, y0, y1 = grid.x[0], grid.x[-1], grid.y[0], grid.y[-1]
    bc = [
        EdgeValues(fu(x0, grid.yc) + 0 * grid.yc, fv(x0, grid.yv) + 0 * grid.yv),
        EdgeValues(fu(x1, grid.yc) + 0 * grid.yc, fv(x1, grid.yv) + 0 * grid.yv),
        EdgeValues(fu(grid.xu, y0) + 0 * grid.xu, fv(grid.xc, y0) + 0 * grid.xc),
        EdgeValues(fu(grid.xu, y1) + 0 * grid.xu, fv(grid.xc, y1) + 0 * grid.xc),
    ]
    return q, bc


@pytest.fixture
def field_builder():
    """Expose evaluate_fields to tests."""
    return evaluate_fields


@pytest.fixture
def cavity_params():
    """Small lid-driven cavity (Re = 100) for fast driver tests."""
    return {
        "solver_type": "navier_stokes",
        "nu": 0.01,
        "dt": 0.01,
        "n_steps": 5,
        "domain": {
            "x": {"start": 0.0, "segments": [{"end": 1.0, "cells": 8}]},
            "y": {"start": 0.0, "segments": [{"end": 1.0, "cells": 8}]},
        },
        "boundary_conditions": [
            {"location": "yPlus", "u": {"type": "dirichlet", "value": 1.0}},
        ],
        "velocity_solver": {"tolerance": 1e-10, "max_iterations": 1000, "preconditioner": "diagonal"},
        "poisson_solver": {
            "tolerance": 1e-10, "max_iterations": 1000, "preconditioner": "smoothed_aggregation",
        },
    }


@pytest.fixture
def cylinder_params():
    """Coarse stationary cylinder in a uniform stream."""
    far_field = {"type": "dirichlet", "value": 1.0}
    return {
        "solver_type": "taira_colonius",
        "nu": 0.05,
        "dt": 0.01,
        "n_steps": 3,
        "domain": {
            "x": {"start": -2.0, "segments": [{"end": 2.0, "cells": 32}]},
            "y": {"start": -2.0, "segments": [{"end": 2.0, "cells": 32}]},
        },
        "boundary_conditions": [
            {"location": "xMinus", "u": far_field},
            {"location": "xPlus", "u": {"type": "convective", "value": 1.0},
             "v": {"type": "convective", "value": 1.0}},
            {"location": "yMinus", "u": far_field},
            {"location": "yPlus", "u": far_field},
        ],
        "bodies": [{"type": "circle", "center": [0.0, 0.0], "radius": 0.5, "n_points": 25}],
        "initial_velocity": [1.0, 0.0],
        "velocity_solver": {"tolerance": 1e-10, "max_iterations": 1000, "preconditioner": "diagonal"},
        "poisson_solver": {"tolerance": 1e-10, "max_iterations": 3000, "preconditioner": "diagonal"},
    }
