"""Data structures for solver configuration, state and results.

Structure:
- Parameters: Input configuration (logged to MLflow at start)
- SolverState: Mutable arrays owned by the time-stepping driver
- OperatorSet: Assembled sparse operators and per-sub-step caches
- Metrics: Output results (logged to MLflow at end)
- Fields: Cell-centred solution data
- TimeSeries: Per-step history (forces, iteration counts)
"""

from dataclasses import dataclass, asdict, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from mlflow.entities import Metric

from meshing.bodies import Body, Oscillation, circle, load_body
from meshing.cartesian import CartesianGrid, build_axis, segments_from_config
from utilities.errors import ConfigurationError


# ========================================================
# Parameters (Input Configuration)
# ========================================================


@dataclass
class LinearSolverParameters:
    """Tolerance, iteration cap and preconditioner of one CG solve."""

    tolerance: float = 1e-8
    max_iterations: int = 1000
    preconditioner: str = "diagonal"


@dataclass
class AxisParameters:
    """Start coordinate plus segments ``{end, cells, stretch_ratio}``."""

    start: float = 0.0
    segments: List[dict] = field(default_factory=lambda: [{"end": 1.0, "cells": 32}])

    def nodes(self) -> np.ndarray:
        return build_axis(self.start, segments_from_config(self.segments))


@dataclass
class DomainParameters:
    x: AxisParameters = field(default_factory=AxisParameters)
    y: AxisParameters = field(default_factory=AxisParameters)

    def __post_init__(self):
        if isinstance(self.x, dict):
            self.x = AxisParameters(**self.x)
        if isinstance(self.y, dict):
            self.y = AxisParameters(**self.y)

    def build_grid(self) -> CartesianGrid:
        return CartesianGrid(self.x.nodes(), self.y.nodes())


@dataclass
class BoundaryParameters:
    """Conditions for the u and v components on one edge.

    `u` and `v` are keyword dictionaries for BoundaryCondition
    (type, value, amplitude, frequency, phase); None keeps a no-slip wall.
    """

    location: str
    u: Optional[dict] = None
    v: Optional[dict] = None


@dataclass
class BodyParameters:
    """Immersed body, either a sampled circle or a marker file."""

    type: str = "circle"
    name: str = "body"
    center: Tuple[float, float] = (0.0, 0.0)
    radius: float = 0.5
    n_points: int = 64
    filepath: Optional[str] = None
    velocity: Tuple[float, float] = (0.0, 0.0)
    x_oscillation: Optional[dict] = None
    y_oscillation: Optional[dict] = None
    omega: float = 0.0

    def build(self) -> Body:
        motion = dict(
            name=self.name,
            velocity=tuple(self.velocity),
            x_oscillation=Oscillation(**(self.x_oscillation or {})),
            y_oscillation=Oscillation(**(self.y_oscillation or {})),
            omega=self.omega,
        )
        if self.type == "circle":
            return circle(tuple(self.center), self.radius, self.n_points, **motion)
        if self.type == "file":
            if not self.filepath:
                raise ConfigurationError(f"Body '{self.name}' of type 'file' needs a filepath")
            return load_body(self.filepath, **motion)
        raise ConfigurationError(f"Unknown body type '{self.type}' (choose from: circle, file)")


@dataclass
class Parameters:
    """Solver parameters - input configuration."""

    nu: float = 0.01
    dt: float = 0.01
    n_steps: int = 100
    start_step: int = 0
    save_interval: int = 0  # snapshot every N steps (0 disables)
    log_interval: int = 100
    solver_type: str = "navier_stokes"
    convection_scheme: str = "adams_bashforth_2"
    diffusion_scheme: str = "crank_nicolson"
    bn_order: int = 1
    velocity_solver: LinearSolverParameters = field(default_factory=LinearSolverParameters)
    poisson_solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(preconditioner="smoothed_aggregation")
    )
    domain: DomainParameters = field(default_factory=DomainParameters)
    boundary_conditions: List[BoundaryParameters] = field(default_factory=list)
    bodies: List[BodyParameters] = field(default_factory=list)
    initial_velocity: Tuple[float, float] = (0.0, 0.0)
    output_dir: Optional[str] = None
    abort_on_breakdown: bool = True

    def __post_init__(self):
        # Plain dicts/lists arrive from hydra instantiate(..., _convert_="partial")
        if isinstance(self.velocity_solver, dict):
            self.velocity_solver = LinearSolverParameters(**self.velocity_solver)
        if isinstance(self.poisson_solver, dict):
            self.poisson_solver = LinearSolverParameters(
                **{"preconditioner": "smoothed_aggregation", **self.poisson_solver}
            )
        if isinstance(self.domain, dict):
            self.domain = DomainParameters(**self.domain)
        self.boundary_conditions = [
            b if isinstance(b, BoundaryParameters) else BoundaryParameters(**b)
            for b in self.boundary_conditions or []
        ]
        self.bodies = [
            b if isinstance(b, BodyParameters) else BodyParameters(**b)
            for b in self.bodies or []
        ]
        self.initial_velocity = tuple(float(c) for c in self.initial_velocity)
        # SolverType/TimeScheme members are stored by value
        for name in ("solver_type", "convection_scheme", "diffusion_scheme"):
            value = getattr(self, name)
            setattr(self, name, getattr(value, "value", value))

        if self.nu <= 0.0:
            raise ConfigurationError(f"Viscosity must be positive, got {self.nu}")
        if self.dt <= 0.0:
            raise ConfigurationError(f"Timestep must be positive, got {self.dt}")
        if self.n_steps < 0 or self.start_step < 0:
            raise ConfigurationError("n_steps and start_step must be non-negative")
        if self.bn_order < 0:
            raise ConfigurationError(f"bn_order must be non-negative, got {self.bn_order}")
        if len(self.initial_velocity) != 2:
            raise ConfigurationError("initial_velocity needs two components (u, v)")

    def boundary_entries(self) -> List[dict]:
        return [asdict(b) for b in self.boundary_conditions]

    def to_dataframe(self):
        return pd.json_normalize(asdict(self))

    def to_mlflow(self) -> dict:
        """Flat parameter dictionary (nested fields joined with '.')."""
        flat = self.to_dataframe().iloc[0].to_dict()
        return {k: v if np.isscalar(v) or v is None else str(v) for k, v in flat.items()}


# ========================================================
# Solver State (driver-owned arrays)
# ========================================================


@dataclass
class SolverState:
    """Arrays advanced by the time-stepping driver."""

    # Flux fields
    q: np.ndarray
    q_star: np.ndarray
    q_old: np.ndarray

    # Pressure (scaled by the sub-step weight) followed by the body forces
    lam: np.ndarray

    # Explicit terms and convection history
    rn: np.ndarray
    H: np.ndarray
    H_old: np.ndarray

    # Right-hand sides and boundary influence
    rhs1: np.ndarray
    rhs2: np.ndarray
    bc1: np.ndarray
    bc2: np.ndarray

    # Boundary buffers at the current and previous sub-step
    bc: list = field(default_factory=list)
    bc_prev: list = field(default_factory=list)

    step: int = 0
    time: float = 0.0
    has_history: bool = False

    # Per-step accumulators
    iteration_count1: int = 0
    iteration_count2: int = 0
    force_x: float = 0.0
    force_y: float = 0.0
    breakdown: bool = False

    @classmethod
    def allocate(cls, num_q: int, num_lambda: int):
        """Allocate all arrays with proper sizes."""
        return cls(
            q=np.zeros(num_q),
            q_star=np.zeros(num_q),
            q_old=np.zeros(num_q),
            lam=np.zeros(num_lambda),
            rn=np.zeros(num_q),
            H=np.zeros(num_q),
            H_old=np.zeros(num_q),
            rhs1=np.zeros(num_q),
            rhs2=np.zeros(num_lambda),
            bc1=np.zeros(num_q),
            bc2=np.zeros(num_lambda),
        )


@dataclass
class OperatorSet:
    """Assembled operators and caches keyed by the implicit diffusion coefficient."""

    M: object
    Minv: object
    L: object
    Lb: object
    QT: object = None
    Q: object = None

    A: Dict[float, object] = field(default_factory=dict)
    BN: Dict[float, object] = field(default_factory=dict)
    C: Dict[float, object] = field(default_factory=dict)
    velocity_preconditioner: Dict[float, object] = field(default_factory=dict)
    poisson_preconditioner: Dict[float, object] = field(default_factory=dict)

    def set_coupling(self, QT):
        """Install a new coupling operator and drop everything built from it."""
        self.QT = QT.tocsr()
        self.Q = self.QT.T.tocsr()
        self.C.clear()
        self.poisson_preconditioner.clear()


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class Metrics:
    """Solver metrics - output results computed during/after solving."""

    steps: int = 0
    final_time: float = 0.0
    wall_time_seconds: float = 0.0
    velocity_iterations: int = 0
    poisson_iterations: int = 0
    non_converged_solves: int = 0
    breakdown: bool = False
    force_failures: int = 0
    io_errors: int = 0
    final_force_x: float = 0.0
    final_force_y: float = 0.0
    max_divergence: float = 0.0
    final_solution_change: float = 0.0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self) -> dict:
        return {k: float(v) for k, v in asdict(self).items()}


# ========================================================
# Fields (Spatial Solution Data)
# ========================================================


@dataclass
class Fields:
    """Cell-centred velocity and pressure on grid points (x, y)."""

    u: np.ndarray
    v: np.ndarray
    p: np.ndarray
    x: np.ndarray
    y: np.ndarray

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per cell."""
        return pd.DataFrame(asdict(self))


# ========================================================
# Time Series (Per-step History)
# ========================================================


@dataclass
class TimeSeries:
    """One value per (recorded) timestep."""

    step: List[int]
    time: List[float]
    force_x: List[float]
    force_y: List[float]
    velocity_iterations: List[int]
    poisson_iterations: List[int]

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per step."""
        return pd.DataFrame(asdict(self))

    def to_mlflow_batch(self) -> List[Metric]:
        """Metric entities for MlflowClient.log_batch."""
        batch = []
        for name in ("force_x", "force_y", "velocity_iterations", "poisson_iterations"):
            for step, value in zip(self.step, getattr(self, name)):
                if np.isfinite(value):
                    batch.append(Metric(key=name, value=float(value), timestamp=0, step=int(step)))
        return batch
