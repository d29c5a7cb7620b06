"""Time-stepping driver for the fractional-step projection method."""

import logging
import time
from enum import Enum
from pathlib import Path

import mlflow
import numpy as np

from meshing.bodies import BodySystem
from solvers.boundary import BoundaryConditions, flatten
from solvers.datastructures import (
    Fields,
    Metrics,
    OperatorSet,
    Parameters,
    SolverState,
    TimeSeries,
)
from solvers.forces import checked
from solvers.integration import IntegrationScheme
from solvers.linear_solvers import PRECONDITIONERS, build_preconditioner, scipy_solver
from solvers.operators import approximate_inverse, mass_matrices
from utilities.errors import ConfigurationError, NumericalBreakdownError
from utilities.io import OutputWriter

log = logging.getLogger(__name__)


class SolverStatus(str, Enum):
    INITIALIZING = "initializing"
    STEPPING = "stepping"
    FINISHED = "finished"


class FractionalStepSolver:
    """Fractional-step (projection) solver on a staggered grid.

    Every sub-step solves

        A q*   = rn + bc1                   (intermediate fluxes)
        C lam  = QT q* - bc2,  C = QT BN Q  (pressure and body forces)
        q      = q* - BN Q lam              (projection)

    where BN is a truncated series approximation of A^{-1}. The variant
    specific operators (coupling, boundary terms, forces) come from a
    Discretization strategy.

    Parameters
    ----------
    params : Parameters, optional
        Parameters object. If not provided, kwargs are used to create params.
    discretization : type
        Discretization strategy class.
    **kwargs
        Configuration parameters passed to Parameters if params is None.
    """

    def __init__(self, params=None, discretization=None, **kwargs):
        if params is None:
            params = Parameters(**kwargs)
        if discretization is None:
            raise ValueError("A discretization strategy class is required")

        self.params = params
        self.discretization_cls = discretization
        self.status = SolverStatus.INITIALIZING

        self.metrics = Metrics()
        self.fields = None  # Populated by shut_down()
        self.time_series = None  # Populated after solve()

        self._stop_requested = False
        self._history = {k: [] for k in TimeSeries.__dataclass_fields__}

    # ------------------------------------------------------------------
    # Life cycle
    # ------------------------------------------------------------------

    def initialise(self):
        """Build the grid and operators, allocate the state and open outputs."""
        if self.status is not SolverStatus.INITIALIZING:
            raise RuntimeError(f"initialise() called in state {self.status.value}")
        p = self.params

        self.grid = p.domain.build_grid()
        self.scheme = IntegrationScheme.create(p.convection_scheme, p.diffusion_scheme)
        self.boundary = BoundaryConditions.from_config(self.grid, p.boundary_entries())
        self.bodies = BodySystem([b.build() for b in p.bodies])
        self.discretization = self.discretization_cls(self.grid, self.boundary, self.bodies, nu=p.nu)

        for prec in (p.velocity_solver.preconditioner, p.poisson_solver.preconditioner):
            if prec not in PRECONDITIONERS:
                raise ConfigurationError(
                    f"Unknown preconditioner '{prec}' (choose from: {', '.join(PRECONDITIONERS)})"
                )
        if p.poisson_solver.preconditioner == "approximate_inverse":
            raise ConfigurationError("approximate_inverse only preconditions the velocity solve")

        log.info(
            f"Initialising {self.discretization.name}: {self.grid}, "
            f"{self.bodies.num_points} markers, {self.scheme.convection.value}/"
            f"{self.scheme.diffusion.value} ({self.scheme.sub_steps} sub-steps)"
        )

        # --- Operators ---
        M, Minv = mass_matrices(self.grid, p.dt)
        L, Lb = self.discretization.build_laplacian()
        self.ops = OperatorSet(M=M, Minv=Minv, L=L, Lb=Lb)
        t0 = p.start_step * p.dt
        self.ops.set_coupling(self.discretization.build_coupling(t0))

        # --- State ---
        self.state = SolverState.allocate(self.grid.num_q, self.discretization.num_lambda)
        self.state.step = p.start_step
        self.state.time = t0
        u0, v0 = p.initial_velocity
        self.state.q[:] = self.grid.flux_from_velocity(u0, v0)
        self.state.bc_prev = self.boundary.initial_values(self.state.q, t0)
        self.state.bc = [edge.copy() for edge in self.state.bc_prev]

        self.writer = OutputWriter(p.output_dir) if p.output_dir else None
        self.status = SolverStatus.STEPPING

    def _operators(self, k: int):
        """(A, BN, C) and preconditioners for sub-step k, built on first use."""
        ops = self.ops
        coefficient = self.scheme.alpha_implicit[k] * self.params.nu

        if coefficient not in ops.A:
            ops.A[coefficient] = self.discretization.build_implicit_operator(ops.M, ops.L, coefficient)
            ops.BN[coefficient] = approximate_inverse(ops.Minv, ops.L, coefficient, self.params.bn_order)
            ops.velocity_preconditioner[coefficient] = build_preconditioner(
                self.params.velocity_solver.preconditioner, ops.A[coefficient], ops.BN[coefficient]
            )
        if coefficient not in ops.C:
            ops.C[coefficient] = (ops.QT @ ops.BN[coefficient] @ ops.Q).tocsr()
            ops.poisson_preconditioner[coefficient] = build_preconditioner(
                self.params.poisson_solver.preconditioner, ops.C[coefficient]
            )
        return coefficient

    def step_time(self):
        """Advance the solution by one timestep (all sub-steps)."""
        if self.status is not SolverStatus.STEPPING:
            raise RuntimeError(f"step_time() called in state {self.status.value}")

        p, s, ops = self.params, self.state, self.ops
        scheme = self.scheme
        step = s.step + 1
        t_start = s.time

        s.q_old[:] = s.q
        s.iteration_count1 = s.iteration_count2 = 0
        s.force_x = s.force_y = 0.0
        force_ok = True

        for k in range(scheme.sub_steps):
            t = t_start + scheme.time_fraction(k) * p.dt
            weight = scheme.weight(k)

            # Boundary buffers at the end of the sub-step
            s.bc = self.boundary.update(s.bc_prev, s.q, t, weight * p.dt)
            if self.discretization.is_moving:
                ops.set_coupling(self.discretization.build_coupling(t))
            key = self._operators(k)

            # ========== EXPLICIT TERMS ==========
            s.H[:] = self.discretization.build_explicit_term(s.q, s.bc_prev)
            if not s.has_history:
                s.H_old[:] = s.H
                s.has_history = True

            s.rn[:] = ops.M @ s.q + scheme.gamma[k] * s.H + scheme.zeta[k] * s.H_old
            if scheme.alpha_explicit[k] != 0.0:
                explicit = ops.L @ s.q + ops.Lb @ flatten(s.bc_prev, self.grid)
                s.rn += scheme.alpha_explicit[k] * p.nu * explicit
            s.bc1[:] = scheme.alpha_implicit[k] * p.nu * (ops.Lb @ flatten(s.bc, self.grid))
            s.rhs1[:] = s.rn + s.bc1

            # ========== INTERMEDIATE FLUXES ==========
            s.q_star[:], report1 = scipy_solver(
                ops.A[key], s.rhs1, x0=s.q, M=ops.velocity_preconditioner[key],
                tolerance=p.velocity_solver.tolerance,
                max_iterations=p.velocity_solver.max_iterations,
            )

            # ========== PRESSURE AND BODY FORCES ==========
            s.bc2[:] = self.discretization.build_boundary_rhs(s.bc, t)
            s.rhs2[:] = ops.QT @ s.q_star - s.bc2
            s.lam[:], report2 = scipy_solver(
                ops.C[key], s.rhs2, x0=s.lam, M=ops.poisson_preconditioner[key],
                tolerance=p.poisson_solver.tolerance,
                max_iterations=p.poisson_solver.max_iterations,
                nullspace=self.discretization.nullspace,
            )

            # ========== PROJECTION ==========
            s.q[:] = s.q_star - ops.BN[key] @ (ops.Q @ s.lam)

            self._record_solves(step, k, report1, report2)

            fx, fy, ok = checked(*self.discretization.compute_forces(s.q, s.lam, s.bc, weight))
            force_ok = force_ok and ok
            s.force_x += fx
            s.force_y += fy

            s.H_old[:] = s.H
            s.bc_prev = s.bc

            if s.breakdown and p.abort_on_breakdown:
                break

        if not force_ok:
            self.metrics.force_failures += 1

        s.step = step
        s.time = step * p.dt

        self._history["step"].append(step)
        self._history["time"].append(s.time)
        self._history["force_x"].append(s.force_x)
        self._history["force_y"].append(s.force_y)
        self._history["velocity_iterations"].append(s.iteration_count1)
        self._history["poisson_iterations"].append(s.iteration_count2)

    def _record_solves(self, step, sub_step, report1, report2):
        s, m = self.state, self.metrics
        s.iteration_count1 += report1.iterations
        s.iteration_count2 += report2.iterations
        m.velocity_iterations += report1.iterations
        m.poisson_iterations += report2.iterations

        for name, report in (("velocity", report1), ("poisson", report2)):
            if report.breakdown:
                log.error(f"Step {step}.{sub_step}: numerical breakdown in {name} solve")
                s.breakdown = True
                m.breakdown = True
            elif not report.converged:
                log.warning(
                    f"Step {step}.{sub_step}: {name} solve not converged after "
                    f"{report.iterations} iterations (residual {report.residual:.3e})"
                )
                m.non_converged_solves += 1

        if self.writer is not None:
            self.writer.log_iterations(step, sub_step, report1, report2)

    def write_data(self):
        """Append the step forces and write a snapshot every save_interval steps."""
        if self.writer is None:
            return
        s = self.state
        self.writer.log_forces(s.step, s.time, s.force_x, s.force_y)
        interval = self.params.save_interval
        if interval > 0 and s.step % interval == 0:
            self.writer.write_snapshot(s.step, s.time, s.q, s.lam)
        self.writer.flush()

    def request_stop(self):
        """Stop cooperatively after the current timestep."""
        self._stop_requested = True

    def finished(self) -> bool:
        if self.status is SolverStatus.FINISHED:
            return True
        if self.status is SolverStatus.INITIALIZING:
            return False
        p = self.params
        return (
            self.state.step >= p.start_step + p.n_steps
            or self._stop_requested
            or (self.state.breakdown and p.abort_on_breakdown)
        )

    def shut_down(self):
        """Close output streams, fill metrics and the output fields."""
        if self.status is SolverStatus.FINISHED:
            return
        if self.writer is not None:
            self.writer.close()
            self.metrics.io_errors = len(self.writer.errors)

        s = self.state
        self.metrics.steps = s.step - self.params.start_step
        self.metrics.final_time = s.time
        self.metrics.final_force_x = s.force_x
        self.metrics.final_force_y = s.force_y
        self.metrics.max_divergence = self.max_divergence()
        self.metrics.final_solution_change = self.solution_change()
        self.fields = self._cell_fields()
        self.status = SolverStatus.FINISHED

        log.info(
            f"Finished at step {s.step} (t={s.time:.4g}): "
            f"{self.metrics.velocity_iterations}/{self.metrics.poisson_iterations} iterations, "
            f"{self.metrics.non_converged_solves} non-converged solves, "
            f"max divergence {self.metrics.max_divergence:.3e}"
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def constraint_residual(self) -> np.ndarray:
        """QT q - bc2 for the current fluxes and boundary buffers."""
        s = self.state
        return self.ops.QT @ s.q - self.discretization.build_boundary_rhs(s.bc, s.time)

    def max_divergence(self) -> float:
        r = self.constraint_residual()[: self.grid.num_p]
        return float(np.max(np.abs(r))) if r.size else 0.0

    def solution_change(self) -> float:
        """Largest flux change over the last timestep (zero at steady state)."""
        s = self.state
        return float(np.max(np.abs(s.q - s.q_old))) if s.q.size else 0.0

    def _cell_fields(self) -> Fields:
        """Velocity averaged to cell centres and pressure divided by the last sub-step weight."""
        g, s = self.grid, self.state
        u, v = g.velocity(s.q)
        xminus, xplus, yminus, yplus = s.bc

        u_full = np.column_stack([xminus.u, u, xplus.u])
        v_full = np.vstack([yminus.v, v, yplus.v])
        uc = 0.5 * (u_full[:, :-1] + u_full[:, 1:])
        vc = 0.5 * (v_full[:-1, :] + v_full[1:, :])
        pc = s.lam[: g.num_p].reshape(g.shape_p) / self.scheme.weight(self.scheme.sub_steps - 1)

        X, Y = np.meshgrid(g.xc, g.yc)
        return Fields(u=uc.ravel(), v=vc.ravel(), p=pc.ravel(), x=X.ravel(), y=Y.ravel())

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def _store_results(self, wall_time, max_timeseries_points: int = 1000):
        """Store the per-step history in self.time_series (downsampled)."""
        self.metrics.wall_time_seconds = wall_time

        def downsample(data):
            if len(data) <= max_timeseries_points:
                return list(data)
            indices = np.linspace(0, len(data) - 1, max_timeseries_points, dtype=int)
            return [data[i] for i in indices]

        self.time_series = TimeSeries(**{k: downsample(v) for k, v in self._history.items()})

    def solve(self):
        """Run initialise, step_time/write_data until finished, and shut_down.

        Stores results in solver attributes:
        - self.fields : Fields dataclass with cell-centred solution
        - self.time_series : TimeSeries dataclass with per-step history
        - self.metrics : Metrics dataclass with solver metrics

        Raises
        ------
        NumericalBreakdownError
            If a linear solve broke down and abort_on_breakdown is set.
        """
        if self.status is SolverStatus.INITIALIZING:
            self.initialise()

        log_interval = max(int(self.params.log_interval), 1)
        time_start = time.time()
        mlflow_time = 0.0  # Track time spent on MLflow logging

        try:
            while not self.finished():
                self.step_time()
                self.write_data()

                s = self.state
                if s.step % log_interval == 0:
                    log.info(
                        f"Step {s.step} (t={s.time:.4g}): fx={s.force_x:.6e}, fy={s.force_y:.6e}, "
                        f"iterations={s.iteration_count1}/{s.iteration_count2}, "
                        f"max change={self.solution_change():.3e}"
                    )

                    # Live MLflow logging (timed separately)
                    if mlflow.active_run():
                        t_log_start = time.time()
                        live_metrics = {
                            "force_x": s.force_x,
                            "force_y": s.force_y,
                            "velocity_iterations": s.iteration_count1,
                            "poisson_iterations": s.iteration_count2,
                        }
                        mlflow.log_metrics(
                            {k: float(v) for k, v in live_metrics.items() if np.isfinite(v)}, step=s.step
                        )
                        mlflow_time += time.time() - t_log_start
        finally:
            # Streams are closed and metrics filled even if a step raised
            wall_time = time.time() - time_start - mlflow_time
            self.shut_down()
            self._store_results(wall_time)
        log.info(f"Solver finished in {wall_time:.2f} seconds (excl. {mlflow_time:.2f}s logging).")

        if self.state.breakdown and self.params.abort_on_breakdown:
            raise NumericalBreakdownError(
                f"Linear solve broke down at step {self.state.step}; reduce the timestep"
            )

    def save(self, filepath):
        """Save params, metrics, time series and fields to an HDF5 file."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        import pandas as pd

        with pd.HDFStore(filepath, mode="w", complevel=5) as store:
            store["params"] = self.params.to_dataframe().astype(str)
            store["metrics"] = self.metrics.to_dataframe()
            store["time_series"] = self.time_series.to_dataframe()
            store["fields"] = self.fields.to_dataframe()
