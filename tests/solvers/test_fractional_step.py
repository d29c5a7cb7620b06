"""Tests for the time-stepping driver and solver construction."""

import numpy as np
import pytest

from solvers import Parameters, SolverStatus, SolverType, create_solver
from solvers.integration import TimeScheme
from solvers.variants import NavierStokesDiscretization, TairaColoniusDiscretization
from utilities.errors import ConfigurationError, NumericalBreakdownError
from utilities.io import load_force_log, load_iteration_log, load_snapshot


class TestConstruction:
    """Parameter handling and solver-type dispatch."""

    def test_dispatch(self, cavity_params, cylinder_params):
        assert create_solver(**cavity_params).discretization_cls is NavierStokesDiscretization
        assert create_solver(**cylinder_params).discretization_cls is TairaColoniusDiscretization

    def test_parameters_from_dicts(self, cavity_params):
        params = Parameters(**cavity_params)
        assert params.velocity_solver.preconditioner == "diagonal"
        assert params.domain.build_grid().nx == 8
        assert params.boundary_conditions[0].location == "yPlus"

        flat = params.to_mlflow()
        assert flat["poisson_solver.preconditioner"] == "smoothed_aggregation"
        assert flat["nu"] == 0.01

    def test_enum_members_are_accepted(self, cavity_params):
        solver = create_solver(
            **{
                **cavity_params,
                "solver_type": SolverType.NAVIER_STOKES,
                "convection_scheme": TimeScheme.RUNGE_KUTTA_3,
            }
        )
        assert solver.discretization_cls is NavierStokesDiscretization
        assert solver.params.solver_type == "navier_stokes"
        assert solver.params.convection_scheme == "runge_kutta_3"

        solver.initialise()
        assert solver.scheme.sub_steps == 3

    def test_unknown_solver_type(self, cavity_params):
        with pytest.raises(ConfigurationError):
            create_solver(**{**cavity_params, "solver_type": "lattice_boltzmann"})

    @pytest.mark.parametrize("field, value", [("nu", 0.0), ("dt", -1.0), ("bn_order", -1)])
    def test_invalid_parameters(self, cavity_params, field, value):
        with pytest.raises(ConfigurationError):
            Parameters(**{**cavity_params, field: value})

    def test_navier_stokes_rejects_bodies(self, cavity_params, cylinder_params):
        solver = create_solver(**{**cavity_params, "bodies": cylinder_params["bodies"]})
        with pytest.raises(ConfigurationError):
            solver.initialise()

    def test_taira_colonius_needs_bodies(self, cylinder_params):
        solver = create_solver(**{**cylinder_params, "bodies": []})
        with pytest.raises(ConfigurationError):
            solver.initialise()

    def test_bad_scheme_fails_before_stepping(self, cavity_params):
        solver = create_solver(**{**cavity_params, "convection_scheme": "leapfrog"})
        with pytest.raises(ConfigurationError):
            solver.initialise()
        assert solver.status is SolverStatus.INITIALIZING

    def test_poisson_rejects_approximate_inverse(self, cavity_params):
        poisson = {**cavity_params["poisson_solver"], "preconditioner": "approximate_inverse"}
        solver = create_solver(**{**cavity_params, "poisson_solver": poisson})
        with pytest.raises(ConfigurationError):
            solver.initialise()


class TestLifeCycle:
    """State machine and cooperative stopping."""

    def test_states(self, cavity_params):
        solver = create_solver(**cavity_params)
        assert solver.status is SolverStatus.INITIALIZING
        with pytest.raises(RuntimeError):
            solver.step_time()

        solver.initialise()
        assert solver.status is SolverStatus.STEPPING
        assert not solver.finished()

        solver.solve()
        assert solver.status is SolverStatus.FINISHED
        assert solver.finished()
        assert solver.state.step == 5
        assert solver.metrics.steps == 5
        assert np.isclose(solver.state.time, 0.05)

    def test_request_stop(self, cavity_params):
        solver = create_solver(**{**cavity_params, "n_steps": 100})
        solver.initialise()
        solver.step_time()
        solver.request_stop()
        assert solver.finished()

        solver.solve()
        assert solver.metrics.steps == 1
        assert solver.status is SolverStatus.FINISHED

    def test_failed_step_still_shuts_down(self, cylinder_params, tmp_path):
        # The body leaves the domain during the second step
        body = {**cylinder_params["bodies"][0], "velocity": [100.0, 0.0]}
        solver = create_solver(
            **{
                **cylinder_params,
                "bodies": [body],
                "abort_on_breakdown": False,
                "output_dir": str(tmp_path),
            }
        )
        with pytest.raises(ConfigurationError):
            solver.solve()

        assert solver.status is SolverStatus.FINISHED
        assert solver.state.step == 1
        assert solver.metrics.steps == 1
        assert solver.writer._forces is None
        assert list(load_force_log(tmp_path / "forces.txt")["step"]) == [1]

    def test_start_step_offsets_time(self, cavity_params):
        solver = create_solver(**{**cavity_params, "start_step": 10, "n_steps": 2})
        solver.solve()
        assert solver.state.step == 12
        assert np.isclose(solver.state.time, 0.12)


class TestSolution:
    """Physical and numerical properties of the stepping."""

    def test_quiescent_domain_stays_at_rest(self, cavity_params):
        solver = create_solver(**{**cavity_params, "boundary_conditions": []})
        solver.solve()
        assert np.all(solver.state.q == 0.0)
        assert np.all(solver.state.lam == 0.0)
        assert solver.metrics.final_force_x == 0.0

    @pytest.mark.parametrize("convection", ["euler_explicit", "adams_bashforth_2", "runge_kutta_3"])
    def test_divergence_free(self, cavity_params, convection):
        solver = create_solver(**{**cavity_params, "convection_scheme": convection})
        solver.solve()
        assert solver.metrics.max_divergence < 1e-8
        assert np.max(np.abs(solver.state.q)) > 0.0
        assert solver.metrics.non_converged_solves == 0

    def test_repeatable(self, cavity_params, tmp_path):
        # Smoothed aggregation seeds its setup randomly, so runs agree to round-off
        runs = []
        for run in ("a", "b"):
            solver = create_solver(**{**cavity_params, "output_dir": str(tmp_path / run)})
            solver.solve()
            runs.append((solver.state.q.copy(), solver.state.lam.copy()))
        assert np.allclose(runs[0][0], runs[1][0], rtol=0.0, atol=1e-12)
        assert np.allclose(runs[0][1], runs[1][1], rtol=0.0, atol=1e-12)

        forces_a = load_force_log(tmp_path / "a" / "forces.txt")
        forces_b = load_force_log(tmp_path / "b" / "forces.txt")
        assert list(forces_a["step"]) == list(forces_b["step"])
        assert np.allclose(forces_a[["fx", "fy"]], forces_b[["fx", "fy"]], rtol=0.0, atol=1e-10)

    def test_solution_change(self, cavity_params):
        solver = create_solver(**cavity_params)
        solver.solve()
        assert solver.metrics.final_solution_change > 0.0
        assert solver.metrics.final_solution_change == solver.solution_change()

        quiet = create_solver(**{**cavity_params, "boundary_conditions": []})
        quiet.solve()
        assert quiet.metrics.final_solution_change == 0.0

    def test_lid_drags_fluid(self, cavity_params):
        solver = create_solver(**cavity_params)
        solver.solve()
        u, _ = solver.grid.velocity(solver.state.q)
        assert np.mean(u[-1, :]) > 0.0
        assert solver.fields.u.shape == (64,)
        assert np.isfinite(solver.metrics.final_force_x)

    def test_iteration_cap_of_one(self, cavity_params, tmp_path):
        capped = {"tolerance": 1e-12, "max_iterations": 1, "preconditioner": "diagonal"}
        solver = create_solver(
            **{
                **cavity_params,
                "n_steps": 3,
                "convection_scheme": "runge_kutta_3",
                "velocity_solver": capped,
                "poisson_solver": capped,
                "output_dir": str(tmp_path),
            }
        )
        solver.solve()

        log = load_iteration_log(tmp_path / "iterations.txt")
        assert len(log) == 3 * 3
        assert np.all(log["iterations1"] == 1)
        assert np.all(log["iterations2"] == 1)
        assert not log["breakdown"].any()
        assert solver.metrics.non_converged_solves > 0

    def test_iteration_cap_with_zero_right_hand_side(self, cavity_params, tmp_path):
        # Nothing to solve: the initial residual already meets the tolerance
        capped = {"tolerance": 1e-12, "max_iterations": 1, "preconditioner": "diagonal"}
        solver = create_solver(
            **{
                **cavity_params,
                "n_steps": 2,
                "boundary_conditions": [],
                "velocity_solver": capped,
                "poisson_solver": capped,
                "output_dir": str(tmp_path),
            }
        )
        solver.solve()

        log = load_iteration_log(tmp_path / "iterations.txt")
        assert len(log) == 2
        assert np.all(log["iterations1"] == 0) and np.all(log["iterations2"] == 0)
        assert log["converged1"].all() and log["converged2"].all()
        assert solver.metrics.non_converged_solves == 0


class TestBreakdown:
    """NaN detection and abort policy."""

    @pytest.fixture
    def unstable_params(self, cavity_params):
        jacobi = {"tolerance": 1e-8, "max_iterations": 20, "preconditioner": "diagonal"}
        return {
            **cavity_params,
            "initial_velocity": [float("nan"), 0.0],
            "velocity_solver": jacobi,
            "poisson_solver": jacobi,
        }

    def test_abort(self, unstable_params):
        solver = create_solver(**unstable_params)
        with pytest.raises(NumericalBreakdownError):
            solver.solve()
        assert solver.metrics.breakdown
        assert solver.state.step == 1
        assert solver.status is SolverStatus.FINISHED

    def test_continue(self, unstable_params):
        solver = create_solver(**{**unstable_params, "abort_on_breakdown": False})
        solver.solve()
        assert solver.metrics.breakdown
        assert solver.state.step == 5
        assert solver.metrics.force_failures == 5


class TestOutput:
    """Force/iteration logs, snapshots and I/O failures."""

    def test_files(self, cavity_params, tmp_path):
        solver = create_solver(**{**cavity_params, "n_steps": 4, "save_interval": 2, "output_dir": str(tmp_path)})
        solver.solve()

        forces = load_force_log(tmp_path / "forces.txt")
        assert list(forces["step"]) == [1, 2, 3, 4]
        assert np.allclose(forces["time"], [0.01, 0.02, 0.03, 0.04])
        assert np.isclose(forces["fx"].iloc[-1], solver.metrics.final_force_x)

        iterations = load_iteration_log(tmp_path / "iterations.txt")
        assert len(iterations) == 4
        assert iterations["converged1"].all() and iterations["converged2"].all()

        snapshots = sorted(p.name for p in tmp_path.glob("fields_*.h5"))
        assert len(snapshots) == 2
        data = load_snapshot(tmp_path / snapshots[-1])
        assert data["step"] == 4
        assert np.array_equal(data["q"], solver.state.q)

    def test_io_failure_does_not_stop_run(self, cavity_params, tmp_path):
        blocker = tmp_path / "not_a_directory"
        blocker.write_text("")
        solver = create_solver(**{**cavity_params, "output_dir": str(blocker / "out")})
        solver.solve()
        assert solver.state.step == 5
        assert solver.metrics.io_errors >= 1

    def test_time_series(self, cavity_params):
        solver = create_solver(**cavity_params)
        solver.solve()
        df = solver.time_series.to_dataframe()
        assert list(df["step"]) == [1, 2, 3, 4, 5]
        assert (df["velocity_iterations"] > 0).all()


class TestImmersedBoundary:
    """Taira-Colonius variant with stationary and moving bodies."""

    def test_stationary_cylinder(self, cylinder_params):
        solver = create_solver(**cylinder_params)
        solver.solve()
        assert solver.state.lam.size == 32 * 32 + 2 * 25
        assert np.isfinite(solver.metrics.final_force_x)
        assert solver.metrics.final_force_x > 0.0
        assert np.max(np.abs(solver.constraint_residual())) < 1e-6

    def test_moving_body_rebuilds_coupling(self, cylinder_params):
        body = {**cylinder_params["bodies"][0], "y_oscillation": {"amplitude": 0.1, "frequency": 1.0}}
        solver = create_solver(**{**cylinder_params, "bodies": [body]})
        solver.initialise()

        solver.step_time()
        QT_before = solver.ops.QT
        BN_before = dict(solver.ops.BN)
        solver.step_time()

        assert solver.ops.QT is not QT_before
        assert (solver.ops.QT != QT_before).nnz > 0
        assert all(solver.ops.BN[k] is BN_before[k] for k in BN_before)

        # Markers move with the prescribed velocity
        residual = solver.constraint_residual()
        assert np.max(np.abs(residual)) < 1e-6
