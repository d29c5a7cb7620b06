"""Tests for the CG wrapper and its preconditioners."""

import numpy as np
import pytest
from scipy.sparse import diags

from solvers.linear_solvers import build_preconditioner, scipy_solver
from utilities.errors import ConfigurationError


def poisson_1d(n, neumann=False):
    """Tridiagonal [-1, 2, -1] matrix (singular with Neumann ends)."""
    main = 2.0 * np.ones(n)
    if neumann:
        main[0] = main[-1] = 1.0
    return diags([-np.ones(n - 1), main, -np.ones(n - 1)], [-1, 0, 1], format="csr")


@pytest.fixture
def system():
    rng = np.random.default_rng(42)
    A = poisson_1d(50)
    return A, rng.standard_normal(50)


class TestScipySolver:

    @pytest.mark.parametrize("kind", ["none", "diagonal", "smoothed_aggregation"])
    def test_converges(self, system, kind):
        A, b = system
        x, report = scipy_solver(A, b, M=build_preconditioner(kind, A), tolerance=1e-10)
        assert report.converged and not report.breakdown
        assert report.iterations > 0
        assert report.residual < 1e-9
        assert np.allclose(A @ x, b, atol=1e-7)

    def test_iteration_cap(self, system):
        A, b = system
        x, report = scipy_solver(A, b, M=build_preconditioner("diagonal", A), max_iterations=1)
        assert report.iterations == 1
        assert not report.converged
        assert not report.breakdown

    def test_warm_start_with_solution(self, system):
        A, b = system
        x_exact = np.linalg.solve(A.toarray(), b)
        x, report = scipy_solver(A, b, x0=x_exact, tolerance=1e-8)
        assert report.iterations == 0
        assert report.converged

    def test_zero_rhs(self, system):
        A, _ = system
        x, report = scipy_solver(A, np.zeros(50))
        assert np.all(x == 0.0)
        assert report.iterations == 0 and report.converged

    def test_nan_is_breakdown(self, system):
        A, b = system
        b[3] = np.nan
        x, report = scipy_solver(A, b, max_iterations=5)
        assert report.breakdown
        assert not report.converged

    def test_nullspace_is_removed(self):
        A = poisson_1d(40, neumann=True)
        b = np.linspace(-1.0, 2.0, 40)  # nonzero mean: incompatible part
        z = np.ones(40)
        x, report = scipy_solver(A, b, M=build_preconditioner("diagonal", A), tolerance=1e-10, nullspace=z)
        assert report.converged
        assert abs(x.sum()) < 1e-8
        assert np.allclose(A @ x, b - b.mean(), atol=1e-7)


class TestPreconditioners:

    def test_diagonal(self):
        A = diags([np.array([2.0, 4.0, 8.0])], [0], format="csr")
        M = build_preconditioner("diagonal", A)
        assert np.allclose(M @ np.ones(3), [0.5, 0.25, 0.125])

    def test_approximate_inverse_needs_matrix(self, system):
        A, _ = system
        with pytest.raises(ConfigurationError):
            build_preconditioner("approximate_inverse", A)
        M = build_preconditioner("approximate_inverse", A, approximate_inverse=A)
        assert np.allclose(M @ np.ones(50), A @ np.ones(50))

    def test_unknown(self, system):
        A, _ = system
        with pytest.raises(ConfigurationError):
            build_preconditioner("ilu", A)
        assert build_preconditioner("none", A) is None
