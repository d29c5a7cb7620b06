"""Scipy-based conjugate-gradient solver with iteration accounting.

The velocity and pressure/force systems are symmetric (semi-)definite, so both
are solved with preconditioned CG. The wrapper counts iterations, measures the
true relative residual afterwards and separates ordinary non-convergence
(iteration cap reached) from numerical breakdown (NaN/Inf or a CG breakdown).
"""

from dataclasses import dataclass

import numpy as np
import pyamg
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import LinearOperator, aslinearoperator, cg

from utilities.errors import ConfigurationError

PRECONDITIONERS = ("none", "diagonal", "approximate_inverse", "smoothed_aggregation")


@dataclass
class SolveReport:
    """Outcome of one linear solve.

    `iterations` counts CG iterations actually performed. It is 0 when the
    initial residual already meets the tolerance (zero right-hand side or an
    exact warm start), so an iteration cap of 1 logs 1 only for solves that
    had work to do.
    """

    iterations: int = 0
    converged: bool = True
    residual: float = 0.0
    breakdown: bool = False


def build_preconditioner(kind: str, A: csr_matrix, approximate_inverse=None):
    """Create a preconditioner for A.

    Parameters
    ----------
    kind : str
        "none", "diagonal" (Jacobi), "approximate_inverse" (use the supplied
        BN matrix) or "smoothed_aggregation" (PyAMG).
    A : csr_matrix
        System matrix.
    approximate_inverse : sparse matrix, optional
        Required for kind="approximate_inverse".

    Returns
    -------
    M : LinearOperator or None
    """
    if kind == "none":
        return None
    if kind == "diagonal":
        diag = A.diagonal()
        inv_diag = np.where(np.abs(diag) > 0.0, 1.0 / np.where(diag == 0.0, 1.0, diag), 1.0)
        return LinearOperator(A.shape, matvec=lambda x: inv_diag * np.ravel(x), dtype=A.dtype)
    if kind == "approximate_inverse":
        if approximate_inverse is None:
            raise ConfigurationError("approximate_inverse preconditioner needs the BN matrix")
        return aslinearoperator(approximate_inverse)
    if kind == "smoothed_aggregation":
        ml = pyamg.smoothed_aggregation_solver(A.tocsr(), symmetry="symmetric", max_coarse=10)
        return ml.aspreconditioner(cycle="V")
    raise ConfigurationError(
        f"Unknown preconditioner '{kind}' (choose from: {', '.join(PRECONDITIONERS)})"
    )


def scipy_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    x0=None,
    M=None,
    tolerance=1e-6,
    max_iterations=1000,
    nullspace=None,
):
    """Solve A x = b using scipy CG.

    Parameters
    ----------
    A_csr : csr_matrix
        Symmetric positive (semi-)definite matrix.
    b_np : np.ndarray
        Right-hand side vector.
    x0 : np.ndarray, optional
        Initial guess (warm start).
    M : LinearOperator, optional
        Preconditioner.
    tolerance : float, optional
        Relative residual tolerance (default: 1e-6).
    max_iterations : int, optional
        Iteration cap (default: 1000).
    nullspace : np.ndarray, optional
        Null vector of A. Its component is removed from the right-hand side and
        from the solution (for the pressure additive constant).

    Returns
    -------
    x_np : np.ndarray
        Solution vector.
    report : SolveReport
        Iterations, convergence flag, relative residual and breakdown flag.
    """
    b = np.array(b_np, dtype=np.float64, copy=True)
    if nullspace is not None:
        z = nullspace / np.linalg.norm(nullspace)
        b -= np.dot(z, b) * z

    iterations = 0

    def count(_xk):
        nonlocal iterations
        iterations += 1

    with np.errstate(all="ignore"):
        x, info = cg(
            A_csr, b, x0=x0, M=M, rtol=tolerance, atol=0.0,
            maxiter=max_iterations, callback=count,
        )

        if nullspace is not None:
            x = x - np.dot(z, x) * z

        b_norm = np.linalg.norm(b)
        r_norm = np.linalg.norm(b - A_csr @ x)
        residual = float(r_norm / b_norm) if b_norm > 0.0 else float(r_norm)

    breakdown = info < 0 or not np.all(np.isfinite(x)) or not np.isfinite(residual)
    report = SolveReport(
        iterations=iterations,
        converged=(info == 0) and not breakdown,
        residual=residual,
        breakdown=bool(breakdown),
    )
    return x, report
