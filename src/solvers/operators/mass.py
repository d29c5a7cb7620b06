"""Diagonal mass matrices M and Minv on flux unknowns."""

import numpy as np
from scipy.sparse import diags


def mass_diagonal(grid, dt: float) -> np.ndarray:
    """Diagonal of M.

    u rows: dxh_i / (dy_j * dt), v rows: dyh_j / (dx_i * dt). Multiplying the
    velocity equation of a face by its control volume and dividing by the face
    width gives this scaling in terms of fluxes.
    """
    m_u = grid.dxh[None, :] / (grid.dy[:, None] * dt)
    m_v = grid.dyh[:, None] / (grid.dx[None, :] * dt)
    return np.concatenate([m_u.ravel(), m_v.ravel()])


def mass_matrices(grid, dt: float):
    """Return (M, Minv) as sparse diagonal CSR matrices."""
    if dt <= 0.0:
        raise ValueError(f"Timestep must be positive, got {dt}")
    m = mass_diagonal(grid, dt)
    return diags(m, format="csr"), diags(1.0 / m, format="csr")
