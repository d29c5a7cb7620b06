"""Explicit convection term on the staggered grid.

Second-order conservative central differences of the nonlinear term,
evaluated from the current fluxes and the boundary buffers:

    H_u = -dxh_i * [d(uu)/dx + d(uv)/dy]   at u faces
    H_v = -dyh_j * [d(uv)/dx + d(vv)/dy]   at v faces

The leading factor is the flux-row scaling (control volume / face width)
shared with the mass matrix and the Laplacian. Products uu and vv live at cell
centres, uv at cell corners; values on a nonuniform grid are linearly
interpolated between neighbouring faces.
"""

import numpy as np


def _interp(a, b, wa, wb):
    """Linear interpolation weighted by the opposite spacing."""
    return (a * wb + b * wa) / (wa + wb)


def _extended_velocities(grid, q, bc):
    """u on (ny, nx + 1) and v on (ny + 1, nx) including boundary normal values."""
    u, v = grid.velocity(q)
    xminus, xplus, yminus, yplus = bc

    u_full = np.empty((grid.ny, grid.nx + 1))
    u_full[:, 0] = xminus.u
    u_full[:, 1:-1] = u
    u_full[:, -1] = xplus.u

    v_full = np.empty((grid.ny + 1, grid.nx))
    v_full[0, :] = yminus.v
    v_full[1:-1, :] = v
    v_full[-1, :] = yplus.v
    return u, v, u_full, v_full


def convection_term(grid, q: np.ndarray, bc) -> np.ndarray:
    """Explicit convection term H (same layout as q).

    Parameters
    ----------
    grid : CartesianGrid
    q : np.ndarray
        Flux field.
    bc : list of EdgeValues
        Boundary buffers in Location order (xMinus, xPlus, yMinus, yPlus).
    """
    dx, dy, dxh, dyh = grid.dx, grid.dy, grid.dxh, grid.dyh
    xminus, xplus, yminus, yplus = bc
    u, v, u_full, v_full = _extended_velocities(grid, q, bc)

    # ========== u MOMENTUM ==========
    # uu at cell centres (ny, nx)
    uc = 0.5 * (u_full[:, :-1] + u_full[:, 1:])
    duu_dx = (uc[:, 1:] ** 2 - uc[:, :-1] ** 2) / dxh[None, :]

    # u and v at corners (x[i + 1], y[k]), k = 0..ny -> (ny + 1, nx - 1)
    u_corner = np.empty((grid.ny + 1, grid.nx - 1))
    u_corner[0, :] = yminus.u
    u_corner[-1, :] = yplus.u
    u_corner[1:-1, :] = _interp(u[:-1, :], u[1:, :], dy[:-1, None], dy[1:, None])
    v_corner = _interp(v_full[:, :-1], v_full[:, 1:], dx[None, :-1], dx[None, 1:])

    uv = u_corner * v_corner
    duv_dy = (uv[1:, :] - uv[:-1, :]) / dy[:, None]

    H_u = -dxh[None, :] * (duu_dx + duv_dy)

    # ========== v MOMENTUM ==========
    vc = 0.5 * (v_full[:-1, :] + v_full[1:, :])
    dvv_dy = (vc[1:, :] ** 2 - vc[:-1, :] ** 2) / dyh[:, None]

    # corners (x[k], y[j + 1]), k = 0..nx -> (ny - 1, nx + 1)
    v_corner2 = np.empty((grid.ny - 1, grid.nx + 1))
    v_corner2[:, 0] = xminus.v
    v_corner2[:, -1] = xplus.v
    v_corner2[:, 1:-1] = _interp(v[:, :-1], v[:, 1:], dx[None, :-1], dx[None, 1:])
    u_corner2 = _interp(u_full[:-1, :], u_full[1:, :], dy[:-1, None], dy[1:, None])

    uv2 = u_corner2 * v_corner2
    duv_dx = (uv2[:, 1:] - uv2[:, :-1]) / dx[None, :]

    H_v = -dyh[:, None] * (duv_dx + dvv_dy)

    return np.concatenate([H_u.ravel(), H_v.ravel()])
