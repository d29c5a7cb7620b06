"""Force on immersed bodies and on the domain walls.

With immersed bodies the force block of lambda already holds the marker
forces (scaled by the sub-step weight), so the force on a body is the sum of
its markers. Without bodies the fluid traction on the four walls is reported:
shear from the first interior velocity and the wall velocity, pressure from
the cells along the wall.
"""

import logging

import numpy as np

log = logging.getLogger(__name__)


def body_forces(lam: np.ndarray, num_p: int, num_markers: int):
    """(fx, fy) summed over all markers."""
    f = lam[num_p:]
    if f.size != 2 * num_markers:
        raise ValueError(f"Force block has {f.size} entries, expected {2 * num_markers}")
    return float(np.sum(f[:num_markers])), float(np.sum(f[num_markers:]))


def wall_traction(grid, q: np.ndarray, pressure: np.ndarray, bc, nu: float, weight: float = 1.0):
    """Force of the fluid on the four domain walls.

    Parameters
    ----------
    grid : CartesianGrid
    q : np.ndarray
        Flux field after projection.
    pressure : np.ndarray
        Cell pressures already multiplied by `weight` (the pressure block of lambda).
    bc : list of EdgeValues
        Boundary buffers holding the wall velocities.
    nu : float
        Kinematic viscosity.
    weight : float
        Sub-step weight applied to the shear contribution.

    Returns
    -------
    fx, fy : float
    """
    u, v = grid.velocity(q)
    p = pressure.reshape(grid.shape_p)
    xminus, xplus, yminus, yplus = bc
    dx, dy, dxh, dyh = grid.dx, grid.dy, grid.dxh, grid.dyh

    # Shear along the horizontal walls
    fx = np.sum(nu * (u[0, :] - yminus.u) / (0.5 * dy[0]) * dxh)
    fx -= np.sum(nu * (yplus.u - u[-1, :]) / (0.5 * dy[-1]) * dxh)

    # Shear along the vertical walls
    fy = np.sum(nu * (v[:, 0] - xminus.v) / (0.5 * dx[0]) * dyh)
    fy -= np.sum(nu * (xplus.v - v[:, -1]) / (0.5 * dx[-1]) * dyh)

    fx *= weight
    fy *= weight

    # Pressure pushes each wall outwards
    fx += np.dot(p[:, -1], dy) - np.dot(p[:, 0], dy)
    fy += np.dot(p[-1, :], dx) - np.dot(p[0, :], dx)
    return float(fx), float(fy)


def checked(fx: float, fy: float):
    """Return (fx, fy, ok); non-finite components become NaN with a warning."""
    if np.isfinite(fx) and np.isfinite(fy):
        return fx, fy, True
    log.warning(f"Force calculation produced non-finite values (fx={fx}, fy={fy})")
    return float("nan"), float("nan"), False
