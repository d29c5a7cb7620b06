"""Regularization/interpolation between grid fluxes and immersed-boundary markers.

The discrete delta function is the three-point kernel of Roma, Peskin & Berger
(1999), supported on 1.5 cells on either side of a marker:

    phi(r) = (1 + sqrt(1 - 3 r^2)) / 3                  |r| <= 0.5
    phi(r) = (5 - 3|r| - sqrt(1 - 3 (1 - |r|)^2)) / 6   0.5 < |r| <= 1.5
    phi(r) = 0                                          otherwise

with delta_h(d) = phi(d / h) / h and h the width of the cell holding the marker.

E interpolates: (E q)[k] is the x-velocity at marker k and (E q)[nB + k] the
y-velocity. E^T spreads marker forces back onto the flux-scaled momentum rows.
"""

import numpy as np
from scipy.sparse import coo_matrix

from utilities.errors import ConfigurationError

OFFSETS = np.arange(-2, 3)


def roma_delta(r: np.ndarray) -> np.ndarray:
    """Three-point discrete delta kernel phi(r) (r in units of grid spacing)."""
    r = np.abs(np.asarray(r, dtype=np.float64))
    out = np.zeros_like(r)

    inner = r <= 0.5
    out[inner] = (1.0 + np.sqrt(1.0 - 3.0 * r[inner] ** 2)) / 3.0

    outer = (r > 0.5) & (r <= 1.5)
    out[outer] = (5.0 - 3.0 * r[outer] - np.sqrt(np.maximum(1.0 - 3.0 * (1.0 - r[outer]) ** 2, 0.0))) / 6.0
    return out


def _kernel_1d(faces, markers, h):
    """Candidate face indices and kernel weights, both shaped (n_markers, 5)."""
    idx = np.searchsorted(faces, markers)[:, None] + OFFSETS[None, :]
    valid = (idx >= 0) & (idx < faces.size)
    idx = np.clip(idx, 0, faces.size - 1)
    weights = roma_delta((faces[idx] - markers[:, None]) / h[:, None]) / h[:, None]
    return idx, np.where(valid, weights, 0.0)


def _block(face_x, face_y, xb, yb, hx, hy, quadrature, n_cols):
    """Rows of E for one velocity component (one row per marker)."""
    ix, wx = _kernel_1d(face_x, xb, hx)
    jy, wy = _kernel_1d(face_y, yb, hy)

    # (marker, a, b) -> face (ix[k, a], jy[k, b])
    weights = wx[:, :, None] * wy[:, None, :] * quadrature[jy[:, None, :], ix[:, :, None]]
    cols = jy[:, None, :] * n_cols + ix[:, :, None]
    rows = np.broadcast_to(np.arange(xb.size)[:, None, None], weights.shape)

    mask = weights != 0.0
    return rows[mask], cols[mask], weights[mask]


def regularization(grid, xb: np.ndarray, yb: np.ndarray):
    """Assemble the interpolation operator E.

    Parameters
    ----------
    grid : CartesianGrid
        Staggered grid (should be uniform around the bodies).
    xb, yb : np.ndarray
        Marker coordinates.

    Returns
    -------
    E : csr_matrix
        (2 * n_markers, num_q) interpolation matrix.
    """
    xb = np.asarray(xb, dtype=np.float64)
    yb = np.asarray(yb, dtype=np.float64)
    if xb.ndim != 1 or xb.shape != yb.shape:
        raise ConfigurationError(
            f"Marker coordinates must be 1D arrays of equal length, got {xb.shape} and {yb.shape}"
        )
    if not np.all(np.isfinite(xb)) or not np.all(np.isfinite(yb)):
        raise ConfigurationError("Marker coordinates must be finite")
    n_b = xb.size
    if not grid.contains(xb, yb):
        raise ConfigurationError("Immersed-boundary markers must lie inside the domain")

    # Local spacing of the cell holding each marker
    ci = np.clip(np.searchsorted(grid.x, xb, side="right") - 1, 0, grid.nx - 1)
    cj = np.clip(np.searchsorted(grid.y, yb, side="right") - 1, 0, grid.ny - 1)
    hx, hy = grid.dx[ci], grid.dy[cj]

    # Quadrature weight per face: control volume / face width
    quad_u = np.broadcast_to(grid.dxh[None, :], grid.shape_u)
    quad_v = np.broadcast_to(grid.dyh[:, None], grid.shape_v)

    ru, cu, wu = _block(grid.xu, grid.yu, xb, yb, hx, hy, quad_u, grid.nx - 1)
    rv, cv, wv = _block(grid.xv, grid.yv, xb, yb, hx, hy, quad_v, grid.nx)

    return coo_matrix(
        (
            np.concatenate([wu, wv]),
            (np.concatenate([ru, rv + n_b]), np.concatenate([cu, cv + grid.num_u])),
        ),
        shape=(2 * n_b, grid.num_q),
    ).tocsr()
