"""Vectorized assembly of the discrete Laplacian on the staggered grid.

The velocity Laplacian of every face is multiplied by the face control volume,
which turns it into a weighted graph Laplacian W (symmetric, one weight per
pair of neighbouring faces). Writing it in terms of fluxes (u = q / dy,
v = q / dx) and dividing each row by the face width gives

    L = S W S,  S = diag(1 / width)

which is symmetric negative definite. Boundary neighbours are not unknowns;
their weights go into the boundary-influence matrix Lb, which maps the
flattened boundary buffers onto the rows they touch.

Normal boundary velocities sit one full cell away from the closest interior
face, tangential ones half a cell (the wall itself).
"""

import numpy as np
from scipy.sparse import coo_matrix, diags

from solvers.boundary import Location, boundary_offsets, num_boundary_values
from .shapes import check_shape


class _TripletBuilder:
    """Accumulates COO triplets for W (interior links) and B (boundary links)."""

    def __init__(self):
        self.rows, self.cols, self.data = [], [], []
        self.b_rows, self.b_cols, self.b_data = [], [], []

    def link(self, a, b, w):
        """Symmetric coupling between face arrays a and b with weights w."""
        w = np.broadcast_to(w, np.shape(a)).ravel()
        a, b = np.ravel(a), np.ravel(b)
        self.rows += [a, b, a, b]
        self.cols += [b, a, a, b]
        self.data += [w, w, -w, -w]

    def boundary(self, a, b_idx, w):
        """Coupling between faces a and boundary values b_idx."""
        w = np.broadcast_to(w, np.shape(a)).ravel()
        a, b_idx = np.ravel(a), np.ravel(b_idx)
        self.rows.append(a)
        self.cols.append(a)
        self.data.append(-w)
        self.b_rows.append(a)
        self.b_cols.append(b_idx)
        self.b_data.append(w)

    def build(self, n, n_boundary):
        W = coo_matrix(
            (np.concatenate(self.data), (np.concatenate(self.rows), np.concatenate(self.cols))),
            shape=(n, n),
        ).tocsr()
        B = coo_matrix(
            (np.concatenate(self.b_data), (np.concatenate(self.b_rows), np.concatenate(self.b_cols))),
            shape=(n, n_boundary),
        ).tocsr()
        return W, B


def face_widths(grid) -> np.ndarray:
    """Width of every flux face: dy_j for u faces, dx_i for v faces."""
    return np.concatenate([np.repeat(grid.dy, grid.nx - 1), np.tile(grid.dx, grid.ny - 1)])


def laplacian(grid):
    """Assemble the flux-space Laplacian and its boundary influence.

    Parameters
    ----------
    grid : CartesianGrid
        Staggered grid.

    Returns
    -------
    L : csr_matrix
        (num_q, num_q) symmetric Laplacian acting on fluxes.
    Lb : csr_matrix
        (num_q, n_boundary) contribution of the boundary buffers, so that
        L q + Lb bc is the discrete Laplacian with boundary values applied.
    """
    nx, ny = grid.nx, grid.ny
    dx, dy, dxh, dyh = grid.dx, grid.dy, grid.dxh, grid.dyh
    off = boundary_offsets(grid)
    t = _TripletBuilder()

    # ========== u FACES ==========
    idx_u = np.arange(grid.num_u).reshape(grid.shape_u)
    j_u = np.arange(ny)
    i_u = np.arange(nx - 1)

    # x-direction: neighbouring u faces are one cell (dx[i+1]) apart
    t.link(idx_u[:, :-1], idx_u[:, 1:], dy[:, None] / dx[None, 1:-1])
    t.boundary(idx_u[:, 0], off[(Location.XMINUS, "u")].start + j_u, dy / dx[0])
    t.boundary(idx_u[:, -1], off[(Location.XPLUS, "u")].start + j_u, dy / dx[-1])

    # y-direction: centres dyh apart, walls half a cell away
    t.link(idx_u[:-1, :], idx_u[1:, :], dxh[None, :] / dyh[:, None])
    t.boundary(idx_u[0, :], off[(Location.YMINUS, "u")].start + i_u, dxh / (0.5 * dy[0]))
    t.boundary(idx_u[-1, :], off[(Location.YPLUS, "u")].start + i_u, dxh / (0.5 * dy[-1]))

    # ========== v FACES ==========
    idx_v = grid.num_u + np.arange(grid.num_v).reshape(grid.shape_v)
    j_v = np.arange(ny - 1)
    i_v = np.arange(nx)

    t.link(idx_v[:-1, :], idx_v[1:, :], dx[None, :] / dy[1:-1, None])
    t.boundary(idx_v[0, :], off[(Location.YMINUS, "v")].start + i_v, dx / dy[0])
    t.boundary(idx_v[-1, :], off[(Location.YPLUS, "v")].start + i_v, dx / dy[-1])

    t.link(idx_v[:, :-1], idx_v[:, 1:], dyh[:, None] / dxh[None, :])
    t.boundary(idx_v[:, 0], off[(Location.XMINUS, "v")].start + j_v, dyh / (0.5 * dx[0]))
    t.boundary(idx_v[:, -1], off[(Location.XPLUS, "v")].start + j_v, dyh / (0.5 * dx[-1]))

    n_b = num_boundary_values(grid)
    W, B = t.build(grid.num_q, n_b)

    S = diags(1.0 / face_widths(grid), format="csr")
    L = (S @ W @ S).tocsr()
    Lb = (S @ B).tocsr()

    return L, Lb


def implicit_operator(M, L, coefficient: float):
    """A = M - coefficient * L, with coefficient = alpha_implicit * nu."""
    check_shape(L, M.shape, "L")
    return (M - coefficient * L).tocsr()
