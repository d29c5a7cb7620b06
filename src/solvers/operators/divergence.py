"""Divergence/gradient coupling between fluxes and cell-centred pressure.

QT = -D where D sums the outward interior fluxes of every cell, so QT has
+-1 entries and its transpose Q is the discrete pressure gradient in the
flux-scaled momentum equation. Fluxes through the domain edges are known
from the boundary buffers; Db maps those buffers onto the cells they touch,
so that a divergence-free field satisfies QT q = Db bc.
"""

import numpy as np
from scipy.sparse import coo_matrix

from solvers.boundary import Location, boundary_offsets, num_boundary_values


def divergence(grid):
    """Assemble (QT, Db).

    Returns
    -------
    QT : csr_matrix
        (num_p, num_q) negative divergence of interior fluxes.
    Db : csr_matrix
        (num_p, n_boundary) outward boundary flux of each cell.
    """
    nx, ny = grid.nx, grid.ny
    cells = np.arange(grid.num_p).reshape(grid.shape_p)

    # u face (i, j) is the east face of cell (i, j) and the west face of (i + 1, j)
    idx_u = np.arange(grid.num_u).reshape(grid.shape_u)
    # v face (i, j) is the north face of cell (i, j) and the south face of (i, j + 1)
    idx_v = grid.num_u + np.arange(grid.num_v).reshape(grid.shape_v)

    rows = [cells[:, :-1], cells[:, 1:], cells[:-1, :], cells[1:, :]]
    cols = [idx_u, idx_u, idx_v, idx_v]
    vals = [-1.0, 1.0, -1.0, 1.0]

    QT = coo_matrix(
        (
            np.concatenate([np.full(r.size, v) for r, v in zip(rows, vals)]),
            (np.concatenate([r.ravel() for r in rows]), np.concatenate([c.ravel() for c in cols])),
        ),
        shape=(grid.num_p, grid.num_q),
    ).tocsr()

    # ========== BOUNDARY FLUXES ==========
    off = boundary_offsets(grid)
    j = np.arange(ny)
    i = np.arange(nx)
    b_rows = [cells[:, 0], cells[:, -1], cells[0, :], cells[-1, :]]
    b_cols = [
        off[(Location.XMINUS, "u")].start + j,
        off[(Location.XPLUS, "u")].start + j,
        off[(Location.YMINUS, "v")].start + i,
        off[(Location.YPLUS, "v")].start + i,
    ]
    b_vals = [-grid.dy, grid.dy, -grid.dx, grid.dx]

    n_b = num_boundary_values(grid)
    Db = coo_matrix(
        (np.concatenate(b_vals), (np.concatenate(b_rows), np.concatenate(b_cols))),
        shape=(grid.num_p, n_b),
    ).tocsr()

    return QT, Db
