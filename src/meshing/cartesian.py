"""
CartesianGrid: staggered (MAC) tensor-product grid for the fractional-step solver.

Each axis is described by a start coordinate and a list of segments. A segment
has an end coordinate, a number of cells and a stretch ratio; a ratio of 1.0
gives uniform cells, otherwise consecutive cell widths grow by the ratio.

Indexing Conventions:
- Cells (pressure unknowns): index = j * nx + i, i in [0, nx), j in [0, ny).
- u faces (x-fluxes, interior only): face i sits on x[i + 1] between cells i
  and i + 1; index = j * (nx - 1) + i, i in [0, nx - 1).
- v faces (y-fluxes, interior only): face j sits on y[j + 1] between cells j
  and j + 1; index = numU + j * nx + i, j in [0, ny - 1).

Fluxes are velocity times the width of the face: q_u = u * dy[j], q_v = v * dx[i].
Arrays shaped for the u block are (ny, nx - 1) and for the v block (ny - 1, nx),
so that C-order ravel() matches the flat indexing above.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from utilities.errors import ConfigurationError


@dataclass
class AxisSegment:
    """One segment of an axis: cells between the previous end and `end`."""

    end: float
    cells: int
    stretch_ratio: float = 1.0


def build_axis(start: float, segments: Sequence[AxisSegment]) -> np.ndarray:
    """Build node coordinates for one axis from its segments.

    Parameters
    ----------
    start : float
        Coordinate of the first node.
    segments : sequence of AxisSegment
        Consecutive segments, each ending at ``segment.end``.

    Returns
    -------
    nodes : np.ndarray
        Strictly increasing node coordinates (n_cells + 1 values).
    """
    if len(segments) == 0:
        raise ConfigurationError("An axis needs at least one segment")

    nodes = [float(start)]
    lower = float(start)
    for seg in segments:
        length = float(seg.end) - lower
        if length <= 0.0:
            raise ConfigurationError(
                f"Segment end {seg.end} must be larger than its start {lower}"
            )
        if int(seg.cells) < 1:
            raise ConfigurationError(f"Segment needs at least one cell, got {seg.cells}")
        if seg.stretch_ratio <= 0.0:
            raise ConfigurationError(f"Stretch ratio must be positive, got {seg.stretch_ratio}")

        n = int(seg.cells)
        r = float(seg.stretch_ratio)
        if abs(r - 1.0) < 1e-12:
            widths = np.full(n, length / n)
        else:
            h0 = length * (r - 1.0) / (r**n - 1.0)
            widths = h0 * r ** np.arange(n)

        edges = lower + np.cumsum(widths)
        edges[-1] = float(seg.end)  # Remove round-off on the segment end
        nodes.extend(edges.tolist())
        lower = float(seg.end)

    return np.asarray(nodes, dtype=np.float64)


class CartesianGrid:
    """Staggered rectangular grid with precomputed face metrics.

    Parameters
    ----------
    x, y : array_like
        Node coordinates along each axis (cell boundaries).
    """

    def __init__(self, x, y):
        self.x = np.asarray(x, dtype=np.float64)
        self.y = np.asarray(y, dtype=np.float64)

        if self.x.ndim != 1 or self.y.ndim != 1:
            raise ConfigurationError("Grid node arrays must be one-dimensional")
        if self.x.size < 3 or self.y.size < 3:
            raise ConfigurationError("Grid needs at least 2 cells in each direction")
        if np.any(np.diff(self.x) <= 0.0) or np.any(np.diff(self.y) <= 0.0):
            raise ConfigurationError("Grid node coordinates must be strictly increasing")
        if not (np.all(np.isfinite(self.x)) and np.all(np.isfinite(self.y))):
            raise ConfigurationError("Grid node coordinates must be finite")

        # --- Counts ---
        self.nx = self.x.size - 1
        self.ny = self.y.size - 1
        self.num_u = (self.nx - 1) * self.ny
        self.num_v = self.nx * (self.ny - 1)
        self.num_q = self.num_u + self.num_v
        self.num_p = self.nx * self.ny

        # --- Cell widths and centres ---
        self.dx = np.diff(self.x)
        self.dy = np.diff(self.y)
        self.xc = 0.5 * (self.x[:-1] + self.x[1:])
        self.yc = 0.5 * (self.y[:-1] + self.y[1:])

        # --- Distances between neighbouring cell centres ---
        self.dxh = 0.5 * (self.dx[:-1] + self.dx[1:])  # nx - 1
        self.dyh = 0.5 * (self.dy[:-1] + self.dy[1:])  # ny - 1

        # --- Face locations ---
        self.xu = self.x[1:-1]
        self.yu = self.yc
        self.xv = self.xc
        self.yv = self.y[1:-1]

    @classmethod
    def from_segments(cls, x_start, x_segments, y_start, y_segments):
        """Create a grid from per-axis segment descriptions."""
        return cls(build_axis(x_start, x_segments), build_axis(y_start, y_segments))

    @classmethod
    def uniform(cls, nx: int, ny: int, Lx: float = 1.0, Ly: float = 1.0, origin=(0.0, 0.0)):
        """Uniform grid on [x0, x0 + Lx] x [y0, y0 + Ly]."""
        x0, y0 = origin
        return cls.from_segments(
            x0, [AxisSegment(x0 + Lx, nx)], y0, [AxisSegment(y0 + Ly, ny)]
        )

    # ------------------------------------------------------------------
    # Reshaping helpers
    # ------------------------------------------------------------------

    @property
    def shape_u(self):
        return (self.ny, self.nx - 1)

    @property
    def shape_v(self):
        return (self.ny - 1, self.nx)

    @property
    def shape_p(self):
        return (self.ny, self.nx)

    def split_flux(self, q: np.ndarray):
        """Return (qu, qv) as 2D views shaped like the u and v face blocks."""
        if q.shape[0] != self.num_q:
            raise ValueError(f"Flux vector has {q.shape[0]} entries, expected {self.num_q}")
        return q[: self.num_u].reshape(self.shape_u), q[self.num_u :].reshape(self.shape_v)

    def velocity(self, q: np.ndarray):
        """Convert fluxes to face velocities (u, v), shaped like the face blocks."""
        qu, qv = self.split_flux(q)
        return qu / self.dy[:, None], qv / self.dx[None, :]

    def flux_from_velocity(self, u: np.ndarray, v: np.ndarray) -> np.ndarray:
        """Inverse of `velocity`: stack u*dy and v*dx into one flux vector."""
        u = np.broadcast_to(u, self.shape_u)
        v = np.broadcast_to(v, self.shape_v)
        return np.concatenate(
            [(u * self.dy[:, None]).ravel(), (v * self.dx[None, :]).ravel()]
        )

    def contains(self, x: np.ndarray, y: np.ndarray) -> bool:
        """True if all points lie strictly inside the domain."""
        return bool(
            np.all(x > self.x[0]) and np.all(x < self.x[-1])
            and np.all(y > self.y[0]) and np.all(y < self.y[-1])
        )

    def __repr__(self) -> str:
        return (
            f"CartesianGrid(nx={self.nx}, ny={self.ny}, "
            f"x=[{self.x[0]:g}, {self.x[-1]:g}], y=[{self.y[0]:g}, {self.y[-1]:g}])"
        )


def segments_from_config(segments: List[dict]) -> List[AxisSegment]:
    """Convert config dictionaries into AxisSegment objects."""
    return [
        seg if isinstance(seg, AxisSegment) else AxisSegment(
            end=float(seg["end"]),
            cells=int(seg["cells"]),
            stretch_ratio=float(seg.get("stretch_ratio", 1.0)),
        )
        for seg in segments
    ]
