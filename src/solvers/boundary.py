"""Velocity boundary conditions on the four edges of the domain.

Every edge carries one condition per velocity component. The boundary buffers
(``bc``) hold, for each edge, the normal and tangential velocities used by the
operators:

    xMinus / xPlus : u (normal, ny values at y centres),
                     v (tangential, ny - 1 values at interior y nodes)
    yMinus / yPlus : u (tangential, nx - 1 values at interior x nodes),
                     v (normal, nx values at x centres)

The flattened buffer vector stacks the edges in Location order, u before v.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np

from utilities.errors import ConfigurationError

log = logging.getLogger(__name__)


class Location(str, Enum):
    XMINUS = "xMinus"
    XPLUS = "xPlus"
    YMINUS = "yMinus"
    YPLUS = "yPlus"


LOCATIONS = (Location.XMINUS, Location.XPLUS, Location.YMINUS, Location.YPLUS)
COMPONENTS = ("u", "v")


class BoundaryType(str, Enum):
    DIRICHLET = "dirichlet"
    NEUMANN = "neumann"
    CONVECTIVE = "convective"
    OSCILLATING = "oscillating"


@dataclass
class BoundaryCondition:
    """Condition for one velocity component on one edge.

    For CONVECTIVE boundaries `value` is the convection speed; for OSCILLATING
    boundaries the velocity is value + amplitude * sin(2*pi*frequency*t + phase).
    """

    type: BoundaryType = BoundaryType.DIRICHLET
    value: float = 0.0
    amplitude: float = 0.0
    frequency: float = 0.0
    phase: float = 0.0

    def __post_init__(self):
        try:
            self.type = BoundaryType(str(getattr(self.type, "value", self.type)).lower())
        except ValueError:
            options = ", ".join(t.value for t in BoundaryType)
            raise ConfigurationError(f"Unknown boundary type '{self.type}' (choose from: {options})")
        if self.type is BoundaryType.CONVECTIVE and self.value <= 0.0:
            raise ConfigurationError("Convective boundaries need a positive convection speed")

    def prescribed(self, t: float) -> float:
        if self.type is BoundaryType.OSCILLATING:
            return self.value + self.amplitude * math.sin(
                2.0 * math.pi * self.frequency * t + self.phase
            )
        return self.value


@dataclass
class EdgeValues:
    """Boundary buffer of one edge."""

    u: np.ndarray
    v: np.ndarray

    def copy(self):
        return EdgeValues(self.u.copy(), self.v.copy())


def edge_sizes(grid, location: Location) -> Tuple[int, int]:
    """Number of (u, v) boundary values on an edge."""
    if location in (Location.XMINUS, Location.XPLUS):
        return grid.ny, grid.ny - 1
    return grid.nx - 1, grid.nx


def boundary_offsets(grid) -> Dict[Tuple[Location, str], slice]:
    """Slices of each (edge, component) block in the flattened buffer vector."""
    offsets = {}
    start = 0
    for loc in LOCATIONS:
        for comp, size in zip(COMPONENTS, edge_sizes(grid, loc)):
            offsets[(loc, comp)] = slice(start, start + size)
            start += size
    return offsets


def num_boundary_values(grid) -> int:
    return sum(sum(edge_sizes(grid, loc)) for loc in LOCATIONS)


def flatten(bc: List[EdgeValues], grid=None) -> np.ndarray:
    """Stack the four edge buffers into the vector consumed by Lb and Db.

    With a grid, every buffer is checked against the edge sizes first.
    """
    if grid is not None:
        if len(bc) != len(LOCATIONS):
            raise ConfigurationError(f"Expected {len(LOCATIONS)} edge buffers, got {len(bc)}")
        for loc, edge in zip(LOCATIONS, bc):
            sizes = (np.size(edge.u), np.size(edge.v))
            if sizes != edge_sizes(grid, loc):
                raise ConfigurationError(
                    f"Boundary buffer {loc.value} has (u, v) sizes {sizes}, "
                    f"expected {edge_sizes(grid, loc)}"
                )
    return np.concatenate([np.concatenate([edge.u, edge.v]) for edge in bc])


class BoundaryConditions:
    """Conditions on all edges plus the logic that refreshes the buffers.

    Parameters
    ----------
    grid : CartesianGrid
        Grid the buffers are sized for.
    conditions : dict
        Maps (Location, component) to a BoundaryCondition. Missing entries
        default to a no-slip wall.
    """

    def __init__(self, grid, conditions: Dict[Tuple[Location, str], BoundaryCondition] = None):
        self.grid = grid
        self.conditions = {
            (loc, comp): BoundaryCondition() for loc in LOCATIONS for comp in COMPONENTS
        }
        for key, cond in (conditions or {}).items():
            loc, comp = key
            if comp not in COMPONENTS:
                raise ConfigurationError(f"Unknown velocity component '{comp}'")
            self.conditions[(Location(loc), comp)] = cond

        self._warned_imbalance = False

    @classmethod
    def from_config(cls, grid, entries):
        """Build from a list of ``{location, u: {...}, v: {...}}`` dictionaries."""
        conditions = {}
        for entry in entries or []:
            try:
                loc = Location(entry["location"])
            except (KeyError, ValueError):
                raise ConfigurationError(f"Invalid boundary location in {entry!r}")
            for comp in COMPONENTS:
                options = entry.get(comp)
                if options is None:
                    continue
                conditions[(loc, comp)] = (
                    options if isinstance(options, BoundaryCondition) else BoundaryCondition(**options)
                )
        return cls(grid, conditions)

    # ------------------------------------------------------------------
    # Buffer construction
    # ------------------------------------------------------------------

    def _adjacent(self, q: np.ndarray, loc: Location):
        """Interior velocities next to an edge, as (u, v) arrays."""
        u, v = self.grid.velocity(q)
        if loc is Location.XMINUS:
            return u[:, 0], v[:, 0]
        if loc is Location.XPLUS:
            return u[:, -1], v[:, -1]
        if loc is Location.YMINUS:
            return u[0, :], v[0, :]
        return u[-1, :], v[-1, :]

    def _spacing(self, loc: Location) -> float:
        g = self.grid
        return {
            Location.XMINUS: g.dx[0],
            Location.XPLUS: g.dx[-1],
            Location.YMINUS: g.dy[0],
            Location.YPLUS: g.dy[-1],
        }[loc]

    def initial_values(self, q: np.ndarray, t: float) -> List[EdgeValues]:
        """Buffers at the start of the run."""
        bc = []
        for loc in LOCATIONS:
            adjacent = dict(zip(COMPONENTS, self._adjacent(q, loc)))
            values = {}
            for comp, size in zip(COMPONENTS, edge_sizes(self.grid, loc)):
                cond = self.conditions[(loc, comp)]
                if cond.type in (BoundaryType.NEUMANN, BoundaryType.CONVECTIVE):
                    values[comp] = adjacent[comp].copy()
                else:
                    values[comp] = np.full(size, cond.prescribed(t))
            bc.append(EdgeValues(values["u"], values["v"]))
        return bc

    def update(self, bc: List[EdgeValues], q: np.ndarray, t: float, dt: float) -> List[EdgeValues]:
        """Return the buffers at time `t`, `dt` after the state held in `bc`.

        Dirichlet and oscillating values are evaluated at `t`, Neumann values
        copy the adjacent interior velocity, and convective values are advected
        outwards: u_b <- u_b - c*dt/h * (u_b - u_interior).
        """
        new_bc = []
        for loc, old in zip(LOCATIONS, bc):
            adjacent = dict(zip(COMPONENTS, self._adjacent(q, loc)))
            values = {}
            for comp in COMPONENTS:
                cond = self.conditions[(loc, comp)]
                current = getattr(old, comp)
                if cond.type is BoundaryType.NEUMANN:
                    values[comp] = adjacent[comp].copy()
                elif cond.type is BoundaryType.CONVECTIVE:
                    beta = cond.value * dt / self._spacing(loc)
                    values[comp] = current - beta * (current - adjacent[comp])
                else:
                    values[comp] = np.full_like(current, cond.prescribed(t))
            new_bc.append(EdgeValues(values["u"], values["v"]))

        self._conserve_mass(new_bc)
        return new_bc

    # ------------------------------------------------------------------
    # Mass balance
    # ------------------------------------------------------------------

    def _normal(self, loc: Location):
        """(component, outward sign, face widths) for the normal velocity of an edge."""
        g = self.grid
        if loc is Location.XMINUS:
            return "u", -1.0, g.dy
        if loc is Location.XPLUS:
            return "u", 1.0, g.dy
        if loc is Location.YMINUS:
            return "v", -1.0, g.dx
        return "v", 1.0, g.dx

    def net_outflow(self, bc: List[EdgeValues]) -> float:
        """Net volume flux leaving the domain through its edges."""
        total = 0.0
        for loc, edge in zip(LOCATIONS, bc):
            comp, sign, widths = self._normal(loc)
            total += sign * float(np.dot(getattr(edge, comp), widths))
        return total

    def _conserve_mass(self, bc: List[EdgeValues]):
        """Shift convective outflow velocities so that the net outflow vanishes."""
        net = self.net_outflow(bc)
        edges = [
            (k, loc) for k, loc in enumerate(LOCATIONS)
            if self.conditions[(loc, self._normal(loc)[0])].type is BoundaryType.CONVECTIVE
        ]
        if not edges:
            scale = sum(
                float(np.dot(np.abs(getattr(edge, self._normal(loc)[0])), self._normal(loc)[2]))
                for loc, edge in zip(LOCATIONS, bc)
            )
            if abs(net) > 1e-10 * max(scale, 1.0) and not self._warned_imbalance:
                log.warning(f"Boundary velocities are not mass conserving (net outflow {net:.3e})")
                self._warned_imbalance = True
            return

        length = sum(float(np.sum(self._normal(loc)[2])) for _, loc in edges)
        correction = -net / length
        for k, loc in edges:
            comp, sign, _ = self._normal(loc)
            setattr(bc[k], comp, getattr(bc[k], comp) + sign * correction)
