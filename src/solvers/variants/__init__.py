"""Discretization strategies for the fractional-step driver."""

from .base import Discretization
from .navier_stokes import NavierStokesDiscretization
from .taira_colonius import TairaColoniusDiscretization

__all__ = ["Discretization", "NavierStokesDiscretization", "TairaColoniusDiscretization"]
