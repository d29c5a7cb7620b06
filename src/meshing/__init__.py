"""Staggered Cartesian grids and immersed-body marker sets."""

from .cartesian import AxisSegment, CartesianGrid, build_axis, segments_from_config
from .bodies import Body, BodySystem, Oscillation, circle, load_body

__all__ = [
    "AxisSegment",
    "CartesianGrid",
    "build_axis",
    "segments_from_config",
    "Body",
    "BodySystem",
    "Oscillation",
    "circle",
    "load_body",
]
