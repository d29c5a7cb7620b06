"""Sparse operator builders for the staggered fractional-step method."""

from .approximate_inverse import approximate_inverse
from .convection import convection_term
from .divergence import divergence
from .laplacian import face_widths, implicit_operator, laplacian
from .mass import mass_diagonal, mass_matrices
from .regularization import regularization, roma_delta
from .shapes import check_shape

__all__ = [
    "approximate_inverse",
    "check_shape",
    "convection_term",
    "divergence",
    "face_widths",
    "implicit_operator",
    "laplacian",
    "mass_diagonal",
    "mass_matrices",
    "regularization",
    "roma_delta",
]
