"""Truncated-series approximate inverse of the implicit velocity operator.

With A = M - c L (c = alpha_implicit * nu),

    A^{-1} = (I - c Minv L)^{-1} Minv = sum_k (c Minv L)^k Minv

and BN keeps the first ``order + 1`` terms. Each extra term widens the stencil
of BN (and of C = QT BN Q) by one neighbour while reducing the residual

    A BN - I = -(c L Minv)^{order + 1}.

BN is symmetric because L is symmetric and Minv diagonal.
"""

from .shapes import check_shape


def approximate_inverse(Minv, L, coefficient: float, order: int = 1):
    """Build BN.

    Parameters
    ----------
    Minv : sparse matrix
        Inverse of the diagonal mass matrix.
    L : sparse matrix
        Flux-space Laplacian.
    coefficient : float
        alpha_implicit * nu for the sub-step.
    order : int
        Highest power of (c Minv L) kept; 0 gives BN = Minv.

    Returns
    -------
    BN : csr_matrix
    """
    if order < 0:
        raise ValueError(f"Approximate-inverse order must be non-negative, got {order}")
    check_shape(L, Minv.shape, "L")

    BN = Minv.tocsr(copy=True)
    if order == 0 or coefficient == 0.0:
        return BN

    X = (coefficient * (Minv @ L)).tocsr()
    term = BN
    for _ in range(order):
        term = (X @ term).tocsr()
        BN = BN + term

    return BN.tocsr()
