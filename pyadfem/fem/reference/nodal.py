from functools import lru_cache
from itertools import product

import sympy as sp

from .geometries import GEOMETRIES

_SYMBOL_NAMES = ("xi", "eta", "zeta")


def _multi_indices(dim: int, max_order: int):
    return [alpha for alpha in product(range(max_order + 1), repeat=dim)
            if sum(alpha) <= max_order]


@lru_cache(maxsize=None)
def nodal_basis(geometry: str, n_basis: int, max_deriv_order: int = 2):
    """
    Return lambdified Lagrange shape functions and their derivatives for the
    first ``n_basis`` nodes of ``geometry``.

    The basis spans the first ``n_basis`` polynomials of the geometry's
    spanning set and is nodal on the first ``n_basis`` reference nodes.

    Returns:
        tuple: (shape_lambda, deriv_lambdas)
            - shape_lambda: callable giving [phi_1, ..., phi_N] at a reference point.
            - deriv_lambdas: dict keyed by multi-index (one entry per reference
              direction), values are callables giving [D^alpha phi_i].
    """
    info = GEOMETRIES[geometry]
    symbols = sp.symbols(_SYMBOL_NAMES[:info.dim])
    nodes = info.nodes[:n_basis]
    monomials = [sp.sympify(m) for m in info.spanning(symbols)[:n_basis]]
    if len(nodes) != n_basis or len(monomials) != n_basis:
        raise RuntimeError(f"Internal error: {geometry} has {len(nodes)} nodes and "
                           f"{len(monomials)} polynomials for {n_basis} basis functions.")

    # 1. Vandermonde-like matrix V[i, j] = m_j(node_i)
    V = sp.zeros(n_basis, n_basis)
    for i, node in enumerate(nodes):
        subs = dict(zip(symbols, node))
        for j, monomial in enumerate(monomials):
            V[i, j] = monomial.subs(subs)

    # 2. Coefficients: phi_k = sum_j C[k, j] m_j with phi_k(node_i) = delta_ik
    try:
        coeffs = V.T.inv(method="LU")
    except ValueError as e:
        raise RuntimeError(f"Vandermonde matrix is singular for {geometry} with "
                           f"{n_basis} nodes.") from e

    # 3. Symbolic Lagrange basis
    monomial_col = sp.Matrix(monomials)
    basis = [sp.expand((coeffs.row(k) * monomial_col)[0, 0]) for k in range(n_basis)]

    # 4. Derivatives for every multi-index up to max_deriv_order
    deriv_lambdas = {}
    for alpha in _multi_indices(info.dim, max_deriv_order):
        spec = [arg for s, a in zip(symbols, alpha) for arg in (s, a)]
        derivs = [sp.diff(phi, *spec) if sum(alpha) else phi for phi in basis]
        deriv_lambdas[alpha] = sp.lambdify(symbols, sp.Matrix(derivs), "numpy")

    shape_lambda = deriv_lambdas[(0,) * info.dim]
    return shape_lambda, deriv_lambdas
