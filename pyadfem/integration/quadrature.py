"""pyadfem.integration.quadrature
Gauss rules for every reference geometry (any degree >= 0).

line/quad/hex use tensor Gauss-Legendre on [-1, 1]^D, tri/tet use collapsed
(Duffy) Gauss rules on the unit simplex and the wedge is tri x line.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Union

import numpy as np
from numpy.polynomial.legendre import leggauss

from pyadfem.core.errors import ConfigurationError

ORDER_NAMES = {
    "zero": 0, "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
}


@dataclass(frozen=True)
class QuadratureRule:
    geometry: str
    degree: int
    points: np.ndarray   # (N, D)
    weights: np.ndarray  # (N,)

    def __len__(self):
        return self.weights.shape[0]

    @property
    def dim(self) -> int:
        return self.points.shape[1]

    def __getitem__(self, ig):
        return self.points[ig], self.weights[ig]


def resolve_degree(order: Union[int, str]) -> int:
    """Accept an integer degree or an ordinal name such as ``"seventh"``."""
    if isinstance(order, str):
        try:
            return ORDER_NAMES[order.lower()]
        except KeyError:
            raise ConfigurationError(f"unknown quadrature order {order!r}") from None
    degree = int(order)
    if degree < 0:
        raise ConfigurationError(f"quadrature degree must be >= 0, got {order}")
    return degree


# -------------------------------------------------------------------------
# 1-D Gauss-Legendre
# -------------------------------------------------------------------------
def gauss_legendre(order: int):
    if order < 1:
        raise ValueError(order)
    return leggauss(order)  # (points, weights)


def _gl01(order: int):
    """Gauss-Legendre nodes and weights mapped to [0,1]."""
    xi, w = gauss_legendre(int(order))
    return 0.5 * (xi + 1.0), 0.5 * w


def _npoints(degree: int) -> int:
    # n Gauss points integrate degree 2n-1 exactly
    return degree // 2 + 1


# -------------------------------------------------------------------------
# Tensor-product rules
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def line_rule(degree: int):
    xi, wi = gauss_legendre(_npoints(degree))
    return xi[:, None], wi


@lru_cache(maxsize=None)
def quad_rule(degree: int):
    xi, wi = gauss_legendre(_npoints(degree))
    pts = np.array([[x, y] for x in xi for y in xi])
    wts = np.array([wx * wy for wx in wi for wy in wi])
    return pts, wts


@lru_cache(maxsize=None)
def hex_rule(degree: int):
    xi, wi = gauss_legendre(_npoints(degree))
    pts = np.array([[x, y, z] for x in xi for y in xi for z in xi])
    wts = np.array([wx * wy * wz for wx in wi for wy in wi for wz in wi])
    return pts, wts


# -------------------------------------------------------------------------
# Collapsed rules on simplices
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def tri_rule(degree: int):
    """Square -> reference triangle (0,0)-(1,0)-(0,1) via the Duffy map."""
    # the collapse adds one to the degree in the first direction
    u, w_u = _gl01(_npoints(degree + 1))
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            pts.append([ui, vj * (1.0 - ui)])
            wts.append(w_u[i] * w_u[j] * (1.0 - ui))
    return np.array(pts), np.array(wts)


@lru_cache(maxsize=None)
def tet_rule(degree: int):
    """Cube -> reference tetrahedron with vertices 0, e_x, e_y, e_z."""
    u, w_u = _gl01(_npoints(degree + 2))
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            for k, wk in enumerate(u):
                pts.append([ui, vj * (1.0 - ui), wk * (1.0 - ui) * (1.0 - vj)])
                wts.append(w_u[i] * w_u[j] * w_u[k] * (1.0 - ui) ** 2 * (1.0 - vj))
    return np.array(pts), np.array(wts)


@lru_cache(maxsize=None)
def wedge_rule(degree: int):
    """Triangle (xi, eta) times line zeta in [-1, 1]."""
    tp, tw = tri_rule(degree)
    zp, zw = gauss_legendre(_npoints(degree))
    pts = np.array([[p[0], p[1], z] for p in tp for z in zp])
    wts = np.array([w * wz for w in tw for wz in zw])
    return pts, wts


_RULES = {
    "line": line_rule,
    "quad": quad_rule,
    "hex": hex_rule,
    "tri": tri_rule,
    "tet": tet_rule,
    "wedge": wedge_rule,
}


# -------------------------------------------------------------------------
# Public API
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def _volume(geometry: str, degree: int) -> QuadratureRule:
    pts, wts = _RULES[geometry](degree)
    pts = np.array(pts, dtype=float)
    wts = np.array(wts, dtype=float)
    pts.flags.writeable = False
    wts.flags.writeable = False
    return QuadratureRule(geometry, degree, pts, wts)


def volume(geometry: str, order: Union[int, str] = 2) -> QuadratureRule:
    if geometry not in _RULES:
        raise ConfigurationError(f"no quadrature for geometry {geometry!r}")
    return _volume(geometry, resolve_degree(order))
