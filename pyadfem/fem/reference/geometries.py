# pyadfem.fem.reference.geometries
"""
Reference node sets and polynomial spaces.

Nodes are numbered vertices first, then edge mid-nodes, then face nodes and
finally the interior node, so that a lower family on the same element uses a
prefix of the higher family's nodes.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import sympy as sp

FE_FAMILIES = ("linear", "quadratic", "biquadratic")

R = sp.Rational


def _mid(*pts):
    n = len(pts)
    return tuple(sum(p[i] for p in pts) / n for i in range(len(pts[0])))


@dataclass(frozen=True)
class GeometryInfo:
    name: str
    dim: int
    n_vertices: int
    nodes: Tuple[tuple, ...]
    n_basis: Dict[str, int]
    spanning: Callable  # symbols -> list of polynomials (biquadratic level)


# ---------------------------------------------------------------- line
_LINE_NODES = ((R(-1),), (R(1),), (R(0),))


def _line_span(s):
    (x,) = s
    return [1, x, x**2]


# ---------------------------------------------------------------- quad
_QV = ((R(-1), R(-1)), (R(1), R(-1)), (R(1), R(1)), (R(-1), R(1)))
_QUAD_NODES = _QV + tuple(_mid(_QV[a], _QV[b]) for a, b in ((0, 1), (1, 2), (2, 3), (3, 0))) \
    + (_mid(*_QV),)


def _quad_span(s):
    x, y = s
    return [1, x, y, x*y,                       # bilinear
            x**2, y**2, x**2*y, x*y**2,         # serendipity
            x**2*y**2]


# ---------------------------------------------------------------- tri
_TV = ((R(0), R(0)), (R(1), R(0)), (R(0), R(1)))
_TRI_NODES = _TV + tuple(_mid(_TV[a], _TV[b]) for a, b in ((0, 1), (1, 2), (2, 0))) \
    + (_mid(*_TV),)


def _tri_span(s):
    x, y = s
    return [1, x, y,
            x**2, x*y, y**2,
            x*y*(1 - x - y)]                    # cubic bubble


# ---------------------------------------------------------------- hex
_HV = ((R(-1), R(-1), R(-1)), (R(1), R(-1), R(-1)), (R(1), R(1), R(-1)), (R(-1), R(1), R(-1)),
       (R(-1), R(-1), R(1)), (R(1), R(-1), R(1)), (R(1), R(1), R(1)), (R(-1), R(1), R(1)))
HEX_EDGES = ((0, 1), (1, 2), (2, 3), (3, 0),
             (4, 5), (5, 6), (6, 7), (7, 4),
             (0, 4), (1, 5), (2, 6), (3, 7))
HEX_FACES = ((0, 1, 2, 3), (0, 1, 5, 4), (1, 2, 6, 5),
             (2, 3, 7, 6), (3, 0, 4, 7), (4, 5, 6, 7))
_HEX_NODES = _HV + tuple(_mid(_HV[a], _HV[b]) for a, b in HEX_EDGES) \
    + tuple(_mid(*(_HV[v] for v in f)) for f in HEX_FACES) + (_mid(*_HV),)


def _hex_span(s):
    x, y, z = s
    trilinear = [1, x, y, z, x*y, y*z, z*x, x*y*z]
    serendipity = [x**2, y**2, z**2,
                   x**2*y, x**2*z, y**2*x, y**2*z, z**2*x, z**2*y,
                   x**2*y*z, x*y**2*z, x*y*z**2]
    # remaining triquadratic monomials
    rest = [x**a * y**b * z**c for a in range(3) for b in range(3) for c in range(3)]
    rest = [m for m in rest if m not in trilinear + serendipity]
    return trilinear + serendipity + rest


# ---------------------------------------------------------------- tet
_TTV = ((R(0), R(0), R(0)), (R(1), R(0), R(0)), (R(0), R(1), R(0)), (R(0), R(0), R(1)))
TET_EDGES = ((0, 1), (1, 2), (2, 0), (0, 3), (1, 3), (2, 3))
TET_FACES = ((0, 1, 2), (0, 1, 3), (1, 2, 3), (0, 2, 3))
_TET_NODES = _TTV + tuple(_mid(_TTV[a], _TTV[b]) for a, b in TET_EDGES) \
    + tuple(_mid(*(_TTV[v] for v in f)) for f in TET_FACES) + (_mid(*_TTV),)


def _tet_span(s):
    x, y, z = s
    lam = (1 - x - y - z, x, y, z)
    return ([1, x, y, z,
             x**2, y**2, z**2, x*y, y*z, z*x]
            + [lam[a] * lam[b] * lam[c] for a, b, c in TET_FACES]
            + [lam[0] * lam[1] * lam[2] * lam[3]])


# ---------------------------------------------------------------- wedge
_WV = tuple((v[0], v[1], R(-1)) for v in _TV) + tuple((v[0], v[1], R(1)) for v in _TV)
WEDGE_EDGES = ((0, 1), (1, 2), (2, 0), (3, 4), (4, 5), (5, 3), (0, 3), (1, 4), (2, 5))
WEDGE_QUAD_FACES = ((0, 1, 4, 3), (1, 2, 5, 4), (2, 0, 3, 5))
_WEDGE_NODES = _WV + tuple(_mid(_WV[a], _WV[b]) for a, b in WEDGE_EDGES) \
    + tuple(_mid(*(_WV[v] for v in f)) for f in WEDGE_QUAD_FACES)


def _wedge_span(s):
    x, y, z = s
    tri2 = [1, x, y, x**2, x*y, y**2]
    return ([1, x, y, z, x*z, y*z]
            + [x**2, x*y, y**2, x**2*z, x*y*z, y**2*z]
            + [z**2, x*z**2, y*z**2]
            + [m * z**2 for m in (x**2, x*y, y**2)])


GEOMETRIES = {
    "line": GeometryInfo("line", 1, 2, _LINE_NODES,
                         {"linear": 2, "quadratic": 3, "biquadratic": 3}, _line_span),
    "quad": GeometryInfo("quad", 2, 4, _QUAD_NODES,
                         {"linear": 4, "quadratic": 8, "biquadratic": 9}, _quad_span),
    "tri": GeometryInfo("tri", 2, 3, _TRI_NODES,
                        {"linear": 3, "quadratic": 6, "biquadratic": 7}, _tri_span),
    "hex": GeometryInfo("hex", 3, 8, _HEX_NODES,
                        {"linear": 8, "quadratic": 20, "biquadratic": 27}, _hex_span),
    "tet": GeometryInfo("tet", 3, 4, _TET_NODES,
                        {"linear": 4, "quadratic": 10, "biquadratic": 15}, _tet_span),
    "wedge": GeometryInfo("wedge", 3, 6, _WEDGE_NODES,
                          {"linear": 6, "quadratic": 15, "biquadratic": 18}, _wedge_span),
}
