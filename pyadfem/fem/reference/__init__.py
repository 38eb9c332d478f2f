# pyadfem.fem.reference
"""
Reference-element factory and per-quadrature-rule tabulation.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Union

import numpy as np

from pyadfem.core.errors import ConfigurationError
from pyadfem.integration.quadrature import QuadratureRule, resolve_degree, volume

from .geometries import FE_FAMILIES, GEOMETRIES, GeometryInfo
from .nodal import nodal_basis


@dataclass(frozen=True)
class GeometricElementSpec:
    geometry: str
    family: str
    dim: int
    n_vertices: int
    n_basis: int
    nodes: np.ndarray  # (n_basis, dim)


def element_spec(geometry: str, family: str) -> GeometricElementSpec:
    info = _geometry_info(geometry)
    if family not in FE_FAMILIES:
        raise ConfigurationError(f"unknown FE family {family!r}; expected one of {FE_FAMILIES}")
    n = info.n_basis[family]
    nodes = np.array(info.nodes[:n], dtype=float)
    return GeometricElementSpec(geometry, family, info.dim, info.n_vertices, n, nodes)


def _geometry_info(geometry: str) -> GeometryInfo:
    try:
        return GEOMETRIES[geometry]
    except KeyError:
        raise ConfigurationError(f"unknown geometry {geometry!r}; "
                                 f"expected one of {sorted(GEOMETRIES)}") from None


class Ref:
    def __init__(self, spec: GeometricElementSpec, shape_lambda, deriv_lambdas):
        self.spec = spec
        self.shape_lambda = shape_lambda
        self.deriv_lambdas = deriv_lambdas

    @property
    def n(self):
        return self.spec.n_basis

    @property
    def dim(self):
        return self.spec.dim

    def _eval(self, fn, xi):
        return np.asarray(fn(*xi), dtype=float).ravel()

    @lru_cache(maxsize=None)
    def shape(self, *xi):
        return self._eval(self.shape_lambda, xi)

    @lru_cache(maxsize=None)
    def derivative(self, xi, alpha):
        alpha = tuple(alpha)
        if alpha not in self.deriv_lambdas:
            raise ValueError(f"Derivative order {alpha} not computed. "
                             f"Adjust max_deriv_order >= {sum(alpha)}.")
        return self._eval(self.deriv_lambdas[alpha], xi)

    @lru_cache(maxsize=None)
    def grad(self, *xi):
        cols = []
        for a in range(self.dim):
            alpha = tuple(int(a == b) for b in range(self.dim))
            cols.append(self.derivative(xi, alpha))
        return np.column_stack(cols)

    @lru_cache(maxsize=None)
    def hess(self, *xi):
        H = np.empty((self.n, self.dim, self.dim), dtype=float)
        for a in range(self.dim):
            for b in range(a, self.dim):
                alpha = [0] * self.dim
                alpha[a] += 1
                alpha[b] += 1
                d = self.derivative(xi, tuple(alpha))
                H[:, a, b] = d
                H[:, b, a] = d
        return H


@lru_cache(maxsize=None)
def get_reference(geometry: str, family: str = "linear", max_deriv_order: int = 2) -> Ref:
    spec = element_spec(geometry, family)
    shape_l, deriv_lambdas = nodal_basis(geometry, spec.n_basis, max_deriv_order)
    return Ref(spec, shape_l, deriv_lambdas)


@dataclass(frozen=True)
class ReferenceElementTable:
    """Shape data of one (geometry, family) tabulated on one quadrature rule."""
    spec: GeometricElementSpec
    rule: QuadratureRule
    phi: np.ndarray    # (N, n)
    dphi: np.ndarray   # (N, n, D)
    d2phi: np.ndarray  # (N, n, D, D)

    @property
    def geometry(self):
        return self.spec.geometry

    @property
    def family(self):
        return self.spec.family

    @property
    def dim(self):
        return self.spec.dim

    @property
    def n_basis(self):
        return self.spec.n_basis

    @property
    def n_points(self):
        return len(self.rule)

    @property
    def weights(self):
        return self.rule.weights

    def same_rule(self, other: "ReferenceElementTable") -> bool:
        return (self.geometry == other.geometry
                and self.rule.degree == other.rule.degree
                and self.n_points == other.n_points)


@lru_cache(maxsize=None)
def _element_table(geometry: str, family: str, degree: int) -> ReferenceElementTable:
    ref = get_reference(geometry, family)
    rule = volume(geometry, degree)
    phi = np.array([ref.shape(*p) for p in rule.points])
    dphi = np.array([ref.grad(*p) for p in rule.points])
    d2phi = np.array([ref.hess(*p) for p in rule.points])
    for arr in (phi, dphi, d2phi):
        arr.flags.writeable = False
    return ReferenceElementTable(ref.spec, rule, phi, dphi, d2phi)


def get_element_table(geometry: str, family: str,
                      order: Union[int, str] = "seventh") -> ReferenceElementTable:
    element_spec(geometry, family)
    return _element_table(geometry, family, resolve_degree(order))


__all__ = ["FE_FAMILIES", "GEOMETRIES", "GeometricElementSpec", "Ref",
           "ReferenceElementTable", "element_spec", "get_reference", "get_element_table"]
