"""pyadfem.fem.transform
Reference -> physical mapping for every (topological dim, embedding dim).

Each variant binds a :class:`~pyadfem.fem.reference.ReferenceElementTable`
(the geometry source) and turns nodal coordinates into the Jacobian, its
(pseudo-)inverse and the generalized determinant at one quadrature point.
Nodal coordinates are laid out as ``(S, n)``: one row per physical
coordinate, one column per element node.
"""
from dataclasses import dataclass
from typing import Union

import numpy as np

from pyadfem.core.errors import (ConfigurationError, DegenerateGeometryError,
                                 NonPlanarCurveError, UnsupportedOperationError)
from pyadfem.fem.reference import ReferenceElementTable, get_element_table, get_reference


@dataclass(frozen=True)
class JacobianData:
    jac: np.ndarray      # (D, S), jac[a, k] = dx_k / dxi_a
    jac_inv: np.ndarray  # (S, D), jac @ jac_inv = I_D
    det_jac: float


class GeometricMapping:
    """Common part of the mapping variants; subclasses supply the inverse."""

    dim: int = 0
    space_dim: int = 0

    def __init__(self, table: ReferenceElementTable, degeneracy_tol: float = 1e-12):
        if table.dim != self.dim:
            raise ConfigurationError(
                f"{type(self).__name__} needs a {self.dim}-D reference table, "
                f"got {table.geometry!r} ({table.dim}-D)")
        self.table = table
        self.degeneracy_tol = degeneracy_tol

    def __repr__(self):
        return (f"{type(self).__name__}({self.table.geometry}, {self.table.family}, "
                f"degree={self.table.rule.degree})")

    # ---------- coordinates ----------
    def prepare_coordinates(self, coords) -> np.ndarray:
        """Return coordinates as a float ``(S, n)`` array, zero-padding missing rows."""
        X = np.asarray(coords, dtype=float)
        if X.ndim != 2 or X.shape[1] != self.table.n_basis:
            raise ConfigurationError(
                f"expected coordinates of shape ({self.space_dim}, {self.table.n_basis}), "
                f"got {X.shape}")
        if X.shape[0] > self.space_dim:
            raise ConfigurationError(
                f"{X.shape[0]} coordinate rows for a {self.space_dim}-D embedding")
        if X.shape[0] < self.space_dim:
            X = np.vstack([X, np.zeros((self.space_dim - X.shape[0], X.shape[1]))])
        return X

    def x_mapping(self, coords, ig: int) -> np.ndarray:
        """Physical position of quadrature point ``ig``."""
        return self.prepare_coordinates(coords) @ self.table.phi[ig]

    # ---------- first derivatives ----------
    def jacobian_matrix(self, coords, ig: int) -> np.ndarray:
        X = self.prepare_coordinates(coords)
        return (X @ self.table.dphi[ig]).T

    def compute_jacobian(self, coords, ig: int) -> JacobianData:
        jac = self.jacobian_matrix(coords, ig)
        det_jac = self._checked_determinant(jac, ig)
        return JacobianData(jac, self._inverse(jac, det_jac), det_jac)

    def check_element(self, coords):
        """Raise :class:`DegenerateGeometryError` if the map collapses at a reference vertex.

        A quad or hex with two coincident nodes keeps a positive determinant
        at every Gauss point; it only vanishes at the collapsed corner.
        """
        X = self.prepare_coordinates(coords)
        spec = self.table.spec
        ref = get_reference(spec.geometry, spec.family)
        for xi in spec.nodes[:spec.n_vertices]:
            jac = (X @ ref.grad(*(float(v) for v in xi))).T
            self._checked_determinant(jac, None)

    def _checked_determinant(self, jac: np.ndarray, ig) -> float:
        det_jac = self._determinant(jac)
        # Hadamard: |det| <= product of row norms, so the ratio is scale free
        scale = float(np.prod(np.linalg.norm(jac, axis=1)))
        if not det_jac > self.degeneracy_tol * scale:
            raise DegenerateGeometryError(det_jac, ig)
        return det_jac

    def _determinant(self, jac: np.ndarray) -> float:
        raise NotImplementedError

    def _inverse(self, jac: np.ndarray, det_jac: float) -> np.ndarray:
        raise NotImplementedError

    # ---------- second derivatives ----------
    def compute_forward_hessian(self, coords, ig: int) -> np.ndarray:
        """``G[k, a, b] = d^2 x_k / dxi_a dxi_b`` at quadrature point ``ig``."""
        X = self.prepare_coordinates(coords)
        return np.einsum("kn,nab->kab", X, self.table.d2phi[ig])

    # ---------- normals ----------
    def compute_normal(self, jac: np.ndarray) -> np.ndarray:
        raise UnsupportedOperationError(
            f"{type(self).__name__}: a {self.dim}-D element in {self.space_dim}-D space "
            f"has no unique normal")


class Dim1In3(GeometricMapping):
    """Curve in 3-space."""
    dim = 1
    space_dim = 3

    def __init__(self, table, degeneracy_tol: float = 1e-12, planar_tol: float = 1e-12):
        super().__init__(table, degeneracy_tol)
        self.planar_tol = planar_tol

    def _determinant(self, jac):
        return float(np.sqrt(jac[0] @ jac[0]))

    def _inverse(self, jac, det_jac):
        return jac.T / det_jac**2

    def compute_normal(self, jac):
        """In-plane normal ``(J_y, -J_x, 0) / |J|``.

        Only defined for curves lying in the z = 0 plane; it points outward
        when the boundary is traversed anticlockwise.
        """
        jac = np.asarray(jac, dtype=float)
        length = float(np.sqrt(jac[0] @ jac[0]))
        if abs(jac[0, 2]) > self.planar_tol * length:
            raise NonPlanarCurveError(
                f"curve tangent {jac[0]} leaves the z = 0 plane; the 1-D normal "
                f"is only defined for planar curves")
        return np.array([jac[0, 1], -jac[0, 0], 0.0]) / length


class Dim2In3(GeometricMapping):
    """Surface in 3-space; inverse is ``J^T (J J^T)^{-1}``."""
    dim = 2
    space_dim = 3

    def _determinant(self, jac):
        g = jac @ jac.T
        return float(np.sqrt(abs(g[0, 0] * g[1, 1] - g[0, 1] * g[1, 0])))

    def _inverse(self, jac, det_jac):
        g = jac @ jac.T
        g_inv = np.array([[g[1, 1], -g[0, 1]],
                          [-g[1, 0], g[0, 0]]]) / det_jac**2
        return jac.T @ g_inv

    def compute_normal(self, jac):
        """Unit normal ``t0 x t1``; outward if nodes run anticlockwise seen from outside."""
        jac = np.asarray(jac, dtype=float)
        n = np.cross(jac[0], jac[1])
        return n / np.linalg.norm(n)


class Dim3In3(GeometricMapping):
    """Volume element; explicit cofactor inverse."""
    dim = 3
    space_dim = 3

    def _determinant(self, jac):
        J = jac
        return float(J[0, 0] * (J[1, 1] * J[2, 2] - J[1, 2] * J[2, 1])
                     - J[0, 1] * (J[1, 0] * J[2, 2] - J[1, 2] * J[2, 0])
                     + J[0, 2] * (J[1, 0] * J[2, 1] - J[1, 1] * J[2, 0]))

    def _inverse(self, jac, det_jac):
        J = jac
        adj = np.array([
            [J[1, 1] * J[2, 2] - J[1, 2] * J[2, 1], J[0, 2] * J[2, 1] - J[0, 1] * J[2, 2],
             J[0, 1] * J[1, 2] - J[0, 2] * J[1, 1]],
            [J[1, 2] * J[2, 0] - J[1, 0] * J[2, 2], J[0, 0] * J[2, 2] - J[0, 2] * J[2, 0],
             J[0, 2] * J[1, 0] - J[0, 0] * J[1, 2]],
            [J[1, 0] * J[2, 1] - J[1, 1] * J[2, 0], J[0, 1] * J[2, 0] - J[0, 0] * J[2, 1],
             J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]],
        ])
        return adj / det_jac


class Dim2In2(GeometricMapping):
    """Planar element in 2-space."""
    dim = 2
    space_dim = 2

    def _determinant(self, jac):
        return float(jac[0, 0] * jac[1, 1] - jac[0, 1] * jac[1, 0])

    def _inverse(self, jac, det_jac):
        return np.array([[jac[1, 1], -jac[0, 1]],
                         [-jac[1, 0], jac[0, 0]]]) / det_jac


_VARIANTS = {
    (1, 3): Dim1In3,
    (2, 3): Dim2In3,
    (3, 3): Dim3In3,
    (2, 2): Dim2In2,
}


def mapping_for_table(table: ReferenceElementTable, space_dim: int = 3,
                      **kwargs) -> GeometricMapping:
    try:
        cls = _VARIANTS[(table.dim, space_dim)]
    except KeyError:
        raise ConfigurationError(
            f"no mapping for a {table.dim}-D {table.geometry!r} element in "
            f"{space_dim}-D space") from None
    return cls(table, **kwargs)


def build_mapping(geometry: str, family: str, order: Union[int, str] = "seventh",
                  space_dim: int = 3, **kwargs) -> GeometricMapping:
    """Select the mapping variant from the geometry name and embedding dimension."""
    return mapping_for_table(get_element_table(geometry, family, order), space_dim, **kwargs)
