"""pyadfem.fem.shape
Physical shape-function data at a quadrature point.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from pyadfem.core.errors import ConfigurationError, QuadratureMismatchError
from pyadfem.fem.reference import ReferenceElementTable
from pyadfem.fem.transform import GeometricMapping, JacobianData, mapping_for_table

# Hessian components stored per topological dimension
HESSIAN_COMPONENTS = {
    1: ((0, 0),),
    2: ((0, 0), (1, 1), (0, 1)),
    3: ((0, 0), (1, 1), (2, 2), (0, 1), (1, 2), (2, 0)),
}


@dataclass
class ShapeValues:
    weight: float = 0.0
    phi: Optional[np.ndarray] = None        # (n,)
    grad_phi: Optional[np.ndarray] = None   # (n, S)
    nabla_phi: Optional[np.ndarray] = None  # (n, 1|3|6)
    x: Optional[np.ndarray] = None          # (S,)
    jacobian: Optional[JacobianData] = None


class ShapeEvaluator:
    """Evaluate one field's shape functions on a physical element.

    The geometry defaults to the field table itself (isoparametric).  Passing
    a mapping built on another table gives the non-isoparametric case, in
    which case both tables must be tabulated on the same quadrature rule.
    """

    def __init__(self, field_table: ReferenceElementTable,
                 geometry: Optional[GeometricMapping] = None, space_dim: int = 3):
        if geometry is None:
            geometry = mapping_for_table(field_table, space_dim)
        elif not geometry.table.same_rule(field_table):
            raise QuadratureMismatchError(
                f"geometry table {geometry.table.geometry}/{geometry.table.family} "
                f"(degree {geometry.table.rule.degree}, {geometry.table.n_points} points) and "
                f"field table {field_table.geometry}/{field_table.family} "
                f"(degree {field_table.rule.degree}, {field_table.n_points} points) differ")
        self.table = field_table
        self.geometry = geometry

    @property
    def n_points(self):
        return self.table.n_points

    @property
    def n_basis(self):
        return self.table.n_basis

    @property
    def space_dim(self):
        return self.geometry.space_dim

    def evaluate(self, coords, ig: int, *, with_hessian: bool = False,
                 out: Optional[ShapeValues] = None) -> ShapeValues:
        """Weight, values, physical gradients and (on request) Hessians at ``ig``.

        ``coords`` are the geometry nodes, shape ``(S, n_geometry)``.  When
        ``with_hessian`` is false ``out.nabla_phi`` is left untouched.
        """
        if not 0 <= ig < self.n_points:
            raise ConfigurationError(f"quadrature index {ig} outside 0..{self.n_points - 1}")
        X = self.geometry.prepare_coordinates(coords)
        jd = self.geometry.compute_jacobian(X, ig)

        sv = out if out is not None else ShapeValues()
        sv.jacobian = jd
        sv.weight = jd.det_jac * self.table.weights[ig]
        sv.phi = self.table.phi[ig]
        dphi = self.table.dphi[ig]              # (n, D)
        sv.grad_phi = dphi @ jd.jac_inv.T       # (n, S)
        sv.x = X @ self.geometry.table.phi[ig]
        if with_hessian:
            sv.nabla_phi = self._physical_hessian(X, ig, jd, sv.grad_phi)
        return sv

    def _physical_hessian(self, X, ig, jd: JacobianData, grad_phi):
        G = self.geometry.compute_forward_hessian(X, ig)       # (S, D, D)
        # H~_ab = d2phi_ab - grad_phi . G_ab  (curvature of the map)
        H_ref = self.table.d2phi[ig] - np.einsum("nk,kab->nab", grad_phi, G)
        A = jd.jac_inv                                         # (S, D)
        H = np.einsum("ia,nab,jb->nij", A, H_ref, A)           # (n, S, S)
        comps = HESSIAN_COMPONENTS[self.table.dim]
        return np.stack([H[:, i, j] for i, j in comps], axis=1)
