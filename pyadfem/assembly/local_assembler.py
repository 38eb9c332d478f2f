"""pyadfem.assembly.local_assembler
Element-by-element residual and tape Jacobian assembly.

For every owned element the nodal unknowns are registered as independents
of a :class:`~pyadfem.assembly.tape.DifferentiationTape`, the quadrature
loop is recorded through the weak-form kernel, and the negated residual and
the exact Jacobian are scattered into the global containers.
"""
from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional, Union

import jax.numpy as jnp
import numpy as np

from pyadfem.assembly.global_matrix import GlobalMatrix, GlobalVector
from pyadfem.assembly.tape import DifferentiationTape
from pyadfem.core.dofhandler import Solution
from pyadfem.core.errors import ConfigurationError, GeometryFault, TapeDisciplineError
from pyadfem.core.parallel import SerialCommunicator
from pyadfem.fem.reference import get_element_table
from pyadfem.fem.shape import ShapeEvaluator, ShapeValues
from pyadfem.fem.transform import mapping_for_table

logger = logging.getLogger(__name__)


@dataclass
class AssemblyParameters:
    quad_order: Union[int, str] = "seventh"
    space_dim: int = 3
    coordinate_family: Optional[str] = None  # None: isoparametric
    degeneracy_tol: float = 1e-12


@dataclass
class LocalSystem:
    element_id: int
    dofs: np.ndarray
    residual: np.ndarray   # aRes; the global vector receives -aRes
    jacobian: np.ndarray   # d(aRes)/du, rows and cols follow ``dofs``


class ElementLoop:
    """Shared setup for assemblers that walk the owned elements of one field."""

    def __init__(self, solution: Solution, field: str,
                 params: Optional[AssemblyParameters] = None, comm=None):
        solution.index(field)
        self.solution = solution
        self.field = field
        self.family = solution.family(field)
        self.params = params if params is not None else AssemblyParameters()
        self.comm = comm if comm is not None else SerialCommunicator()
        self._evaluators: Dict[str, ShapeEvaluator] = {}

    @property
    def mesh(self):
        return self.solution.mesh

    @property
    def dof_handler(self):
        return self.solution.dof_handler

    def owned_elements(self):
        return self.mesh.owned_elements(self.comm.rank, self.comm.size)

    def evaluator(self, geometry: str) -> ShapeEvaluator:
        if geometry not in self._evaluators:
            p = self.params
            table = get_element_table(geometry, self.family, p.quad_order)
            geo_table = table
            if p.coordinate_family is not None:
                geo_table = get_element_table(geometry, p.coordinate_family, p.quad_order)
            mapping = mapping_for_table(geo_table, p.space_dim, degeneracy_tol=p.degeneracy_tol)
            self._evaluators[geometry] = ShapeEvaluator(table, mapping, p.space_dim)
        return self._evaluators[geometry]

    def element_coordinates(self, eid: int) -> np.ndarray:
        family = self.params.coordinate_family or self.family
        coords = self.mesh.element_coordinates(eid, family)
        dropped = coords[self.params.space_dim:]
        if np.any(dropped != 0.0):
            raise ConfigurationError(
                f"element {eid} leaves the {self.params.space_dim}-D embedding "
                f"(max |x_k| = {np.abs(dropped).max():.3e} for k >= {self.params.space_dim})")
        return coords[:self.params.space_dim]

    def shape_values(self, eid: int, with_hessian: bool = False) -> List[ShapeValues]:
        """Physical shape data at every quadrature point of ``eid``."""
        ev = self.evaluator(self.mesh.element_type(eid))
        coords = self.element_coordinates(eid)
        try:
            ev.geometry.check_element(coords)
            return [ev.evaluate(coords, ig, with_hessian=with_hessian)
                    for ig in range(ev.n_points)]
        except GeometryFault as exc:
            exc.element_id = eid
            raise


class ElementAssembler(ElementLoop):
    """Nonlinear residual and tape Jacobian for one scalar field."""

    def __init__(self, solution: Solution, field: str, kernel: Callable,
                 params: Optional[AssemblyParameters] = None, *,
                 tape: Optional[DifferentiationTape] = None,
                 residual: Optional[GlobalVector] = None,
                 matrix: Optional[GlobalMatrix] = None,
                 comm=None):
        super().__init__(solution, field, params, comm)
        self.kernel = kernel
        self.tape = tape if tape is not None else DifferentiationTape()
        n = self.dof_handler.total_dofs
        self.residual = residual if residual is not None else GlobalVector(n, self.comm)
        self.matrix = matrix if matrix is not None else GlobalMatrix(n, n, self.comm)

    def local_residual(self, u, shape: List[ShapeValues]):
        """Sum of ``kernel * weight`` over the quadrature points; ``u`` may be traced."""
        res = jnp.zeros(u.shape[0])
        for sv in shape:
            u_q = jnp.dot(sv.phi, u)
            grad_u = jnp.dot(sv.grad_phi.T, u)
            res = res + self.kernel(sv.x, sv.phi, sv.grad_phi, u_q, grad_u) * sv.weight
        return res

    def assemble(self, eid: int) -> Optional[LocalSystem]:
        dofs = self.dof_handler.element_dofs(self.field, eid)
        if len(dofs) == 0:
            logger.debug("Element %d carries no %r dofs; skipped", eid, self.field)
            return None
        u_local = self.solution.local_values(self.field, eid)
        shape = self.shape_values(eid)

        tape = self.tape
        tape.new_recording()
        try:
            tape.independent(u_local)
            a_res = tape.record(lambda u: self.local_residual(u, shape))
            self.residual.add_vector(-a_res, dofs)
            tape.dependent()
            jac = tape.jacobian()
            self.matrix.add_block(jac, dofs, dofs)
        except TapeDisciplineError as exc:
            exc.element_id = eid
            raise
        finally:
            tape.clear()
        return LocalSystem(eid, dofs, a_res, jac)

    def assemble_all(self):
        """Zero, loop over the owned elements, close; returns (residual, matrix)."""
        self.residual.zero()
        self.matrix.zero()
        owned = self.owned_elements()
        for eid in owned:
            self.assemble(eid)
        self.residual.close()
        self.matrix.close()
        logger.info("Assembled %r on %d elements (%d dofs)", self.field, len(owned),
                    self.dof_handler.total_dofs)
        return self.residual, self.matrix
