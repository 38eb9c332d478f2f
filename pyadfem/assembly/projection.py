"""pyadfem.assembly.projection
Linear L2 projection of a field's gradient.

``P_k[i, j] = int phi_i d(phi_j)/dx_k`` is assembled per spatial direction
with the same element loop as the nonlinear assembler, but the integrand is
linear so no tape is recorded.
"""
import logging
from typing import List, Optional

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import spsolve

from pyadfem.assembly.global_matrix import GlobalMatrix
from pyadfem.assembly.local_assembler import AssemblyParameters, ElementLoop
from pyadfem.core.dofhandler import Solution

logger = logging.getLogger(__name__)


class GradientProjectionAssembler(ElementLoop):
    """Mass matrix and one gradient-projection matrix per direction (field-local numbering)."""

    def __init__(self, solution: Solution, field: str,
                 params: Optional[AssemblyParameters] = None, comm=None,
                 n_directions: Optional[int] = None):
        super().__init__(solution, field, params, comm)
        self.n_directions = n_directions if n_directions is not None else self.mesh.dim
        n = self.dof_handler.field_num_dofs[field]
        self.mass = GlobalMatrix(n, n, self.comm)
        self.projections = [GlobalMatrix(n, n, self.comm) for _ in range(self.n_directions)]

    def assemble(self, eid: int):
        dofs = self.dof_handler.local_dofs(self.field, eid)
        if len(dofs) == 0:
            return
        n = len(dofs)
        m_loc = np.zeros((n, n))
        p_loc = np.zeros((self.n_directions, n, n))
        for sv in self.shape_values(eid):
            m_loc += sv.weight * np.outer(sv.phi, sv.phi)
            for k in range(self.n_directions):
                p_loc[k] += sv.weight * np.outer(sv.phi, sv.grad_phi[:, k])
        self.mass.add_block(m_loc, dofs, dofs)
        for k in range(self.n_directions):
            self.projections[k].add_block(p_loc[k], dofs, dofs)

    def assemble_all(self) -> List[GlobalMatrix]:
        for mat in [self.mass] + self.projections:
            mat.zero()
        for eid in self.owned_elements():
            self.assemble(eid)
        for mat in [self.mass] + self.projections:
            mat.close()
        logger.info("Built %d gradient projection matrices for %r",
                    self.n_directions, self.field)
        return self.projections


def build_gradient_projection(solution: Solution, field: str,
                              params: Optional[AssemblyParameters] = None,
                              comm=None) -> List[GlobalMatrix]:
    return GradientProjectionAssembler(solution, field, params, comm).assemble_all()


def compose_block(projections: List[GlobalMatrix]) -> sp.csr_matrix:
    """Stack ``[P_0; P_1; ...]`` into one block-column matrix for inspection."""
    return sp.bmat([[p.tocsr()] for p in projections], format="csr")


def project_gradient(solution: Solution, field: str,
                     params: Optional[AssemblyParameters] = None, comm=None) -> np.ndarray:
    """Nodal L2-projected gradient ``g_k = M^{-1} P_k u``, shape ``(n_dofs, n_directions)``."""
    asm = GradientProjectionAssembler(solution, field, params, comm)
    projections = asm.assemble_all()
    M = asm.mass.tocsr().tocsc()
    u = solution[field]
    return np.column_stack([spsolve(M, P.tocsr() @ u) for P in projections])
