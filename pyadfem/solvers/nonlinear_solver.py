r"""
nonlinear_solver.py  -  Newton driver for the tape assembler
============================================================
Each iteration assembles the Newton right-hand side ``R = -aRes`` and the
tangent ``J = d(aRes)/du``, applies homogeneous Dirichlet conditions on the
increment, solves ``J du = R`` and updates the solution.
"""
from dataclasses import dataclass, field
import logging
import time
from typing import Callable, Dict, List, Optional, Union

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pyadfem.assembly.local_assembler import ElementAssembler

logger = logging.getLogger(__name__)


@dataclass
class NewtonParameters:
    """Settings that govern a *single* Newton solve."""

    newton_tol: float = 1e-8            # ||R||_inf convergence threshold
    max_newton_iter: int = 20           # hard cap on Newton iterations

    # back-tracking line search on ||R||_2
    line_search: bool = False
    ls_max_iter: int = 8
    ls_reduction: float = 0.5           # alpha <- beta * alpha after reject
    ls_c1: float = 1.0e-4               # sufficient-decrease parameter


@dataclass
class LinearSolverParameters:
    """Sparse linear solver settings."""

    backend: str = "scipy"              # "scipy" (direct) or "gmres"
    tol: float = 1e-12
    maxit: int = 10_000


@dataclass
class NewtonResult:
    converged: bool
    iterations: int
    residual_norms: List[float] = field(default_factory=list)
    wall_time: float = 0.0


def _zero_rows_cols(A: sp.csr_matrix, rows: np.ndarray) -> sp.csr_matrix:
    """Zero out rows *and* columns and put 1.0 on the diagonal."""
    A = A.tolil()
    A[rows, :] = 0.0
    A[:, rows] = 0.0
    A[rows, rows] = 1.0
    return A.tocsr()


class NewtonSolver:
    def __init__(self, assembler: ElementAssembler,
                 dirichlet: Optional[Union[Dict[int, float], Callable]] = None,
                 newton_params: Optional[NewtonParameters] = None,
                 lin_params: Optional[LinearSolverParameters] = None):
        """
        Parameters
        ----------
        assembler : ElementAssembler
            Provides the residual/Jacobian of one field.
        dirichlet : dict[int, float] | callable | None
            Either ``{system_dof: value}`` or a function ``g(x, y, z)`` imposed
            on the mesh boundary nodes of the assembled field.
        """
        self.assembler = assembler
        self.np = newton_params if newton_params is not None else NewtonParameters()
        self.lp = lin_params if lin_params is not None else LinearSolverParameters()
        self.dirichlet = self._dirichlet_data(dirichlet)
        self.bc_dofs = np.array(sorted(self.dirichlet), dtype=int)

    def _dirichlet_data(self, dirichlet) -> Dict[int, float]:
        if dirichlet is None:
            return {}
        if isinstance(dirichlet, dict):
            return {int(k): float(v) for k, v in dirichlet.items()}
        dh = self.assembler.dof_handler
        fld = self.assembler.field
        dofs = dh.boundary_dofs(fld)
        xyz = dh.dof_coords(fld)[dofs - dh.field_offsets[fld]]
        vals = np.asarray(dirichlet(xyz[:, 0], xyz[:, 1], xyz[:, 2]), dtype=float) \
            * np.ones(len(dofs))
        return dict(zip(dofs.tolist(), vals.tolist()))

    def apply_dirichlet_values(self):
        if not self.dirichlet:
            return
        u = self.assembler.solution.vector()
        u[self.bc_dofs] = [self.dirichlet[d] for d in self.bc_dofs]
        self.assembler.solution.set_vector(u)

    def _residual_norm(self, R: np.ndarray) -> float:
        R = R.copy()
        R[self.bc_dofs] = 0.0
        return float(np.linalg.norm(R, np.inf)) if R.size else 0.0

    def _solve_linear_system(self, A: sp.csr_matrix, rhs: np.ndarray) -> np.ndarray:
        if self.lp.backend == "scipy":
            return spla.spsolve(A.tocsc(), rhs)
        if self.lp.backend == "gmres":
            x, info = spla.gmres(A, rhs, rtol=self.lp.tol, maxiter=self.lp.maxit)
            if info != 0:
                raise RuntimeError(f"GMRES did not converge (info={info})")
            return x
        raise ValueError(f"Unknown linear solver backend '{self.lp.backend}'.")

    def assemble_system(self):
        residual, matrix = self.assembler.assemble_all()
        R = residual.values.copy()
        J = matrix.tocsr()
        if len(self.bc_dofs):
            J = _zero_rows_cols(J, self.bc_dofs)
            R[self.bc_dofs] = 0.0
        return J, R

    def _line_search(self, du: np.ndarray, R0: np.ndarray) -> float:
        sol = self.assembler.solution
        u0 = sol.vector()
        phi0 = 0.5 * float(R0 @ R0)
        alpha = 1.0
        for _ in range(self.np.ls_max_iter):
            sol.set_vector(u0 + alpha * du)
            _, R = self.assemble_system()
            if 0.5 * float(R @ R) <= (1.0 - 2.0 * self.np.ls_c1 * alpha) * phi0:
                break
            alpha *= self.np.ls_reduction
        else:
            logger.warning("Line search exhausted %d trials; taking alpha=%g",
                           self.np.ls_max_iter, alpha)
        sol.set_vector(u0)
        return alpha

    def solve(self) -> NewtonResult:
        t0 = time.perf_counter()
        self.apply_dirichlet_values()
        sol = self.assembler.solution
        history = []
        for it in range(self.np.max_newton_iter):
            J, R = self.assemble_system()
            res = self._residual_norm(R)
            history.append(res)
            logger.info("Newton %2d: ||R||_inf = %.3e", it, res)
            if res < self.np.newton_tol:
                return NewtonResult(True, it, history, time.perf_counter() - t0)
            du = self._solve_linear_system(J, R)
            alpha = self._line_search(du, R) if self.np.line_search else 1.0
            sol.add_vector(alpha * du)
        J, R = self.assemble_system()
        history.append(self._residual_norm(R))
        converged = history[-1] < self.np.newton_tol
        if not converged:
            logger.warning("Newton did not converge in %d iterations (||R||_inf = %.3e)",
                           self.np.max_newton_iter, history[-1])
        return NewtonResult(converged, self.np.max_newton_iter, history,
                            time.perf_counter() - t0)
