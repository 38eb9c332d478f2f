"""pyadfem.utils.convergence
h-convergence study for the Poisson problem with a manufactured solution.
"""
from dataclasses import dataclass, field
import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from pyadfem.assembly.local_assembler import AssemblyParameters, ElementAssembler
from pyadfem.core.dofhandler import DofHandler, Solution
from pyadfem.fem.reference import FE_FAMILIES, element_spec
from pyadfem.forms.analytic import Analytic, cosine_product
from pyadfem.forms.kernels import PoissonKernel
from pyadfem.solvers.nonlinear_solver import NewtonParameters, NewtonSolver
from pyadfem.utils.meshgen import structured_mesh
from pyadfem.utils.norms import compute_error_norms

logger = logging.getLogger(__name__)

_COLUMN_NAMES = {"linear": "FIRST", "quadratic": "SERENDIPITY", "biquadratic": "SECOND"}


@dataclass
class ConvergenceTable:
    levels: Tuple[int, ...]
    families: Tuple[str, ...]
    l2: np.ndarray = field(default=None)    # (n_levels, n_families)
    semi: np.ndarray = field(default=None)

    def orders(self, norm: str = "l2") -> np.ndarray:
        """``log2(e_{k-1} / e_k)`` between consecutive levels."""
        err = self.l2 if norm == "l2" else self.semi
        return np.log2(err[:-1] / err[1:])

    def format(self) -> str:
        lines = []
        for title, err, norm in (("l2", self.l2, "l2"), ("SEMINORM", self.semi, "semi")):
            lines.append(f"{title} ERROR and ORDER OF CONVERGENCE:")
            lines.append("LEVEL\t" + "\t".join(f"{_COLUMN_NAMES.get(f, f):<20}"
                                              for f in self.families))
            orders = self.orders(norm)
            for i, level in enumerate(self.levels):
                cells = [f"{err[i, j]:.6e}" for j in range(len(self.families))]
                lines.append(f"{level}\t" + "\t".join(f"{c:<20}" for c in cells))
                if i < len(self.levels) - 1:
                    lines.append("\t" + "\t".join(f"{orders[i, j]:<20.4f}"
                                                  for j in range(len(self.families))))
            lines.append("")
        return "\n".join(lines)


def solve_poisson(mesh, family: str, exact: Analytic,
                  params: Optional[AssemblyParameters] = None) -> Solution:
    """Solve ``-lap(u) = -lap(exact)`` with ``u = exact`` on the boundary."""
    dh = DofHandler(mesh, {"u": family})
    sol = Solution(dh)
    assembler = ElementAssembler(sol, "u", PoissonKernel(exact.poisson_source()), params)
    # linear problem: one Newton step is exact
    NewtonSolver(assembler, dirichlet=exact.nodal,
                 newton_params=NewtonParameters(newton_tol=1e-9, max_newton_iter=2)).solve()
    return sol


def run_convergence_study(geometry: str = "quad",
                          levels: Sequence[int] = (1, 2, 3, 4),
                          families: Sequence[str] = FE_FAMILIES,
                          exact: Optional[Analytic] = None,
                          params: Optional[AssemblyParameters] = None) -> ConvergenceTable:
    """Refine the box ``[-1/2, 1/2]^d`` with ``2**level`` cells per direction."""
    exact = exact if exact is not None else cosine_product()
    dim = element_spec(geometry, "linear").dim
    table = ConvergenceTable(tuple(levels), tuple(families),
                             np.zeros((len(levels), len(families))),
                             np.zeros((len(levels), len(families))))
    for i, level in enumerate(levels):
        mesh = structured_mesh(geometry, 2 ** level, lengths=(1.0,) * dim,
                               offset=(-0.5,) * dim)
        for j, family in enumerate(families):
            sol = solve_poisson(mesh, family, exact, params)
            table.l2[i, j], table.semi[i, j] = compute_error_norms(sol, "u", exact, params)
            logger.info("level %d %-11s L2=%.4e H1-semi=%.4e", level, family,
                        table.l2[i, j], table.semi[i, j])
    return table
