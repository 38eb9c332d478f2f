"""pyadfem.utils.norms
L2 and H1-seminorm errors against an exact solution, reduced over processes.
"""
import logging
from typing import Optional, Tuple

import numpy as np

from pyadfem.assembly.global_matrix import GlobalVector
from pyadfem.assembly.local_assembler import AssemblyParameters, ElementLoop
from pyadfem.core.dofhandler import Solution
from pyadfem.core.parallel import SerialCommunicator

logger = logging.getLogger(__name__)


def reduce_sqrt_sum(local_value: float, comm=None) -> float:
    """sqrt of the sum of one non-negative partial value per rank.

    Each rank writes its partial into its own slot of a per-rank vector; the
    1-norm of the closed vector is the global sum.
    """
    comm = comm if comm is not None else SerialCommunicator()
    vec = GlobalVector(comm.size, comm)
    vec.set(comm.rank, local_value)
    vec.close()
    return float(np.sqrt(vec.l1_norm()))


def compute_error_norms(solution: Solution, field: str, exact,
                        params: Optional[AssemblyParameters] = None,
                        comm=None) -> Tuple[float, float]:
    """Return ``(||u_h - u||_L2, |u_h - u|_H1)``.

    ``exact`` must be callable on a physical point and expose ``gradient``
    (see :class:`pyadfem.forms.analytic.Analytic`).
    """
    loop = ElementLoop(solution, field, params, comm)
    l2 = 0.0
    semi = 0.0
    for eid in loop.owned_elements():
        if len(loop.dof_handler.local_dofs(field, eid)) == 0:
            continue
        u = solution.local_values(field, eid)
        for sv in loop.shape_values(eid):
            diff = sv.phi @ u - float(exact(sv.x))
            grad_diff = sv.grad_phi.T @ u - np.asarray(exact.gradient(sv.x))[:len(sv.x)]
            l2 += diff * diff * sv.weight
            semi += float(grad_diff @ grad_diff) * sv.weight
    l2_error = reduce_sqrt_sum(l2, loop.comm)
    semi_error = reduce_sqrt_sum(semi, loop.comm)
    logger.debug("Error norms for %r: L2=%.6e H1-semi=%.6e", field, l2_error, semi_error)
    return l2_error, semi_error
