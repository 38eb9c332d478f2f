"""Example: Newton with tape Jacobians for -lap(u) + u (1,1,1).grad(u) = f"""
import logging

import numpy as np

from pyadfem.assembly.local_assembler import AssemblyParameters, ElementAssembler
from pyadfem.assembly.projection import project_gradient
from pyadfem.core.dofhandler import DofHandler, Solution
from pyadfem.forms.analytic import cosine_product
from pyadfem.forms.kernels import ConvectionDiffusionKernel
from pyadfem.io.visualization import plot_mesh
from pyadfem.solvers.nonlinear_solver import NewtonParameters, NewtonSolver
from pyadfem.utils.meshgen import structured_quad
from pyadfem.utils.norms import compute_error_norms

logging.basicConfig(level=logging.INFO)

exact = cosine_product()
mesh = structured_quad(1.0, 1.0, 8, 8, offset=(-0.5, -0.5))
sol = Solution(DofHandler(mesh, {"u": "biquadratic"}))
params = AssemblyParameters(quad_order="fifth")

assembler = ElementAssembler(sol, "u", ConvectionDiffusionKernel(exact.convection_source()), params)
result = NewtonSolver(assembler, dirichlet=exact.nodal,
                      newton_params=NewtonParameters(newton_tol=1e-10, line_search=True)).solve()
print(f"converged={result.converged} after {result.iterations} iterations "
      f"({result.wall_time:.2f}s)")

l2, semi = compute_error_norms(sol, "u", exact, params)
print(f"L2 error = {l2:.3e}, H1 seminorm error = {semi:.3e}")

g = project_gradient(sol, "u", params)
xyz = sol.dof_handler.dof_coords("u")
print("max projected-gradient error:",
      np.abs(g - exact.gradient(xyz)[:, :2]).max())

nodal = np.zeros(mesh.n_nodes)
nodal[list(sol.dof_handler.dof_map["u"])] = sol["u"]
plot_mesh(mesh, solution_on_nodes=nodal, show=True)
