import numpy as np
import pytest

from pyadfem.assembly.projection import (GradientProjectionAssembler, build_gradient_projection,
                                         compose_block, project_gradient)
from pyadfem.core.dofhandler import DofHandler, Solution
from pyadfem.utils.meshgen import structured_hex, structured_triangles


@pytest.fixture
def quadratic_solution(centered_square):
    return Solution(DofHandler(centered_square, {"u": "quadratic"}))


def test_projection_of_coordinate_is_lumped_mass(quadratic_solution):
    asm = GradientProjectionAssembler(quadratic_solution, "u")
    Px, Py = asm.assemble_all()
    xyz = quadratic_solution.dof_handler.dof_coords("u")
    row_sums = np.asarray(asm.mass.tocsr().sum(axis=1)).ravel()
    assert np.allclose(Px.tocsr() @ xyz[:, 0], row_sums)
    assert np.allclose(Py.tocsr() @ xyz[:, 0], 0.0, atol=1e-13)
    assert np.isclose(row_sums.sum(), 1.0)


def test_projection_annihilates_constants(quadratic_solution):
    n = quadratic_solution["u"].size
    for P in build_gradient_projection(quadratic_solution, "u"):
        assert np.allclose(P.tocsr() @ np.ones(n), 0.0, atol=1e-13)


@pytest.mark.parametrize("mesh_factory", [
    lambda: structured_triangles(1.0, 1.0, 3, 3),
    lambda: structured_hex(1.0, 1.0, 1.0, 2, 2, 2),
])
def test_projected_gradient_of_linear_field(mesh_factory):
    mesh = mesh_factory()
    sol = Solution(DofHandler(mesh, {"u": "linear"}))
    coef = np.array([2.0, -3.0, 0.5])[:mesh.dim]
    sol.interpolate("u", lambda x, y, z: np.stack([x, y, z])[:mesh.dim].T @ coef)
    g = project_gradient(sol, "u")
    assert g.shape == (sol["u"].size, mesh.dim)
    assert np.allclose(g, coef[None, :])


def test_compose_block_stacks_directions(quadratic_solution):
    projections = build_gradient_projection(quadratic_solution, "u")
    n = quadratic_solution["u"].size
    block = compose_block(projections)
    assert block.shape == (2 * n, n)
    assert np.allclose(block[n:].toarray(), projections[1].toarray())


def test_restricted_field_uses_field_local_numbering():
    mesh = structured_triangles(1.0, 1.0, 2, 2)
    dh = DofHandler(mesh, {"p": "linear", "c": ("linear", [0, 1])})
    asm = GradientProjectionAssembler(Solution(dh), "c", n_directions=1)
    asm.assemble_all()
    n = dh.field_num_dofs["c"]
    assert asm.mass.toarray().shape == (n, n)
    assert np.isclose(asm.mass.toarray().sum(), 0.25)
