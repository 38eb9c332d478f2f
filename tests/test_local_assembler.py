import jax.numpy as jnp
import numpy as np
import pytest

from pyadfem.assembly.local_assembler import AssemblyParameters, ElementAssembler
from pyadfem.assembly.tape import DifferentiationTape
from pyadfem.core.dofhandler import DofHandler, Solution
from pyadfem.core.errors import ConfigurationError, DegenerateGeometryError, UnknownFieldError
from pyadfem.core.mesh import Mesh
from pyadfem.forms.analytic import cosine_product
from pyadfem.forms.kernels import (ConvectionDiffusionKernel, PoissonKernel,
                                   ReactionDiffusionKernel)
from pyadfem.utils.meshgen import structured_mesh, structured_quad


def make_solution(mesh, family, **fields):
    return Solution(DofHandler(mesh, fields or {"u": family}))


def distorted(mesh, rng, amplitude=0.03):
    interior = np.setdiff1d(np.arange(mesh.n_nodes), mesh.boundary_nodes)
    dim = mesh.dim
    mesh.nodes_xyz[interior, :dim] += amplitude * rng.uniform(-1, 1, (len(interior), dim))
    return mesh


def central_difference(asm, eid, u0, h=1e-6):
    shape = asm.shape_values(eid)
    n = len(u0)
    J = np.zeros((n, n))
    for j in range(n):
        e = np.zeros(n)
        e[j] = h
        rp = np.asarray(asm.local_residual(jnp.asarray(u0 + e), shape))
        rm = np.asarray(asm.local_residual(jnp.asarray(u0 - e), shape))
        J[:, j] = (rp - rm) / (2 * h)
    return J


@pytest.mark.parametrize("geometry,family", [
    ("quad", "quadratic"), ("tri", "biquadratic"), ("hex", "linear"), ("line", "quadratic"),
])
def test_tape_jacobian_matches_finite_differences(geometry, family, rng):
    mesh = distorted(structured_mesh(geometry, 2), rng)
    sol = make_solution(mesh, family)
    sol.set("u", rng.uniform(-1.0, 1.0, sol["u"].size))
    kernel = ReactionDiffusionKernel(source=lambda X: 1.0 + X[0])
    asm = ElementAssembler(sol, "u", kernel)
    for eid in range(mesh.n_elements):
        local = asm.assemble(eid)
        fd = central_difference(asm, eid, sol.local_values("u", eid))
        assert local.jacobian.shape == (len(local.dofs),) * 2
        assert np.allclose(local.jacobian, fd, rtol=1e-6, atol=1e-8)


def test_convection_jacobian_matches_finite_differences(rng):
    mesh = distorted(structured_quad(1.0, 1.0, 2, 2), rng)
    sol = make_solution(mesh, "biquadratic")
    sol.set("u", rng.uniform(-1.0, 1.0, sol["u"].size))
    asm = ElementAssembler(sol, "u", ConvectionDiffusionKernel(lambda X: 2.0))
    local = asm.assemble(2)
    assert np.allclose(local.jacobian, central_difference(asm, 2, sol.local_values("u", 2)),
                       rtol=1e-6, atol=1e-8)


def test_poisson_residual_sign_and_jacobian(centered_square):
    sol = make_solution(centered_square, "quadratic")
    asm = ElementAssembler(sol, "u", PoissonKernel(lambda X: 1.0))
    residual, matrix = asm.assemble_all()
    # aRes_i = int f phi_i with u = 0; the global vector holds -aRes
    assert np.isclose(residual.values.sum(), -1.0)
    J = matrix.toarray()
    assert np.allclose(J, J.T)
    # d(aRes)/du = -K, and K annihilates constants
    assert np.allclose(J.sum(axis=1), 0.0, atol=1e-12)
    assert np.all(np.diag(J) < 0)


def test_linear_residual_is_consistent_with_jacobian(centered_square, rng):
    sol = make_solution(centered_square, "linear")
    asm = ElementAssembler(sol, "u", PoissonKernel(lambda X: 3.0))
    r0 = asm.assemble_all()[0].values.copy()
    u = rng.standard_normal(sol["u"].size)
    sol.set("u", u)
    r1, J = asm.assemble_all()
    # R(u) = R(0) - J u for a linear weak form
    assert np.allclose(r1.values, r0 - J.tocsr() @ u)


def test_tape_is_cleared_between_elements(centered_square):
    tape = DifferentiationTape()
    sol = make_solution(centered_square, "linear")
    asm = ElementAssembler(sol, "u", PoissonKernel(), tape=tape)
    asm.assemble(0)
    assert not tape.is_recording
    assert tape.n_independent == 0


def test_elements_without_dofs_are_skipped():
    mesh = structured_quad(1.0, 1.0, 2, 1)
    sol = Solution(DofHandler(mesh, {"c": ("linear", [1])}))
    asm = ElementAssembler(sol, "c", PoissonKernel(lambda X: 1.0))
    assert asm.assemble(0) is None
    residual, matrix = asm.assemble_all()
    assert np.isclose(residual.values.sum(), -0.5)
    assert matrix.toarray().shape == (4, 4)


def test_unknown_field_is_a_configuration_error(centered_square):
    sol = make_solution(centered_square, "linear")
    with pytest.raises(UnknownFieldError):
        ElementAssembler(sol, "T", PoissonKernel())


def test_degenerate_element_reports_its_id():
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [2.0, 0.0], [3.0, 0.0]])
    mesh = Mesh(nodes, [[0, 1, 2], [1, 3, 4]], "tri", node_family="linear")
    asm = ElementAssembler(make_solution(mesh, "linear"), "u", PoissonKernel())
    asm.assemble(0)
    with pytest.raises(DegenerateGeometryError) as info:
        asm.assemble_all()
    assert info.value.element_id == 1
    assert "element 1" in str(info.value)


def test_non_isoparametric_coordinates_on_straight_mesh(centered_square):
    sol_iso = make_solution(centered_square, "linear")
    sol_non = make_solution(centered_square, "linear")
    kernel = ReactionDiffusionKernel(source=lambda X: X[0] * X[1])
    iso = ElementAssembler(sol_iso, "u", kernel)
    non = ElementAssembler(sol_non, "u", kernel,
                           AssemblyParameters(coordinate_family="biquadratic"))
    r_iso, J_iso = iso.assemble_all()
    r_non, J_non = non.assemble_all()
    assert np.allclose(r_iso.values, r_non.values)
    assert np.allclose(J_iso.toarray(), J_non.toarray())


def test_quad_with_coincident_nodes_reports_its_id():
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [2.0, 0.0], [2.0, 1.0]])
    mesh = Mesh(nodes, [[0, 1, 2, 3], [1, 4, 5, 5]], "quad", node_family="linear")
    asm = ElementAssembler(make_solution(mesh, "linear"), "u", PoissonKernel())
    asm.assemble(0)
    with pytest.raises(DegenerateGeometryError) as info:
        asm.assemble(1)
    assert info.value.element_id == 1


def test_planar_embedding_matches_padded_embedding(centered_square):
    exact = cosine_product()
    kernel = PoissonKernel(exact.poisson_source())
    r3, J3 = ElementAssembler(make_solution(centered_square, "quadratic"), "u",
                              kernel).assemble_all()
    r2, J2 = ElementAssembler(make_solution(centered_square, "quadratic"), "u", kernel,
                              AssemblyParameters(space_dim=2)).assemble_all()
    assert np.allclose(r2.values, r3.values)
    assert np.allclose(J2.toarray(), J3.toarray())


def test_planar_embedding_rejects_tilted_mesh():
    mesh = structured_quad(1.0, 1.0, 2, 2)
    mesh.nodes_xyz[:, 2] = 0.1 * mesh.nodes_xyz[:, 0]
    asm = ElementAssembler(make_solution(mesh, "linear"), "u", PoissonKernel(),
                           AssemblyParameters(space_dim=2))
    with pytest.raises(ConfigurationError):
        asm.assemble_all()
