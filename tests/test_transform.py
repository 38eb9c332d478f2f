import numpy as np
import pytest

from pyadfem.core.errors import (ConfigurationError, DegenerateGeometryError,
                                 NonPlanarCurveError, UnsupportedOperationError)
from pyadfem.fem.reference import get_element_table
from pyadfem.fem.transform import (Dim1In3, Dim2In2, Dim2In3, Dim3In3,
                                   build_mapping, mapping_for_table)

# reference -> physical affine maps with positive orientation
AFFINE = {
    1: np.array([[1.3], [0.4], [-0.2]]),
    2: np.array([[1.0, 0.3], [0.2, 1.1], [0.4, -0.3]]),
    3: np.array([[1.0, 0.3, 0.1], [0.2, 1.1, -0.2], [0.1, 0.25, 0.9]]),
}
SHIFT = np.array([0.3, -1.0, 2.0])


def physical_coords(table, A, noise=0.0, seed=0):
    X = A @ table.spec.nodes.T + SHIFT[:, None]
    if noise:
        rng = np.random.default_rng(seed)
        X = X + noise * rng.standard_normal(X.shape)
    return X


@pytest.mark.parametrize("geometry,space_dim,cls", [
    ("line", 3, Dim1In3), ("tri", 3, Dim2In3), ("quad", 3, Dim2In3),
    ("tet", 3, Dim3In3), ("hex", 3, Dim3In3), ("wedge", 3, Dim3In3),
    ("quad", 2, Dim2In2), ("tri", 2, Dim2In2),
])
def test_factory_selects_variant(geometry, space_dim, cls):
    assert type(build_mapping(geometry, "linear", 3, space_dim)) is cls


def test_factory_rejects_impossible_embedding():
    with pytest.raises(ConfigurationError):
        build_mapping("hex", "linear", 3, space_dim=2)
    with pytest.raises(ConfigurationError):
        Dim3In3(get_element_table("quad", "linear", 2))


@pytest.mark.parametrize("geometry", ["line", "tri", "quad", "tet", "hex", "wedge"])
@pytest.mark.parametrize("noise", [0.0, 0.03])
def test_jacobian_times_inverse_is_identity(geometry, noise):
    table = get_element_table(geometry, "biquadratic", 5)
    mapping = mapping_for_table(table)
    X = physical_coords(table, AFFINE[table.dim], noise)
    for ig in range(table.n_points):
        jd = mapping.compute_jacobian(X, ig)
        assert jd.jac.shape == (table.dim, 3)
        assert jd.jac_inv.shape == (3, table.dim)
        assert jd.det_jac > 0
        assert np.allclose(jd.jac @ jd.jac_inv, np.eye(table.dim), atol=1e-12)


@pytest.mark.parametrize("dim", [1, 2, 3])
def test_affine_determinant(dim):
    geometry = {1: "line", 2: "quad", 3: "hex"}[dim]
    table = get_element_table(geometry, "linear", 2)
    A = AFFINE[dim]
    jd = mapping_for_table(table).compute_jacobian(physical_coords(table, A), 0)
    expected = np.sqrt(np.linalg.det(A.T @ A))
    assert np.isclose(jd.det_jac, expected)
    assert np.allclose(jd.jac, A.T)


def test_planar_inverse_matches_numpy():
    table = get_element_table("quad", "quadratic", 4)
    mapping = build_mapping("quad", "quadratic", 4, space_dim=2)
    X = physical_coords(table, AFFINE[2], 0.03)[:2]
    jd = mapping.compute_jacobian(X, 3)
    assert np.allclose(jd.jac_inv, np.linalg.inv(jd.jac))
    assert np.isclose(jd.det_jac, np.linalg.det(jd.jac))


def test_x_mapping_and_forward_hessian_of_affine_map():
    table = get_element_table("tet", "quadratic", 3)
    mapping = mapping_for_table(table)
    A = AFFINE[3]
    X = physical_coords(table, A)
    for ig, xi in enumerate(table.rule.points):
        assert np.allclose(mapping.x_mapping(X, ig), A @ xi + SHIFT)
        assert np.allclose(mapping.compute_forward_hessian(X, ig), 0.0, atol=1e-12)


def test_two_dimensional_coordinates_are_padded():
    table = get_element_table("tri", "linear", 2)
    mapping = mapping_for_table(table)
    X2 = np.array([[0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    jd = mapping.compute_jacobian(X2, 0)
    assert np.isclose(jd.det_jac, 1.0)
    with pytest.raises(ConfigurationError):
        mapping.compute_jacobian(np.zeros((3, 4)), 0)


@pytest.mark.parametrize("geometry,coords", [
    ("line", [[0.0, 0.0], [1.0, 1.0], [0.0, 0.0]]),
    ("tri", [[0.0, 1.0, 1.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]),
    ("tet", [[0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 0.0, 0.0], [0.0, 0.0, 0.0, 1.0]]),
])
def test_collapsed_element_raises(geometry, coords):
    mapping = build_mapping(geometry, "linear", 2)
    with pytest.raises(DegenerateGeometryError) as info:
        mapping.compute_jacobian(np.array(coords, dtype=float), 0)
    assert info.value.ig == 0


def unit_hex():
    return 0.5 * (get_element_table("hex", "linear", 2).spec.nodes.T + 1.0)


@pytest.mark.parametrize("geometry,coords", [
    ("quad", [[0.0, 1.0, 1.0, 1.0], [0.0, 0.0, 1.0, 1.0], [0.0, 0.0, 0.0, 0.0]]),
    ("quad", [[0.0, 0.0, 1.0, 0.0], [0.0, 0.0, 1.0, 1.0], [0.0, 0.0, 0.0, 0.0]]),
    ("hex", "collapsed"),
])
def test_collapsed_corner_is_caught_at_vertices(geometry, coords):
    mapping = build_mapping(geometry, "linear", 3)
    if coords == "collapsed":
        coords = unit_hex()
        coords[:, 1] = coords[:, 0]
    coords = np.asarray(coords, dtype=float)
    # every Gauss point still has a positive determinant
    for ig in range(mapping.table.n_points):
        assert mapping.compute_jacobian(coords, ig).det_jac > 0.0
    with pytest.raises(DegenerateGeometryError) as info:
        mapping.check_element(coords)
    assert info.value.ig is None


def test_regular_elements_pass_vertex_check():
    build_mapping("hex", "linear", 3).check_element(unit_hex())
    build_mapping("quad", "biquadratic", 3).check_element(
        physical_coords(get_element_table("quad", "biquadratic", 3), AFFINE[2]))


def test_inverted_volume_element_raises():
    mapping = build_mapping("tet", "linear", 2)
    # vertices 1 and 2 swapped
    X = np.array([[0.0, 0.0, 1.0, 0.0],
                  [0.0, 1.0, 0.0, 0.0],
                  [0.0, 0.0, 0.0, 1.0]])
    with pytest.raises(DegenerateGeometryError):
        mapping.compute_jacobian(X, 0)


def test_surface_normal_is_unit_and_orthogonal():
    table = get_element_table("quad", "biquadratic", 3)
    mapping = mapping_for_table(table)
    X = physical_coords(table, AFFINE[2], 0.03, seed=3)
    for ig in range(table.n_points):
        jac = mapping.compute_jacobian(X, ig).jac
        n = mapping.compute_normal(jac)
        assert np.isclose(np.linalg.norm(n), 1.0)
        assert np.allclose(jac @ n, 0.0, atol=1e-12)


def test_flat_surface_normal_points_up():
    mapping = build_mapping("tri", "linear", 2)
    X = np.array([[0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 0.0]])
    n = mapping.compute_normal(mapping.compute_jacobian(X, 0).jac)
    assert np.allclose(n, [0.0, 0.0, 1.0])


def test_curve_normal():
    mapping = build_mapping("line", "linear", 2)
    # bottom edge of a domain traversed anticlockwise: outward is -y
    X = np.array([[0.0, 2.0], [0.0, 0.0], [0.0, 0.0]])
    jac = mapping.compute_jacobian(X, 0).jac
    n = mapping.compute_normal(jac)
    assert np.allclose(n, [0.0, -1.0, 0.0])
    assert np.isclose(jac[0] @ n, 0.0)


def test_curve_normal_requires_planar_curve():
    mapping = build_mapping("line", "linear", 2)
    X = np.array([[0.0, 1.0], [0.0, 0.0], [0.0, 1.0]])
    jac = mapping.compute_jacobian(X, 0).jac
    with pytest.raises(NonPlanarCurveError):
        mapping.compute_normal(jac)


def test_volume_normal_is_unsupported():
    mapping = build_mapping("hex", "linear", 2)
    with pytest.raises(UnsupportedOperationError):
        mapping.compute_normal(np.eye(3))
    with pytest.raises(NotImplementedError):
        mapping.compute_normal(np.eye(3))
