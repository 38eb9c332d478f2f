"""pyadfem.utils.meshgen
Structured box meshes for every reference geometry.

Each lattice cell is split into one or more affine copies of the reference
element (two triangles per square, six Kuhn tetrahedra or two wedges per
cube).  Element nodes are produced by mapping the reference nodes, and
coincident nodes are merged on a quantized integer lattice, so interior
face and bubble nodes come out right for every family.
"""
from itertools import permutations
import logging
from typing import Optional, Sequence, Union

import numba
import numpy as np

from pyadfem.core.errors import ConfigurationError
from pyadfem.core.mesh import Mesh
from pyadfem.fem.reference import element_spec

__all__ = ["structured_mesh", "structured_line", "structured_quad", "structured_triangles",
           "structured_hex", "structured_tets", "structured_wedges"]

logger = logging.getLogger(__name__)

# node positions are multiples of h/2, h/3 and h/4 inside a cell
_QUANT = 12


def _cube_template(dim):
    origin = np.zeros(3)
    origin[:dim] = 0.5
    M = np.zeros((3, 3))
    M[:dim, :dim] = 0.5 * np.eye(dim)
    return [(origin, M)]


def _tri_templates():
    a = (np.zeros(3), np.diag([1.0, 1.0, 0.0]))
    b = (np.array([1.0, 1.0, 0.0]), np.diag([-1.0, -1.0, 0.0]))
    return [a, b]


def _tet_templates():
    out = []
    eye = np.eye(3)
    for perm in permutations(range(3)):
        v1 = eye[perm[0]]
        v2 = v1 + eye[perm[1]]
        v3 = np.ones(3)
        M = np.column_stack([v1, v2, v3])
        if np.linalg.det(M) < 0:
            M = np.column_stack([v2, v1, v3])
        out.append((np.zeros(3), M))
    return out


def _wedge_templates():
    out = []
    for origin, M in _tri_templates():
        o = origin.copy()
        o[2] = 0.5
        W = M.copy()
        W[2, 2] = 0.5
        out.append((o, W))
    return out


_TEMPLATES = {
    "line": lambda: _cube_template(1),
    "quad": lambda: _cube_template(2),
    "hex": lambda: _cube_template(3),
    "tri": _tri_templates,
    "tet": _tet_templates,
    "wedge": _wedge_templates,
}


@numba.jit(nopython=True, cache=True)
def _map_reference_nodes(origins, mats, ref):
    """x[e, a] = origins[e] + mats[e] @ ref[a] for every element and node."""
    n_el = origins.shape[0]
    n_nodes = ref.shape[0]
    out = np.empty((n_el, n_nodes, 3))
    for e in range(n_el):
        for a in range(n_nodes):
            for i in range(3):
                acc = origins[e, i]
                for j in range(3):
                    acc += mats[e, i, j] * ref[a, j]
                out[e, a, i] = acc
    return out


def structured_mesh(geometry: str,
                    n: Union[int, Sequence[int]],
                    lengths: Optional[Sequence[float]] = None,
                    offset: Optional[Sequence[float]] = None,
                    node_family: str = "biquadratic") -> Mesh:
    """
    Box ``offset + [0, L_0] x ... x [0, L_{d-1}]`` with ``n`` cells per direction.

    Parameters
    ----------
    geometry : {'line', 'quad', 'tri', 'hex', 'tet', 'wedge'}
    n : int or sequence of int
        Cells per direction.
    lengths, offset : sequence of float, optional
        Box size (default 1) and lower corner (default 0).
    node_family : str
        Family whose nodes are generated; lower families reuse a prefix.
    """
    if geometry not in _TEMPLATES:
        raise ConfigurationError(f"no structured generator for {geometry!r}")
    spec = element_spec(geometry, node_family)
    dim = spec.dim
    counts = np.array([n] * dim if np.isscalar(n) else list(n), dtype=int)
    if counts.size != dim or np.any(counts < 1):
        raise ConfigurationError(f"need {dim} positive cell counts, got {n}")
    L = np.ones(dim) if lengths is None else np.asarray(lengths, dtype=float)
    x0 = np.zeros(3)
    if offset is not None:
        x0[:len(offset)] = offset
    h = np.zeros(3)
    h[:dim] = L / counts

    cells = np.array(np.meshgrid(*[np.arange(c) for c in counts], indexing="ij"))
    cells = cells.reshape(dim, -1).T
    cells3 = np.zeros((cells.shape[0], 3))
    cells3[:, :dim] = cells

    templates = _TEMPLATES[geometry]()
    origins = np.concatenate([x0 + h * (cells3 + o) for o, _ in templates])
    mats = np.concatenate([np.repeat((h[:, None] * M)[None], len(cells3), axis=0)
                           for _, M in templates])
    ref = np.zeros((spec.n_basis, 3))
    ref[:, :dim] = spec.nodes
    X = _map_reference_nodes(origins, mats, ref)          # (E, n, 3)

    # merge coincident nodes on the quantized lattice
    h_safe = np.where(h > 0, h, 1.0)
    keys = np.rint((X.reshape(-1, 3) - x0) / h_safe * _QUANT).astype(np.int64)
    uniq, inverse = np.unique(keys, axis=0, return_inverse=True)
    conn = inverse.reshape(X.shape[0], spec.n_basis)
    nodes = x0 + uniq * h / _QUANT

    ends = counts * _QUANT
    on_boundary = np.zeros(len(uniq), dtype=bool)
    for d in range(dim):
        on_boundary |= (uniq[:, d] == 0) | (uniq[:, d] == ends[d])

    logger.debug("structured %s mesh: %d elements, %d nodes", geometry, len(conn), len(nodes))
    return Mesh(nodes, conn, geometry, node_family=node_family,
                boundary_nodes=np.flatnonzero(on_boundary))


def structured_line(n: int, length: float = 1.0, offset=(0.0,), **kw) -> Mesh:
    return structured_mesh("line", n, (length,), offset, **kw)


def structured_quad(Lx: float, Ly: float, nx: int, ny: int, offset=(0.0, 0.0), **kw) -> Mesh:
    return structured_mesh("quad", (nx, ny), (Lx, Ly), offset, **kw)


def structured_triangles(Lx: float, Ly: float, nx: int, ny: int, offset=(0.0, 0.0), **kw) -> Mesh:
    return structured_mesh("tri", (nx, ny), (Lx, Ly), offset, **kw)


def structured_hex(Lx, Ly, Lz, nx, ny, nz, offset=(0.0, 0.0, 0.0), **kw) -> Mesh:
    return structured_mesh("hex", (nx, ny, nz), (Lx, Ly, Lz), offset, **kw)


def structured_tets(Lx, Ly, Lz, nx, ny, nz, offset=(0.0, 0.0, 0.0), **kw) -> Mesh:
    return structured_mesh("tet", (nx, ny, nz), (Lx, Ly, Lz), offset, **kw)


def structured_wedges(Lx, Ly, Lz, nx, ny, nz, offset=(0.0, 0.0, 0.0), **kw) -> Mesh:
    return structured_mesh("wedge", (nx, ny, nz), (Lx, Ly, Lz), offset, **kw)
