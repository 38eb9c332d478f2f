import logging
from typing import Optional, Sequence, Union

import numpy as np

from pyadfem.core.errors import ConfigurationError
from pyadfem.fem.reference import FE_FAMILIES, element_spec

logger = logging.getLogger(__name__)


class Mesh:
    """
    Unstructured mesh of mixed geometries embedded in 3-space.

    Every element stores its node list at the ``node_family`` level (by
    default ``"biquadratic"``).  Reference nodes are ordered vertices, edges,
    faces, interior, so a lower family on the same element uses the first
    ``n`` nodes of that list.  Elements are owned by contiguous ranges, one
    range per process.
    """

    def __init__(self,
                 nodes: np.ndarray,
                 elements: Sequence[Sequence[int]],
                 element_types: Union[str, Sequence[str]],
                 *,
                 node_family: str = "biquadratic",
                 boundary_nodes: Optional[np.ndarray] = None):
        nodes = np.asarray(nodes, dtype=float)
        if nodes.ndim != 2 or nodes.shape[1] > 3:
            raise ConfigurationError(f"node array must be (N, <=3), got {nodes.shape}")
        self.nodes_xyz = np.zeros((nodes.shape[0], 3))
        self.nodes_xyz[:, :nodes.shape[1]] = nodes
        self.node_family = node_family
        if isinstance(element_types, str):
            element_types = [element_types] * len(elements)
        if len(element_types) != len(elements):
            raise ConfigurationError("one geometry name per element is required")
        self.element_types = list(element_types)
        self.elements_connectivity = [np.asarray(e, dtype=int) for e in elements]
        for eid, (geom, conn) in enumerate(zip(self.element_types, self.elements_connectivity)):
            n = element_spec(geom, node_family).n_basis
            if len(conn) != n:
                raise ConfigurationError(
                    f"element {eid}: {geom} at the {node_family} level needs {n} nodes, "
                    f"got {len(conn)}")
        self.boundary_nodes = (np.zeros(0, dtype=int) if boundary_nodes is None
                               else np.asarray(boundary_nodes, dtype=int))
        self.dim = max(element_spec(g, "linear").dim for g in set(self.element_types)) \
            if self.element_types else 0

    def __repr__(self):
        kinds = sorted(set(self.element_types))
        return f"Mesh({self.n_nodes} nodes, {self.n_elements} elements, {kinds})"

    @property
    def n_nodes(self) -> int:
        return self.nodes_xyz.shape[0]

    @property
    def n_elements(self) -> int:
        return len(self.elements_connectivity)

    def element_type(self, eid: int) -> str:
        return self.element_types[eid]

    def element_dof_count(self, eid: int, family: str) -> int:
        if FE_FAMILIES.index(family) > FE_FAMILIES.index(self.node_family):
            raise ConfigurationError(
                f"mesh stores {self.node_family} nodes; cannot host a {family} field")
        return element_spec(self.element_types[eid], family).n_basis

    def element_nodes(self, eid: int, family: Optional[str] = None) -> np.ndarray:
        conn = self.elements_connectivity[eid]
        if family is None:
            return conn
        return conn[:self.element_dof_count(eid, family)]

    def element_coordinates(self, eid: int, family: Optional[str] = None) -> np.ndarray:
        """Nodal coordinates as ``(3, n)``: one row per physical coordinate."""
        return self.nodes_xyz[self.element_nodes(eid, family)].T

    # ---------- ownership ----------
    def element_offsets(self, n_parts: int) -> np.ndarray:
        """Start of each process's contiguous element range, plus the end."""
        base, extra = divmod(self.n_elements, n_parts)
        sizes = [base + (1 if p < extra else 0) for p in range(n_parts)]
        return np.concatenate([[0], np.cumsum(sizes)]).astype(int)

    def owned_elements(self, rank: int = 0, size: int = 1) -> range:
        offsets = self.element_offsets(size)
        return range(offsets[rank], offsets[rank + 1])
