import logging
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import numpy as np

from pyadfem.core.errors import ConfigurationError, UnknownFieldError
from pyadfem.core.mesh import Mesh

logger = logging.getLogger(__name__)

FieldSpec = Union[str, Tuple[str, Iterable[int]]]


class DofHandler:
    """Continuous DOF numbering for one or more scalar fields on a mesh."""

    def __init__(self, mesh: Mesh, fields: Dict[str, FieldSpec]):
        """
        Parameters
        ----------
        mesh : Mesh
            Mesh holding the nodes of every field.
        fields : dict[str, str | (str, iterable[int])]
            ``{name: family}`` or ``{name: (family, element_ids)}``.  A field
            restricted to a subset of elements has no DOFs on the others.

        Attributes
        ----------
        field_names : list[str]
            Fields in system order.
        element_maps : dict[str, list[ndarray]]
            Per field and element, the field-local DOF ids in reference node order.
        dof_map : dict[str, dict[int, int]]
            Per field, ``{mesh_node_id -> field-local dof}``.
        field_offsets, field_num_dofs : dict[str, int]
            Position and size of each field in the system vector.
        total_dofs : int
            Size of the system vector.
        """
        self.mesh = mesh
        self.field_names = list(fields)
        self.families: Dict[str, str] = {}
        self.element_maps: Dict[str, list] = {}
        self.dof_map: Dict[str, Dict[int, int]] = {}
        self.field_offsets: Dict[str, int] = {}
        self.field_num_dofs: Dict[str, int] = {}
        self._dof_nodes: Dict[str, np.ndarray] = {}

        offset = 0
        for name, spec in fields.items():
            if isinstance(spec, str):
                family, active = spec, range(mesh.n_elements)
            else:
                family, active = spec[0], spec[1]
            active = set(int(e) for e in active)
            self.families[name] = family
            used = [mesh.element_nodes(eid, family) for eid in sorted(active)]
            nodes = np.unique(np.concatenate(used)) if used else np.zeros(0, dtype=int)
            dmap = {int(nid): i for i, nid in enumerate(nodes)}
            empty = np.zeros(0, dtype=int)
            self.element_maps[name] = [
                np.array([dmap[int(n)] for n in mesh.element_nodes(eid, family)], dtype=int)
                if eid in active else empty
                for eid in range(mesh.n_elements)]
            self.dof_map[name] = dmap
            self._dof_nodes[name] = nodes
            self.field_offsets[name] = offset
            self.field_num_dofs[name] = len(nodes)
            offset += len(nodes)
        self.total_dofs = offset
        logger.debug("DofHandler: %s (total %d)", self.field_num_dofs, self.total_dofs)

    def _check(self, field: str):
        if field not in self.families:
            raise UnknownFieldError(field, self.field_names)

    def family(self, field: str) -> str:
        self._check(field)
        return self.families[field]

    def local_dofs(self, field: str, eid: int) -> np.ndarray:
        """Field-local DOF ids of element ``eid`` (empty if the field is absent there)."""
        self._check(field)
        return self.element_maps[field][eid]

    def element_dofs(self, field: str, eid: int) -> np.ndarray:
        """System DOF ids of element ``eid``."""
        return self.local_dofs(field, eid) + self.field_offsets[field]

    def field_slice(self, field: str) -> slice:
        self._check(field)
        start = self.field_offsets[field]
        return slice(start, start + self.field_num_dofs[field])

    def dof_coords(self, field: str) -> np.ndarray:
        """Physical coordinates ``(n_field_dofs, 3)`` in field-local order."""
        self._check(field)
        return self.mesh.nodes_xyz[self._dof_nodes[field]]

    def dofs_on_nodes(self, field: str, nodes: Iterable[int]) -> np.ndarray:
        """System DOF ids of ``field`` that sit on the given mesh nodes."""
        self._check(field)
        dmap = self.dof_map[field]
        off = self.field_offsets[field]
        return np.array(sorted(off + dmap[int(n)] for n in nodes if int(n) in dmap), dtype=int)

    def boundary_dofs(self, field: str) -> np.ndarray:
        return self.dofs_on_nodes(field, self.mesh.boundary_nodes)


class Solution:
    """Named nodal unknowns living on a :class:`DofHandler`."""

    def __init__(self, dof_handler: DofHandler):
        self.dof_handler = dof_handler
        self.values: Dict[str, np.ndarray] = {
            f: np.zeros(dof_handler.field_num_dofs[f]) for f in dof_handler.field_names}

    @property
    def mesh(self) -> Mesh:
        return self.dof_handler.mesh

    def index(self, name: str) -> int:
        try:
            return self.dof_handler.field_names.index(name)
        except ValueError:
            raise UnknownFieldError(name, self.dof_handler.field_names) from None

    def family(self, name: str) -> str:
        return self.dof_handler.family(name)

    def __getitem__(self, name: str) -> np.ndarray:
        self.index(name)
        return self.values[name]

    def __contains__(self, name):
        return name in self.values

    def local_values(self, name: str, eid: int) -> np.ndarray:
        return self[name][self.dof_handler.local_dofs(name, eid)]

    def set(self, name: str, values):
        values = np.asarray(values, dtype=float)
        if values.shape != self[name].shape:
            raise ConfigurationError(
                f"field {name!r} has {self[name].size} dofs, got {values.shape}")
        self.values[name] = values.copy()

    def interpolate(self, name: str, func: Callable):
        """Set nodal values ``func(x, y, z)`` at the field's DOF coordinates."""
        xyz = self.dof_handler.dof_coords(name)
        self.values[name] = np.asarray(func(xyz[:, 0], xyz[:, 1], xyz[:, 2]), dtype=float) \
            * np.ones(len(xyz))

    # ---------- system vector ----------
    def vector(self) -> np.ndarray:
        return np.concatenate([self.values[f] for f in self.dof_handler.field_names]) \
            if self.values else np.zeros(0)

    def set_vector(self, vec: np.ndarray):
        vec = np.asarray(vec, dtype=float)
        for f in self.dof_handler.field_names:
            self.values[f] = vec[self.dof_handler.field_slice(f)].copy()

    def add_vector(self, delta: np.ndarray):
        self.set_vector(self.vector() + np.asarray(delta, dtype=float))
