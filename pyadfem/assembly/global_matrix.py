"""pyadfem.assembly.global_matrix
Global sparse matrix and vector filled by blocked adds.

Contributions are buffered as COO triplets and committed by :meth:`close`,
which also sums them over the communicator.  Reading a container with
pending writes raises :class:`~pyadfem.core.errors.ContainerStateError`.
"""
import logging

import numpy as np
import scipy.sparse as sp

from pyadfem.core.errors import ContainerStateError
from pyadfem.core.parallel import SerialCommunicator

logger = logging.getLogger(__name__)


class GlobalVector:
    def __init__(self, size: int, comm=None):
        self.size = int(size)
        self.comm = comm if comm is not None else SerialCommunicator()
        self._values = np.zeros(self.size)
        self._pending = np.zeros(self.size)
        self._reset_modes()

    def _reset_modes(self):
        # insert and add may not touch the same entry between two closes
        self._added = np.zeros(self.size, dtype=bool)
        self._inserted = np.zeros(self.size, dtype=bool)
        self._dirty = False

    def zero(self):
        self._values[:] = 0.0
        self._pending[:] = 0.0
        self._reset_modes()

    def add_vector(self, values, ids):
        ids = np.asarray(ids, dtype=int)
        if np.any(self._inserted[ids]):
            raise ContainerStateError(
                "add_vector on entries set since the last close(); call close() first")
        self._added[ids] = True
        np.add.at(self._pending, ids, np.asarray(values, dtype=float).ravel())
        self._dirty = True

    def set(self, i: int, value: float):
        """Insert ``value`` at ``i`` (each rank sets only its own entries).

        Inserting and adding into the same entry within one close cycle
        raises :class:`ContainerStateError`.
        """
        if self._added[i]:
            raise ContainerStateError(
                f"set({i}) after add_vector on the same entry; call close() first")
        self._inserted[i] = True
        self._pending[i] = value - self._values[i]
        self._dirty = True

    def close(self):
        self._values += np.asarray(self.comm.allreduce(self._pending))
        self._pending = np.zeros(self.size)
        self._reset_modes()

    @property
    def values(self) -> np.ndarray:
        if self._dirty:
            raise ContainerStateError("vector has pending contributions; call close() first")
        return self._values

    def l1_norm(self) -> float:
        return float(np.abs(self.values).sum())

    def __len__(self):
        return self.size


class GlobalMatrix:
    def __init__(self, n_rows: int, n_cols: int = None, comm=None):
        self.shape = (int(n_rows), int(n_rows if n_cols is None else n_cols))
        self.comm = comm if comm is not None else SerialCommunicator()
        self._rows, self._cols, self._data = [], [], []
        self._csr = sp.csr_matrix(self.shape)
        self._dirty = False

    def zero(self):
        self._rows, self._cols, self._data = [], [], []
        self._csr = sp.csr_matrix(self.shape)
        self._dirty = False

    def add_block(self, values, row_ids, col_ids):
        """Accumulate the dense block ``values[a, b]`` at ``(row_ids[a], col_ids[b])``."""
        row_ids = np.asarray(row_ids, dtype=int)
        col_ids = np.asarray(col_ids, dtype=int)
        values = np.asarray(values, dtype=float).reshape(len(row_ids), len(col_ids))
        self._rows.append(np.repeat(row_ids, len(col_ids)))
        self._cols.append(np.tile(col_ids, len(row_ids)))
        self._data.append(values.ravel())
        self._dirty = True

    def close(self):
        if self._data:
            local = (np.concatenate(self._rows), np.concatenate(self._cols),
                     np.concatenate(self._data))
        else:
            local = (np.zeros(0, int), np.zeros(0, int), np.zeros(0))
        parts = self.comm.allgather(local)
        rows = np.concatenate([p[0] for p in parts])
        cols = np.concatenate([p[1] for p in parts])
        data = np.concatenate([p[2] for p in parts])
        # duplicate triplets are summed by the COO -> CSR conversion
        new = sp.coo_matrix((data, (rows, cols)), shape=self.shape).tocsr()
        self._csr = (self._csr + new).tocsr()
        self._rows, self._cols, self._data = [], [], []
        self._dirty = False
        logger.debug("Closed %dx%d matrix with %d stored entries",
                     self.shape[0], self.shape[1], self._csr.nnz)

    def tocsr(self) -> sp.csr_matrix:
        if self._dirty:
            raise ContainerStateError("matrix has pending contributions; call close() first")
        return self._csr

    def toarray(self) -> np.ndarray:
        return self.tocsr().toarray()

    def l1_norm(self) -> float:
        """Matrix 1-norm (maximum absolute column sum)."""
        csr = self.tocsr()
        if csr.nnz == 0:
            return 0.0
        return float(abs(csr).sum(axis=0).max())
