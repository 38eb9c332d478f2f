"""pyadfem.core.parallel
Communicators used by the global containers and the norm reduction.
"""
import logging
import os

try:
    from mpi4py import MPI
    _HAS_MPI = True
except ImportError:
    MPI = None
    _HAS_MPI = False

logger = logging.getLogger(__name__)


class SerialCommunicator:
    """Single-process communicator: every collective is the identity."""
    rank = 0
    size = 1

    def allreduce(self, value):
        return value

    def allgather(self, value):
        return [value]

    def barrier(self):
        pass


class MPICommunicator:
    """Thin wrapper over an ``mpi4py`` communicator (default ``COMM_WORLD``)."""

    def __init__(self, comm=None):
        if not _HAS_MPI:
            raise RuntimeError("mpi4py is not installed; install the 'mpi' extra.")
        self.comm = comm if comm is not None else MPI.COMM_WORLD

    @property
    def rank(self):
        return self.comm.Get_rank()

    @property
    def size(self):
        return self.comm.Get_size()

    def allreduce(self, value):
        return self.comm.allreduce(value, op=MPI.SUM)

    def allgather(self, value):
        return self.comm.allgather(value)

    def barrier(self):
        self.comm.Barrier()


def get_communicator(use_mpi=None):
    """Serial unless ``use_mpi`` (or ``PYADFEM_USE_MPI=1``) asks for MPI."""
    if use_mpi is None:
        use_mpi = os.environ.get("PYADFEM_USE_MPI", "0").lower() in ("1", "true", "yes")
    if use_mpi:
        comm = MPICommunicator()
        logger.info("Using MPI communicator: rank %d of %d", comm.rank, comm.size)
        return comm
    return SerialCommunicator()
