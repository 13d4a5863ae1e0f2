"""Role-addressed, tagged message transports.

``LocalHub`` connects roles running as threads of one process; ``MPITransport``
(in :mod:`mpiblast.transport.mpi`, needs mpi4py) connects MPI ranks.
"""

from mpiblast.transport.base import ANY_SOURCE, Message, Transport, guarded_send
from mpiblast.transport.local import LocalHub, LocalTransport

__all__ = ["ANY_SOURCE", "Message", "Transport", "guarded_send", "LocalHub", "LocalTransport"]
