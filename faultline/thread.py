"""
Logical processes.

Two interchangeable backends run the processes of a test:

- ``"coroutine"`` (:mod:`faultline._cooperative`): one process runs at a
  time and control changes hands only at yield points; the next process is
  picked uniformly at random.
- ``"fiber"`` (:mod:`faultline._preemptive`): preemptive OS threads managed by
  the interpreter.

Both implement :class:`~faultline._process.LogicalProcess`; the thread pool
picks one by name through :func:`get_backend`.
"""

from __future__ import annotations

from faultline._cooperative import CooperativeBackend, CooperativeProcess, CooperativeScheduler
from faultline._preemptive import ThreadBackend, ThreadProcess
from faultline._process import (
    TERMINAL_STATES,
    Backend,
    LogicalProcess,
    ProcessState,
    current_process,
)
from faultline.errors import BackendUnavailableError

BACKENDS: dict[str, type[Backend]] = {
    CooperativeBackend.name: CooperativeBackend,
    ThreadBackend.name: ThreadBackend,
}

DEFAULT_THREAD_TYPE = CooperativeBackend.name


def available_backends() -> list[str]:
    return [name for name, backend in BACKENDS.items() if backend.is_available()]


def get_backend(kind: str) -> type[Backend]:
    """Return the backend class registered under *kind*.

    Raises:
        BackendUnavailableError: no such backend, or it cannot run on this host.
    """
    backend = BACKENDS.get(kind) if isinstance(kind, str) else None
    if backend is None or not backend.is_available():
        raise BackendUnavailableError(kind)
    return backend


def yield_() -> bool:
    """Yield from inside the current logical process.

    Clients may call this around blocking calls to let other processes
    interleave.  Outside a logical process it does nothing.

    Raises:
        ProcessCancelled: the current process has been cancelled.
    """
    process = current_process()
    if process is None:
        return True
    return process.yield_()


__all__ = [
    "BACKENDS",
    "DEFAULT_THREAD_TYPE",
    "TERMINAL_STATES",
    "Backend",
    "CooperativeBackend",
    "CooperativeProcess",
    "CooperativeScheduler",
    "LogicalProcess",
    "ProcessState",
    "ThreadBackend",
    "ThreadProcess",
    "available_backends",
    "current_process",
    "get_backend",
    "yield_",
]
