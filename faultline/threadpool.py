"""
A fixed-size pool of logical processes.

The pool creates ``n`` processes of one backend, numbered ``1..n``, binds them
all to the same entry function and options, and waits for them::

    pool = ThreadPool("coroutine", 5)
    pool.start(client.run, worker_opts)   # returns once every process is done

The backend is chosen by name through :func:`faultline.thread.get_backend`, so
the pool never needs to know which one it is running.
"""

from __future__ import annotations

from typing import Any

from logzero import logger as default_logger

from faultline._process import EntryFn, LogicalProcess
from faultline.errors import ConfigurationError, FaultlineError
from faultline.thread import get_backend


class ThreadPool:
    """Processes of one kind, started together and joined together.

    Args:
        thread_type: Backend name, ``"coroutine"`` or ``"fiber"``.
        thread_num: Number of processes, a positive int.
        logger: Logger handed to the backend and the processes.
        seed: Seed for backends that make random scheduling choices.

    Raises:
        BackendUnavailableError: *thread_type* is unknown or cannot run here.
        ConfigurationError: *thread_num* is not a positive int.
    """

    def __init__(self, thread_type: str, thread_num: int, *, logger: Any = None, seed: int | None = None):
        backend_cls = get_backend(thread_type)
        if isinstance(thread_num, bool) or not isinstance(thread_num, int) or thread_num <= 0:
            raise ConfigurationError(f"Number of threads must be a positive integer, got {thread_num!r}")
        self.thread_type = thread_type
        self.thread_num = thread_num
        self.logger = default_logger if logger is None else logger
        self.backend = backend_cls(logger=self.logger, seed=seed)
        self.processes: list[LogicalProcess] = [
            self.backend.new_process(process_id) for process_id in range(1, thread_num + 1)
        ]

    def __repr__(self):
        return f"<ThreadPool {self.thread_type} x{self.thread_num}>"

    def start(self, entry_fn: EntryFn, opts: Any) -> bool:
        """Create every process with ``entry_fn(process, opts)`` and join them.

        Raises:
            FaultlineError: a process could not be created, for instance
                because the pool was already started.  Processes created up
                to that point are cancelled.
        """
        for process in self.processes:
            self.logger.debug("Spawn a new thread %d", process.process_id)
            if not process.create(entry_fn, opts):
                self.cancel()
                self.join()
                raise FaultlineError(f"Failed to start thread {process.process_id}")
        return self.join()

    def join(self) -> bool:
        """Block until every process is terminal."""
        self.backend.drive()
        for process in self.processes:
            process.join()
        return True

    def cancel(self) -> bool:
        """Cancel every process.  Idempotent, and safe on finished processes."""
        for process in self.processes:
            process.cancel()
        return True

    @property
    def errors(self) -> dict[int, Exception]:
        """Exceptions that ended a process, by process id."""
        return {p.process_id: p.error for p in self.processes if p.error is not None}
