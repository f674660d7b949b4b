"""Logical process base class and backend interface.

A logical process is one unit of concurrency that drives operations against
the client.  It goes through ``created -> running -> {dead, cancelled}`` and
exposes the same four operations whatever backend runs it: ``create``,
``yield_``, ``cancel`` and ``join``.

This module has no imports from the backend modules, so both of them (and the
registry in :mod:`faultline.thread`) can import it freely.
"""

from __future__ import annotations

import abc
import enum
import sys
import threading
from collections.abc import Callable
from typing import Any

from logzero import logger as default_logger

from faultline.errors import ProcessCancelled

EntryFn = Callable[["LogicalProcess", Any], None]


class ProcessState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    DEAD = "dead"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({ProcessState.DEAD, ProcessState.CANCELLED})

# ---------------------------------------------------------------------------
# Thread-local process context
# ---------------------------------------------------------------------------

_process_tls = threading.local()


def current_process() -> LogicalProcess | None:
    """Return the logical process running on this OS thread, or ``None``."""
    return getattr(_process_tls, "process", None)


def set_current_process(process: LogicalProcess | None) -> None:
    _process_tls.process = process


def threads_supported() -> bool:
    """False on hosts that cannot start OS threads (Emscripten, WASI)."""
    return sys.platform not in ("emscripten", "wasi")


# ---------------------------------------------------------------------------
# Logical process
# ---------------------------------------------------------------------------


class LogicalProcess(abc.ABC):
    """One unit of concurrency with a numeric ``process_id``.

    Each process runs its entry function on a dedicated OS thread; the
    backend decides when that thread may make progress.  Whatever the entry
    function raises is caught here, at the process boundary: the error is
    logged and kept in :attr:`error`, and it never reaches sibling processes
    or the pool.
    """

    def __init__(self, process_id: int, logger: Any = None):
        self.process_id = process_id
        self.logger = default_logger if logger is None else logger
        self.state = ProcessState.CREATED
        self.error: Exception | None = None
        self._thread: threading.Thread | None = None
        self._cancelled = threading.Event()

    def __repr__(self):
        return f"<{type(self).__name__} {self.process_id} {self.state.value}>"

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def create(self, entry_fn: EntryFn, opts: Any) -> bool:
        """Bind the process to ``entry_fn(process, opts)`` and start it.

        Returns False if the process was already created or cancelled.
        """
        if self.state is not ProcessState.CREATED:
            return False
        self._thread = threading.Thread(
            target=self._run,
            args=(entry_fn, opts),
            name=f"faultline-{self.process_id}",
            daemon=True,
        )
        self.state = ProcessState.RUNNING
        self._before_start()
        self._thread.start()
        return True

    @abc.abstractmethod
    def yield_(self) -> bool:
        """Give other processes a chance to run.

        Raises:
            ProcessCancelled: the process has been cancelled.
        """

    def cancel(self) -> bool:
        """Stop the process at its next yield point.  Idempotent."""
        self._cancelled.set()
        if self.state is ProcessState.CREATED:
            self.state = ProcessState.CANCELLED
        self._on_cancel()
        return True

    def join(self, timeout: float | None = None) -> bool:
        """Wait until the process is terminal.  Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # -- hooks for backends ------------------------------------------------

    def _before_start(self) -> None:
        """Called right before the OS thread starts."""

    def _wait_for_start(self) -> None:
        """Called on the process thread before the entry function runs."""

    def _on_terminal(self) -> None:
        """Called on the process thread once the entry function is done."""

    def _on_cancel(self) -> None:
        """Called by :meth:`cancel` after the cancelled flag is set."""

    # -- process boundary --------------------------------------------------

    def _run(self, entry_fn: EntryFn, opts: Any) -> None:
        set_current_process(self)
        try:
            self._wait_for_start()
            entry_fn(self, opts)
        except ProcessCancelled:
            self.state = ProcessState.CANCELLED
            self.logger.debug("Thread %d cancelled", self.process_id)
        except Exception as e:
            self.error = e
            self.state = ProcessState.DEAD
            self.logger.exception("Thread %d failed: %s", self.process_id, e)
        else:
            self.state = ProcessState.DEAD
        finally:
            set_current_process(None)
            self._on_terminal()


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class Backend(abc.ABC):
    """Factory for the logical processes of one pool.

    A backend instance belongs to exactly one pool; backends that need
    shared scheduling state keep it on the instance, never in a global.
    """

    name: str = ""

    def __init__(self, logger: Any = None, seed: int | None = None):
        self.logger = default_logger if logger is None else logger
        self.seed = seed

    @classmethod
    def is_available(cls) -> bool:
        return threads_supported()

    @abc.abstractmethod
    def new_process(self, process_id: int) -> LogicalProcess:
        """Make a process in the ``created`` state."""

    def drive(self) -> None:
        """Run processes that cannot run by themselves.  Blocks until done."""
