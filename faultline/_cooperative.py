"""
Cooperative backend (``"coroutine"``).

Processes take turns: exactly one of them holds the turn at any moment and
keeps it until it reaches a yield point or terminates.  The turn is then
handed back to the :class:`CooperativeScheduler`, which picks the next process
uniformly at random among the ready ones.  Fairness is probabilistic, not
FIFO.

Each process still has its own OS thread, because the client code it calls
is ordinary blocking Python and may yield from arbitrarily deep inside a
call (see :func:`faultline.thread.yield_`).  Handing the turn around through
a condition variable makes those threads behave as one logical thread of
control: there is never more than one of them running.

The scheduler does not run by itself.  Whoever owns it (the thread pool)
must call :meth:`CooperativeScheduler.run_to_completion` once the processes
are created.
"""

from __future__ import annotations

import random
import threading
from typing import Any

from faultline._process import Backend, LogicalProcess, ProcessState
from faultline.errors import ProcessCancelled


class CooperativeScheduler:
    """Ready set of cooperative processes and the loop that resumes them.

    Args:
        seed: Seed for the random choice of the next process.  Runs with the
            same seed and a deterministic client resume processes in the same
            order.
    """

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)
        self._condition = threading.Condition(threading.Lock())
        # process_id -> process, in registration order so that a seeded
        # choice is repeatable.
        self._ready: dict[int, LogicalProcess] = {}
        self._cancelled: set[int] = set()
        self._current: int | None = None
        self._running = False

    @property
    def ready(self) -> list[int]:
        with self._condition:
            return list(self._ready)

    def register(self, process: LogicalProcess) -> None:
        """Add a process to the ready set."""
        with self._condition:
            self._ready[process.process_id] = process

    def remove_on_terminal(self, process_id: int) -> None:
        """Drop a terminated process and hand the turn back to the scheduler."""
        with self._condition:
            self._ready.pop(process_id, None)
            if self._current == process_id:
                self._current = None
            self._condition.notify_all()

    def cancel(self, process_id: int) -> None:
        """Never resume *process_id* again.

        A process parked at a yield point is woken up with
        :class:`ProcessCancelled` so that its thread can unwind; a process that
        currently holds the turn keeps it until its next yield point.
        """
        with self._condition:
            self._ready.pop(process_id, None)
            self._cancelled.add(process_id)
            self._condition.notify_all()

    def wait_for_turn(self, process_id: int) -> None:
        """Block the calling process thread until it is granted the turn."""
        with self._condition:
            self._wait_locked(process_id)

    def yield_turn(self, process_id: int) -> None:
        """Hand the turn back to the scheduler and wait to be resumed."""
        with self._condition:
            if self._current == process_id:
                self._current = None
                self._condition.notify_all()
            self._wait_locked(process_id)

    def _wait_locked(self, process_id: int) -> None:
        while self._current != process_id:
            if process_id in self._cancelled:
                raise ProcessCancelled(f"process {process_id} cancelled")
            self._condition.wait()
        if process_id in self._cancelled:
            self._current = None
            self._condition.notify_all()
            raise ProcessCancelled(f"process {process_id} cancelled")

    def run_to_completion(self) -> None:
        """Resume random ready processes until none is left.

        Returns immediately if the loop is already running.
        """
        with self._condition:
            if self._running:
                return
            self._running = True
            try:
                while self._ready:
                    process_id = self._rng.choice(list(self._ready))
                    self._current = process_id
                    self._condition.notify_all()
                    while self._current == process_id:
                        self._condition.wait()
            finally:
                self._running = False


class CooperativeProcess(LogicalProcess):
    """A logical process that runs only while it holds the scheduler's turn."""

    def __init__(self, process_id: int, scheduler: CooperativeScheduler, logger: Any = None):
        super().__init__(process_id, logger)
        self.scheduler = scheduler

    def _before_start(self) -> None:
        self.scheduler.register(self)

    def _wait_for_start(self) -> None:
        self.scheduler.wait_for_turn(self.process_id)

    def _on_terminal(self) -> None:
        self.scheduler.remove_on_terminal(self.process_id)

    def _on_cancel(self) -> None:
        self.scheduler.cancel(self.process_id)

    def yield_(self) -> bool:
        self.scheduler.yield_turn(self.process_id)
        return True

    def join(self, timeout: float | None = None) -> bool:
        # A parked process only makes progress while the scheduler runs.
        if self.state is ProcessState.RUNNING and not self.cancelled:
            self.scheduler.run_to_completion()
        return super().join(timeout)


class CooperativeBackend(Backend):
    name = "coroutine"

    def __init__(self, logger: Any = None, seed: int | None = None):
        super().__init__(logger, seed)
        self.scheduler = CooperativeScheduler(seed)

    def new_process(self, process_id: int) -> CooperativeProcess:
        return CooperativeProcess(process_id, self.scheduler, self.logger)

    def drive(self) -> None:
        self.scheduler.run_to_completion()
