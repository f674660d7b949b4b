"""
Preemptive backend (``"fiber"``).

Every logical process is a plain OS thread and the interpreter decides when
to switch between them, typically while a client blocks on I/O.  Ordering
between processes is not guaranteed and test logic must not assume any.

Python offers no safe way to kill a thread, so :meth:`ThreadProcess.cancel`
takes effect at the process's next yield point: the client loop yields right
after every ``client.invoke`` returns, so a cancelled process abandons its
in-flight operation there and the history keeps an ``invoke`` without a
completion.
"""

from __future__ import annotations

import time

from faultline._process import Backend, LogicalProcess
from faultline.errors import ProcessCancelled


class ThreadProcess(LogicalProcess):
    """A logical process scheduled by the host."""

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise ProcessCancelled(f"process {self.process_id} cancelled")

    def yield_(self) -> bool:
        self._check_cancelled()
        # sleep(0) releases the GIL and lets another thread run.
        time.sleep(0)
        self._check_cancelled()
        return True


class ThreadBackend(Backend):
    name = "fiber"

    def new_process(self, process_id: int) -> ThreadProcess:
        return ThreadProcess(process_id, self.logger)
