"""
Per-run logging context.

A :class:`LogContext` is created when a test starts and closed when it ends.
Its logger is passed explicitly to the thread pool, the logical processes and
the client loop.  :func:`~faultline.runner.run_test` gives every run its own
logger name, so two runs in one interpreter never share a level or a log
file.  ``FAULTLINE_DEBUG=1`` in the environment forces debug output, which
includes one line per operation and slows tests down noticeably.
"""

from __future__ import annotations

import logging
import os

import logzero

FAULTLINE_DEBUG_ENV = "FAULTLINE_DEBUG"


def debug_requested() -> bool:
    """Return True if debug logging was requested through the environment."""
    return os.environ.get(FAULTLINE_DEBUG_ENV) == "1"


class LogContext:
    """Owns the logger of one test run.

    Args:
        name: Logger name.  Runs that overlap in time should use distinct
            names.
        verbose: Log at DEBUG instead of INFO.
        logfile: Optional path; records are also appended there.
    """

    def __init__(
        self,
        name: str = "faultline",
        *,
        verbose: bool = False,
        logfile: str | os.PathLike[str] | None = None,
    ):
        self.level = logging.DEBUG if verbose or debug_requested() else logging.INFO
        self.logfile = None if logfile is None else os.fspath(logfile)
        self.logger = logzero.setup_logger(
            name=name,
            logfile=self.logfile,
            level=self.level,
        )
        self._closed = False

    def close(self) -> None:
        """Detach and close every handler of the run's logger."""
        if self._closed:
            return
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self._closed = True

    def __enter__(self) -> LogContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
