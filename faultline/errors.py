"""Exception hierarchy for faultline.

Configuration errors are raised eagerly, before any logical process starts.
Everything that happens inside a running process is absorbed at the process
boundary and only shows up in the logs and the history.
"""

from __future__ import annotations


class FaultlineError(Exception):
    """Base class for all faultline errors."""


class ConfigurationError(FaultlineError, ValueError):
    """Bad workload or test options, bad generator arguments, unknown backend."""


class BackendUnavailableError(ConfigurationError):
    """The requested concurrency backend does not exist or cannot run here."""

    def __init__(self, kind: object) -> None:
        super().__init__(f'No thread library with type "{kind}"')
        self.kind = kind


class OperationError(FaultlineError, ValueError):
    """A malformed operation or a completion that does not match its invoke."""


class ProcessCancelledError(Exception):
    """Raised at a yield point of a logical process that has been cancelled.

    Deliberately not a :class:`FaultlineError`: it is control flow that
    unwinds the process loop, and process entry points catch it by name.
    """


# Convenience alias used throughout the codebase.
ProcessCancelled = ProcessCancelledError
