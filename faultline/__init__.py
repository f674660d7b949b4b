"""
faultline: a framework for distributed systems verification with fault
injection.

A test drives a client of the system under test from several logical
processes at once, using operations produced by a generator, and records
every invocation and completion in a history for a consistency checker::

    from faultline import gen, run_test
    from faultline.workloads import RegisterClient, rw_register_gen

    result = run_test(
        {"client": RegisterClient(), "generator": rw_register_gen().take(1000)},
        {"threads": 5, "thread_type": "coroutine", "create_reports": True},
    )

See :mod:`faultline.gen` for generators, :mod:`faultline.client` for the
client interface and :mod:`faultline.thread` for the concurrency backends.
"""

from faultline import gen
from faultline.client import BoundClient, Client
from faultline.errors import (
    BackendUnavailableError,
    ConfigurationError,
    FaultlineError,
    OperationError,
    ProcessCancelled,
    ProcessCancelledError,
)
from faultline.history import History
from faultline.op import Operation
from faultline.runner import RunResult, TestOptions, Workload, run_test
from faultline.threadpool import ThreadPool

__version__ = "0.1.0"

__all__ = [
    "BackendUnavailableError",
    "BoundClient",
    "Client",
    "ConfigurationError",
    "FaultlineError",
    "History",
    "Operation",
    "OperationError",
    "ProcessCancelled",
    "ProcessCancelledError",
    "RunResult",
    "TestOptions",
    "ThreadPool",
    "Workload",
    "gen",
    "run_test",
]
