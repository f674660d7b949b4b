"""
Running a test.

A test runs on a control node.  :func:`run_test` spins up a pool of logical
processes, each driving the workload's client with operations pulled from the
workload's generator, and records the start and end of every operation in a
:class:`~faultline.history.History`::

    workload = Workload(client=RegisterClient(), generator=rw_register_gen().take(1000))
    result = run_test(workload, {"threads": 5, "create_reports": True})
    assert result.ok

The history is what gets checked afterwards, either by the workload's
``checker`` or by an external tool reading ``history.json``.

Debug logging (``verbose=True`` or ``FAULTLINE_DEBUG=1``) writes two lines per
operation and can slow a test down several times; leave it off for long runs.
"""

from __future__ import annotations

import dataclasses
import itertools
import os
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from faultline import clock
from faultline import client as client_lib
from faultline import gen
from faultline.errors import ConfigurationError
from faultline.history import History
from faultline.log import LogContext
from faultline.thread import BACKENDS, DEFAULT_THREAD_TYPE
from faultline.threadpool import ThreadPool

HISTORY_TXT = "history.txt"
HISTORY_JSON = "history.json"

# Each run logs under its own name, so overlapping runs keep their own level
# and handlers.
_run_ids = itertools.count(1)


def _coerce_dataclass(cls: type, value: Any) -> Any:
    if value is None:
        return cls()
    if isinstance(value, cls):
        return value
    if isinstance(value, Mapping):
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(value) - known
        if unknown:
            raise ConfigurationError(f"Unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}")
        return cls(**value)
    raise ConfigurationError(f"Expected {cls.__name__} or a mapping, got {type(value).__name__}")


@dataclass
class TestOptions:
    """Options of a test run.

    Attributes:
        create_reports: Write ``history.txt`` and ``history.json``.
        threads: Number of logical processes.
        thread_type: ``"coroutine"`` or ``"fiber"``, see :mod:`faultline.thread`.
        time_limit: Seconds after which no new operation is started; by
            default the run lasts as long as the generator.
        nodes: Addresses of the nodes under test, shown in the summary and
            passed to each process's ``open`` hook.
        verbose: Log every operation.
        seed: Seed of the cooperative scheduler.  A random one is chosen and
            logged when unset, so a run can be replayed.
        report_dir: Where reports go, the current directory by default.
        log_file: Also append the run's log to this file.
    """

    __test__ = False  # not a pytest test class

    create_reports: bool = False
    threads: int = 1
    thread_type: str = DEFAULT_THREAD_TYPE
    time_limit: float | None = None
    nodes: list[str] = field(default_factory=list)
    verbose: bool = False
    seed: int | None = None
    report_dir: str | os.PathLike[str] | None = None
    log_file: str | os.PathLike[str] | None = None

    def __post_init__(self):
        if not isinstance(self.create_reports, bool):
            raise ConfigurationError(f"create_reports must be a bool, got {self.create_reports!r}")
        if not isinstance(self.verbose, bool):
            raise ConfigurationError(f"verbose must be a bool, got {self.verbose!r}")
        if isinstance(self.threads, bool) or not isinstance(self.threads, int) or self.threads <= 0:
            raise ConfigurationError(f"threads must be a positive integer, got {self.threads!r}")
        if self.thread_type not in BACKENDS:
            raise ConfigurationError(
                f"thread_type must be one of {', '.join(sorted(BACKENDS))}, got {self.thread_type!r}"
            )
        if self.time_limit is not None and (
            isinstance(self.time_limit, bool) or not isinstance(self.time_limit, (int, float)) or self.time_limit <= 0
        ):
            raise ConfigurationError(f"time_limit must be a positive number, got {self.time_limit!r}")
        if isinstance(self.nodes, (str, bytes)) or not isinstance(self.nodes, (list, tuple)):
            raise ConfigurationError(f"nodes must be a list of addresses, got {self.nodes!r}")
        self.nodes = list(self.nodes)
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")

    @classmethod
    def coerce(cls, value: TestOptions | Mapping[str, Any] | None) -> TestOptions:
        return _coerce_dataclass(cls, value)


@dataclass
class Workload:
    """What a test does.

    Attributes:
        client: Object with an ``invoke`` method, see :mod:`faultline.client`.
        generator: Generator of operations; anything with an ``unwrap``
            method returning a ``(step, param, state)`` triple.
        checker: Optional ``checker(history)`` called after the run.
    """

    client: Any
    generator: Any
    checker: Callable[[History], Any] | None = None

    def __post_init__(self):
        if not callable(getattr(self.client, "invoke", None)):
            raise ConfigurationError("Client must have an invoke method")
        if not callable(getattr(self.generator, "unwrap", None)):
            raise ConfigurationError("Generator must have an unwrap method")
        gen.decompose(self.generator)
        if self.checker is not None and not callable(self.checker):
            raise ConfigurationError(f"checker must be callable, got {self.checker!r}")

    @classmethod
    def coerce(cls, value: Workload | Mapping[str, Any]) -> Workload:
        if value is None:
            raise ConfigurationError("A workload is required")
        return _coerce_dataclass(cls, value)


@dataclass
class RunResult:
    """Outcome of :func:`run_test`.

    ``ok`` is False only when the checker says so: client failures are part
    of the history, not of the result.
    """

    ok: bool
    history: History
    cpu_time: float
    wall_time: float
    report_paths: list[Path] = field(default_factory=list)
    interrupted: bool = False
    check: Any = None


def print_summary(total_time: float, history: History, opts: TestOptions, logger: Any) -> None:
    logger.info("Running test %.3fs with %d thread(s)", total_time, opts.threads)
    for addr in opts.nodes:
        logger.info("- %s", addr)

    ops_planned = history.ops_planned()
    ops_completed = history.ops_completed()
    logger.info("Total planned requests: %-35s", ops_planned)
    if ops_completed:
        logger.info("Total completed requests: %-35s", ops_completed)
        if total_time > 0:
            logger.info("Requests per sec: %-35s", int(ops_completed / total_time))


def write_reports(history: History, report_dir: str | os.PathLike[str] | None, logger: Any) -> list[Path]:
    """Write ``history.txt`` and ``history.json`` and return their paths."""
    directory = Path.cwd() if report_dir is None else Path(report_dir)
    directory.mkdir(parents=True, exist_ok=True)
    txt_path = directory / HISTORY_TXT
    json_path = directory / HISTORY_JSON
    txt_path.write_text(history.to_txt(), encoding="utf-8")
    json_path.write_text(history.to_json(), encoding="utf-8")
    logger.info("File with operations history (plain text):    %s", txt_path)
    logger.info("File with operations history (JSON):          %s", json_path)
    return [txt_path, json_path]


def run_test(workload: Workload | Mapping[str, Any], opts: TestOptions | Mapping[str, Any] | None = None) -> RunResult:
    """Run a workload and return its history.

    Args:
        workload: A :class:`Workload` or a mapping with the same keys.
        opts: A :class:`TestOptions`, a mapping with the same keys, or None
            for the defaults.

    Returns:
        The :class:`RunResult`.

    Raises:
        ConfigurationError: the workload or the options are invalid.  Nothing
            has been started in that case.
        KeyboardInterrupt: the run was interrupted.  Processes are cancelled
            and reports are written before it propagates; the partial result
            is attached as ``partial_result``.
    """
    workload = Workload.coerce(workload)
    opts = TestOptions.coerce(opts)
    seed = random.randrange(2**32) if opts.seed is None else opts.seed

    log_context = LogContext(f"faultline.run{next(_run_ids)}", verbose=opts.verbose, logfile=opts.log_file)
    logger = log_context.logger
    try:
        logger.info("Start test with %d %s thread(s), seed %d", opts.threads, opts.thread_type, seed)
        generator = workload.generator
        if opts.time_limit is not None:
            generator = gen.time_limit(generator, opts.time_limit)

        history = History()
        pool = ThreadPool(opts.thread_type, opts.threads, logger=logger, seed=seed)
        worker_opts = client_lib.WorkerOptions(
            client=client_lib.BoundClient(workload.client),
            cursor=gen.Cursor(*gen.decompose(generator)),
            history=history,
            nodes=opts.nodes,
            logger=logger,
            threads=opts.threads,
        )

        interrupt: KeyboardInterrupt | None = None
        cpu_begin = clock.proc()
        wall_begin = clock.monotonic()
        try:
            pool.start(client_lib.run, worker_opts)
        except KeyboardInterrupt as e:
            interrupt = e
            logger.warning("Interrupted, cancelling %d thread(s)", opts.threads)
            pool.cancel()
            pool.join()
        cpu_time = clock.proc() - cpu_begin
        wall_time = clock.monotonic() - wall_begin

        print_summary(cpu_time, history, opts, logger)

        report_paths = []
        if opts.create_reports:
            report_paths = write_reports(history, opts.report_dir, logger)

        result = RunResult(
            ok=True,
            history=history,
            cpu_time=cpu_time,
            wall_time=wall_time,
            report_paths=report_paths,
            interrupted=interrupt is not None,
        )
        if interrupt is not None:
            interrupt.partial_result = result
            raise interrupt

        if workload.checker is not None:
            result.check = workload.checker(history)
            result.ok = result.check is not False
            logger.info("Checker result: %s", result.check)
        return result
    finally:
        log_context.close()
