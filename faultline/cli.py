"""
Command line entry point.

Runs one of the bundled workloads against an in-memory client, which is a
quick way to see what a history looks like and to measure the engine's own
overhead::

    faultline rw-register --threads 5 --ops 1000 --reports --report-dir /tmp/run
"""

from __future__ import annotations

import argparse
import random
import sys
from collections.abc import Callable, Sequence
from typing import Any

from logzero import logger

from faultline import __version__, workloads
from faultline.errors import ConfigurationError
from faultline.runner import TestOptions, Workload, run_test
from faultline.thread import BACKENDS, DEFAULT_THREAD_TYPE

EXIT_OK = 0
EXIT_CHECK_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _rw_register(rng: random.Random) -> Workload:
    return Workload(client=workloads.RegisterClient(), generator=workloads.rw_register_gen(rng))


def _cas_register(rng: random.Random) -> Workload:
    return Workload(client=workloads.RegisterClient(), generator=workloads.cas_register_gen(rng))


def _list_append(rng: random.Random) -> Workload:
    return Workload(client=workloads.RegisterClient(), generator=workloads.list_append_gen(rng=rng))


def _bank(rng: random.Random) -> Workload:
    return Workload(
        client=workloads.BankClient(),
        generator=workloads.bank_gen(rng=rng),
        checker=workloads.bank_checker(),
    )


WORKLOADS: dict[str, Callable[[random.Random], Workload]] = {
    "rw-register": _rw_register,
    "cas-register": _cas_register,
    "list-append": _list_append,
    "bank": _bank,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="faultline", description="Run a bundled workload against an in-memory store")
    parser.add_argument("workload", choices=sorted(WORKLOADS), help="Workload to run")
    parser.add_argument("--threads", type=int, default=1, help="Number of logical processes")
    parser.add_argument(
        "--thread-type",
        choices=sorted(BACKENDS),
        default=DEFAULT_THREAD_TYPE,
        help="Concurrency backend",
    )
    parser.add_argument("--ops", type=int, default=1000, help="Total number of operations")
    parser.add_argument("--time-limit", type=float, default=None, help="Stop starting operations after N seconds")
    parser.add_argument("--reports", action="store_true", help="Write history.txt and history.json")
    parser.add_argument("--report-dir", default=None, help="Directory for reports, the current one by default")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the scheduler and the workload")
    parser.add_argument("--verbose", action="store_true", help="Log every operation")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    options: dict[str, Any] = {
        "threads": args.threads,
        "thread_type": args.thread_type,
        "time_limit": args.time_limit,
        "create_reports": args.reports,
        "report_dir": args.report_dir,
        "seed": args.seed,
        "verbose": args.verbose,
    }
    try:
        workload = WORKLOADS[args.workload](random.Random(args.seed))
        workload.generator = workload.generator.take(args.ops)
        result = run_test(workload, options)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    if not result.ok:
        logger.error("Check failed: %s", result.check)
        return EXIT_CHECK_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
