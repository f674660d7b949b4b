"""
Clients and the per-process operation loop.

A client applies operations to the system under test.  Each logical process
gets the same client object and drives it through five steps::

    handle = client.open(nodes)
    client.setup(handle)
    while the generator has operations:
        completion = client.invoke(op, handle)
    client.teardown(handle)
    client.close(handle)

Only ``invoke`` is mandatory.  ``open`` receives the node addresses from the
test options and returns whatever the client needs per process (a
connection, a cursor).  Clients that need neither may leave the nodes and
handle parameters out of their hook signatures altogether::

    class CounterClient(Client):
        def __init__(self):
            self.value = 0

        def invoke(self, op):
            if op.f == "read":
                return op.replace(type="ok", value=self.value)
            self.value += op.value
            return op.replace(type="ok")

``invoke`` receives a deep copy of the operation recorded as ``invoke`` in
the history, so it may mutate it and return it as the completion.
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from logzero import logger as default_logger

from faultline._process import LogicalProcess
from faultline.errors import ConfigurationError, OperationError
from faultline.gen import Cursor
from faultline.history import History
from faultline.op import COMPLETION_TYPES, INFO, INVOKE, Operation, to_string

HOOKS = ("open", "setup", "invoke", "teardown", "close")


class Client:
    """Base class for clients.  Every hook but :meth:`invoke` is a no-op.

    Attributes:
        process: Id recorded for this client's operations instead of the
            worker's numeric id, e.g. ``"nemesis"``.  ``None`` by default.
    """

    process: int | str | None = None

    def open(self, nodes: list[str]) -> Any:
        """Connect to one of *nodes* and return a per-process handle."""
        return None

    def setup(self, handle: Any) -> bool:
        """Prepare the system under test (create tables, seed data...)."""
        return True

    def invoke(self, op: Operation, handle: Any) -> Operation | dict[str, Any]:
        """Apply *op* and return its completion (``ok``, ``fail`` or ``info``)."""
        raise NotImplementedError

    def teardown(self, handle: Any) -> bool:
        return True

    def close(self, handle: Any) -> bool:
        return True


_DEFAULT_CLIENT = Client()


def _takes_handle(fn: Callable[..., Any], arity: int) -> bool:
    """True if *fn* accepts one more positional argument than *arity*."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    positional = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional > arity


class BoundClient:
    """Adapt any object exposing ``invoke`` to the full client interface.

    Missing hooks are replaced by the :class:`Client` defaults, and whether a
    hook wants its trailing argument (the nodes for ``open``, the handle for
    the rest) is decided once here from its signature, so the operation loop
    can call every hook the same way.

    Raises:
        ConfigurationError: the object has no callable ``invoke``.
    """

    def __init__(self, client: Any):
        if not callable(getattr(client, "invoke", None)):
            raise ConfigurationError(f"Client must have an invoke method, got {type(client).__name__}")
        self.client = client
        self.process = getattr(client, "process", None)
        self._hooks: dict[str, tuple[Callable[..., Any], bool]] = {}
        for name in HOOKS:
            hook = getattr(client, name, None)
            if not callable(hook):
                hook = getattr(_DEFAULT_CLIENT, name)
            arity = 1 if name == "invoke" else 0
            self._hooks[name] = (hook, _takes_handle(hook, arity))

    def _call(self, name: str, *args: Any, handle: Any = None) -> Any:
        hook, takes_handle = self._hooks[name]
        if takes_handle:
            return hook(*args, handle)
        return hook(*args)

    def open(self, nodes: list[str] | None = None) -> Any:
        return self._call("open", handle=list(nodes or ()))

    def setup(self, handle: Any) -> Any:
        return self._call("setup", handle=handle)

    def invoke(self, op: Operation, handle: Any) -> Any:
        return self._call("invoke", op, handle=handle)

    def teardown(self, handle: Any) -> Any:
        return self._call("teardown", handle=handle)

    def close(self, handle: Any) -> Any:
        return self._call("close", handle=handle)


@dataclass
class WorkerOptions:
    """Everything a process needs to run the operation loop.

    One instance is shared by all processes of a pool.
    """

    client: BoundClient
    cursor: Cursor
    history: History
    nodes: list[str] = field(default_factory=list)
    logger: Any = None
    threads: int = 1


# ---------------------------------------------------------------------------
# Operation loop
# ---------------------------------------------------------------------------


def _call_hook(client: BoundClient, name: str, process_id: int, logger: Any, *args: Any) -> Any:
    """Run a lifecycle hook; failures are logged and never stop the process."""
    try:
        result = getattr(client, name)(*args)
    except Exception as e:
        logger.error("%s on thread %d failed: %s", name.capitalize(), process_id, e)
        return None
    if result is False:
        logger.error("%s on thread %d failed", name.capitalize(), process_id)
    return result


def _materialize(value: Any) -> Operation:
    if callable(value):
        value = value()
    return Operation.coerce(value)


def _completion(result: Any, invoked: Operation, process_id: int | str) -> Operation:
    completion = Operation.coerce(result)
    if completion.type not in COMPLETION_TYPES:
        raise OperationError(f"Completion of {invoked.f!r} has type {completion.type!r}")
    if completion.f != invoked.f:
        raise OperationError(f"Completion f {completion.f!r} does not match invoked {invoked.f!r}")
    return completion.replace(process=process_id)


def run(process: LogicalProcess, opts: WorkerOptions) -> None:
    """Per-process entry point: open, setup, operation loop, teardown, close.

    The loop pulls from the cursor shared by every process, so the generator
    decides how many operations the test performs in total.  An exception
    raised by ``invoke`` ends this process only; its ``invoke`` record stays
    in the history without a completion.
    """
    logger = default_logger if opts.logger is None else opts.logger
    client = opts.client
    process_id = process.process_id
    worker_id = process_id

    if client.process is not None:
        worker_id = client.process

    handle = _call_hook(client, "open", process_id, logger, opts.nodes)
    try:
        _call_hook(client, "setup", process_id, logger, handle)
        for value in opts.cursor:
            op = _materialize(value).replace(type=INVOKE, process=worker_id)
            logger.debug("%s", to_string(op))
            opts.history.add(op)
            process.yield_()

            result = client.invoke(copy.deepcopy(op), handle)
            process.yield_()

            completion = _completion(result, op, worker_id)
            logger.debug("%s", to_string(completion))
            opts.history.add(completion)
            if completion.type == INFO and isinstance(worker_id, int):
                # The outcome is unknown, so the old id stays open forever.
                worker_id += opts.threads
            process.yield_()
    finally:
        _call_hook(client, "teardown", process_id, logger, handle)
        _call_hook(client, "close", process_id, logger, handle)
