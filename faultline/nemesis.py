"""
Fault injection.

The nemesis is a special process, with process id ``"nemesis"``, that
introduces faults into the system under test.  Its operations are always
``info``: whether a fault took effect is never certain.  Only the no-op
nemesis is provided.
"""

from __future__ import annotations

from typing import Any

from faultline import clock
from faultline.client import Client
from faultline.op import INFO, Operation

NEMESIS_PROCESS = "nemesis"


def noop() -> dict[str, Any]:
    """The operation of a nemesis that does nothing.

    >>> noop()
    {'type': 'info', 'f': 'start', 'process': 'nemesis', 'value': None}
    """
    return {"type": INFO, "f": "start", "process": NEMESIS_PROCESS, "value": None}


class Nemesis(Client):
    """A client that injects no fault and reports so.

    Every completion is an ``info`` of the invoked operation, timestamped
    with :func:`faultline.clock.monotonic64`.  Run under :func:`run_test`,
    both records of each operation carry the ``"nemesis"`` process id; since
    that id is not renumbered after an ``info``, run it on a single thread.
    """

    process = NEMESIS_PROCESS

    def invoke(self, op: Operation, handle: Any) -> Operation:
        return op.replace(type=INFO, process=NEMESIS_PROCESS, time=clock.monotonic64())
