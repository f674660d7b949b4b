"""
The history of a test run.

All logical processes append to one :class:`History`.  Its order is the order
in which the engine observed operations, not global real time: appends from
concurrent processes are serialized through a single lock, and whoever takes
the lock first comes first.

The history is the only artifact handed to an external consistency checker,
as ``history.json``; ``history.txt`` is the same data for humans.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator, Mapping
from typing import Any

from faultline.op import Operation, is_completed, is_planned, to_string


class History:
    """Append-only, ordered log of operations."""

    def __init__(self) -> None:
        self._ops: list[Operation] = []
        self._lock = threading.Lock()

    def add(self, op: Operation | Mapping[str, Any]) -> bool:
        """Append an operation.  Safe to call from any logical process."""
        operation = Operation.coerce(op)
        with self._lock:
            self._ops.append(operation)
        return True

    @property
    def operations(self) -> tuple[Operation, ...]:
        """Snapshot of the recorded operations in append order."""
        with self._lock:
            return tuple(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def ops_completed(self) -> int:
        """Number of ``ok`` and ``fail`` records."""
        return sum(1 for op in self.operations if is_completed(op))

    def ops_planned(self) -> int:
        """Number of raw ``invoke`` records, matched by a completion or not."""
        return sum(1 for op in self.operations if is_planned(op))

    def to_txt(self) -> str:
        """Render one fixed-width line per operation, each preceded by a newline.

        >>> h = History()
        >>> h.add({"type": "invoke", "f": "read", "process": 1})
        True
        >>> h.to_txt()
        '\\n  1    invoke     read       null      '
        """
        lines = []
        for op in self.operations:
            process = "" if op.process is None else op.process
            lines.append(f"\n{process:>3}    {to_string(op)}")
        return "".join(lines)

    def to_json(self) -> str:
        """Render the history as a compact JSON array of operation objects."""
        return json.dumps([op.as_dict() for op in self.operations], separators=(",", ":"), default=str)
