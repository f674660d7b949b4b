"""
Operations and their lifecycle.

An operation is a transition of the system under test: a read or a write of a
register, a transfer between bank accounts, a transaction made of
micro-operations.  A history is a list of operations, each of the form::

    {
        "type":    one of "invoke", "ok", "fail", "info"
        "f":       the operation name, e.g. "read", "write", "cas", "txn"
        "value":   a test-defined payload
        "process": id of the logical process that performed it
    }

Each process alternates an ``invoke`` with exactly one of ``ok``, ``fail`` or
``info``.  ``ok`` means the operation definitely took place, ``fail`` means it
definitely did not, and ``info`` means the outcome is unknown.  After an
``info`` the invocation stays open for the rest of the history, so the process
never performs another operation under the same id.

Example of rendered operations (see :func:`to_string`)::

    invoke     read       null
    ok         read       [5]
    invoke     transfer   {"from":3,"to":9,"amount":5}
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from faultline.errors import OperationError

INVOKE = "invoke"
OK = "ok"
FAIL = "fail"
INFO = "info"

TYPES = frozenset({INVOKE, OK, FAIL, INFO})
COMPLETION_TYPES = frozenset({OK, FAIL, INFO})

# Serialization order; ``value`` is always present, the rest only when set.
_FIELDS = ("type", "f", "value", "process", "index", "time", "error")
_OPTIONAL_FIELDS = ("f", "process", "index", "time", "error")


@dataclass
class Operation:
    """One record of a history.

    Attributes:
        type: Lifecycle state, one of ``invoke``, ``ok``, ``fail``, ``info``.
        f: Operation name.
        value: Opaque payload: a scalar, a tuple, a list of micro-operations.
        process: Logical process id (an int, or ``"nemesis"``).
        index: Optional global sequence position.
        time: Optional timestamp.
        error: Optional description of why the operation failed.
        extra: Any other keys a client attached, such as the node an
            operation ran against.  Kept and serialized after ``process``.
    """

    type: str
    f: str | None = None
    value: Any = None
    process: int | str | None = None
    index: int | None = None
    time: int | None = None
    error: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in TYPES:
            raise OperationError(f"Unknown operation type {self.type!r}, expected one of {sorted(TYPES)}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Operation:
        known = {name: value for name, value in mapping.items() if name in _FIELDS}
        extra = {name: value for name, value in mapping.items() if name not in _FIELDS}
        # Generators usually describe only what to do; the lifecycle state is
        # assigned when the operation is invoked.
        known.setdefault("type", INVOKE)
        return cls(**known, extra=extra)

    @classmethod
    def coerce(cls, op: Operation | Mapping[str, Any]) -> Operation:
        """Return *op* as an :class:`Operation`, converting mappings."""
        if isinstance(op, Operation):
            return op
        if isinstance(op, Mapping):
            return cls.from_mapping(op)
        raise OperationError(f"Expected an operation or a mapping, got {type(op).__name__}")

    def replace(self, **changes: Any) -> Operation:
        changes.setdefault("extra", dict(self.extra))
        return dataclasses.replace(self, **changes)

    def as_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form with absent fields omitted.

        Extra keys follow ``process``; they never override a named field.
        """
        result: dict[str, Any] = {}
        for name in _FIELDS:
            field_value = getattr(self, name)
            if field_value is not None or name not in _OPTIONAL_FIELDS:
                result[name] = field_value
            if name == "process":
                for key, extra_value in self.extra.items():
                    if key not in _FIELDS:
                        result[key] = extra_value
        return result


def _field(op: Operation | Mapping[str, Any], name: str) -> Any:
    if isinstance(op, Mapping):
        return op.get(name)
    return getattr(op, name)


def encode_value(value: Any) -> str:
    """Compact JSON rendering of a payload, ``null`` for no payload."""
    return json.dumps(value, separators=(",", ":"), default=str)


def is_planned(op: Operation | Mapping[str, Any]) -> bool:
    """True if the operation has been invoked but carries no outcome."""
    return _field(op, "type") == INVOKE


def is_completed(op: Operation | Mapping[str, Any]) -> bool:
    """True for ``ok`` and ``fail``.

    ``info`` is not completed: it is terminal but ambiguous, and must not be
    counted as either a success or a failure.
    """
    return _field(op, "type") in (OK, FAIL)


def is_ambiguous(op: Operation | Mapping[str, Any]) -> bool:
    return _field(op, "type") == INFO


def to_string(op: Operation | Mapping[str, Any]) -> str:
    """Render an operation as a fixed-width line.

    The column widths are relied upon by report diffing, so do not change
    them::

        >>> to_string({"type": "invoke", "f": "read", "value": 10})
        'invoke     read       10        '
    """
    f = _field(op, "f")
    return "%-10s %-10s %-10s" % (_field(op, "type"), "" if f is None else f, encode_value(_field(op, "value")))
