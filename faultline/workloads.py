"""
Bundled workloads: operation generators and an in-memory reference client.

Each ``*_gen`` function returns an infinite :class:`~faultline.gen.Generator`;
bound it with ``take`` or ``time_limit`` before running it.  Values are either
operation mappings or zero-argument callables that build one, so random
payloads are drawn when a process pulls the operation, not when the generator
is built.

rw-register
    Transactions of a single micro-operation on register ``"x"``:
    ``["r", "x", None]`` reads, ``["w", "x", 42]`` writes.

cas-register
    ``read`` (value ``[None]``), ``write`` (value ``[v]``) and ``cas``
    (value ``[expected, new]``).

list-append
    Transactions over integer keys made of reads ``["r", k, None]`` and
    appends ``["append", k, v]``, with ``v`` unique per generator.

bank
    ``read`` of every balance and ``transfer`` of
    ``{"from": a, "to": b, "amount": n}`` between accounts.
"""

from __future__ import annotations

import functools
import itertools
import random
import threading
from collections.abc import Callable
from typing import Any

from faultline import gen
from faultline.client import Client
from faultline.errors import ConfigurationError
from faultline.history import History
from faultline.op import FAIL, OK, Operation

RandomLike = Any

# ---------------------------------------------------------------------------
# rw-register
# ---------------------------------------------------------------------------


def _rw_read(rng: RandomLike) -> dict[str, Any]:
    return {"f": "txn", "value": [["r", "x", None]]}


def _rw_write(rng: RandomLike) -> dict[str, Any]:
    return {"f": "txn", "value": [["w", "x", rng.randint(1, 100)]]}


def rw_register_gen(rng: RandomLike = None) -> gen.Generator:
    """Alternate reads and writes of a single register."""
    rng = random.Random() if rng is None else rng
    return gen.iter([functools.partial(_rw_read, rng), functools.partial(_rw_write, rng)]).cycle()


# ---------------------------------------------------------------------------
# cas-register
# ---------------------------------------------------------------------------


def _cas_read(rng: RandomLike) -> dict[str, Any]:
    return {"f": "read", "value": [None]}


def _cas_write(rng: RandomLike) -> dict[str, Any]:
    return {"f": "write", "value": [rng.randint(1, 100)]}


def _cas_cas(rng: RandomLike) -> dict[str, Any]:
    return {"f": "cas", "value": [rng.randint(1, 100), rng.randint(1, 100)]}


def cas_register_gen(rng: RandomLike = None) -> gen.Generator:
    """Cycle through read, write and compare-and-set."""
    rng = random.Random() if rng is None else rng
    ops = [functools.partial(fn, rng) for fn in (_cas_read, _cas_write, _cas_cas)]
    return gen.iter(ops).cycle()


# ---------------------------------------------------------------------------
# list-append
# ---------------------------------------------------------------------------


def _list_append_step(param: tuple[Any, ...], state: int) -> tuple[int, dict[str, Any]]:
    rng, counter, key_count, min_txn_len, max_txn_len = param
    mops = []
    for _ in range(rng.randint(min_txn_len, max_txn_len)):
        key = rng.randint(1, key_count)
        if rng.randint(1, 2) == 1:
            mops.append(["r", key, None])
        else:
            mops.append(["append", key, next(counter)])
    return state + 1, {"f": "txn", "value": mops}


def _check_positive_int(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def list_append_gen(
    key_count: int = 3,
    min_txn_len: int = 1,
    max_txn_len: int = 2,
    max_writes_per_key: int = 32,
    *,
    rng: RandomLike = None,
) -> gen.Generator:
    """Transactions of reads and appends over ``key_count`` integer keys.

    Appended values come from one counter per generator and are therefore
    unique, which is what a list-append checker relies on.

    Args:
        key_count: Number of distinct keys.
        min_txn_len: Minimum number of micro-operations per transaction.
        max_txn_len: Maximum number of micro-operations per transaction;
            must be greater than *min_txn_len*.
        max_writes_per_key: Upper bound of appends per key a checker should
            expect.  Kept for checkers; the generator does not enforce it.

    Raises:
        ConfigurationError: a bound is not a positive int, or
            ``min_txn_len >= max_txn_len``.
    """
    for name, value in (
        ("key_count", key_count),
        ("min_txn_len", min_txn_len),
        ("max_txn_len", max_txn_len),
        ("max_writes_per_key", max_writes_per_key),
    ):
        _check_positive_int(value, name)
    if min_txn_len >= max_txn_len:
        raise ConfigurationError("max_txn_len must be bigger than min_txn_len")
    rng = random.Random() if rng is None else rng
    return gen.wrap(_list_append_step, (rng, itertools.count(1), key_count, min_txn_len, max_txn_len), 0)


# ---------------------------------------------------------------------------
# bank
# ---------------------------------------------------------------------------


def _bank_transfer(rng: RandomLike, accounts: int, max_transfer: int) -> dict[str, Any]:
    return {
        "f": "transfer",
        "value": {
            "from": rng.randint(1, accounts),
            "to": rng.randint(1, accounts),
            "amount": rng.randint(1, max_transfer),
        },
    }


def bank_gen(accounts: int = 10, max_transfer: int = 2, *, rng: RandomLike = None) -> gen.Generator:
    """Alternate full reads with random transfers between ``accounts`` accounts."""
    _check_positive_int(accounts, "accounts")
    _check_positive_int(max_transfer, "max_transfer")
    rng = random.Random() if rng is None else rng
    return gen.iter([{"f": "read"}, functools.partial(_bank_transfer, rng, accounts, max_transfer)]).cycle()


def bank_checker(accounts: int = 10, balance: int = 10) -> Callable[[History], bool]:
    """Return a checker that every successful read sees the initial total."""
    total = accounts * balance

    def check(history: History) -> bool:
        return all(
            sum(op.value.values()) == total for op in history if op.type == OK and op.f == "read"
        )

    return check


# ---------------------------------------------------------------------------
# In-memory clients
# ---------------------------------------------------------------------------


class RegisterClient(Client):
    """Linearizable in-memory store for the register and list workloads.

    Understands ``txn`` operations made of ``r``, ``w`` and ``append``
    micro-operations, plus the cas-register ``read``, ``write`` and ``cas``.
    All processes share one store guarded by a lock, so every history it
    produces is valid.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.registers: dict[Any, Any] = {}
        self.lists: dict[Any, list[Any]] = {}
        self.cas_value: Any = None

    def invoke(self, op: Operation, handle: Any) -> Operation:
        with self.lock:
            if op.f == "txn":
                return op.replace(type=OK, value=[self._apply(mop) for mop in op.value])
            if op.f == "read":
                return op.replace(type=OK, value=[self.cas_value])
            if op.f == "write":
                self.cas_value = op.value[0]
                return op.replace(type=OK)
            if op.f == "cas":
                expected, new = op.value
                if self.cas_value != expected:
                    return op.replace(type=FAIL)
                self.cas_value = new
                return op.replace(type=OK)
        raise ValueError(f"Unknown operation {op.f!r}")

    def _apply(self, mop: list[Any]) -> list[Any]:
        kind, key, value = mop
        if kind == "r":
            if key in self.lists:
                return [kind, key, list(self.lists[key])]
            return [kind, key, self.registers.get(key)]
        if kind == "w":
            self.registers[key] = value
        elif kind == "append":
            self.lists.setdefault(key, []).append(value)
        else:
            raise ValueError(f"Unknown micro-operation {kind!r}")
        return [kind, key, value]


class BankClient(Client):
    """In-memory bank: transfers never overdraw and never change the total."""

    def __init__(self, accounts: int = 10, balance: int = 10):
        self.lock = threading.Lock()
        self.balances = {account: balance for account in range(1, accounts + 1)}

    def invoke(self, op: Operation, handle: Any) -> Operation:
        with self.lock:
            if op.f == "read":
                return op.replace(type=OK, value=dict(self.balances))
            if op.f == "transfer":
                src, dst, amount = op.value["from"], op.value["to"], op.value["amount"]
                if src == dst or self.balances[src] < amount:
                    return op.replace(type=FAIL, error="insufficient funds" if src != dst else "same account")
                self.balances[src] -= amount
                self.balances[dst] += amount
                return op.replace(type=OK)
        raise ValueError(f"Unknown operation {op.f!r}")
