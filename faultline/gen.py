"""
Lazy, composable generators of operations.

A test needs a stream of operations for its clients (and, eventually, for the
nemesis).  Client generators are usually a random, infinite sequence of reads
and writes bounded by a number of operations or by a time limit; a nemesis
generator might be a repeated sequence of partition, sleep and heal.

Every generator decomposes into a ``(step, param, state)`` triple::

    step(param, state) -> (next_state, value)    # one more value
    step(param, state) -> None                   # exhausted

Because the triple is all there is, composing generators never materializes
anything, and a generator whose step is pure can be cloned for free by
reusing its initial state.  :func:`cycle` and :func:`mix` rely on this: a
source that keeps hidden mutable state (a shared iterator, a counter in a
closure) will silently diverge when cloned.  The engine cannot check this.

Example, reads and writes of random values, 100 operations in total::

    >>> import random
    >>> from faultline import gen
    >>> r = lambda: {"f": "read", "value": None}
    >>> w = lambda: {"f": "write", "value": random.randint(1, 10)}
    >>> ops = gen.cycle(gen.iter([r, w])).take(100)
    >>> gen.length(ops)
    100

Several logical processes share one generator through :meth:`Generator.cursor`,
which pulls values one at a time under a lock.

Note that several functions here deliberately shadow builtins (``range``,
``iter``, ``map``, ``filter``, ``zip``, ``enumerate``, ``all``, ``any``); use
them qualified, ``gen.map(...)``.
"""

from __future__ import annotations

import builtins
import numbers
import random as _random
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from faultline.clock import monotonic
from faultline.errors import ConfigurationError

Step = Callable[[Any, Any], "tuple[Any, Any] | None"]


class Generator:
    """A ``(step, param, state)`` triple with composition methods.

    Iterating a generator starts from its initial state every time; the
    generator object itself is never mutated.
    """

    __slots__ = ("step", "param", "state")

    def __init__(self, step: Step, param: Any, state: Any):
        self.step = step
        self.param = param
        self.state = state

    def unwrap(self) -> tuple[Step, Any, Any]:
        """Return the ``(step, param, state)`` triple."""
        return self.step, self.param, self.state

    def cursor(self) -> Cursor:
        return Cursor(self.step, self.param, self.state)

    def __iter__(self) -> Iterator[Any]:
        return self.cursor()

    def __repr__(self):
        return "<generator>"

    # -- slicing -----------------------------------------------------------

    def take(self, n_or_predicate: int | Callable[[Any], bool]) -> Generator:
        return take(n_or_predicate, self)

    def take_n(self, n: int) -> Generator:
        return take_n(n, self)

    def take_while(self, predicate: Callable[[Any], bool]) -> Generator:
        return take_while(predicate, self)

    def drop(self, n_or_predicate: int | Callable[[Any], bool]) -> Generator:
        return drop(n_or_predicate, self)

    def drop_n(self, n: int) -> Generator:
        return drop_n(n, self)

    def drop_while(self, predicate: Callable[[Any], bool]) -> Generator:
        return drop_while(predicate, self)

    # -- transformations ---------------------------------------------------

    def filter(self, predicate: Callable[[Any], bool]) -> Generator:
        return filter(predicate, self)

    def map(self, fn: Callable[[Any], Any]) -> Generator:
        return map(fn, self)

    def enumerate(self, start: int = 0) -> Generator:
        return enumerate(self, start)

    # -- compositions ------------------------------------------------------

    def zip(self, *others: Any) -> Generator:
        return zip(self, *others)

    def chain(self, *others: Any) -> Generator:
        return chain(self, *others)

    def cycle(self) -> Generator:
        return cycle(self)

    def mix(self, *others: Any, rng: Any = None) -> Generator:
        return mix(self, *others, rng=rng)

    def time_limit(self, duration: float, clock: Callable[[], float] | None = None) -> Generator:
        return time_limit(self, duration, clock)

    # -- reductions --------------------------------------------------------

    def length(self) -> int:
        return length(self)

    def to_list(self) -> list[Any]:
        return to_list(self)

    def each(self, fn: Callable[[Any], Any]) -> None:
        each(fn, self)

    def reduce(self, fn: Callable[[Any, Any], Any], initial: Any) -> Any:
        return reduce(fn, initial, self)

    def all(self, predicate: Callable[[Any], bool]) -> bool:
        return all(predicate, self)

    def any(self, predicate: Callable[[Any], bool]) -> bool:
        return any(predicate, self)


class Cursor:
    """Thread-safe iterator over a triple.

    This is the single pull point shared by all logical processes of a run.
    Once the underlying step reports exhaustion the cursor stays exhausted,
    even if the step would produce more values later.
    """

    def __init__(self, step: Step, param: Any, state: Any):
        self._step = step
        self._param = param
        self._state = state
        self._exhausted = False
        self._lock = threading.Lock()

    def __iter__(self) -> Cursor:
        return self

    def __next__(self) -> Any:
        with self._lock:
            if self._exhausted:
                raise StopIteration
            result = self._step(self._param, self._state)
            if result is None:
                self._exhausted = True
                raise StopIteration
            self._state, value = result
            return value

    @property
    def exhausted(self) -> bool:
        return self._exhausted


def decompose(obj: Any) -> tuple[Step, Any, Any]:
    """Return the ``(step, param, state)`` triple of a generator-like object.

    Raises:
        ConfigurationError: *obj* has no ``unwrap()`` accessor, or it does not
            return a triple with a callable step.
    """
    accessor = getattr(obj, "unwrap", None)
    if not callable(accessor):
        raise ConfigurationError("Generator must have an unwrap method")
    triple = accessor()
    if not (isinstance(triple, tuple) and len(triple) == 3 and callable(triple[0])):
        raise ConfigurationError(f"Generator unwrap() must return a (step, param, state) triple, got {triple!r}")
    return triple


def wrap(step: Step, param: Any, state: Any) -> Generator:
    """Make a generator from a raw triple."""
    return Generator(step, param, state)


# ---------------------------------------------------------------------------
# Finite and infinite generators
# ---------------------------------------------------------------------------


def _nil_step(param: Any, state: Any) -> None:
    return None


def _range_up_step(param: tuple[float, float], state: float) -> tuple[float, float] | None:
    stop, step = param
    state += step
    if state > stop:
        return None
    return state, state


def _range_down_step(param: tuple[float, float], state: float) -> tuple[float, float] | None:
    stop, step = param
    state += step
    if state < stop:
        return None
    return state, state


def range(start: float, stop: float | None = None, step: float | None = None) -> Generator:
    """Arithmetic progression over the closed interval ``[start, stop]``.

    ``range(n)`` counts ``1..n`` (or ``-1..n`` for negative *n*) and
    ``range(0)`` is empty.  *step* defaults to ``1`` or ``-1`` depending on
    direction.

    Raises:
        ConfigurationError: *step* is zero.
    """
    if stop is None:
        if start == 0:
            return wrap(_nil_step, None, None)
        stop = start
        start = 1 if stop > 0 else -1
    if step is None:
        step = 1 if start <= stop else -1
    if step == 0:
        raise ConfigurationError("range() step must not be zero")
    if step > 0:
        return wrap(_range_up_step, (stop, step), start - step)
    return wrap(_range_down_step, (stop, step), start - step)


def _sequence_step(param: tuple[Any, ...], state: int) -> tuple[int, Any] | None:
    if state >= len(param):
        return None
    return state + 1, param[state]


def iter(obj: Any) -> Generator:
    """Make a generator over a finite iterable.

    Generators pass through unchanged; mappings yield ``(key, value)`` pairs;
    anything else is snapshotted into a tuple so the result is repeatable.
    """
    if isinstance(obj, Generator):
        return obj
    if hasattr(obj, "unwrap"):
        return wrap(*decompose(obj))
    if isinstance(obj, Mapping):
        items: Any = tuple(obj.items())
    elif isinstance(obj, (tuple, str)):
        items = obj
    else:
        items = tuple(obj)
    return wrap(_sequence_step, items, 0)


def _duplicate_step(param: Any, state: Any) -> tuple[Any, Any]:
    return state, param


def duplicate(*values: Any) -> Generator:
    """Yield the same value(s) forever; several values are yielded as a tuple."""
    value = values[0] if len(values) == 1 else values
    return wrap(_duplicate_step, value, None)


def _tabulate_step(param: Callable[[int], Any], state: int) -> tuple[int, Any]:
    return state + 1, param(state)


def tabulate(fn: Callable[[int], Any]) -> Generator:
    """Yield ``fn(0)``, ``fn(1)``, ``fn(2)``, ... forever."""
    return wrap(_tabulate_step, fn, 0)


def _rands_float_step(param: Any, state: int) -> tuple[int, float]:
    return state, param.random()


def _rands_int_step(param: tuple[Any, int, int], state: int) -> tuple[int, int]:
    rng, low, high = param
    return state, rng.randrange(low, high)


def rands(n: int | None = None, m: int | None = None, *, rng: Any = None) -> Generator:
    """Random numbers forever.

    ``rands()`` yields floats in ``[0, 1)``, ``rands(n)`` integers in
    ``[0, n)`` and ``rands(n, m)`` integers in ``[n, m)``.
    """
    rng = _random if rng is None else rng
    if n is None:
        return wrap(_rands_float_step, rng, 0)
    if m is None:
        n, m = 0, n
    if m <= n:
        raise ConfigurationError(f"rands() needs a non-empty interval, got [{n}, {m})")
    return wrap(_rands_int_step, (rng, n, m), 0)


# ---------------------------------------------------------------------------
# Slicing
# ---------------------------------------------------------------------------


def _take_n_step(param: tuple[int, Step, Any], state: tuple[int, Any]) -> tuple[Any, Any] | None:
    n, step, inner_param = param
    i, inner_state = state
    if i >= n:
        return None
    result = step(inner_param, inner_state)
    if result is None:
        return None
    inner_state, value = result
    return (i + 1, inner_state), value


def _check_count(n: Any, caller: str) -> None:
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise ConfigurationError(f"{caller}() needs a non-negative integer, got {n!r}")


def take_n(n: int, g: Any) -> Generator:
    """The first *n* values of *g* (fewer if *g* is shorter)."""
    _check_count(n, "take_n")
    step, param, state = decompose(g)
    return wrap(_take_n_step, (n, step, param), (0, state))


def _take_while_step(param: tuple[Callable[[Any], bool], Step, Any], state: Any) -> tuple[Any, Any] | None:
    predicate, step, inner_param = param
    result = step(inner_param, state)
    if result is None or not predicate(result[1]):
        return None
    return result


def take_while(predicate: Callable[[Any], bool], g: Any) -> Generator:
    step, param, state = decompose(g)
    return wrap(_take_while_step, (predicate, step, param), state)


def take(n_or_predicate: int | Callable[[Any], bool], g: Any) -> Generator:
    """:func:`take_while` for a predicate, :func:`take_n` otherwise."""
    if callable(n_or_predicate):
        return take_while(n_or_predicate, g)
    return take_n(n_or_predicate, g)


def _drop_n_step(param: tuple[int, Step, Any], state: tuple[int, Any]) -> tuple[Any, Any] | None:
    n, step, inner_param = param
    i, inner_state = state
    while True:
        result = step(inner_param, inner_state)
        if result is None:
            return None
        inner_state, value = result
        if i >= n:
            return (i, inner_state), value
        i += 1


def drop_n(n: int, g: Any) -> Generator:
    """Everything after the first *n* values of *g*."""
    _check_count(n, "drop_n")
    step, param, state = decompose(g)
    return wrap(_drop_n_step, (n, step, param), (0, state))


def _drop_while_step(
    param: tuple[Callable[[Any], bool], Step, Any], state: tuple[bool, Any]
) -> tuple[Any, Any] | None:
    predicate, step, inner_param = param
    dropping, inner_state = state
    while True:
        result = step(inner_param, inner_state)
        if result is None:
            return None
        inner_state, value = result
        if not dropping or not predicate(value):
            return (False, inner_state), value


def drop_while(predicate: Callable[[Any], bool], g: Any) -> Generator:
    step, param, state = decompose(g)
    return wrap(_drop_while_step, (predicate, step, param), (True, state))


def drop(n_or_predicate: int | Callable[[Any], bool], g: Any) -> Generator:
    if callable(n_or_predicate):
        return drop_while(n_or_predicate, g)
    return drop_n(n_or_predicate, g)


# ---------------------------------------------------------------------------
# Transformations
# ---------------------------------------------------------------------------


def _filter_step(param: tuple[Callable[[Any], bool], Step, Any], state: Any) -> tuple[Any, Any] | None:
    predicate, step, inner_param = param
    while True:
        result = step(inner_param, state)
        if result is None:
            return None
        state, value = result
        if predicate(value):
            return state, value


def filter(predicate: Callable[[Any], bool], g: Any) -> Generator:
    """Values of *g* for which *predicate* is true."""
    step, param, state = decompose(g)
    return wrap(_filter_step, (predicate, step, param), state)


def _map_step(param: tuple[Callable[[Any], Any], Step, Any], state: Any) -> tuple[Any, Any] | None:
    fn, step, inner_param = param
    result = step(inner_param, state)
    if result is None:
        return None
    return result[0], fn(result[1])


def map(fn: Callable[[Any], Any], g: Any) -> Generator:
    """``fn(value)`` for every value of *g*."""
    step, param, state = decompose(g)
    return wrap(_map_step, (fn, step, param), state)


def _enumerate_step(param: tuple[Step, Any], state: tuple[int, Any]) -> tuple[Any, Any] | None:
    step, inner_param = param
    i, inner_state = state
    result = step(inner_param, inner_state)
    if result is None:
        return None
    return (i + 1, result[0]), (i, result[1])


def enumerate(g: Any, start: int = 0) -> Generator:
    """``(i, value)`` pairs counting from *start*."""
    step, param, state = decompose(g)
    return wrap(_enumerate_step, (step, param), (start, state))


# ---------------------------------------------------------------------------
# Compositions
# ---------------------------------------------------------------------------


def _zip_step(param: tuple[tuple[Step, Any], ...], state: tuple[Any, ...]) -> tuple[Any, Any] | None:
    states = []
    values = []
    for (step, inner_param), inner_state in builtins.zip(param, state):
        result = step(inner_param, inner_state)
        if result is None:
            return None
        states.append(result[0])
        values.append(result[1])
    return tuple(states), tuple(values)


def zip(*gens: Any) -> Generator:
    """Tuples of the i-th values of every generator, cut to the shortest."""
    triples = [decompose(g) for g in gens]
    param = tuple((step, inner_param) for step, inner_param, _ in triples)
    state = tuple(inner_state for _, _, inner_state in triples)
    if not triples:
        return wrap(_nil_step, None, None)
    return wrap(_zip_step, param, state)


def _chain_step(param: tuple[tuple[Step, Any, Any], ...], state: tuple[int, Any]) -> tuple[Any, Any] | None:
    idx, inner_state = state
    while idx < len(param):
        step, inner_param, _ = param[idx]
        result = step(inner_param, inner_state)
        if result is not None:
            return (idx, result[0]), result[1]
        idx += 1
        if idx < len(param):
            inner_state = param[idx][2]
    return None


def chain(*gens: Any) -> Generator:
    """Values of the first generator, then of the second, and so on.

    Infinite generators are accepted, but nothing after one is ever reached.
    """
    param = tuple(decompose(g) for g in gens)
    if not param:
        return wrap(_nil_step, None, None)
    return wrap(_chain_step, param, (0, param[0][2]))


def _cycle_step(param: tuple[Step, Any, Any], state: Any) -> tuple[Any, Any] | None:
    step, inner_param, initial = param
    result = step(inner_param, state)
    if result is None:
        # Restart from the saved clone of the source.
        result = step(inner_param, initial)
    return result


def cycle(g: Any) -> Generator:
    """Replay *g* forever by restarting it from its initial state.

    Nothing is buffered, so the source must be pure to be replayed
    identically.  An empty source gives an empty cycle.
    """
    step, param, state = decompose(g)
    return wrap(_cycle_step, (step, param, state), state)


def _mix_step(param: Any, state: tuple[tuple[Step, Any, Any], ...]) -> tuple[Any, Any] | None:
    live = list(state)
    while live:
        nth = param.randrange(len(live))
        step, inner_param, inner_state = live[nth]
        result = step(inner_param, inner_state)
        if result is None:
            del live[nth]
            continue
        live[nth] = (step, inner_param, result[0])
        return tuple(live), result[1]
    return None


def mix(*gens: Any, rng: Any = None) -> Generator:
    """A uniformly random interleaving of several generators.

    Each pull picks one of the live generators at random.  A generator that
    turns out to be exhausted is removed from the live set and the pick is
    repeated among the rest, so the choice stays uniform over what remains.

    Args:
        gens: Generators to interleave.
        rng: Object with a ``randrange`` method, the ``random`` module by
            default.  Pass ``random.Random(seed)`` for a repeatable mix.
    """
    state = tuple(decompose(g) for g in gens)
    return wrap(_mix_step, _random if rng is None else rng, state)


def _time_limit_step(param: tuple[float, Callable[[], float], Step, Any], state: Any) -> tuple[Any, Any] | None:
    duration, clock, step, inner_param = param
    started_at, inner_state = state
    now = clock()
    if started_at is None:
        started_at = now
    elif now - started_at >= duration:
        return None
    result = step(inner_param, inner_state)
    if result is None:
        return None
    return (started_at, result[0]), result[1]


def time_limit(g: Any, duration: float, clock: Callable[[], float] | None = None) -> Generator:
    """Stop yielding once *duration* seconds have passed since the first pull.

    The budget starts on the first pull of each iteration, not at
    composition, so iterating the same generator again gets a fresh budget.
    Once spent, that iteration stays exhausted.  An operation pulled just
    before the deadline is still returned, so the overshoot is at most one
    step of the source.

    Args:
        g: Source generator.
        duration: Budget in seconds, a positive number.
        clock: Monotonic clock returning seconds, :func:`time.monotonic` by
            default.

    Raises:
        ConfigurationError: *duration* is not a positive number.
    """
    if isinstance(duration, bool) or not isinstance(duration, numbers.Real) or not duration > 0:
        raise ConfigurationError(f"bad argument with duration to time_limit: {duration!r}")
    step, param, state = decompose(g)
    return wrap(_time_limit_step, (duration, monotonic if clock is None else clock, step, param), (None, state))


# ---------------------------------------------------------------------------
# Reductions
# ---------------------------------------------------------------------------


def _values(g: Any) -> Cursor:
    return Cursor(*decompose(g))


def length(g: Any) -> int:
    """Number of values in a finite generator."""
    count = 0
    for _ in _values(g):
        count += 1
    return count


def to_list(g: Any) -> list[Any]:
    return list(_values(g))


def each(fn: Callable[[Any], Any], g: Any) -> None:
    for value in _values(g):
        fn(value)


def reduce(fn: Callable[[Any, Any], Any], initial: Any, g: Any) -> Any:
    """Left fold of a finite generator."""
    acc = initial
    for value in _values(g):
        acc = fn(acc, value)
    return acc


def all(predicate: Callable[[Any], bool], g: Any) -> bool:
    """True if *predicate* holds for every value; stops at the first miss."""
    for value in _values(g):
        if not predicate(value):
            return False
    return True


def any(predicate: Callable[[Any], bool], g: Any) -> bool:
    """True if *predicate* holds for some value; stops at the first hit."""
    for value in _values(g):
        if predicate(value):
            return True
    return False


