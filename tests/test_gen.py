"""Tests for generators: constructors, slicing, compositions and time limits."""

import random
import threading

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from faultline import gen
from faultline.errors import ConfigurationError

_settings = settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


class TestConstructors:
    def test_range_is_closed(self):
        assert gen.range(3).to_list() == [1, 2, 3]
        assert gen.range(2, 5).to_list() == [2, 3, 4, 5]
        assert gen.range(5, 1, -2).to_list() == [5, 3, 1]
        assert gen.range(-2).to_list() == [-1, -2]
        assert gen.range(0).to_list() == []

    def test_range_rejects_zero_step(self):
        with pytest.raises(ConfigurationError):
            gen.range(1, 5, 0)

    def test_iter_snapshots_sequences(self):
        source = [1, 2, 3]
        g = gen.iter(source)
        source.append(4)
        assert g.to_list() == [1, 2, 3]

    def test_iter_over_mapping_yields_items(self):
        assert gen.iter({"a": 1}).to_list() == [("a", 1)]

    def test_iter_passes_generators_through(self):
        g = gen.range(3)
        assert gen.iter(g) is g

    def test_duplicate_and_tabulate_are_infinite(self):
        assert gen.duplicate("x").take(3).to_list() == ["x", "x", "x"]
        assert gen.duplicate(1, 2).take(2).to_list() == [(1, 2), (1, 2)]
        assert gen.tabulate(lambda i: i * i).take(4).to_list() == [0, 1, 4, 9]

    def test_rands_bounds(self):
        rng = random.Random(7)
        assert all(0 <= v < 1 for v in gen.rands(rng=rng).take(50))
        assert all(0 <= v < 6 for v in gen.rands(6, rng=rng).take(50))
        assert all(3 <= v < 6 for v in gen.rands(3, 6, rng=rng).take(50))

    def test_rands_rejects_empty_interval(self):
        with pytest.raises(ConfigurationError):
            gen.rands(5, 5)

    def test_iterating_restarts_from_initial_state(self):
        g = gen.range(3)
        assert list(g) == [1, 2, 3]
        assert list(g) == [1, 2, 3]


class TestDecompose:
    def test_object_without_unwrap(self):
        with pytest.raises(ConfigurationError, match="Generator must have an unwrap method"):
            gen.decompose([1, 2, 3])

    def test_unwrap_must_return_a_triple(self):
        class Broken:
            def unwrap(self):
                return (1, 2)

        with pytest.raises(ConfigurationError, match="triple"):
            gen.decompose(Broken())

    def test_foreign_generator_objects_are_accepted(self):
        class Countdown:
            def unwrap(self):
                return (lambda param, state: None if state == 0 else (state - 1, state)), None, 3

        assert gen.iter(Countdown()).to_list() == [3, 2, 1]
        assert gen.length(Countdown()) == 3


# ---------------------------------------------------------------------------
# Slicing and transformations
# ---------------------------------------------------------------------------


class TestSlicing:
    @given(n=st.integers(min_value=0, max_value=50), size=st.integers(min_value=0, max_value=50))
    @_settings
    def test_take_n_length(self, n, size):
        assert gen.range(size).take(n).length() == min(n, size)

    @given(n=st.integers(min_value=0, max_value=50), size=st.integers(min_value=0, max_value=50))
    @_settings
    def test_take_and_drop_split_the_sequence(self, n, size):
        g = gen.range(size)
        assert g.take(n).to_list() + g.drop(n).to_list() == g.to_list()

    def test_take_of_infinite_generator(self):
        assert gen.duplicate(1).take(1000).length() == 1000

    def test_take_rejects_negative(self):
        with pytest.raises(ConfigurationError):
            gen.range(3).take(-1)
        with pytest.raises(ConfigurationError):
            gen.range(3).drop_n(True)

    def test_take_while_and_drop_while(self):
        g = gen.iter([1, 2, 5, 1])
        assert g.take(lambda v: v < 3).to_list() == [1, 2]
        assert g.drop(lambda v: v < 3).to_list() == [5, 1]

    def test_filter_map_enumerate(self):
        g = gen.range(6).filter(lambda v: v % 2 == 0).map(lambda v: v * 10)
        assert g.to_list() == [20, 40, 60]
        assert g.enumerate(1).to_list() == [(1, 20), (2, 40), (3, 60)]

    def test_reductions(self):
        seen = []
        gen.range(3).each(seen.append)
        assert seen == [1, 2, 3]
        assert gen.range(4).reduce(lambda acc, v: acc + v, 0) == 10
        assert gen.range(4).all(lambda v: v > 0)
        assert not gen.range(4).all(lambda v: v < 4)
        assert gen.range(4).any(lambda v: v == 3)
        assert not gen.any(lambda v: True, gen.iter([]))
        # stops at the first hit, so infinite generators are fine
        assert gen.duplicate(1).any(lambda v: v == 1)


# ---------------------------------------------------------------------------
# Compositions
# ---------------------------------------------------------------------------


class TestCompositions:
    def test_zip_stops_at_shortest(self):
        assert gen.zip(gen.range(3), gen.iter("ab")).to_list() == [(1, "a"), (2, "b")]
        assert gen.zip().to_list() == []

    def test_chain(self):
        assert gen.chain(gen.range(2), gen.iter([]), gen.iter(["x"])).to_list() == [1, 2, "x"]
        assert gen.range(1).chain(gen.range(1)).to_list() == [1, 1]

    def test_cycle_replays(self):
        assert gen.iter("ab").cycle().take(5).to_list() == ["a", "b", "a", "b", "a"]

    def test_cycle_of_empty_generator_is_empty(self):
        assert gen.cycle(gen.iter([])).to_list() == []

    @given(sizes=st.lists(st.integers(min_value=0, max_value=10), max_size=5), seed=st.integers())
    @_settings
    def test_mix_yields_every_value_once(self, sizes, seed):
        sources = [gen.iter([(i, j) for j in range(size)]) for i, size in enumerate(sizes)]
        mixed = gen.mix(*sources, rng=random.Random(seed)).to_list()
        assert sorted(mixed) == sorted((i, j) for i, size in enumerate(sizes) for j in range(size))
        for i in range(len(sizes)):
            # each source keeps its own order
            assert [j for k, j in mixed if k == i] == list(range(sizes[i]))

    def test_mix_drops_exhausted_sources(self):
        mixed = gen.mix(gen.iter([]), gen.duplicate("x"), rng=random.Random(1))
        assert mixed.take(20).to_list() == ["x"] * 20

    def test_mix_rejects_non_generators(self):
        with pytest.raises(ConfigurationError):
            gen.mix(gen.range(3), [1, 2])


# ---------------------------------------------------------------------------
# Time limit
# ---------------------------------------------------------------------------


class TestTimeLimit:
    def test_budget_starts_on_first_pull(self):
        clock = FakeClock()
        g = gen.duplicate(1).time_limit(5, clock=clock)
        clock.now += 100
        cursor = g.cursor()
        assert next(cursor) == 1
        clock.now += 4
        assert next(cursor) == 1
        clock.now += 1
        with pytest.raises(StopIteration):
            next(cursor)

    def test_expiry_is_sticky(self):
        clock = FakeClock()
        g = gen.duplicate(1).time_limit(1, clock=clock)
        cursor = g.cursor()
        next(cursor)
        clock.now += 2
        with pytest.raises(StopIteration):
            next(cursor)
        clock.now -= 2
        with pytest.raises(StopIteration):
            next(cursor)
        assert cursor.exhausted

    def test_each_iteration_gets_a_fresh_budget(self):
        """Running out in one iteration leaves the generator itself untouched."""
        clock = FakeClock()
        g = gen.range(3).time_limit(5, clock=clock)
        cursor = g.cursor()
        assert next(cursor) == 1
        clock.now += 10
        with pytest.raises(StopIteration):
            next(cursor)
        assert g.to_list() == [1, 2, 3]
        assert g.length() == 3

    def test_exhausts_with_source(self):
        assert gen.range(3).time_limit(60).to_list() == [1, 2, 3]

    @pytest.mark.parametrize("duration", [0, -1, "5", None, True])
    def test_bad_duration(self, duration):
        with pytest.raises(ConfigurationError, match="bad argument with duration to time_limit"):
            gen.time_limit(gen.range(3), duration)


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


def test_cursor_hands_out_each_value_once_across_threads():
    cursor = gen.range(1000).cursor()
    seen = [[] for _ in range(4)]

    def pull(bucket):
        for value in cursor:
            bucket.append(value)

    threads = [threading.Thread(target=pull, args=(bucket,)) for bucket in seen]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(v for bucket in seen for v in bucket) == list(range(1, 1001))
    assert cursor.exhausted
