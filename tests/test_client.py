"""Tests for client adaptation and the per-process operation loop."""

import threading

import pytest

from faultline import gen
from faultline.client import BoundClient, Client, WorkerOptions, run
from faultline.errors import ConfigurationError, OperationError
from faultline.history import History
from faultline.nemesis import Nemesis
from faultline.op import Operation
from faultline.threadpool import ThreadPool


def run_workers(client, generator, threads=2, thread_type="coroutine", nodes=()):
    history = History()
    opts = WorkerOptions(
        client=BoundClient(client),
        cursor=gen.iter(generator).cursor(),
        history=history,
        nodes=list(nodes),
        threads=threads,
    )
    pool = ThreadPool(thread_type, threads, seed=0)
    pool.start(run, opts)
    return history, pool


def reads(n):
    return gen.duplicate({"f": "read"}).take(n)


# ---------------------------------------------------------------------------
# BoundClient
# ---------------------------------------------------------------------------


class TestBoundClient:
    def test_requires_invoke(self):
        with pytest.raises(ConfigurationError, match="invoke"):
            BoundClient(object())

    def test_missing_hooks_default_to_success(self):
        class OnlyInvoke:
            def invoke(self, op):
                return op.replace(type="ok")

        client = BoundClient(OnlyInvoke())
        handle = client.open()
        assert handle is None
        assert client.setup(handle) is True
        assert client.teardown(handle) is True
        assert client.close(handle) is True
        assert client.invoke(Operation(type="invoke", f="read"), handle).type == "ok"

    def test_handle_is_passed_when_accepted(self):
        seen = []

        class WithHandle:
            def open(self):
                return "conn"

            def setup(self, handle):
                seen.append(("setup", handle))

            def invoke(self, op, handle):
                seen.append(("invoke", handle))
                return op.replace(type="ok")

            def close(self):
                seen.append(("close",))

        client = BoundClient(WithHandle())
        handle = client.open()
        client.setup(handle)
        client.invoke(Operation(type="invoke"), handle)
        client.close(handle)
        assert seen == [("setup", "conn"), ("invoke", "conn"), ("close",)]

    def test_plain_objects_with_function_attributes(self):
        class Namespace:
            pass

        client = Namespace()
        client.invoke = lambda op: op.replace(type="fail")
        assert BoundClient(client).invoke(Operation(type="invoke"), None).type == "fail"

    def test_nodes_are_passed_to_open_when_accepted(self):
        class WithNodes:
            def open(self, nodes):
                return nodes[0]

            def invoke(self, op, handle):
                return op.replace(type="ok", value=handle)

        client = BoundClient(WithNodes())
        assert client.open(["n1", "n2"]) == "n1"


# ---------------------------------------------------------------------------
# Operation loop
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("thread_type", ["coroutine", "fiber"])
class TestRun:
    def test_every_invoke_is_followed_by_its_completion(self, thread_type, counting_client):
        history, _ = run_workers(counting_client, reads(50), threads=3, thread_type=thread_type)
        assert history.ops_planned() == 50
        assert history.ops_completed() == 50
        for process in (1, 2, 3):
            types = [op.type for op in history if op.process == process]
            assert types == ["invoke", "ok"] * (len(types) // 2)
        assert counting_client.calls == {"open": 3, "setup": 3, "invoke": 50, "teardown": 3, "close": 3}

    def test_callables_are_materialized(self, thread_type, counting_client):
        ops = gen.iter([lambda: {"f": "write", "value": 7}]).cycle().take(4)
        history, _ = run_workers(counting_client, ops, thread_type=thread_type)
        assert [op.value for op in history] == [7] * 8
        assert {op.f for op in history} == {"write"}

    def test_invoke_error_ends_only_that_process(self, thread_type):
        class FailsOnce(Client):
            def __init__(self):
                self.lock = threading.Lock()
                self.failed = False

            def invoke(self, op, handle):
                with self.lock:
                    first, self.failed = not self.failed, True
                if first:
                    raise RuntimeError("connection reset")
                return op.replace(type="ok")

        history, pool = run_workers(FailsOnce(), reads(10), thread_type=thread_type)
        assert history.ops_planned() == 10
        assert history.ops_completed() == 9
        assert len(pool.errors) == 1
        (error,) = pool.errors.values()
        assert isinstance(error, RuntimeError)

    def test_completion_must_match_invoke(self, thread_type):
        class WrongF(Client):
            def invoke(self, op, handle):
                return op.replace(type="ok", f="write")

        history, pool = run_workers(WrongF(), reads(5), threads=1, thread_type=thread_type)
        assert isinstance(pool.errors[1], OperationError)
        assert [op.type for op in history] == ["invoke"]

    def test_completion_must_be_terminal(self, thread_type):
        class Echo(Client):
            def invoke(self, op, handle):
                return op

        _, pool = run_workers(Echo(), reads(5), threads=1, thread_type=thread_type)
        assert isinstance(pool.errors[1], OperationError)

    def test_client_gets_a_copy(self, thread_type):
        class Mutating(Client):
            def invoke(self, op, handle):
                op.value.append("seen")
                return op.replace(type="ok")

        history, _ = run_workers(Mutating(), gen.iter([{"f": "txn", "value": []}]), threads=1, thread_type=thread_type)
        invoke, ok = history.operations
        assert invoke.value == []
        assert ok.value == ["seen"]

    def test_completion_process_is_forced(self, thread_type):
        class Liar(Client):
            def invoke(self, op, handle):
                return {"type": "ok", "f": op.f, "value": None, "process": 99}

        history, _ = run_workers(Liar(), reads(2), threads=1, thread_type=thread_type)
        assert [op.process for op in history] == [1, 1, 1, 1]

    def test_info_moves_the_worker_to_a_new_process_id(self, thread_type):
        class Crashy(Client):
            def invoke(self, op, handle):
                return op.replace(type="info")

        history, _ = run_workers(Crashy(), reads(3), threads=2, thread_type=thread_type)
        for op in history:
            assert op.process in (1, 2, 3, 4, 5, 6)
        invoked = [op.process for op in history if op.type == "invoke"]
        assert len(invoked) == len(set(invoked)) == 3

    def test_hook_failures_do_not_stop_the_process(self, thread_type):
        class Broken(Client):
            def open(self):
                raise OSError("no route to host")

            def setup(self, handle):
                return False

            def invoke(self, op, handle):
                return op.replace(type="ok")

            def teardown(self, handle):
                raise RuntimeError("teardown")

            def close(self, handle):
                return False

        history, pool = run_workers(Broken(), reads(4), thread_type=thread_type)
        assert history.ops_completed() == 4
        assert pool.errors == {}

    def test_open_receives_the_nodes(self, thread_type):
        opened = []

        class PerNode(Client):
            def open(self, nodes):
                opened.append(list(nodes))
                return nodes[0]

            def invoke(self, op, handle):
                return op.replace(type="ok", value=handle)

        history, pool = run_workers(PerNode(), reads(4), thread_type=thread_type, nodes=["n1", "n2"])
        assert pool.errors == {}
        assert opened == [["n1", "n2"], ["n1", "n2"]]
        assert {op.value for op in history if op.type == "ok"} == {"n1"}

    def test_completion_may_carry_extra_keys(self, thread_type):
        """A completion naming the node it ran on is recorded as is."""

        class Tagging(Client):
            def invoke(self, op, handle):
                return {"type": "ok", "f": op.f, "value": 1, "node": "n1"}

        history, pool = run_workers(Tagging(), reads(3), threads=1, thread_type=thread_type)
        assert pool.errors == {}
        assert history.ops_completed() == 3
        assert [op.extra for op in history if op.type == "ok"] == [{"node": "n1"}] * 3

    def test_nemesis_operations_keep_the_nemesis_process(self, thread_type):
        ops = gen.duplicate({"f": "start"}).take(3)
        history, pool = run_workers(Nemesis(), ops, threads=1, thread_type=thread_type)
        assert pool.errors == {}
        assert [op.type for op in history] == ["invoke", "info"] * 3
        assert {op.process for op in history} == {"nemesis"}
