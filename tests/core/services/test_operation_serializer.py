import asyncio

import pytest

from foldly_tree.core.services.operation_serializer import OperationSerializer


def _tracked(log, name, pauses=2, result=None, error=None):
    async def operation():
        log.append(f"{name}:start")
        for _ in range(pauses):
            await asyncio.sleep(0)
        log.append(f"{name}:end")
        if error is not None:
            raise error
        return result

    return operation


def test_single_operation_runs_immediately():
    serializer = OperationSerializer("ws")

    async def scenario():
        return await serializer.submit(lambda: asyncio.sleep(0, result="done"))

    assert asyncio.run(scenario()) == "done"
    assert serializer.completed == 1
    assert not serializer.is_busy


def test_operations_never_interleave_and_run_in_submission_order():
    serializer = OperationSerializer("ws")
    log = []

    async def scenario():
        return await asyncio.gather(
            serializer.submit(_tracked(log, "first", result=1)),
            serializer.submit(_tracked(log, "second", result=2)),
            serializer.submit(_tracked(log, "third", pauses=0, result=3)),
        )

    results = asyncio.run(scenario())
    assert results == [1, 2, 3]
    assert log == [
        "first:start", "first:end",
        "second:start", "second:end",
        "third:start", "third:end",
    ]


def test_failure_is_isolated_to_its_caller():
    serializer = OperationSerializer("ws")
    log = []

    async def scenario():
        return await asyncio.gather(
            serializer.submit(_tracked(log, "bad", error=RuntimeError("boom"))),
            serializer.submit(_tracked(log, "good", result="ok")),
            return_exceptions=True,
        )

    bad, good = asyncio.run(scenario())
    assert isinstance(bad, RuntimeError)
    assert good == "ok"
    assert log == ["bad:start", "bad:end", "good:start", "good:end"]
    assert serializer.completed == 2
    assert not serializer.is_busy


def test_queued_operation_is_not_called_before_admission():
    serializer = OperationSerializer("ws")
    called = []

    async def slow():
        called.append("slow")
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        # The queued factory must not have been invoked yet
        assert called == ["slow"]
        assert serializer.pending == 1

    async def fast():
        called.append("fast")

    async def scenario():
        await asyncio.gather(serializer.submit(slow), serializer.submit(fast))

    asyncio.run(scenario())
    assert called == ["slow", "fast"]


def test_newcomer_does_not_overtake_queue():
    serializer = OperationSerializer("ws")
    log = []

    async def scenario():
        first = asyncio.ensure_future(serializer.submit(_tracked(log, "a")))
        second = asyncio.ensure_future(serializer.submit(_tracked(log, "b")))
        await asyncio.sleep(0)
        # Submitted while "a" runs and "b" waits
        third = asyncio.ensure_future(serializer.submit(_tracked(log, "c", pauses=0)))
        await asyncio.gather(first, second, third)

    asyncio.run(scenario())
    assert [entry for entry in log if entry.endswith(":start")] == ["a:start", "b:start", "c:start"]


def test_instances_do_not_share_the_gate():
    left = OperationSerializer("workspace")
    right = OperationSerializer("shared-link")
    log = []

    async def scenario():
        await asyncio.gather(
            left.submit(_tracked(log, "left")),
            right.submit(_tracked(log, "right")),
        )

    asyncio.run(scenario())
    # Both started before either finished
    assert log.index("right:start") < log.index("left:end")


def test_cancelled_waiter_hands_gate_on():
    serializer = OperationSerializer("ws")
    log = []

    async def scenario():
        first = asyncio.ensure_future(serializer.submit(_tracked(log, "a", pauses=3)))
        doomed = asyncio.ensure_future(serializer.submit(_tracked(log, "doomed")))
        last = asyncio.ensure_future(serializer.submit(_tracked(log, "z")))
        await asyncio.sleep(0)
        doomed.cancel()
        await asyncio.gather(first, last)
        with pytest.raises(asyncio.CancelledError):
            await doomed

    asyncio.run(scenario())
    assert "doomed:start" not in log
    assert log[-2:] == ["z:start", "z:end"]
    assert not serializer.is_busy
