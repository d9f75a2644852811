"""Execution progress state machine and SSE framing."""

import asyncio
import json

import pytest

from agent_pipeline.errors import UnknownExecution
from agent_pipeline.stream import (
    DEFAULT_STEPS,
    ExecutionRegistry,
    ExecutionStream,
    StepCatalogue,
    StreamState,
    format_sse,
    stream_updates,
)


async def _collect(stream, **kwargs):
    return [update async for update in stream_updates(stream, **kwargs)]


def test_emits_every_step_in_order():
    stream = ExecutionStream("exec_1", DEFAULT_STEPS, clock=lambda: 1234)

    updates = asyncio.run(_collect(stream, delay=0))

    assert len(updates) == 8
    assert [u.step for u in updates] == list(range(8))
    assert {u.total for u in updates} == {8}
    assert updates[0].message == "Initializing agent..."
    assert updates[-1].message == "Execution complete!"
    assert stream.state is StreamState.COMPLETE


def test_state_transitions():
    stream = ExecutionStream("exec_1", ("a", "b"))
    assert stream.state is StreamState.INIT
    stream.advance()
    assert stream.state is StreamState.RUNNING
    stream.advance()
    assert stream.done
    with pytest.raises(RuntimeError):
        stream.advance()


def test_sleeps_between_steps_but_not_after_last(monkeypatch):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr("agent_pipeline.stream.asyncio.sleep", fake_sleep)
    asyncio.run(_collect(ExecutionStream("exec_1", ("a", "b", "c")), delay=1.0))
    assert sleeps == [1.0, 1.0]


def test_stops_when_consumer_disconnects():
    answers = iter([False, False, True])

    async def is_disconnected():
        return next(answers)

    updates = asyncio.run(_collect(ExecutionStream("exec_1", DEFAULT_STEPS), delay=0, is_disconnected=is_disconnected))
    assert [u.step for u in updates] == [0, 1]


def test_cancellation_interrupts_pending_sleep():
    async def scenario():
        received = []

        async def consume():
            async for update in stream_updates(ExecutionStream("exec_1", DEFAULT_STEPS), delay=60):
                received.append(update)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return received

    assert len(asyncio.run(asyncio.wait_for(scenario(), timeout=5))) == 1


def test_format_sse():
    update = ExecutionStream("exec_1", ("Only step",), clock=lambda: 42).advance()
    frame = format_sse(update)
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"step": 0, "total": 1, "message": "Only step", "timestamp": 42}


@pytest.mark.parametrize("execution_id", ["", "has space", "x" * 129, "semi;colon"])
def test_catalogue_rejects_malformed_ids(execution_id):
    with pytest.raises(UnknownExecution):
        StepCatalogue().steps_for(execution_id)


def test_catalogue_requires_registered_ids_when_configured():
    registry = ExecutionRegistry()
    catalogue = StepCatalogue(registry=registry, require_known=True)
    with pytest.raises(UnknownExecution):
        catalogue.steps_for("exec_1")
    registry.register("exec_1")
    assert catalogue.steps_for("exec_1") == DEFAULT_STEPS
    assert StepCatalogue().steps_for("anything-goes_1.2:3") == DEFAULT_STEPS


def test_registry_is_bounded():
    registry = ExecutionRegistry(capacity=2)
    for name in ("a", "b", "c"):
        registry.register(name)
    assert "a" not in registry
    assert "b" in registry and "c" in registry
