"""Execution progress reporting over server-sent events."""

from __future__ import annotations

import asyncio
import json
import re
import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, Tuple

from .errors import UnknownExecution
from .models import ExecutionUpdate

DEFAULT_STEPS: Tuple[str, ...] = (
    "Initializing agent...",
    "Validating capabilities...",
    "Building transaction...",
    "Simulating execution...",
    "Waiting for signature...",
    "Broadcasting transaction...",
    "Confirming on-chain...",
    "Execution complete!",
)

_EXECUTION_ID = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def _now_ms() -> int:
    return int(time.time() * 1000)


class StreamState(str, Enum):
    INIT = "init"
    RUNNING = "running"
    COMPLETE = "complete"


class ExecutionRegistry:
    """Bounded record of execution ids issued by ``/agent/execute``."""

    def __init__(self, capacity: int = 10_000) -> None:
        self._capacity = capacity
        self._lock = threading.Lock()
        self._ids: "OrderedDict[str, int]" = OrderedDict()

    def register(self, execution_id: str) -> None:
        with self._lock:
            self._ids[execution_id] = _now_ms()
            self._ids.move_to_end(execution_id)
            while len(self._ids) > self._capacity:
                self._ids.popitem(last=False)

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._ids

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()


class StepCatalogue:
    """Looks up the step enumeration for an execution id."""

    def __init__(
        self,
        steps: Sequence[str] = DEFAULT_STEPS,
        *,
        registry: Optional[ExecutionRegistry] = None,
        require_known: bool = False,
    ) -> None:
        if not steps:
            raise ValueError("a step catalogue needs at least one step")
        self._steps = tuple(steps)
        self._registry = registry
        self._require_known = require_known

    def steps_for(self, execution_id: str) -> Tuple[str, ...]:
        if not execution_id or not _EXECUTION_ID.match(execution_id):
            raise UnknownExecution(f"Unknown execution: {execution_id!r}")
        if self._require_known and (self._registry is None or execution_id not in self._registry):
            raise UnknownExecution(f"Unknown execution: {execution_id}")
        return self._steps


class ExecutionStream:
    """Strictly sequential INIT → RUNNING → COMPLETE state machine.

    Every :meth:`advance` emits exactly one update and moves forward one step;
    the stream is complete once the last step has been emitted.
    """

    def __init__(self, execution_id: str, steps: Sequence[str], *, clock: Callable[[], int] = _now_ms) -> None:
        self.execution_id = execution_id
        self._steps = tuple(steps)
        self._clock = clock
        self._next = 0
        self.state = StreamState.INIT

    @property
    def total(self) -> int:
        return len(self._steps)

    @property
    def done(self) -> bool:
        return self.state is StreamState.COMPLETE

    def advance(self) -> ExecutionUpdate:
        if self.done:
            raise RuntimeError(f"execution stream {self.execution_id} is already complete")
        update = ExecutionUpdate(
            step=self._next,
            total=self.total,
            message=self._steps[self._next],
            timestamp=self._clock(),
        )
        self._next += 1
        self.state = StreamState.COMPLETE if self._next >= self.total else StreamState.RUNNING
        return update


def format_sse(update: ExecutionUpdate) -> str:
    return f"data: {json.dumps(update.model_dump(mode='json'), separators=(',', ':'))}\n\n"


async def stream_updates(
    stream: ExecutionStream,
    *,
    delay: float = 1.0,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[ExecutionUpdate]:
    """Yield each update of ``stream`` with ``delay`` seconds between them.

    Stops as soon as ``is_disconnected`` reports the consumer has gone.
    Cancelling the consuming task interrupts the pending sleep.
    """

    while not stream.done:
        if is_disconnected is not None and await is_disconnected():
            return
        yield stream.advance()
        if not stream.done and delay > 0:
            await asyncio.sleep(delay)


__all__ = [
    "DEFAULT_STEPS",
    "ExecutionRegistry",
    "ExecutionStream",
    "StepCatalogue",
    "StreamState",
    "format_sse",
    "stream_updates",
]
