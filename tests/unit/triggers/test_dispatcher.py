"""Unit tests — EngineDispatcher (serialized engine access)."""

from __future__ import annotations

import asyncio

import pytest

from startset.models import PayloadClass, TriggerKind
from startset.triggers.dispatcher import EngineDispatcher, EngineRequest


class RecordingEngine:
    """Engine stand-in that records overlap between concurrent runs."""

    def __init__(self, delay: float = 0.05, fail_on: str | None = None) -> None:
        self.delay = delay
        self.fail_on = fail_on
        self.active = 0
        self.max_active = 0
        self.runs: list[tuple] = []

    async def run(self, payload_classes, username=None, wait_for_network=None, cancel_event=None):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.runs.append((tuple(payload_classes), username, wait_for_network))
            await asyncio.sleep(self.delay)
            if self.fail_on and username == self.fail_on:
                raise RuntimeError("engine exploded")
            return [username]
        finally:
            self.active -= 1


def _request(username: str | None = None) -> EngineRequest:
    return EngineRequest(
        trigger=TriggerKind.ON_DEMAND,
        payload_classes=(PayloadClass.ON_DEMAND,),
        username=username,
    )


@pytest.mark.unit
class TestEngineDispatcher:
    async def test_submit_returns_outcomes(self) -> None:
        engine = RecordingEngine()
        dispatcher = EngineDispatcher(engine)
        await dispatcher.start()
        try:
            assert await dispatcher.submit(_request("alice")) == ["alice"]
        finally:
            await dispatcher.stop()
        assert engine.runs == [((PayloadClass.ON_DEMAND,), "alice", None)]

    async def test_requests_never_overlap(self) -> None:
        engine = RecordingEngine(delay=0.02)
        dispatcher = EngineDispatcher(engine)
        await dispatcher.start()
        try:
            results = await asyncio.gather(
                *(dispatcher.submit(_request(f"user{i}")) for i in range(5))
            )
        finally:
            await dispatcher.stop()
        assert engine.max_active == 1
        assert results == [[f"user{i}"] for i in range(5)]
        assert [r[1] for r in engine.runs] == [f"user{i}" for i in range(5)]

    async def test_engine_error_resolves_empty(self) -> None:
        engine = RecordingEngine(fail_on="bad")
        dispatcher = EngineDispatcher(engine)
        await dispatcher.start()
        try:
            assert await dispatcher.submit(_request("bad")) == []
            assert await dispatcher.submit(_request("good")) == ["good"]
        finally:
            await dispatcher.stop()

    async def test_stop_cancels_queued(self) -> None:
        dispatcher = EngineDispatcher(RecordingEngine())
        future = dispatcher.enqueue(_request("never"))
        assert dispatcher.queue_depth == 1
        await dispatcher.stop()
        assert future.cancelled()

    async def test_lifecycle(self) -> None:
        dispatcher = EngineDispatcher(RecordingEngine())
        assert not dispatcher.is_running
        await dispatcher.start()
        await dispatcher.start()
        assert dispatcher.is_running
        await dispatcher.stop()
        assert not dispatcher.is_running

    async def test_cancel_event_forwarded(self) -> None:
        seen: list = []

        class Engine:
            async def run(self, payload_classes, username=None, wait_for_network=None, cancel_event=None):
                seen.append(cancel_event)
                return []

        cancel = asyncio.Event()
        dispatcher = EngineDispatcher(Engine(), cancel_event=cancel)
        await dispatcher.start()
        try:
            await dispatcher.submit(_request())
        finally:
            await dispatcher.stop()
        assert seen == [cancel]
