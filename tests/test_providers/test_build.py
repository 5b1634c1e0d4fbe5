"""Tests for the build provider."""

import asyncio
import threading

import pytest
import requests.exceptions

from burrow.models.config import BurrowConfig
from burrow.providers.build import BuildProvider


@pytest.fixture
def build_provider(fake_engine):
    """Build provider on the fake engine."""
    provider = BuildProvider(fake_engine)
    provider.config = BurrowConfig()
    return provider


async def _collect(stream):
    return [event async for event in stream]


@pytest.mark.asyncio
class TestStreamBuild:
    """Test streamed builds."""

    async def test_log_lines_in_order_then_success(self, build_provider, fake_engine):
        fake_engine.build_output = [
            {"stream": "Step 1/3 : FROM alpine\n"},
            {"status": "Pulling fs layer", "id": "a1b2"},
            {"stream": "Step 2/3 : RUN apk add curl\nfetch https://dl-cdn.alpinelinux.org\n"},
            {"stream": "\n"},
            {"aux": {"ID": "sha256:deadbeef"}},
            {"stream": "Successfully tagged t:1\n"},
        ]

        events = await _collect(build_provider.stream_build("FROM alpine\n", "t:1"))

        assert [e.line for e in events[:-1]] == [
            "Step 1/3 : FROM alpine",
            "a1b2: Pulling fs layer",
            "Step 2/3 : RUN apk add curl",
            "fetch https://dl-cdn.alpinelinux.org",
            "Successfully tagged t:1",
        ]
        assert events[-1].type == "success"
        assert events[-1].tag == "t:1"

    async def test_error_item_ends_stream_without_success(self, build_provider, fake_engine):
        fake_engine.build_output = [
            {"stream": "Step 1/2 : FROM nope\n"},
            {"errorDetail": {"message": "pull access denied for nope"}, "error": "pull access denied for nope"},
            {"stream": "never seen\n"},
        ]

        events = await _collect(build_provider.stream_build("FROM nope\n", "t:1"))

        assert [e.type for e in events] == ["log", "error"]
        assert events[-1].error == "pull access denied for nope"

    async def test_error_detail_only(self, build_provider, fake_engine):
        fake_engine.build_output = [{"errorDetail": {"message": "no space left on device"}}]

        events = await _collect(build_provider.stream_build("FROM alpine\n", "t:1"))

        assert events[-1].type == "error"
        assert events[-1].error == "no space left on device"

    async def test_transport_error_becomes_error_event(self, build_provider, fake_engine):
        def broken(recipe, tag):
            yield {"stream": "Step 1/2 : FROM alpine\n"}
            raise requests.exceptions.ConnectionError("connection reset by peer")

        fake_engine.build_stream = broken

        events = await _collect(build_provider.stream_build("FROM alpine\n", "t:1"))

        assert [e.type for e in events] == ["log", "error"]
        assert "connection reset by peer" in events[-1].error

    async def test_exactly_one_terminal_event(self, build_provider):
        events = await _collect(build_provider.stream_build("FROM alpine\n", "t:1"))

        assert sum(1 for e in events if e.terminal) == 1
        assert events[-1].terminal

    async def test_early_close_stops_following(self, build_provider, fake_engine):
        released = threading.Event()
        finished = threading.Event()

        def slow(recipe, tag):
            try:
                yield {"stream": "Step 1/9\n"}
                released.wait(5)
                yield {"stream": "Step 2/9\n"}
                yield {"stream": "Step 3/9\n"}
            finally:
                finished.set()

        fake_engine.build_stream = slow

        stream = build_provider.stream_build("FROM alpine\n", "t:1")
        first = await stream.__anext__()
        await stream.aclose()
        released.set()

        assert first.line == "Step 1/9"
        assert await asyncio.to_thread(finished.wait, 5)


@pytest.mark.asyncio
class TestBuild:
    """Test the collecting build wrapper."""

    async def test_success_result_and_log_callback(self, build_provider):
        lines = []

        result = await build_provider.build("FROM alpine\n", "t:1", on_log=lines.append)

        assert result.success
        assert result.tag == "t:1"
        assert lines[-1] == "Successfully built 3b418d7b466a"

    async def test_async_log_callback(self, build_provider):
        lines = []

        async def on_log(line):
            lines.append(line)

        await build_provider.build("FROM alpine\n", "t:1", on_log=on_log)

        assert len(lines) == 3

    async def test_failed_result(self, build_provider, fake_engine):
        fake_engine.build_output = [{"error": "returned a non-zero code: 127"}]

        result = await build_provider.build("FROM alpine\n", "t:1")

        assert not result.success
        assert result.error == "returned a non-zero code: 127"

    async def test_status_after_build(self, build_provider):
        from burrow.providers.base import ProviderStatus

        assert await build_provider.status("t:1") == ProviderStatus.ABSENT
        await build_provider.build("FROM alpine\n", "t:1")
        assert await build_provider.status("t:1") == ProviderStatus.PRESENT
