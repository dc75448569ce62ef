"""
==============================================================================
Frame Sampler Tests
==============================================================================

Tests for the background frame-pulling loop.

==============================================================================
"""

import asyncio

import numpy as np
import pytest

from scan_engine.core.exceptions import StreamInterrupted
from scan_engine.scanner.sampler import FrameSampler
from scan_engine.schemas.scan import FrameSample


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestFrameSampler:
    """Tests for FrameSampler lifecycle and delivery."""

    def test_invalid_fps(self, fake_stream_cls):
        with pytest.raises(ValueError):
            FrameSampler(fake_stream_cls("cam"), fps=0)

    def test_interval(self, fake_stream_cls):
        assert FrameSampler(fake_stream_cls("cam"), fps=10).interval == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_delivers_frames(self, fake_stream_cls, make_blank_frame):
        stream = fake_stream_cls("cam", [make_blank_frame()])
        received = []
        sampler = FrameSampler(stream, fps=50)

        sampler.start(received.append)
        await wait_until(lambda: len(received) >= 3)
        sampler.stop()
        await sampler.join()

        assert sampler.frames_pulled >= 3
        assert not sampler.is_running

    @pytest.mark.asyncio
    async def test_skips_missing_and_empty_frames(self, fake_stream_cls, make_blank_frame):
        empty = FrameSample.from_array(np.zeros((0, 0, 3), np.uint8))
        stream = fake_stream_cls("cam", [None, empty, make_blank_frame()])
        received = []
        sampler = FrameSampler(stream, fps=50)

        sampler.start(received.append)
        await wait_until(lambda: len(received) >= 1)
        sampler.stop()

        assert sampler.frames_skipped == 2
        assert all(not frame.is_empty for frame in received)

    @pytest.mark.asyncio
    async def test_stop_is_synchronous(self, fake_stream_cls, make_blank_frame):
        stream = fake_stream_cls("cam", [make_blank_frame()])
        received = []
        sampler = FrameSampler(stream, fps=50)

        sampler.start(received.append)
        await wait_until(lambda: len(received) >= 1)

        sampler.stop()
        count = len(received)
        await asyncio.sleep(0.1)

        assert len(received) == count

    @pytest.mark.asyncio
    async def test_stop_before_start_and_twice(self, fake_stream_cls):
        sampler = FrameSampler(fake_stream_cls("cam"))
        sampler.stop()
        sampler.start(lambda frame: None)
        sampler.stop()
        sampler.stop()
        await sampler.join()

        assert not sampler.is_running

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_loop(self, fake_stream_cls):
        sampler = FrameSampler(fake_stream_cls("cam"))
        first = sampler.start(lambda frame: None)
        second = sampler.start(lambda frame: None)

        assert first is second
        sampler.stop()
        await sampler.join()

    @pytest.mark.asyncio
    async def test_consumer_errors_do_not_stop_loop(self, fake_stream_cls, make_blank_frame):
        stream = fake_stream_cls("cam", [make_blank_frame()])
        calls = []

        def consumer(frame):
            calls.append(frame)
            raise RuntimeError("consumer bug")

        sampler = FrameSampler(stream, fps=50)
        sampler.start(consumer)
        await wait_until(lambda: len(calls) >= 2)

        assert sampler.is_running
        sampler.stop()

    @pytest.mark.asyncio
    async def test_stream_interrupted_reported(self, fake_stream_cls, make_blank_frame):
        stream = fake_stream_cls("cam", [make_blank_frame(), StreamInterrupted("unplugged")])
        errors = []
        sampler = FrameSampler(stream, fps=50)

        sampler.start(lambda frame: None, on_error=errors.append)
        await wait_until(lambda: bool(errors))
        await sampler.join()

        assert errors[0].kind == "stream_interrupted"
        assert not sampler.is_running

    @pytest.mark.asyncio
    async def test_blocking_stream_runs_in_thread(self, fake_stream_cls, make_blank_frame):
        stream = fake_stream_cls("cam", [make_blank_frame()], blocking=True)
        received = []
        sampler = FrameSampler(stream, fps=50)

        sampler.start(received.append)
        await wait_until(lambda: len(received) >= 2)
        sampler.stop()
        await sampler.join()

        assert stream.pulls >= 2
