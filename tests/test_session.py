"""
==============================================================================
Scan Session Tests
==============================================================================

Tests for the scan session state machine: detection, debounce, manual
entry, camera switching, failures and shutdown.

==============================================================================
"""

import asyncio
from typing import List, Tuple

import pytest

from scan_engine.camera.source import CameraSource
from scan_engine.core.exceptions import (
    InvalidTransition,
    NoDeviceFound,
    PermissionDenied,
    StreamInterrupted,
)
from scan_engine.scanner.backends import DecodeBackend, SignalBackend
from scan_engine.scanner.session import TRANSITIONS, ScanOptions, ScanSession
from scan_engine.schemas.scan import BarcodeFormat, Facing, SessionState


CODE = "4006381333931"


class Recorder:
    """Collects session callbacks."""

    def __init__(self):
        self.results: List[str] = []
        self.errors: List[Tuple[str, str]] = []

    def on_result(self, code: str) -> None:
        self.results.append(code)

    def on_error(self, kind: str, message: str) -> None:
        self.errors.append((kind, message))

    def options(self, **kwargs) -> ScanOptions:
        return ScanOptions(on_result=self.on_result, on_error=self.on_error, **kwargs)


class ExplodingBackend(DecodeBackend):
    name = "exploding"

    def decode(self, frame):
        raise RuntimeError("decoder bug")


async def wait_until(predicate, timeout: float = 3.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


# ============================================================================
# STATE MACHINE
# ============================================================================

class TestTransitions:
    """Tests for the transition table."""

    def test_closed_is_terminal(self):
        assert TRANSITIONS[SessionState.CLOSED] == frozenset()

    def test_every_live_state_can_close(self):
        for state, targets in TRANSITIONS.items():
            if state is not SessionState.CLOSED:
                assert SessionState.CLOSED in targets

    def test_scanning_cannot_go_idle_directly(self):
        assert SessionState.IDLE not in TRANSITIONS[SessionState.SCANNING]


# ============================================================================
# OPEN & DETECT
# ============================================================================

class TestOpen:
    """Tests for opening a session."""

    @pytest.mark.asyncio
    async def test_open_prefers_back_camera(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()

        assert session.state is SessionState.SCANNING
        assert session.selected_device.id == "back-cam"
        assert session.sampler.is_running
        assert capability.calls[0][0] == "back-cam"
        await session.close()

    @pytest.mark.asyncio
    async def test_open_front_when_requested(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(preferred_facing=Facing.FRONT), settings=settings)

        await session.open()

        assert session.selected_device.id == "front-cam"
        await session.close()

    @pytest.mark.asyncio
    async def test_open_twice_is_invalid(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        await session.open()

        with pytest.raises(InvalidTransition):
            await session.open()

        await session.close()

    @pytest.mark.asyncio
    async def test_accepts_camera_source(self, capability, settings):
        source = CameraSource(capability, timeout_s=1.0)
        session = ScanSession(source, settings=settings)

        await session.open()

        assert session.is_camera_live
        await session.close()
        assert not session.is_camera_live


class TestDetection:
    """Tests for the per-frame pipeline."""

    @pytest.mark.asyncio
    async def test_single_result_then_idle(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        await wait_until(lambda: session.state is SessionState.IDLE)

        assert recorder.results == [CODE]
        assert session.last_accepted_code == CODE
        assert session.last_accepted_at is not None
        assert session.last_result.format == BarcodeFormat.EAN_13
        assert session.last_result.source == "camera"
        assert session.scan_count >= 1
        assert capability.live_handles == []
        assert not session.sampler.is_running
        await session.close()

    @pytest.mark.asyncio
    async def test_ean8_detected(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_barcode_frame("96385074")])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        await wait_until(lambda: bool(recorder.results))

        assert recorder.results == ["96385074"]
        assert session.last_result.format == BarcodeFormat.EAN_8
        await session.close()

    @pytest.mark.asyncio
    async def test_blank_frames_never_emit(self, fake_capability_cls, settings, recorder, make_blank_frame):
        capability = fake_capability_cls(frames=[make_blank_frame()])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        await asyncio.sleep(0.3)

        assert recorder.results == []
        assert session.scan_count == 0
        assert session.state is SessionState.SCANNING
        await session.close()

    @pytest.mark.asyncio
    async def test_continuous_duplicates_emit_once(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        """The same code held steady within the cooldown window is reported once."""
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(continuous=True, cooldown_ms=1500), settings=settings)

        await session.open()
        await wait_until(lambda: bool(recorder.results))
        await asyncio.sleep(0.6)

        assert recorder.results == [CODE]
        assert session.is_camera_live
        await session.close()

    @pytest.mark.asyncio
    async def test_continuous_resumes_after_cooldown(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(continuous=True, cooldown_ms=100), settings=settings)

        await session.open()
        await wait_until(lambda: len(recorder.results) >= 2)

        assert recorder.results[:2] == [CODE, CODE]
        await session.close()

    @pytest.mark.asyncio
    async def test_new_code_admitted_in_continuous_mode(
        self, fake_capability_cls, settings, recorder, make_barcode_frame
    ):
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(continuous=True, cooldown_ms=50), settings=settings)

        await session.open()
        await wait_until(lambda: bool(recorder.results))

        capability.handles[-1].set_frames([make_barcode_frame("5901234123457")])
        await wait_until(lambda: "5901234123457" in recorder.results)

        assert recorder.results[0] == CODE
        await session.close()

    @pytest.mark.asyncio
    async def test_confirm_frames(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(confirm_frames=3), settings=settings)

        await session.open()
        await wait_until(lambda: bool(recorder.results))

        assert session.scan_count >= 3
        await session.close()

    @pytest.mark.asyncio
    async def test_decoder_fault_is_contained(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(
            capability,
            recorder.options(),
            settings=settings,
            backends=[ExplodingBackend(), SignalBackend()]
        )

        await session.open()
        await wait_until(lambda: bool(recorder.results))

        assert recorder.results == [CODE]
        assert recorder.errors == []
        await session.close()

    @pytest.mark.asyncio
    async def test_tone_played_on_accept(self, fake_capability_cls, settings, recorder, make_barcode_frame):
        class FakeTone:
            plays = 0

            def play(self):
                FakeTone.plays += 1
                return True

        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, recorder.options(), settings=settings, tone=FakeTone())

        await session.open()
        await wait_until(lambda: bool(recorder.results))

        assert FakeTone.plays == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_result_callback_errors_do_not_break_session(
        self, fake_capability_cls, settings, make_barcode_frame
    ):
        def on_result(code):
            raise RuntimeError("caller bug")

        capability = fake_capability_cls(frames=[make_barcode_frame(CODE)])
        session = ScanSession(capability, ScanOptions(on_result=on_result), settings=settings)

        await session.open()
        await wait_until(lambda: session.state is SessionState.IDLE)

        assert session.last_accepted_code == CODE
        await session.close()


# ============================================================================
# MANUAL ENTRY
# ============================================================================

class TestManualEntry:
    """Tests for submit_manual."""

    @pytest.mark.asyncio
    async def test_manual_accept(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(), settings=settings)
        await session.open()

        result = session.submit_manual(" 4006381333931 ")

        assert result.accepted
        assert recorder.results == [CODE]
        assert session.last_result.source == "manual"
        assert session.last_result.format == BarcodeFormat.MANUAL
        assert session.state is SessionState.IDLE
        assert capability.live_handles == []
        await session.close()

    @pytest.mark.asyncio
    async def test_manual_reject_keeps_state(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(), settings=settings)
        await session.open()

        result = session.submit_manual("4006381333932")

        assert not result.accepted
        assert result.reason == "checksum"
        assert recorder.results == []
        assert session.state is SessionState.SCANNING
        await session.close()

    def test_manual_from_idle_without_camera(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(), settings=settings)

        assert session.submit_manual("96385074").accepted
        assert recorder.results == ["96385074"]
        assert session.state is SessionState.IDLE

    def test_manual_repeat_is_not_debounced(self, capability, settings, recorder):
        session = ScanSession(capability, recorder.options(), settings=settings)

        session.submit_manual(CODE)
        session.submit_manual(CODE)

        assert recorder.results == [CODE, CODE]

    def test_manual_after_close(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        session.stop()

        with pytest.raises(InvalidTransition):
            session.submit_manual(CODE)


# ============================================================================
# CAMERA SWITCHING
# ============================================================================

class TestSwitchCamera:
    """Tests for switch_camera."""

    @pytest.mark.asyncio
    async def test_cycles_to_next_device(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        await session.open()
        first_handle = capability.handles[-1]

        await session.switch_camera()

        assert session.selected_device.id == "front-cam"
        assert first_handle.released
        assert len(capability.live_handles) == 1
        assert capability.max_live == 1
        assert session.state is SessionState.SCANNING
        await session.close()

    @pytest.mark.asyncio
    async def test_switch_to_given_device(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        await session.open()

        await session.switch_camera("back-cam")

        assert session.selected_device.id == "back-cam"
        await session.close()

    @pytest.mark.asyncio
    async def test_switch_from_idle_is_invalid(self, capability, settings):
        session = ScanSession(capability, settings=settings)

        with pytest.raises(InvalidTransition):
            await session.switch_camera()


# ============================================================================
# FAILURES
# ============================================================================

class TestFailures:
    """Tests for surfaced camera errors and recovery."""

    @pytest.mark.asyncio
    async def test_no_devices(self, fake_capability_cls, settings, recorder):
        session = ScanSession(fake_capability_cls(devices=[]), recorder.options(), settings=settings)

        await session.open()

        assert session.state is SessionState.ERROR
        assert recorder.errors[0][0] == "no_device_found"
        assert isinstance(session.last_error, NoDeviceFound)

    @pytest.mark.asyncio
    async def test_permission_denied_then_retry(self, fake_capability_cls, settings, recorder):
        capability = fake_capability_cls(errors=[PermissionDenied("Camera access denied")])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        assert session.state is SessionState.ERROR
        assert recorder.errors == [("permission_denied", "Camera access denied")]

        await session.retry()
        assert session.state is SessionState.SCANNING
        await session.close()

    @pytest.mark.asyncio
    async def test_acquisition_timeout(self, fake_capability_cls, settings, recorder):
        capability = fake_capability_cls(delay=0.2)
        source = CameraSource(capability, timeout_s=0.02)
        session = ScanSession(source, recorder.options(), settings=settings)

        await session.open()

        assert session.state is SessionState.ERROR
        assert recorder.errors[0][0] == "acquisition_timeout"

        await asyncio.sleep(0.35)
        assert capability.live_handles == []

    @pytest.mark.asyncio
    async def test_retry_only_from_error(self, capability, settings):
        session = ScanSession(capability, settings=settings)

        with pytest.raises(InvalidTransition):
            await session.retry()

    @pytest.mark.asyncio
    async def test_stream_interrupted(self, fake_capability_cls, settings, recorder, make_blank_frame):
        capability = fake_capability_cls(frames=[make_blank_frame(), StreamInterrupted("Camera unplugged")])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        await wait_until(lambda: session.state is SessionState.ERROR)

        assert recorder.errors == [("stream_interrupted", "Camera unplugged")]
        assert capability.live_handles == []
        await session.close()


# ============================================================================
# SHUTDOWN
# ============================================================================

class TestClose:
    """Tests for stop/close."""

    @pytest.mark.asyncio
    async def test_close_twice(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        await session.open()

        await session.close()
        await session.close()
        session.stop()

        assert session.state is SessionState.CLOSED
        assert capability.live_handles == []

    @pytest.mark.asyncio
    async def test_close_before_open(self, capability, settings):
        session = ScanSession(capability, settings=settings)
        await session.close()

        assert session.state is SessionState.CLOSED
        with pytest.raises(InvalidTransition):
            await session.open()

    @pytest.mark.asyncio
    async def test_close_while_open_in_flight(self, fake_capability_cls, settings, recorder):
        capability = fake_capability_cls(delay=0.1)
        session = ScanSession(capability, recorder.options(), settings=settings)

        opening = asyncio.create_task(session.open())
        await asyncio.sleep(0.02)
        session.stop()
        await opening

        assert session.state is SessionState.CLOSED
        assert session.sampler is None
        assert len(capability.handles) == 1
        assert capability.live_handles == []
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_no_results_after_close(self, fake_capability_cls, settings, recorder, make_blank_frame, make_barcode_frame):
        capability = fake_capability_cls(frames=[make_blank_frame()])
        session = ScanSession(capability, recorder.options(), settings=settings)
        await session.open()
        handle = capability.handles[-1]

        session.stop()
        handle.set_frames([make_barcode_frame(CODE)])
        await asyncio.sleep(0.2)

        assert recorder.results == []

    @pytest.mark.asyncio
    async def test_async_context_manager(self, capability, settings):
        async with ScanSession(capability, settings=settings) as session:
            await session.open()
            assert session.state is SessionState.SCANNING

        assert session.state is SessionState.CLOSED
        assert capability.live_handles == []


class TestReset:
    """Tests for leaving ERROR without retrying."""

    @pytest.mark.asyncio
    async def test_error_reset_then_open(self, fake_capability_cls, settings, recorder):
        capability = fake_capability_cls(errors=[PermissionDenied("denied")])
        session = ScanSession(capability, recorder.options(), settings=settings)

        await session.open()
        session.reset()

        assert session.state is SessionState.IDLE
        assert session.last_error is None

        await session.open()
        assert session.state is SessionState.SCANNING
        await session.close()

    def test_reset_outside_error(self, capability, settings):
        with pytest.raises(InvalidTransition):
            ScanSession(capability, settings=settings).reset()
