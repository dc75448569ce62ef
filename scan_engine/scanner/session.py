"""
==============================================================================
Scan Session Module
==============================================================================

One scanner lifecycle as an explicit state machine.

States:
-------
    IDLE -> INITIALIZING -> SCANNING -> DETECTED -> IDLE
                                     -> ERROR -> INITIALIZING (retry)
    any live state -> CLOSED (terminal)

Every state change goes through ``_transition``; the allowed moves are
listed in ``TRANSITIONS``.

Per-frame pipeline (sequential, one frame at a time):
----------------------------------------------------
    frame -> decode backends (first candidate wins)
          -> CandidateValidator
          -> consecutive-read confirmation
          -> DebounceGate
          -> DETECTED: tone, on_result(code) exactly once

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from scan_engine.camera.capability import CameraCapability
from scan_engine.camera.source import CameraSource, choose_device
from scan_engine.config import Settings, get_settings
from scan_engine.core.exceptions import (
    DecoderFault,
    InvalidTransition,
    NoDeviceFound,
    ScanEngineError,
    StreamInterrupted,
)
from scan_engine.schemas.scan import (
    BarcodeCandidate,
    BarcodeFormat,
    CameraDevice,
    Facing,
    FrameSample,
    ScanResult,
    SessionState,
    ValidationResult,
)

from .backends import DecodeBackend, build_backends
from .debounce import DebounceGate
from .sampler import FrameSampler
from .signal import SignalExtractor
from .tone import ConfirmationTone
from .validator import CandidateValidator


# Module logger
logger = logging.getLogger(__name__)


S = SessionState

TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    S.IDLE: frozenset({S.INITIALIZING, S.DETECTED, S.CLOSED}),
    S.INITIALIZING: frozenset({S.INITIALIZING, S.SCANNING, S.ERROR, S.DETECTED, S.CLOSED}),
    S.SCANNING: frozenset({S.INITIALIZING, S.DETECTED, S.ERROR, S.CLOSED}),
    S.DETECTED: frozenset({S.DETECTED, S.IDLE, S.SCANNING, S.ERROR, S.CLOSED}),
    S.ERROR: frozenset({S.INITIALIZING, S.IDLE, S.DETECTED, S.CLOSED}),
    S.CLOSED: frozenset(),
}

ResultCallback = Callable[[str], Any]
ErrorCallback = Callable[[str, str], Any]


class ScanOptions(BaseModel):
    """
    Caller options for one session.

    ``None`` numeric fields fall back to the engine settings.

    Attributes:
        preferred_facing: Camera facing to try first
        cooldown_ms: Duplicate suppression window
        continuous: Resume scanning after a detection instead of closing
        confirm_frames: Consecutive identical reads required
        on_result: Called with the accepted code
        on_error: Called with (kind, message) for surfaced errors
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    preferred_facing: Facing = Facing.BACK
    cooldown_ms: Optional[int] = Field(default=None, ge=0)
    continuous: Optional[bool] = None
    confirm_frames: Optional[int] = Field(default=None, ge=1)
    on_result: Optional[ResultCallback] = None
    on_error: Optional[ErrorCallback] = None


class ScanSession:
    """
    Orchestrates camera, sampler, decoders, validator and debounce.

    Attributes:
        state: Current SessionState
        selected_device: Device currently in use
        scan_count: Number of candidates evaluated so far
        last_result: Last accepted ScanResult (code and time together)

    Example:
        >>> session = ScanSession(capability, ScanOptions(on_result=print))
        >>> await session.open()
        >>> # ... a barcode is held in front of the camera ...
        >>> await session.close()
    """

    def __init__(
        self,
        camera: Union[CameraCapability, CameraSource],
        options: Optional[ScanOptions] = None,
        settings: Optional[Settings] = None,
        backends: Optional[Sequence[DecodeBackend]] = None,
        tone: Optional[ConfirmationTone] = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._settings = settings or get_settings()
        self._options = options or ScanOptions()

        if isinstance(camera, CameraSource):
            self._source = camera
        else:
            self._source = CameraSource(
                camera,
                timeout_s=self._settings.acquire_timeout_s,
                ideal_width=self._settings.ideal_width,
                ideal_height=self._settings.ideal_height,
                ideal_frame_rate=self._settings.ideal_frame_rate,
            )

        if backends is None:
            extractor = SignalExtractor(
                threshold=self._settings.luma_threshold,
                window=(self._settings.window_start, self._settings.window_end),
                rows=self._settings.scan_row_list,
            )
            backends = build_backends(
                self._settings.backend_list, extractor, self._settings.quality_gate
            )
        self._backends: List[DecodeBackend] = list(backends)

        if tone is None and self._settings.tone_enabled:
            tone = ConfirmationTone(
                self._settings.tone_frequency_hz, self._settings.tone_duration_ms
            )
        self._tone = tone

        self._clock = clock
        self._validator = CandidateValidator()
        self._gate = DebounceGate(self.cooldown_ms)

        self._state = S.IDLE
        self._devices: Optional[List[CameraDevice]] = None
        self._selected_device: Optional[CameraDevice] = None
        self._sampler: Optional[FrameSampler] = None
        self._acquire_lock = asyncio.Lock()
        self._generation = 0
        self._resume_handle: Optional[asyncio.TimerHandle] = None

        self._streak_code: Optional[str] = None
        self._streak = 0

        self.scan_count = 0
        self.last_result: Optional[ScanResult] = None
        self.last_error: Optional[ScanEngineError] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def selected_device(self) -> Optional[CameraDevice]:
        return self._selected_device

    @property
    def devices(self) -> List[CameraDevice]:
        return list(self._devices or [])

    @property
    def last_accepted_code(self) -> Optional[str]:
        return self.last_result.code if self.last_result else None

    @property
    def last_accepted_at(self):
        return self.last_result.accepted_at if self.last_result else None

    @property
    def cooldown_ms(self) -> int:
        if self._options.cooldown_ms is not None:
            return self._options.cooldown_ms
        return self._settings.cooldown_ms

    @property
    def continuous(self) -> bool:
        if self._options.continuous is not None:
            return self._options.continuous
        return self._settings.continuous

    @property
    def confirm_frames(self) -> int:
        return self._options.confirm_frames or self._settings.confirm_frames

    @property
    def is_camera_live(self) -> bool:
        return self._source.is_acquired

    @property
    def sampler(self) -> Optional[FrameSampler]:
        return self._sampler

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _transition(self, target: SessionState) -> None:
        """Single mutation point for the session state."""
        if target not in TRANSITIONS[self._state]:
            raise InvalidTransition(self._state.value, target.value)

        if target is not self._state:
            logger.debug(f"Session state: {self._state.value} -> {target.value}")
        self._state = target

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def open(self) -> None:
        """
        Start scanning: enumerate devices, acquire a camera, start sampling.

        Acquisition failures move the session to ERROR and are reported
        through ``on_error``; they are not raised.

        Raises:
            InvalidTransition: If the session is not IDLE
        """
        if self._state is not S.IDLE:
            raise InvalidTransition(self._state.value, S.INITIALIZING.value)

        self._transition(S.INITIALIZING)
        await self._initialize(None)

    async def retry(self) -> None:
        """Re-enter INITIALIZING from ERROR with the same device."""
        if self._state is not S.ERROR:
            raise InvalidTransition(self._state.value, S.INITIALIZING.value)

        self._transition(S.INITIALIZING)
        device_id = self._selected_device.id if self._selected_device else None
        await self._initialize(device_id)

    def reset(self) -> None:
        """Leave ERROR for IDLE so the session can be opened again."""
        if self._state is not S.ERROR:
            raise InvalidTransition(self._state.value, S.IDLE.value)

        self.last_error = None
        self._transition(S.IDLE)

    async def switch_camera(self, device_id: Optional[str] = None) -> None:
        """
        Move to another camera.

        The current sampler and stream are torn down before the new device
        is acquired. Without ``device_id`` the next enumerated device is used.
        """
        if self._state not in (S.SCANNING, S.INITIALIZING, S.ERROR):
            raise InvalidTransition(self._state.value, S.INITIALIZING.value)

        self._teardown()
        self._transition(S.INITIALIZING)

        if device_id is None:
            device_id = self._next_device_id()

        logger.info(f"🔁 Switching camera to {device_id or 'default'}")
        await self._initialize(device_id)

    def stop(self) -> None:
        """
        Close synchronously: cancel the loop, release the camera.

        Idempotent; safe in every state, including while ``open`` is
        still negotiating the camera.
        """
        if self._state is S.CLOSED:
            return

        self._teardown()
        self._transition(S.CLOSED)
        logger.info("✅ Scan session closed")

    async def close(self) -> None:
        """Close and wait for the sampling task to wind down."""
        sampler = self._sampler
        self.stop()
        if sampler is not None:
            await sampler.join()

    async def __aenter__(self) -> "ScanSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # MANUAL ENTRY
    # =========================================================================

    def submit_manual(self, text: str) -> ValidationResult:
        """
        Accept typed text as a scan, bypassing extraction and decoding.

        The text still goes through the validator. Accepted text is
        delivered like a camera detection; rejected text changes nothing.

        Raises:
            InvalidTransition: If the session is closed
        """
        if self._state is S.CLOSED:
            raise InvalidTransition(self._state.value, S.DETECTED.value)

        result = self._validator.validate(text)
        if not result.accepted:
            logger.info(f"Manual entry rejected ({result.reason}): {text!r}")
            return result

        self._accept(result.code, BarcodeFormat.MANUAL, source="manual")
        return result

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _initialize(self, device_id: Optional[str]) -> None:
        self._generation += 1
        generation = self._generation

        async with self._acquire_lock:
            if self._stale(generation):
                return

            try:
                devices = await self._enumerate()
                if not devices:
                    raise NoDeviceFound("No camera available")

                if device_id is None:
                    device = choose_device(devices, self._options.preferred_facing)
                    device_id = device.id if device else None

                acquired = await self._source.acquire(device_id, self._options.preferred_facing)

            except ScanEngineError as e:
                if not self._stale(generation):
                    self._fail(e)
                return

            if self._stale(generation):
                # Closed or superseded while negotiating
                self._source.release()
                return

            self._selected_device = self._find_device(acquired.device_id)
            self._reset_streak()
            self._transition(S.SCANNING)

            self._sampler = FrameSampler(acquired.handle, fps=self._settings.sample_fps)
            self._sampler.start(self._handle_frame, on_error=self._on_stream_error)

            logger.info(f"🔍 Scanning on {self._selected_device.label or acquired.device_id}")

    async def _enumerate(self) -> List[CameraDevice]:
        if self._devices is None:
            self._devices = await self._source.enumerate()
        return self._devices

    def _stale(self, generation: int) -> bool:
        return generation != self._generation or self._state is S.CLOSED

    def _find_device(self, device_id: str) -> CameraDevice:
        for device in self._devices or []:
            if device.id == device_id:
                return device
        return CameraDevice(id=device_id, label=device_id)

    def _next_device_id(self) -> Optional[str]:
        devices = self._devices or []
        if not devices:
            return None
        if self._selected_device is None:
            return devices[0].id

        ids = [device.id for device in devices]
        try:
            index = ids.index(self._selected_device.id)
        except ValueError:
            return ids[0]
        return ids[(index + 1) % len(ids)]

    def _teardown(self) -> None:
        """Cancel pending work and release the camera."""
        self._generation += 1

        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

        if self._sampler is not None:
            self._sampler.stop()

        self._source.release()

    def _fail(self, error: ScanEngineError) -> None:
        self._teardown()
        self.last_error = error
        self._transition(S.ERROR)
        logger.error(f"❌ Scan session error: {error.kind}: {error.message}")
        self._notify_error(error)

    def _notify_error(self, error: ScanEngineError) -> None:
        if self._options.on_error is None:
            return
        try:
            self._options.on_error(error.kind, error.message)
        except Exception as e:
            logger.error(f"on_error callback failed: {e}", exc_info=True)

    def _on_stream_error(self, error: StreamInterrupted) -> None:
        if self._state in (S.SCANNING, S.DETECTED):
            self._fail(error)

    # -------------------------------------------------------------------------
    # Frame pipeline
    # -------------------------------------------------------------------------

    def _handle_frame(self, frame: FrameSample) -> None:
        """Run one frame through the pipeline. Never raises."""
        if self._state is not S.SCANNING:
            return

        try:
            candidate = self._decode(frame)
            if candidate is None:
                return

            self.scan_count += 1

            result = self._validator.validate(candidate.text)
            if not result.accepted:
                logger.debug(
                    f"Invalid candidate from {candidate.format.value}: "
                    f"{candidate.text!r} ({result.reason})"
                )
                self._reset_streak()
                return

            if not self._confirm(result.code):
                return

            if not self._gate.admit(result.code, self._clock() * 1000.0):
                return

            self._accept(result.code, candidate.format, source="camera")

        except Exception as e:
            logger.error(f"Frame pipeline error: {e}", exc_info=True)

    def _decode(self, frame: FrameSample) -> Optional[BarcodeCandidate]:
        for backend in self._backends:
            try:
                candidate = backend.decode(frame)
            except Exception as e:
                fault = DecoderFault(backend.name, e)
                logger.warning(fault.message)
                continue

            if candidate is not None:
                return candidate

        return None

    def _confirm(self, code: str) -> bool:
        if code == self._streak_code:
            self._streak += 1
        else:
            self._streak_code = code
            self._streak = 1
        return self._streak >= self.confirm_frames

    def _reset_streak(self) -> None:
        self._streak_code = None
        self._streak = 0

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def _accept(self, code: str, barcode_format: BarcodeFormat, source: str) -> None:
        self._transition(S.DETECTED)
        self._reset_streak()

        self.last_result = ScanResult(code=code, format=barcode_format, source=source)
        logger.info(f"✅ Barcode accepted ({source}): {code}")

        if self._tone is not None:
            try:
                self._tone.play()
            except Exception as e:
                logger.debug(f"Tone error: {e}")

        if self._options.on_result is not None:
            try:
                self._options.on_result(code)
            except Exception as e:
                logger.error(f"on_result callback failed: {e}", exc_info=True)

        self._finish_detection()

    def _finish_detection(self) -> None:
        if self._state is not S.DETECTED:
            # The result callback closed or switched the session
            return

        if self.continuous and self._sampler is not None and self._sampler.is_running:
            if self._resume_handle is not None:
                self._resume_handle.cancel()
            loop = asyncio.get_running_loop()
            self._resume_handle = loop.call_later(self.cooldown_ms / 1000.0, self._resume)
            return

        self._teardown()
        self._transition(S.IDLE)

    def _resume(self) -> None:
        self._resume_handle = None
        if self._state is S.DETECTED:
            self._transition(S.SCANNING)
            logger.debug("Cooldown over; scanning resumed")
