"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides settings, fake camera, synthetic frame, and client fixtures.

==============================================================================
"""

import asyncio
from typing import Callable, Dict, Generator, List, Optional, Sequence

import numpy as np
import pytest
from fastapi.testclient import TestClient

from scan_engine.camera.capability import CameraCapability, StreamHandle
from scan_engine.config import Settings, get_settings
from scan_engine.core.exceptions import NoDeviceFound
from scan_engine.main import app
from scan_engine.scanner.ean import encode_ean8, encode_ean13
from scan_engine.schemas.scan import CameraConstraints, CameraDevice, Facing, FrameSample


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Fast, quiet settings: EAN backend only, no tone, 15 fps."""
    return Settings(
        _env_file=None,
        backends="ean",
        tone_enabled=False,
        sample_fps=15,
    )


# ============================================================================
# SYNTHETIC FRAMES
# ============================================================================

FRAME_WIDTH = 400
FRAME_HEIGHT = 60
MODULE_PX = 3
BARCODE_X = 60


def render_modules(
    modules: np.ndarray,
    width: int = FRAME_WIDTH,
    height: int = FRAME_HEIGHT,
    module_px: int = MODULE_PX,
    x: int = BARCODE_X
) -> np.ndarray:
    """Draw a module signal as black bars on white, BGR uint8."""
    pixels = np.full((height, width, 3), 255, dtype=np.uint8)
    row = np.repeat(modules, module_px)
    dark = np.flatnonzero(row) + x
    pixels[:, dark] = 0
    return pixels


def barcode_frame(code: str) -> FrameSample:
    """Frame showing an EAN-13 or EAN-8 barcode across the center."""
    modules = encode_ean13(code) if len(code) == 13 else encode_ean8(code)
    return FrameSample.from_array(render_modules(modules))


def blank_frame() -> FrameSample:
    """Plain white frame."""
    return FrameSample.from_array(np.full((FRAME_HEIGHT, FRAME_WIDTH, 3), 255, dtype=np.uint8))


@pytest.fixture
def make_barcode_frame() -> Callable[[str], FrameSample]:
    return barcode_frame


@pytest.fixture
def make_blank_frame() -> Callable[[], FrameSample]:
    return blank_frame


# ============================================================================
# FAKE CAMERA
# ============================================================================

class FakeStream(StreamHandle):
    """
    In-memory stream.

    Frames are served in order; the last one repeats. An exception in the
    frame list is raised instead of returned.
    """

    def __init__(self, device_id: str, frames: Sequence = (), blocking: bool = False):
        self._device_id = device_id
        self._frames: List = list(frames)
        self.blocking = blocking
        self.released = False
        self.pulls = 0

    @property
    def device_id(self) -> str:
        return self._device_id

    def set_frames(self, frames: Sequence) -> None:
        self._frames = list(frames)

    def pull_frame(self) -> Optional[FrameSample]:
        if self.released:
            return None

        self.pulls += 1
        if not self._frames:
            return None

        item = self._frames.pop(0) if len(self._frames) > 1 else self._frames[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def release(self) -> None:
        self.released = True


class FakeCapability(CameraCapability):
    """
    Scriptable camera capability.

    Attributes:
        devices: Devices returned by enumeration
        frames: Frames given to every new stream
        errors: Exceptions raised by successive acquire calls (None = succeed)
        delay: Seconds each acquire takes
        calls: (device_id, constraints) per acquire call
        handles: Every stream handed out
    """

    def __init__(
        self,
        devices: Optional[List[CameraDevice]] = None,
        frames: Sequence = (),
        errors: Sequence = (),
        delay: float = 0.0
    ):
        self.devices = devices if devices is not None else [
            CameraDevice(id="front-cam", label="Front Camera", facing=Facing.FRONT),
            CameraDevice(id="back-cam", label="Back Camera", facing=Facing.BACK),
        ]
        self.frames = list(frames)
        self.errors = list(errors)
        self.delay = delay
        self.calls: List = []
        self.handles: List[FakeStream] = []
        self.max_live = 0

    @property
    def live_handles(self) -> List[FakeStream]:
        return [handle for handle in self.handles if not handle.released]

    async def enumerate_devices(self) -> List[CameraDevice]:
        return list(self.devices)

    async def acquire(self, device_id: Optional[str], constraints: CameraConstraints) -> StreamHandle:
        self.calls.append((device_id, constraints))

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error

        if device_id is None:
            if not self.devices:
                raise NoDeviceFound("No fake devices")
            device_id = self.devices[0].id

        handle = FakeStream(device_id, self.frames)
        self.handles.append(handle)
        self.max_live = max(self.max_live, len(self.live_handles))
        return handle


@pytest.fixture
def capability() -> FakeCapability:
    """Two fake cameras (front and back), no frames yet."""
    return FakeCapability()


@pytest.fixture
def fake_capability_cls():
    return FakeCapability


@pytest.fixture
def fake_stream_cls():
    return FakeStream


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """Create test client with settings override."""
    app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def ean13_codes() -> Dict[str, str]:
    """Known EAN-13 vectors."""
    return {
        "valid": "4006381333931",
        "bad_checksum": "4006381333932",
        "other_valid": "5901234123457",
    }
