"""
==============================================================================
Camera Source Module
==============================================================================

Device negotiation on top of a ``CameraCapability``.

Constraint-relaxation ladder:
----------------------------
1. Ideal resolution and frame rate with explicit facing / device
2. Facing / device only
3. Any video device

Each rung is bounded by ``acquire_timeout_s``. A stalled negotiation fails
with AcquisitionTimeout instead of blocking the session forever; a
capture that opens after its rung timed out is released as soon as it
arrives.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, NamedTuple, Optional

from scan_engine.core.exceptions import (
    AcquisitionTimeout,
    DeviceUnsupported,
    NoDeviceFound,
    PermissionDenied,
    ScanEngineError,
)
from scan_engine.schemas.scan import CameraConstraints, CameraDevice, Facing

from .capability import CameraCapability, StreamHandle


# Module logger
logger = logging.getLogger(__name__)


DEFAULT_ACQUIRE_TIMEOUT_S = 10.0

BACK_LABEL_HINTS = ("back", "rear", "environment")
FRONT_LABEL_HINTS = ("front", "user", "face")


class AcquiredStream(NamedTuple):
    """A live stream plus the device it resolved to."""

    handle: StreamHandle
    device_id: str


def choose_device(
    devices: List[CameraDevice],
    facing: Facing = Facing.BACK
) -> Optional[CameraDevice]:
    """
    Pick the preferred device for a facing.

    Order: explicit facing match, then label hint ("back", "rear", ...),
    then the first listed device.

    Args:
        devices: Enumerated devices
        facing: Preferred facing

    Returns:
        Chosen device, or None if the list is empty
    """
    if not devices:
        return None

    if facing is not Facing.UNKNOWN:
        for device in devices:
            if device.facing is facing:
                return device

        hints = BACK_LABEL_HINTS if facing is Facing.BACK else FRONT_LABEL_HINTS
        for device in devices:
            label = device.label.lower()
            if any(hint in label for hint in hints):
                return device

    return devices[0]


class CameraSource:
    """
    Negotiates and owns at most one live stream.

    Attributes:
        capability: Host camera capability
        timeout_s: Bound on each ladder rung

    Example:
        >>> source = CameraSource(capability)
        >>> stream = await source.acquire(facing=Facing.BACK)
        >>> source.release()
    """

    def __init__(
        self,
        capability: CameraCapability,
        timeout_s: float = DEFAULT_ACQUIRE_TIMEOUT_S,
        ideal_width: int = 1280,
        ideal_height: int = 720,
        ideal_frame_rate: int = 30
    ) -> None:
        self.capability = capability
        self.timeout_s = timeout_s
        self._ideal = (ideal_width, ideal_height, ideal_frame_rate)
        self._stream: Optional[AcquiredStream] = None

    @property
    def stream(self) -> Optional[AcquiredStream]:
        """Currently held stream, if any."""
        return self._stream

    @property
    def is_acquired(self) -> bool:
        return self._stream is not None

    async def enumerate(self) -> List[CameraDevice]:
        """List devices through the capability."""
        devices = await self.capability.enumerate_devices()
        logger.info(f"📷 {len(devices)} camera(s) found")
        return devices

    def ladder(self, facing: Optional[Facing]) -> List[CameraConstraints]:
        """Constraint rungs from strictest to loosest."""
        width, height, frame_rate = self._ideal
        facing = None if facing is Facing.UNKNOWN else facing

        return [
            CameraConstraints(
                facing=facing, width=width, height=height, frame_rate=frame_rate
            ),
            CameraConstraints(facing=facing),
            CameraConstraints(),
        ]

    async def acquire(
        self,
        device_id: Optional[str] = None,
        facing: Facing = Facing.BACK
    ) -> AcquiredStream:
        """
        Open a stream, relaxing constraints until one rung succeeds.

        Any stream already held is released first.

        Args:
            device_id: Specific device, or None
            facing: Preferred facing

        Returns:
            AcquiredStream for the opened device

        Raises:
            PermissionDenied: Immediately; relaxing constraints cannot help
            NoDeviceFound: If every rung reported no device
            DeviceUnsupported / AcquisitionTimeout: Last device failure of the ladder
        """
        self.release()

        device_error: Optional[ScanEngineError] = None

        for rung, constraints in enumerate(self.ladder(facing), start=1):
            target = device_id if rung < 3 else None
            try:
                handle = await self._attempt(target, constraints)
            except PermissionDenied:
                logger.error("🚫 Camera permission denied")
                raise
            except NoDeviceFound as e:
                logger.warning(f"Rung {rung}: no device ({e.message})")
                continue
            except ScanEngineError as e:
                logger.warning(f"Rung {rung} failed: {e.kind} ({e.message})")
                device_error = e
                continue
            except Exception as e:
                logger.warning(f"Rung {rung} failed unexpectedly: {e}")
                device_error = DeviceUnsupported(str(e), {"device_id": target})
                continue

            self._stream = AcquiredStream(handle, handle.device_id)
            logger.info(f"✅ Camera acquired: {handle.device_id} (rung {rung})")
            return self._stream

        if device_error is not None:
            raise device_error
        raise NoDeviceFound("No video input device available")

    async def _attempt(
        self,
        device_id: Optional[str],
        constraints: CameraConstraints
    ) -> StreamHandle:
        task = asyncio.ensure_future(self.capability.acquire(device_id, constraints))

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            task.add_done_callback(_release_late_handle)
            raise AcquisitionTimeout(
                f"Camera did not respond within {self.timeout_s:g}s",
                {"device_id": device_id, "constraints": constraints.model_dump(mode="json")}
            )
        except asyncio.CancelledError:
            task.add_done_callback(_release_late_handle)
            raise

    def release(self) -> None:
        """Release the held stream. Safe to call any number of times."""
        stream, self._stream = self._stream, None
        if stream is None:
            return

        try:
            stream.handle.release()
            logger.info(f"📷 Camera released: {stream.device_id}")
        except Exception as e:
            logger.error(f"Camera release error: {e}")


def _release_late_handle(task: "asyncio.Future[StreamHandle]") -> None:
    """Release a stream that opened after its caller gave up on it."""
    if task.cancelled() or task.exception() is not None:
        return

    handle = task.result()
    logger.warning(f"Releasing late camera handle: {handle.device_id}")
    handle.release()
