"""
==============================================================================
Camera Capability Contract
==============================================================================

The engine never talks to camera hardware directly. It is handed a
``CameraCapability`` that can list devices and open a ``StreamHandle``.

Implementations:
---------------
- OpenCVCameraCapability: local capture devices through OpenCV
- RemoteCameraCapability: frames pushed by a client (WebSocket)

==============================================================================
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from scan_engine.schemas.scan import CameraConstraints, CameraDevice, FrameSample


class StreamHandle(ABC):
    """
    A live, exclusively owned video stream.

    ``blocking`` tells the sampler whether ``pull_frame`` waits on hardware
    and must run off the event loop.
    """

    blocking: bool = False

    @property
    @abstractmethod
    def device_id(self) -> str:
        """Identifier of the device this stream was opened on."""

    @abstractmethod
    def pull_frame(self) -> Optional[FrameSample]:
        """
        Return the next frame, or None while no frame is ready.

        Raises:
            StreamInterrupted: If the stream ended and will not recover
        """

    @abstractmethod
    def release(self) -> None:
        """Release the device. Must be idempotent."""


class CameraCapability(ABC):
    """Host capability for discovering and opening cameras."""

    @abstractmethod
    async def enumerate_devices(self) -> List[CameraDevice]:
        """List available video input devices."""

    @abstractmethod
    async def acquire(
        self,
        device_id: Optional[str],
        constraints: CameraConstraints
    ) -> StreamHandle:
        """
        Open a stream.

        Args:
            device_id: Specific device, or None for any matching device
            constraints: Requested facing / resolution / frame rate

        Raises:
            PermissionDenied: Access refused
            NoDeviceFound: No usable device
            DeviceUnsupported: Constraints not satisfiable or device unreadable
        """
