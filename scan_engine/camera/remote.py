"""
Camera capability fed by a remote client.

The client (browser over WebSocket) owns the physical camera; it declares
its devices once and then pushes frames. Only the newest frame is kept, so
a slow decode loop never builds a backlog.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from scan_engine.core.exceptions import NoDeviceFound, StreamInterrupted
from scan_engine.schemas.scan import CameraConstraints, CameraDevice, FrameSample

from .capability import CameraCapability, StreamHandle


logger = logging.getLogger(__name__)

DEFAULT_REMOTE_DEVICE = CameraDevice(id="remote", label="Remote camera")


class RemoteStreamHandle(StreamHandle):
    """Single-slot frame buffer for one remote device."""

    def __init__(self, capability: "RemoteCameraCapability", device_id: str) -> None:
        self._capability = capability
        self._device_id = device_id
        self._released = False

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def released(self) -> bool:
        return self._released

    def pull_frame(self) -> Optional[FrameSample]:
        if self._released:
            return None
        return self._capability._take_frame()

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._capability._detach(self)


class RemoteCameraCapability(CameraCapability):
    """
    Capability whose frames arrive through ``push_frame``.

    Example:
        >>> capability = RemoteCameraCapability([CameraDevice(id="cam-1", label="Back")])
        >>> capability.push_frame(FrameSample.from_array(pixels))
    """

    def __init__(self, devices: Optional[List[CameraDevice]] = None) -> None:
        self._devices = list(devices) if devices else [DEFAULT_REMOTE_DEVICE]
        self._lock = threading.Lock()
        self._frame: Optional[FrameSample] = None
        self._handle: Optional[RemoteStreamHandle] = None
        self._interrupted: Optional[str] = None

    @property
    def active_handle(self) -> Optional[RemoteStreamHandle]:
        return self._handle

    async def enumerate_devices(self) -> List[CameraDevice]:
        return list(self._devices)

    async def acquire(
        self,
        device_id: Optional[str],
        constraints: CameraConstraints
    ) -> StreamHandle:
        if device_id is None:
            device_id = self._devices[0].id
        elif all(device.id != device_id for device in self._devices):
            raise NoDeviceFound(
                f"Remote device '{device_id}' was not declared",
                {"device_id": device_id}
            )

        with self._lock:
            if self._handle is not None:
                self._handle._released = True
            self._frame = None
            self._interrupted = None
            self._handle = RemoteStreamHandle(self, device_id)
            return self._handle

    def push_frame(self, frame: FrameSample) -> bool:
        """
        Offer a frame; replaces any frame not yet pulled.

        Returns:
            False if no stream is open to receive it
        """
        with self._lock:
            if self._handle is None:
                return False
            self._frame = frame
            return True

    def interrupt(self, reason: str = "Remote camera stopped") -> None:
        """Mark the stream as lost; the next pull raises StreamInterrupted."""
        with self._lock:
            self._interrupted = reason

    def _take_frame(self) -> Optional[FrameSample]:
        with self._lock:
            if self._interrupted is not None:
                reason, self._interrupted = self._interrupted, None
                raise StreamInterrupted(reason)
            frame, self._frame = self._frame, None
            return frame

    def _detach(self, handle: RemoteStreamHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None
                self._frame = None
