"""
==============================================================================
OpenCV Camera Capability
==============================================================================

Local capture devices through ``cv2.VideoCapture``.

Device ids are the capture indices as strings ("0", "1", ...). Labels are
read from ``/sys/class/video4linux`` when available.

Failure mapping:
---------------
- Device node not accessible          -> PermissionDenied
- No index opens                       -> NoDeviceFound
- Opens but the first read fails       -> DeviceUnsupported
- Repeated read failures mid-stream    -> StreamInterrupted

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

import cv2

from scan_engine.core.exceptions import (
    DeviceUnsupported,
    NoDeviceFound,
    PermissionDenied,
    StreamInterrupted,
)
from scan_engine.schemas.scan import CameraConstraints, CameraDevice, FrameSample

from .capability import CameraCapability, StreamHandle


# Module logger
logger = logging.getLogger(__name__)


SYSFS_VIDEO = Path("/sys/class/video4linux")
DEV_DIR = Path("/dev")

# Consecutive failed reads tolerated before the stream counts as lost
MAX_READ_FAILURES = 5


def _device_label(index: int) -> str:
    name_file = SYSFS_VIDEO / f"video{index}" / "name"
    try:
        return name_file.read_text(encoding="utf-8").strip()
    except OSError:
        return f"Camera {index}"


def _check_access(index: int) -> None:
    node = DEV_DIR / f"video{index}"
    if node.exists() and not os.access(node, os.R_OK | os.W_OK):
        raise PermissionDenied(
            f"No permission to open {node}",
            {"device_id": str(index)}
        )


class OpenCVStreamHandle(StreamHandle):
    """
    Stream over an opened ``cv2.VideoCapture``.

    Reads and release share one lock, so a release never runs while a
    worker thread is inside ``read()``.
    """

    blocking = True

    def __init__(self, capture: "cv2.VideoCapture", device_id: str) -> None:
        self._capture = capture
        self._device_id = device_id
        self._lock = threading.Lock()
        self._released = False
        self._failures = 0

    @property
    def device_id(self) -> str:
        return self._device_id

    def pull_frame(self) -> Optional[FrameSample]:
        with self._lock:
            if self._released:
                return None

            ok, frame = self._capture.read()

        if not ok or frame is None:
            self._failures += 1
            logger.warning(
                f"Frame read failed on camera {self._device_id} "
                f"({self._failures}/{MAX_READ_FAILURES})"
            )
            if self._failures >= MAX_READ_FAILURES:
                raise StreamInterrupted(
                    f"Camera {self._device_id} stopped delivering frames",
                    {"device_id": self._device_id}
                )
            return None

        self._failures = 0
        return FrameSample.from_array(frame)

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            self._capture.release()


class OpenCVCameraCapability(CameraCapability):
    """
    Camera capability backed by OpenCV capture indices.

    Example:
        >>> capability = OpenCVCameraCapability(max_devices=4)
        >>> devices = await capability.enumerate_devices()
    """

    def __init__(self, max_devices: int = 4) -> None:
        self.max_devices = max_devices

    async def enumerate_devices(self) -> List[CameraDevice]:
        return await asyncio.to_thread(self._probe_devices)

    def _probe_devices(self) -> List[CameraDevice]:
        devices = []

        for index in range(self.max_devices):
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    devices.append(CameraDevice(id=str(index), label=_device_label(index)))
            finally:
                capture.release()

        logger.debug(f"Probed {self.max_devices} capture indices, {len(devices)} open")
        return devices

    async def acquire(
        self,
        device_id: Optional[str],
        constraints: CameraConstraints
    ) -> StreamHandle:
        return await asyncio.to_thread(self._open, device_id, constraints)

    def _open(
        self,
        device_id: Optional[str],
        constraints: CameraConstraints
    ) -> StreamHandle:
        indices = [int(device_id)] if device_id is not None else list(range(self.max_devices))

        for index in indices:
            _check_access(index)

            capture = cv2.VideoCapture(index)
            if not capture.isOpened():
                capture.release()
                continue

            self._apply_constraints(capture, constraints)

            ok, _ = capture.read()
            if not ok:
                capture.release()
                raise DeviceUnsupported(
                    f"Camera {index} opened but delivered no frame",
                    {"device_id": str(index)}
                )

            return OpenCVStreamHandle(capture, str(index))

        raise NoDeviceFound(
            "No capture device could be opened",
            {"device_id": device_id}
        )

    @staticmethod
    def _apply_constraints(capture: "cv2.VideoCapture", constraints: CameraConstraints) -> None:
        # Keep only the newest frame buffered
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        if constraints.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        if constraints.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        if constraints.frame_rate:
            capture.set(cv2.CAP_PROP_FPS, constraints.frame_rate)
