"""
==============================================================================
Camera Package
==============================================================================

Camera capabilities and device negotiation.

Classes:
--------
- CameraCapability / StreamHandle: Host capability contract
- CameraSource: Constraint-relaxation ladder with bounded waits
- OpenCVCameraCapability: Local capture devices
- RemoteCameraCapability: Frames pushed by a client

==============================================================================
"""

from .capability import CameraCapability, StreamHandle
from .opencv_camera import OpenCVCameraCapability
from .remote import RemoteCameraCapability
from .source import AcquiredStream, CameraSource, choose_device

__all__ = [
    "AcquiredStream",
    "CameraCapability",
    "CameraSource",
    "OpenCVCameraCapability",
    "RemoteCameraCapability",
    "StreamHandle",
    "choose_device",
]
