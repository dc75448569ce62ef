"""
==============================================================================
Core Package
==============================================================================

Error taxonomy shared by the engine and the service surface.

==============================================================================
"""

from .exceptions import (
    SURFACED_KINDS,
    AcquisitionTimeout,
    DecoderFault,
    DeviceUnsupported,
    InvalidCandidate,
    InvalidTransition,
    NoDeviceFound,
    PermissionDenied,
    ScanEngineError,
    StreamInterrupted,
    register_exception_handlers,
)

__all__ = [
    "SURFACED_KINDS",
    "AcquisitionTimeout",
    "DecoderFault",
    "DeviceUnsupported",
    "InvalidCandidate",
    "InvalidTransition",
    "NoDeviceFound",
    "PermissionDenied",
    "ScanEngineError",
    "StreamInterrupted",
    "register_exception_handlers",
]
