"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Pydantic models for the scan pipeline and the service surface.

This package provides:
- Scan: Devices, constraints, frames, candidates and results
- Barcode: Validation and check-digit request/response schemas

==============================================================================
"""

from .scan import (
    BarcodeCandidate,
    BarcodeFormat,
    CameraConstraints,
    CameraDevice,
    Facing,
    FrameSample,
    ScanResult,
    SessionState,
    ValidationResult,
)
from .barcode import (
    CheckDigitRequest,
    CheckDigitResponse,
    ValidateBarcodeRequest,
    ValidateBarcodeResponse,
)

__all__ = [
    # Scan
    "BarcodeCandidate",
    "BarcodeFormat",
    "CameraConstraints",
    "CameraDevice",
    "Facing",
    "FrameSample",
    "ScanResult",
    "SessionState",
    "ValidationResult",
    # Barcode
    "CheckDigitRequest",
    "CheckDigitResponse",
    "ValidateBarcodeRequest",
    "ValidateBarcodeResponse",
]
