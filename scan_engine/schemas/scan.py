"""
==============================================================================
Scan Schemas Module
==============================================================================

Pydantic models for the values flowing through the scan pipeline.

==============================================================================
"""

import enum
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class Facing(str, enum.Enum):
    """Which way a camera points."""

    FRONT = "front"
    BACK = "back"
    UNKNOWN = "unknown"


class SessionState(str, enum.Enum):
    """States of a scan session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    DETECTED = "detected"
    ERROR = "error"
    CLOSED = "closed"


class BarcodeFormat(str, enum.Enum):
    """Symbologies the engine reports."""

    EAN_13 = "EAN_13"
    EAN_8 = "EAN_8"
    UPC_A = "UPC_A"
    UPC_E = "UPC_E"
    CODE_128 = "CODE_128"
    CODE_39 = "CODE_39"
    CODABAR = "CODABAR"
    MANUAL = "MANUAL"
    UNKNOWN = "UNKNOWN"


class CameraDevice(BaseModel):
    """
    A video input device as listed by a camera capability.

    Attributes:
        id: Capability-specific device identifier
        label: Human readable device name
        facing: Direction the camera points, when known
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Device identifier")
    label: str = Field(default="", description="Device label")
    facing: Facing = Field(default=Facing.UNKNOWN, description="Camera facing")


class CameraConstraints(BaseModel):
    """
    One rung of the constraint-relaxation ladder.

    A ``None`` field means "no preference".
    """

    model_config = ConfigDict(frozen=True)

    facing: Optional[Facing] = None
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    frame_rate: Optional[int] = Field(default=None, gt=0)

    @property
    def is_unconstrained(self) -> bool:
        return (
            self.facing is None
            and self.width is None
            and self.height is None
            and self.frame_rate is None
        )


class FrameSample(BaseModel):
    """
    Immutable snapshot of one frame from the live stream.

    ``pixels`` is a ``uint8`` array, either ``HxW`` (already luma) or
    ``HxWxC`` in OpenCV channel order (BGR / BGRA).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)
    pixels: np.ndarray
    timestamp: float = Field(default_factory=time.monotonic)

    @classmethod
    def from_array(cls, pixels: np.ndarray, timestamp: Optional[float] = None) -> "FrameSample":
        """Create a sample sized from the array shape."""
        height, width = (pixels.shape[:2] if pixels.ndim >= 2 else (0, 0))
        return cls(
            width=width,
            height=height,
            pixels=pixels,
            timestamp=time.monotonic() if timestamp is None else timestamp
        )

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class BarcodeCandidate(BaseModel):
    """Raw output of a decode attempt; not yet validated."""

    model_config = ConfigDict(frozen=True)

    text: str
    format: BarcodeFormat = BarcodeFormat.UNKNOWN
    quality: Optional[float] = None


class ValidationResult(BaseModel):
    """Outcome of candidate validation."""

    model_config = ConfigDict(frozen=True)

    accepted: bool
    code: Optional[str] = None
    reason: Optional[str] = None


class ScanResult(BaseModel):
    """
    Terminal value delivered to the caller for one accepted code.

    Attributes:
        code: The validated barcode digits
        accepted_at: Wall-clock acceptance time (UTC)
        format: Symbology reported by the decode backend
        source: "camera" or "manual"
    """

    model_config = ConfigDict(frozen=True)

    code: str
    accepted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    format: BarcodeFormat = BarcodeFormat.UNKNOWN
    source: str = "camera"

    def to_message(self) -> Dict[str, Any]:
        """Serialize for a WebSocket message."""
        return {
            "type": "result",
            "code": self.code,
            "format": self.format.value,
            "source": self.source,
            "accepted_at": self.accepted_at.isoformat()
        }
