"""
Scan Engine Exception Handling

Single ScanEngineError base class for all engine errors, one subclass per
error kind, and FastAPI integration for the service surface.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ScanEngineError(Exception):
    """
    Unified engine exception for all error scenarios.

    Provides a consistent error format for callbacks, WebSocket messages
    and HTTP responses.

    Usage:
        raise PermissionDenied("Camera access was denied")
        raise DeviceUnsupported("Capture could not be read", {"device_id": "0"})

    Error kinds:
        Camera negotiation (surfaced to the caller):
            - permission_denied (403)
            - no_device_found (404)
            - device_unsupported (422)
            - acquisition_timeout (504)

        Session (recovered or surfaced as a session error):
            - stream_interrupted (503)
            - invalid_transition (409)

        Decoding (recovered locally):
            - invalid_candidate (422)
            - decoder_fault (500)
    """

    kind = "scan_engine_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize engine exception.

        Args:
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    @property
    def code(self) -> str:
        """Machine-readable error code (e.g. "PERMISSION_DENIED")."""
        return self.kind.upper()

    @property
    def surfaced(self) -> bool:
        """Whether this kind is reported to the caller as actionable."""
        return self.kind in SURFACED_KINDS

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON responses."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "kind": self.kind,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


class PermissionDenied(ScanEngineError):
    """Camera access refused by the host or the user."""

    kind = "permission_denied"
    status_code = 403


class NoDeviceFound(ScanEngineError):
    """No video input device is available."""

    kind = "no_device_found"
    status_code = 404


class DeviceUnsupported(ScanEngineError):
    """The device exists but cannot satisfy the request or cannot be read."""

    kind = "device_unsupported"
    status_code = 422


class AcquisitionTimeout(ScanEngineError):
    """Camera negotiation did not finish within the bounded wait."""

    kind = "acquisition_timeout"
    status_code = 504


class StreamInterrupted(ScanEngineError):
    """The live stream ended mid-session (device unplugged or revoked)."""

    kind = "stream_interrupted"
    status_code = 503


class InvalidCandidate(ScanEngineError):
    """A decoded or typed code failed the acceptance rules."""

    kind = "invalid_candidate"
    status_code = 422

    def __init__(self, code: str, reason: str):
        super().__init__(
            f"Rejected barcode candidate '{code}': {reason}",
            {"candidate": code, "reason": reason}
        )
        self.candidate = code
        self.reason = reason


class DecoderFault(ScanEngineError):
    """Unexpected exception raised inside a decode backend."""

    kind = "decoder_fault"
    status_code = 500

    def __init__(self, backend: str, error: BaseException):
        super().__init__(
            f"Decode backend '{backend}' failed: {error}",
            {"backend": backend, "error_type": type(error).__name__}
        )
        self.backend = backend
        self.error = error


class InvalidTransition(ScanEngineError):
    """A session operation was requested from a state that does not allow it."""

    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Invalid session transition: {current} -> {target}",
            {"current_state": current, "target_state": target}
        )
        self.current = current
        self.target = target


# Kinds reported to the caller with a retry / manual-entry affordance
SURFACED_KINDS = frozenset({
    PermissionDenied.kind,
    NoDeviceFound.kind,
    DeviceUnsupported.kind,
    AcquisitionTimeout.kind,
})


async def scan_engine_exception_handler(
    request: Request,
    exc: ScanEngineError
) -> JSONResponse:
    """
    FastAPI exception handler for ScanEngineError.

    Converts the error to a consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(ScanEngineError, scan_engine_exception_handler)
