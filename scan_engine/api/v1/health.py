"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter, Depends

from scan_engine.config import Settings, get_settings
from scan_engine.scanner.backends import build_backends
from scan_engine.scanner.tone import ConfirmationTone


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def check_decoders(self) -> dict:
        """Report which configured decode backends can run here."""
        active = [backend.name for backend in build_backends(self._settings.backend_list)]
        return {
            "status": "healthy" if active else "unhealthy",
            "configured": self._settings.backend_list,
            "active": active
        }

    def check_audio(self) -> str:
        """Check confirmation tone output."""
        if not self._settings.tone_enabled:
            return "disabled"
        return "healthy" if ConfirmationTone().available else "unavailable"

    def get_health(self) -> dict:
        """Get full health status."""
        decoders = self.check_decoders()
        audio = self.check_audio()

        overall = "healthy" if decoders["active"] == decoders["configured"] else "degraded"
        if not decoders["active"]:
            overall = "unhealthy"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "decoders": decoders["status"],
                "audio": audio
            },
            "details": {
                "backends": decoders["active"],
                "sample_fps": self._settings.sample_fps,
                "cooldown_ms": self._settings.cooldown_ms,
                "acquire_timeout_s": self._settings.acquire_timeout_s,
                "continuous": self._settings.continuous
            }
        }


@router.get("")
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint.

    Returns system status including API, decoders, and audio output.
    """
    controller = HealthController(settings)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
