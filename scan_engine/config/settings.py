"""
==============================================================================
Scan Engine Settings Module
==============================================================================

Configuration management for the barcode scan engine using Pydantic Settings.

This module implements the Singleton pattern to ensure a single global
configuration instance throughout the application lifecycle.

Features:
---------
- Environment variable loading (``SCAN_`` prefix) with type validation
- .env file support for local development
- Range validation for camera negotiation, sampling and debounce tuning
- Thread-safe singleton implementation

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables (e.g. ``SCAN_COOLDOWN_MS=2000``)
2. .env file
3. Default values

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


# Decode backends known to the engine, in default trial order
KNOWN_BACKENDS = ("ean", "zbar")


class Settings(BaseSettings):
    """
    Scan engine settings loaded from environment variables.

    Attributes:
        app_name: Display name for the service
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        cooldown_ms: Duplicate-detection cooldown window
        sample_fps: Frame sampling cadence
        acquire_timeout_s: Bound on each camera negotiation attempt
        ideal_width: Preferred capture width (first ladder rung)
        ideal_height: Preferred capture height (first ladder rung)
        ideal_frame_rate: Preferred capture frame rate (first ladder rung)
        luma_threshold: Binarization threshold on a 0-255 scale
        window_start: Left edge of the scan window as a fraction of width
        window_end: Right edge of the scan window as a fraction of width
        scan_rows: Extra scan rows as fractions of frame height
        confirm_frames: Consecutive identical reads required before accepting
        quality_gate: Skip scan lines with too little contrast
        backends: Comma separated decode backends, tried in order
        tone_enabled: Play the confirmation tone on acceptance
        tone_frequency_hz: Confirmation tone frequency
        tone_duration_ms: Confirmation tone length
        max_devices: Number of local video indices probed on enumeration

    Example:
        >>> settings = Settings()
        >>> settings.cooldown_ms
        1500
        >>> settings.backend_list
        ['ean', 'zbar']
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        env_prefix="SCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="Barcode Scan Engine",
        description="Display name for the service"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode for verbose logging"
    )

    host: str = Field(default="0.0.0.0", description="Server bind address")

    port: int = Field(default=8000, ge=1, le=65535, description="Server port number")

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # CAMERA NEGOTIATION
    # =========================================================================
    acquire_timeout_s: float = Field(
        default=10.0,
        ge=8.0,
        le=15.0,
        description="Bounded wait for each constraint-relaxation attempt"
    )

    ideal_width: int = Field(default=1280, ge=160, le=4096)

    ideal_height: int = Field(default=720, ge=120, le=2160)

    ideal_frame_rate: int = Field(default=30, ge=1, le=120)

    max_devices: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Local video indices probed when enumerating devices"
    )

    # =========================================================================
    # SAMPLING & SIGNAL EXTRACTION
    # =========================================================================
    sample_fps: float = Field(
        default=10.0,
        ge=8.0,
        le=15.0,
        description="Frames pulled per second by the sampler"
    )

    luma_threshold: int = Field(default=160, ge=1, le=254)

    window_start: float = Field(default=0.10, ge=0.0, lt=1.0)

    window_end: float = Field(default=0.90, gt=0.0, le=1.0)

    scan_rows: str = Field(
        default="0.5",
        description="Comma separated scan rows as fractions of frame height"
    )

    quality_gate: bool = Field(
        default=True,
        description="Skip scan lines that are too flat to hold a barcode"
    )

    # =========================================================================
    # DECODING & ACCEPTANCE
    # =========================================================================
    backends: str = Field(
        default="ean,zbar",
        description="Comma separated decode backends, tried in order"
    )

    confirm_frames: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Consecutive identical reads required before acceptance"
    )

    cooldown_ms: int = Field(
        default=1500,
        ge=1500,
        le=2000,
        description="Duplicate suppression window in milliseconds"
    )

    continuous: bool = Field(
        default=False,
        description="Keep scanning after a detection instead of closing"
    )

    # =========================================================================
    # AUDIBLE FEEDBACK
    # =========================================================================
    tone_enabled: bool = Field(default=True)

    tone_frequency_hz: float = Field(default=800.0, gt=0, le=8000)

    tone_duration_ms: int = Field(default=200, ge=10, le=2000)

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """Normalize the environment name, falling back to development."""
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("backends")
    @classmethod
    def validate_backends(cls, value: str) -> str:
        """
        Validate the decode backend list.

        Raises:
            ValueError: If a backend name is unknown or the list is empty
        """
        names = [name.strip().lower() for name in value.split(",") if name.strip()]

        if not names:
            raise ValueError("At least one decode backend is required")

        unknown = [name for name in names if name not in KNOWN_BACKENDS]
        if unknown:
            raise ValueError(
                f"Unknown decode backend(s): {', '.join(unknown)}. "
                f"Supported: {', '.join(KNOWN_BACKENDS)}"
            )

        return ",".join(names)

    @field_validator("scan_rows")
    @classmethod
    def validate_scan_rows(cls, value: str) -> str:
        """Each scan row must be a fraction in [0, 1)."""
        rows = [part.strip() for part in value.split(",") if part.strip()]
        if not rows:
            raise ValueError("At least one scan row is required")

        for row in rows:
            fraction = float(row)
            if not 0.0 <= fraction < 1.0:
                raise ValueError(f"Scan row {row} is outside [0, 1)")

        return ",".join(rows)

    @model_validator(mode="after")
    def validate_window(self) -> "Settings":
        """The scan window must not be empty."""
        if self.window_start >= self.window_end:
            raise ValueError(
                f"window_start ({self.window_start}) must be below "
                f"window_end ({self.window_end})"
            )
        return self

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def backend_list(self) -> List[str]:
        """Decode backends in trial order."""
        return self.backends.split(",")

    @property
    def scan_row_list(self) -> List[float]:
        """Scan rows as fractions of frame height."""
        return [float(row) for row in self.scan_rows.split(",")]

    @property
    def sample_interval_s(self) -> float:
        """Delay between two frame pulls."""
        return 1.0 / self.sample_fps

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"backends={self.backends!r}, "
            f"cooldown_ms={self.cooldown_ms})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Uses lru_cache so only one Settings instance is created for the
    process lifetime.

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
