"""
Duplicate-detection gate.

A barcode held steady in front of the camera decodes on many consecutive
frames; the gate lets the first read through and drops repeats of the same
code until the cooldown window has passed.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 1500


class DebounceGate:
    """
    Tracks the last admitted ``(code, time)`` pair.

    Example:
        >>> gate = DebounceGate(cooldown_ms=1500)
        >>> gate.admit("4006381333931", 0)
        True
        >>> gate.admit("4006381333931", 500)
        False
        >>> gate.admit("4006381333931", 2000)
        True
    """

    def __init__(self, cooldown_ms: float = DEFAULT_COOLDOWN_MS) -> None:
        if cooldown_ms < 0:
            raise ValueError(f"cooldown_ms must be non-negative, got {cooldown_ms}")

        self.cooldown_ms = cooldown_ms
        self._last: Optional[Tuple[str, float]] = None

    @property
    def last_code(self) -> Optional[str]:
        return self._last[0] if self._last else None

    @property
    def last_admitted_at(self) -> Optional[float]:
        return self._last[1] if self._last else None

    def admit(self, code: str, now_ms: float) -> bool:
        """
        Decide whether ``code`` seen at ``now_ms`` is a new detection.

        Args:
            code: Validated barcode
            now_ms: Monotonic time in milliseconds

        Returns:
            False for a repeat inside the cooldown window, True otherwise
        """
        if self._last is not None:
            last_code, last_at = self._last
            if code == last_code and now_ms - last_at < self.cooldown_ms:
                logger.debug(f"Duplicate {code} suppressed ({now_ms - last_at:.0f} ms)")
                return False

        self._last = (code, now_ms)
        return True

    def reset(self) -> None:
        """Forget the last admitted code."""
        self._last = None
