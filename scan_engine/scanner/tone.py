"""
Audible confirmation tone.

A short synthesized beep (800 Hz, gain ramping exponentially from 0.3 to
0.01 over 200 ms). Playback is best-effort and non-blocking: a missing
audio device never delays the scan result.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    # OSError: PortAudio library not present on the host
    sd = None


logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
START_GAIN = 0.3
END_GAIN = 0.01


class ConfirmationTone:
    """
    Synthesizes and plays the confirmation beep.

    Example:
        >>> tone = ConfirmationTone()
        >>> tone.play()
        True
    """

    def __init__(
        self,
        frequency_hz: float = 800.0,
        duration_ms: int = 200,
        sample_rate: int = SAMPLE_RATE
    ) -> None:
        self.frequency_hz = frequency_hz
        self.duration_ms = duration_ms
        self.sample_rate = sample_rate
        self._samples: Optional[np.ndarray] = None

    @property
    def available(self) -> bool:
        return sd is not None

    def synthesize(self) -> np.ndarray:
        """Mono float32 samples of the tone."""
        if self._samples is None:
            count = max(int(self.sample_rate * self.duration_ms / 1000), 1)
            t = np.arange(count, dtype=np.float64) / self.sample_rate
            envelope = START_GAIN * (END_GAIN / START_GAIN) ** (np.arange(count) / max(count - 1, 1))
            self._samples = (envelope * np.sin(2 * np.pi * self.frequency_hz * t)).astype(np.float32)
        return self._samples

    def play(self) -> bool:
        """
        Start playback without waiting for it to finish.

        Returns:
            True if playback started, False otherwise
        """
        if sd is None:
            logger.debug("Audio output unavailable; tone skipped")
            return False

        try:
            sd.play(self.synthesize(), self.sample_rate, blocking=False)
            return True
        except Exception as e:
            logger.debug(f"Tone playback failed: {e}")
            return False
