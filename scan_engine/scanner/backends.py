"""
==============================================================================
Decode Backends Module
==============================================================================

Interchangeable decode strategies tried in order on each frame.

Backends:
---------
- SignalBackend ("ean"): scan-line extraction + EAN-13 / EAN-8 grammar
- ZBarBackend ("zbar"): pyzbar over the whole frame; covers the
  multi-symbology cases (UPC, Code-128, Code-39, Codabar, ...)

A backend returns a BarcodeCandidate or None. It never validates; that is
the CandidateValidator's job.

==============================================================================
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np

from scan_engine.schemas.scan import BarcodeCandidate, BarcodeFormat, FrameSample

from .ean import EAN8Decoder, EAN13Decoder
from .signal import SignalExtractor

try:
    from pyzbar.pyzbar import decode as zbar_decode
    PYZBAR = True
except ImportError:
    zbar_decode = None
    PYZBAR = False


# Module logger
logger = logging.getLogger(__name__)


# pyzbar symbol type -> reported format
ZBAR_FORMATS: Dict[str, BarcodeFormat] = {
    "EAN13": BarcodeFormat.EAN_13,
    "EAN8": BarcodeFormat.EAN_8,
    "UPCA": BarcodeFormat.UPC_A,
    "UPCE": BarcodeFormat.UPC_E,
    "CODE128": BarcodeFormat.CODE_128,
    "CODE39": BarcodeFormat.CODE_39,
    "CODABAR": BarcodeFormat.CODABAR,
}


class DecodeBackend(ABC):
    """One way of turning a frame into a barcode candidate."""

    name: str = "backend"

    @property
    def available(self) -> bool:
        """Whether the backend can run in this environment."""
        return True

    @abstractmethod
    def decode(self, frame: FrameSample) -> Optional[BarcodeCandidate]:
        """
        Attempt to decode one frame.

        Returns:
            Candidate, or None if nothing was found
        """


class SignalBackend(DecodeBackend):
    """
    Scan-line decoder for EAN-13 and EAN-8.

    Each configured row is extracted, quality-gated and binarized. The raw
    pixel signal is tried first (one pixel per module), then its run-length
    normalized module signal.

    Example:
        >>> backend = SignalBackend(SignalExtractor())
        >>> candidate = backend.decode(frame)
    """

    name = "ean"

    def __init__(
        self,
        extractor: Optional[SignalExtractor] = None,
        quality_gate: bool = True
    ) -> None:
        self.extractor = extractor or SignalExtractor()
        self.quality_gate = quality_gate
        self._decoders = (EAN13Decoder(), EAN8Decoder())

    def decode(self, frame: FrameSample) -> Optional[BarcodeCandidate]:
        for row in self.extractor.rows:
            luma = self.extractor.luma_line(frame, row)

            if self.quality_gate and not self.extractor.assess_quality(luma).ok:
                continue

            signal = self.extractor.binarize(luma)
            candidate = self.decode_signal(signal)
            if candidate is not None:
                return candidate

        return None

    def decode_signal(self, signal: np.ndarray) -> Optional[BarcodeCandidate]:
        """Try every decoder on the raw and the module-normalized signal."""
        for bits in (signal, self.extractor.to_modules(signal)):
            if bits.size == 0:
                continue
            for decoder in self._decoders:
                candidate = decoder.decode(bits)
                if candidate is not None:
                    return candidate
        return None


class ZBarBackend(DecodeBackend):
    """
    Whole-frame decoder using ZBar through pyzbar.

    Only the first symbol found is reported; frames are grayscaled before
    decoding.
    """

    name = "zbar"

    @property
    def available(self) -> bool:
        return PYZBAR

    def decode(self, frame: FrameSample) -> Optional[BarcodeCandidate]:
        if not PYZBAR or frame.is_empty:
            return None

        gray = self._to_gray(frame.pixels)
        barcodes = zbar_decode(gray)
        if not barcodes:
            return None

        barcode = barcodes[0]
        text = barcode.data.decode("utf-8", errors="ignore").strip("\x00").strip()
        if not text:
            return None

        return BarcodeCandidate(
            text=text,
            format=ZBAR_FORMATS.get(barcode.type, BarcodeFormat.UNKNOWN),
            quality=float(getattr(barcode, "quality", 0) or 0) or None
        )

    @staticmethod
    def _to_gray(pixels: np.ndarray) -> np.ndarray:
        if pixels.ndim == 2:
            return pixels
        if pixels.shape[-1] == 4:
            return cv2.cvtColor(pixels, cv2.COLOR_BGRA2GRAY)
        if pixels.shape[-1] == 1:
            return pixels[..., 0]
        return cv2.cvtColor(pixels, cv2.COLOR_BGR2GRAY)


def build_backends(
    names: Sequence[str],
    extractor: Optional[SignalExtractor] = None,
    quality_gate: bool = True
) -> List[DecodeBackend]:
    """
    Instantiate backends by name, in order, dropping unavailable ones.

    Args:
        names: Backend names ("ean", "zbar")
        extractor: Shared signal extractor for the EAN backend
        quality_gate: Skip flat scan lines in the EAN backend

    Raises:
        ValueError: On an unknown backend name
    """
    backends: List[DecodeBackend] = []

    for name in names:
        if name == SignalBackend.name:
            backend: DecodeBackend = SignalBackend(extractor, quality_gate)
        elif name == ZBarBackend.name:
            backend = ZBarBackend()
        else:
            raise ValueError(f"Unknown decode backend: {name}")

        if not backend.available:
            logger.warning(f"⚠️ Decode backend '{name}' unavailable (pyzbar/zbar missing)")
            continue

        backends.append(backend)

    return backends
