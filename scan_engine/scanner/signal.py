"""
==============================================================================
Signal Extraction Module
==============================================================================

Turns a frame into a binary scan-line signal.

Pipeline:
---------
1. Pick a horizontal scan row (vertical center by default)
2. Perceptual luma per pixel: 0.299 R + 0.587 G + 0.114 B
3. Restrict to the horizontal window (10%-90% of width by default)
4. Binarize against a fixed threshold: dark (bar) -> 1, light -> 0

The pixel-level signal can then be collapsed to one bit per barcode module
with ``to_modules`` before it is handed to the EAN grammar.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from scan_engine.schemas.scan import FrameSample


# Module logger
logger = logging.getLogger(__name__)


# Luma weights in OpenCV channel order (B, G, R)
BGR_LUMA_WEIGHTS = np.array([0.114, 0.587, 0.299], dtype=np.float64)

DEFAULT_THRESHOLD = 160
DEFAULT_WINDOW = (0.10, 0.90)

# Scan-line quality floor
MIN_CONTRAST = 50
MIN_VARIANCE = 100.0


class SignalQuality(NamedTuple):
    """Contrast and variance of one luma line."""

    contrast: int
    variance: float
    ok: bool


class SignalExtractor:
    """
    Deterministic frame -> binary signal converter.

    Attributes:
        threshold: Binarization threshold on a 0-255 scale
        window: (start, end) fractions of the frame width kept for analysis
        rows: Scan rows as fractions of frame height

    Example:
        >>> extractor = SignalExtractor()
        >>> signal = extractor.extract(frame)
        >>> modules = extractor.to_modules(signal)
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        window: Sequence[float] = DEFAULT_WINDOW,
        rows: Optional[Sequence[float]] = None
    ) -> None:
        start, end = window
        if not 0.0 <= start < end <= 1.0:
            raise ValueError(f"Invalid scan window: {window}")

        self.threshold = threshold
        self.window = (float(start), float(end))
        self.rows = list(rows) if rows else [0.5]

    # =========================================================================
    # LUMA
    # =========================================================================

    def luma_line(self, frame: FrameSample, row: float = 0.5) -> np.ndarray:
        """
        Luma values of one scan row, restricted to the window.

        Args:
            frame: Source frame
            row: Row position as a fraction of frame height

        Returns:
            1-D float array (empty for empty frames)
        """
        if frame.is_empty:
            return np.empty(0, dtype=np.float64)

        y = min(int(frame.height * row), frame.height - 1)
        x0 = int(frame.width * self.window[0])
        x1 = int(frame.width * self.window[1])

        line = frame.pixels[y, x0:x1]
        return self._to_luma(line)

    @staticmethod
    def _to_luma(line: np.ndarray) -> np.ndarray:
        if line.ndim == 1:
            return line.astype(np.float64)

        channels = line.shape[-1]
        if channels == 1:
            return line[..., 0].astype(np.float64)

        # BGR or BGRA; alpha is ignored
        return line[..., :3].astype(np.float64) @ BGR_LUMA_WEIGHTS

    # =========================================================================
    # BINARIZATION
    # =========================================================================

    def binarize(self, luma: np.ndarray) -> np.ndarray:
        """Dark pixels (below threshold) become 1, light pixels 0."""
        return (luma < self.threshold).astype(np.uint8)

    def extract(self, frame: FrameSample) -> np.ndarray:
        """
        Binary signal along the center scan row.

        Args:
            frame: Source frame

        Returns:
            1-D uint8 array of 0/1 values
        """
        return self.binarize(self.luma_line(frame, 0.5))

    def extract_lines(self, frame: FrameSample) -> List[np.ndarray]:
        """Binary signals for every configured scan row."""
        return [self.binarize(self.luma_line(frame, row)) for row in self.rows]

    # =========================================================================
    # QUALITY & NORMALIZATION
    # =========================================================================

    @staticmethod
    def assess_quality(luma: np.ndarray) -> SignalQuality:
        """
        Cheap check that a luma line can hold a barcode.

        Flat lines (low contrast) or blurred lines (low variance) are
        rejected before decoding.
        """
        if luma.size == 0:
            return SignalQuality(0, 0.0, False)

        contrast = int(luma.max() - luma.min())
        variance = float(luma.var())

        return SignalQuality(
            contrast,
            variance,
            contrast > MIN_CONTRAST and variance > MIN_VARIANCE
        )

    @staticmethod
    def to_modules(signal: Sequence[int]) -> np.ndarray:
        """
        Collapse a pixel-level signal to one element per barcode module.

        Leading and trailing light pixels (quiet zones) are dropped, runs are
        measured, and each run is divided by the narrowest run.

        Args:
            signal: Pixel-level 0/1 signal

        Returns:
            Module-level 0/1 signal (empty if no bar was found)
        """
        bits = np.asarray(signal, dtype=np.uint8).ravel()

        dark = np.flatnonzero(bits)
        if dark.size == 0:
            return np.empty(0, dtype=np.uint8)

        bits = bits[dark[0]:dark[-1] + 1]

        # Run boundaries
        edges = np.flatnonzero(np.diff(bits)) + 1
        starts = np.concatenate(([0], edges))
        lengths = np.diff(np.concatenate((starts, [bits.size])))
        values = bits[starts]

        unit = lengths.min()
        modules = np.maximum(np.rint(lengths / unit).astype(np.int64), 1)

        return np.repeat(values, modules).astype(np.uint8)
