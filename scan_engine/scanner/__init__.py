"""
==============================================================================
Scanner Package - Barcode Detection
==============================================================================

Frame sampling, decoding, validation and the scan session state machine.

Classes:
--------
- ScanSession: One scanner lifecycle (open, detect, close)
- FrameSampler: Bounded-rate frame pulling loop
- SignalExtractor: Scan-line luma extraction and binarization
- EAN13Decoder / EAN8Decoder: Bar/space grammar decoders
- SignalBackend / ZBarBackend: Interchangeable decode strategies
- CandidateValidator: Format and checksum gate
- DebounceGate: Duplicate suppression
- ConfirmationTone: Audible feedback

==============================================================================
"""

from .backends import DecodeBackend, SignalBackend, ZBarBackend, build_backends
from .debounce import DebounceGate
from .ean import EAN8Decoder, EAN13Decoder
from .sampler import FrameSampler
from .session import ScanOptions, ScanSession
from .signal import SignalExtractor
from .tone import ConfirmationTone
from .validator import CandidateValidator

__all__ = [
    "CandidateValidator",
    "ConfirmationTone",
    "DebounceGate",
    "DecodeBackend",
    "EAN13Decoder",
    "EAN8Decoder",
    "FrameSampler",
    "ScanOptions",
    "ScanSession",
    "SignalBackend",
    "SignalExtractor",
    "ZBarBackend",
    "build_backends",
]
