"""
==============================================================================
EAN Bit-Pattern Decoder Module
==============================================================================

Pure parsers turning a module-level binary signal into EAN-13 / EAN-8
candidates, plus the checksum helpers shared with the validator.

Signal convention:
-----------------
One element per barcode module, ``1`` for a bar (dark) and ``0`` for a
space (light).

EAN-13 layout (95 modules):
--------------------------
    101 | 6 x 7 left (L/G) | 01010 | 6 x 7 right (R) | 101

The L/G parity signature of the six left digits encodes the leading digit.

EAN-8 layout (67 modules):
-------------------------
    101 | 4 x 7 left (L) | 01010 | 4 x 7 right (R) | 101

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from scan_engine.schemas.scan import BarcodeCandidate, BarcodeFormat


# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# PATTERN TABLES
# =============================================================================

L_PATTERNS = (
    "0001101", "0011001", "0010011", "0111101", "0100011",
    "0110001", "0101111", "0111011", "0110111", "0001011",
)

G_PATTERNS = (
    "0100111", "0110011", "0011011", "0100001", "0011101",
    "0111001", "0000101", "0010001", "0001001", "0010111",
)

R_PATTERNS = (
    "1110010", "1100110", "1101100", "1000010", "1011100",
    "1001110", "1010000", "1000100", "1001000", "1110100",
)

# Parity signature of the left half, indexed by leading digit
FIRST_DIGIT_SIGNATURES = (
    "LLLLLL", "LLGLGG", "LLGGLG", "LLGGGL", "LGLLGG",
    "LGGLLG", "LGGGLL", "LGLGLG", "LGLGGL", "LGGLGL",
)

START_GUARD = "101"
CENTER_GUARD = "01010"
END_GUARD = "101"

DIGIT_WIDTH = 7
EAN13_MODULES = 95
EAN8_MODULES = 67

_L_LOOKUP: Dict[str, int] = {pattern: digit for digit, pattern in enumerate(L_PATTERNS)}
_G_LOOKUP: Dict[str, int] = {pattern: digit for digit, pattern in enumerate(G_PATTERNS)}
_R_LOOKUP: Dict[str, int] = {pattern: digit for digit, pattern in enumerate(R_PATTERNS)}
_SIGNATURE_LOOKUP: Dict[str, int] = {
    signature: digit for digit, signature in enumerate(FIRST_DIGIT_SIGNATURES)
}


# =============================================================================
# CHECKSUMS
# =============================================================================

def ean13_check_digit(digits: str) -> int:
    """
    Compute the EAN-13 check digit for the first 12 digits.

    Args:
        digits: Exactly 12 decimal digits

    Returns:
        Check digit 0-9

    Raises:
        ValueError: If ``digits`` is not 12 decimal digits
    """
    if len(digits) != 12 or not digits.isdigit():
        raise ValueError(f"EAN-13 check digit needs 12 digits, got {digits!r}")

    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits))
    return (10 - total % 10) % 10


def is_valid_ean13(code: str) -> bool:
    """Check a 13-digit string against its EAN-13 check digit."""
    if len(code) != 13 or not code.isdigit():
        return False
    return ean13_check_digit(code[:12]) == int(code[12])


def ean8_check_digit(digits: str) -> int:
    """
    Compute the EAN-8 check digit for the first 7 digits.

    EAN-8 weights start at 3 (3, 1, 3, 1, ...).
    """
    if len(digits) != 7 or not digits.isdigit():
        raise ValueError(f"EAN-8 check digit needs 7 digits, got {digits!r}")

    total = sum(int(d) * (3 if i % 2 == 0 else 1) for i, d in enumerate(digits))
    return (10 - total % 10) % 10


def is_valid_ean8(code: str) -> bool:
    """Check an 8-digit string against its EAN-8 check digit."""
    if len(code) != 8 or not code.isdigit():
        return False
    return ean8_check_digit(code[:7]) == int(code[7])


# =============================================================================
# HELPERS
# =============================================================================

def signal_to_text(signal: Iterable[int]) -> str:
    """Render a binary signal as a '0'/'1' string."""
    return "".join("1" if bit else "0" for bit in np.asarray(signal).ravel().tolist())


def _chunks(bits: str, start: int, count: int) -> List[str]:
    return [
        bits[start + i * DIGIT_WIDTH:start + (i + 1) * DIGIT_WIDTH]
        for i in range(count)
    ]


def _to_signal(bits: str) -> np.ndarray:
    return np.frombuffer(bits.encode("ascii"), dtype=np.uint8) - ord("0")


def encode_ean13(code: str) -> np.ndarray:
    """
    Render a 13-digit code as its 95-module signal.

    The check digit is not recomputed; an invalid code renders as-is.
    """
    if len(code) != 13 or not code.isdigit():
        raise ValueError(f"EAN-13 needs 13 digits, got {code!r}")

    signature = FIRST_DIGIT_SIGNATURES[int(code[0])]
    left = "".join(
        (L_PATTERNS if parity == "L" else G_PATTERNS)[int(digit)]
        for parity, digit in zip(signature, code[1:7])
    )
    right = "".join(R_PATTERNS[int(digit)] for digit in code[7:])

    return _to_signal(START_GUARD + left + CENTER_GUARD + right + END_GUARD)


def encode_ean8(code: str) -> np.ndarray:
    """Render an 8-digit code as its 67-module signal."""
    if len(code) != 8 or not code.isdigit():
        raise ValueError(f"EAN-8 needs 8 digits, got {code!r}")

    left = "".join(L_PATTERNS[int(digit)] for digit in code[:4])
    right = "".join(R_PATTERNS[int(digit)] for digit in code[4:])

    return _to_signal(START_GUARD + left + CENTER_GUARD + right + END_GUARD)


# =============================================================================
# DECODERS
# =============================================================================

class EAN13Decoder:
    """
    EAN-13 bit-pattern decoder.

    Stateless: the same signal always yields the same result.

    Example:
        >>> decoder = EAN13Decoder()
        >>> decoder.decode(encode_ean13("4006381333931")).text
        '4006381333931'
    """

    format = BarcodeFormat.EAN_13

    def decode(self, signal: Sequence[int]) -> Optional[BarcodeCandidate]:
        """
        Parse a module-level signal into a 13-digit candidate.

        Args:
            signal: Sequence of 0/1 modules

        Returns:
            Candidate, or None when the grammar or checksum does not match
        """
        bits = signal_to_text(signal)

        start = bits.find(START_GUARD)
        if start < 0:
            return None

        symbol = bits[start:start + EAN13_MODULES]
        if len(symbol) < EAN13_MODULES:
            return None

        if (
            symbol[0:3] != START_GUARD
            or symbol[45:50] != CENTER_GUARD
            or symbol[92:95] != END_GUARD
        ):
            return None

        digits, signature = self._decode_left(symbol)
        if digits is None:
            return None

        right = self._decode_right(symbol[50:92], 6)
        if right is None:
            return None

        first = _SIGNATURE_LOOKUP.get(signature)
        if first is None:
            return None

        code = str(first) + "".join(str(d) for d in digits + right)

        if ean13_check_digit(code[:12]) != int(code[12]):
            logger.debug(f"EAN-13 checksum mismatch: {code}")
            return None

        return BarcodeCandidate(text=code, format=self.format)

    @staticmethod
    def _decode_left(symbol: str) -> Tuple[Optional[List[int]], str]:
        digits: List[int] = []
        signature = []

        for group in _chunks(symbol, 3, 6):
            if group in _L_LOOKUP:
                digits.append(_L_LOOKUP[group])
                signature.append("L")
            elif group in _G_LOOKUP:
                digits.append(_G_LOOKUP[group])
                signature.append("G")
            else:
                return None, ""

        return digits, "".join(signature)

    @staticmethod
    def _decode_right(bits: str, count: int) -> Optional[List[int]]:
        digits = []
        for group in _chunks(bits, 0, count):
            digit = _R_LOOKUP.get(group)
            if digit is None:
                return None
            digits.append(digit)
        return digits


class EAN8Decoder:
    """
    EAN-8 bit-pattern decoder.

    Left digits use the L table only, right digits the R table.
    """

    format = BarcodeFormat.EAN_8

    def decode(self, signal: Sequence[int]) -> Optional[BarcodeCandidate]:
        bits = signal_to_text(signal)

        start = bits.find(START_GUARD)
        if start < 0:
            return None

        symbol = bits[start:start + EAN8_MODULES]
        if len(symbol) < EAN8_MODULES:
            return None

        if (
            symbol[0:3] != START_GUARD
            or symbol[31:36] != CENTER_GUARD
            or symbol[64:67] != END_GUARD
        ):
            return None

        left = []
        for group in _chunks(symbol, 3, 4):
            digit = _L_LOOKUP.get(group)
            if digit is None:
                return None
            left.append(digit)

        right = EAN13Decoder._decode_right(symbol[36:64], 4)
        if right is None:
            return None

        code = "".join(str(d) for d in left + right)
        if not is_valid_ean8(code):
            logger.debug(f"EAN-8 checksum mismatch: {code}")
            return None

        return BarcodeCandidate(text=code, format=self.format)
