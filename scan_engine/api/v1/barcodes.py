"""
==============================================================================
Barcode Endpoints
==============================================================================

Stateless counterparts of the manual-entry path.

Endpoints:
----------
- POST /barcodes/validate     Apply the scan acceptance rules to typed text
- POST /barcodes/check-digit  Complete an EAN-13 / EAN-8 payload

==============================================================================
"""

from fastapi import APIRouter

from scan_engine.scanner.ean import ean8_check_digit, ean13_check_digit
from scan_engine.scanner.validator import CandidateValidator
from scan_engine.schemas.barcode import (
    CheckDigitRequest,
    CheckDigitResponse,
    ValidateBarcodeRequest,
    ValidateBarcodeResponse,
)
from scan_engine.schemas.scan import BarcodeFormat


router = APIRouter(prefix="/barcodes", tags=["Barcodes"])

# Digit count -> most likely symbology
FORMATS_BY_LENGTH = {
    13: BarcodeFormat.EAN_13,
    12: BarcodeFormat.UPC_A,
    8: BarcodeFormat.EAN_8,
}


class BarcodeController:
    """Controller for barcode validation operations."""

    def __init__(self):
        self._validator = CandidateValidator()

    def validate(self, raw: str) -> ValidateBarcodeResponse:
        """Raises InvalidCandidate (422) for rejected input."""
        code = self._validator.require(raw)
        return ValidateBarcodeResponse(
            code=code,
            format=FORMATS_BY_LENGTH.get(len(code), BarcodeFormat.UNKNOWN)
        )

    def check_digit(self, digits: str) -> CheckDigitResponse:
        if len(digits) == 12:
            check, barcode_format = ean13_check_digit(digits), BarcodeFormat.EAN_13
        else:
            check, barcode_format = ean8_check_digit(digits), BarcodeFormat.EAN_8

        return CheckDigitResponse(
            check_digit=check,
            code=f"{digits}{check}",
            format=barcode_format
        )


@router.post("/validate", response_model=ValidateBarcodeResponse)
async def validate_barcode(request: ValidateBarcodeRequest):
    """
    Validate a typed barcode.

    Same rules as camera detections: 8-13 digits, EAN-13 checksum for
    13-digit codes.
    """
    return BarcodeController().validate(request.code)


@router.post("/check-digit", response_model=CheckDigitResponse)
async def compute_check_digit(request: CheckDigitRequest):
    """Compute the check digit for 12 (EAN-13) or 7 (EAN-8) payload digits."""
    return BarcodeController().check_digit(request.digits)
