"""
==============================================================================
Barcode Schemas Module
==============================================================================

Request and response schemas for the barcode endpoints.

==============================================================================
"""

from pydantic import BaseModel, Field

from .scan import BarcodeFormat


class ValidateBarcodeRequest(BaseModel):
    """Typed barcode to check."""
    code: str = Field(..., max_length=64, description="Digits as typed or scanned")


class ValidateBarcodeResponse(BaseModel):
    """Accepted barcode."""
    success: bool = Field(default=True)
    code: str
    format: BarcodeFormat = BarcodeFormat.UNKNOWN


class CheckDigitRequest(BaseModel):
    """Payload digits of an EAN-13 (12 digits) or EAN-8 (7 digits)."""
    digits: str = Field(..., pattern=r"^(\d{7}|\d{12})$")


class CheckDigitResponse(BaseModel):
    """Computed check digit and the completed code."""
    success: bool = Field(default=True)
    check_digit: int = Field(ge=0, le=9)
    code: str
    format: BarcodeFormat
