"""
==============================================================================
Candidate Validator Module
==============================================================================

Acceptance rules for barcode candidates from any source.

This module implements:
- CandidateValidator: Validates decoded or manually typed barcode strings

Validation Rules:
----------------
- Surrounding whitespace is ignored
- 8-13 decimal digits only
- 13 digits: EAN-13 check digit must match
- 8-12 digits: accepted without checksum (EAN-8 / UPC family codes
  coming from other decode backends)

==============================================================================
"""

from __future__ import annotations

import re
from typing import Optional

from scan_engine.core.exceptions import InvalidCandidate
from scan_engine.schemas.scan import ValidationResult

from .ean import is_valid_ean13


# Rejection reasons
REASON_EMPTY = "empty"
REASON_FORMAT = "format"
REASON_CHECKSUM = "checksum"


class CandidateValidator:
    """
    Validator for barcode candidates.

    Rejections are returned as values; scanning continues after them.

    Example:
        >>> validator = CandidateValidator()
        >>> validator.validate("4006381333931").accepted
        True
        >>> validator.validate("ABC123").reason
        'format'
    """

    # Regex pattern for acceptable codes
    PATTERN = re.compile(r"^\d{8,13}$")

    MIN_LENGTH = 8
    MAX_LENGTH = 13

    def validate(self, raw: Optional[str]) -> ValidationResult:
        """
        Validate a raw candidate string.

        Args:
            raw: Decoded text or manual entry

        Returns:
            ValidationResult with the normalized code when accepted,
            or the rejection reason
        """
        if raw is None:
            return ValidationResult(accepted=False, reason=REASON_EMPTY)

        code = raw.strip()

        if not code:
            return ValidationResult(accepted=False, reason=REASON_EMPTY)

        if not self.PATTERN.match(code):
            return ValidationResult(accepted=False, code=code, reason=REASON_FORMAT)

        if len(code) == 13 and not is_valid_ean13(code):
            return ValidationResult(accepted=False, code=code, reason=REASON_CHECKSUM)

        return ValidationResult(accepted=True, code=code)

    def is_valid(self, raw: Optional[str]) -> bool:
        """Quick validation check."""
        return self.validate(raw).accepted

    def require(self, raw: Optional[str]) -> str:
        """
        Validate and return the normalized code.

        Raises:
            InvalidCandidate: If the candidate is rejected
        """
        result = self.validate(raw)
        if not result.accepted:
            raise InvalidCandidate(result.code or (raw or ""), result.reason)
        return result.code
