"""
ISBN normalization and validation shared by every acquisition channel.

normalize() keeps digits and the letter X (any case), uppercased.
validate() accepts exactly 10 or 13 characters; nothing else is checked.
The check digit is computed separately and only reported, never enforced,
so a misprinted barcode still reaches catalog lookup.
"""
import re
from dataclasses import dataclass
from typing import Optional

from isbn_scan.orchestrator.contracts import CandidateCode
from isbn_scan.orchestrator import errors

VALID_LENGTHS = (10, 13)

_STRIP = re.compile(r"[^0-9X]", re.IGNORECASE)

# Messages the decoder emits on every frame where nothing was found yet.
NOISE_MARKERS = ("no qr code", "notfoundexception", "no multiformat readers", "no barcode")


@dataclass(frozen=True)
class Validation:
    valid: bool
    reason: Optional[str] = None


def normalize(raw: str) -> str:
    return _STRIP.sub("", raw or "").upper()


def validate(normalized: str) -> Validation:
    if len(normalized) in VALID_LENGTHS:
        return Validation(valid=True)
    return Validation(valid=False, reason=errors.ERR_INVALID_FORMAT)


def make_candidate(raw: str) -> CandidateCode:
    norm = normalize(raw)
    return CandidateCode(raw=raw, normalized=norm, valid=validate(norm).valid)


def is_decoder_noise(message: str) -> bool:
    msg = (message or "").lower()
    return any(marker in msg for marker in NOISE_MARKERS)


def checksum_ok(code: str) -> bool:
    """Check-digit test for a normalized 10- or 13-character code."""
    if len(code) == 10:
        if not code[:9].isdigit() or not (code[9].isdigit() or code[9] == "X"):
            return False
        total = sum((10 - i) * int(c) for i, c in enumerate(code[:9]))
        total += 10 if code[9] == "X" else int(code[9])
        return total % 11 == 0
    if len(code) == 13:
        if not code.isdigit():
            return False
        return _ean_check_digit(code[:12]) == int(code[12])
    return False


def to_isbn13(code: str) -> Optional[str]:
    """978-prefixed ISBN-13 for a 10-char code; None when the code has no digit form."""
    if len(code) == 13:
        return code if code.isdigit() else None
    if len(code) != 10 or not code[:9].isdigit():
        return None
    body = "978" + code[:9]
    return body + str(_ean_check_digit(body))


def _ean_check_digit(first12: str) -> int:
    total = sum(int(c) * (3 if i % 2 else 1) for i, c in enumerate(first12))
    return (10 - total % 10) % 10
