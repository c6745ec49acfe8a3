import base64
import os
import time

from isbn_scan.orchestrator import errors
from isbn_scan.orchestrator.contracts import ScanFailure, ScanResult
from isbn_scan.orchestrator.isbn import checksum_ok, normalize, validate

PROMPT = (
    "Locate the barcode on this book cover. "
    "Read the ISBN-13 number (starts with 978 or 979) or the ISBN-10 number. "
    "Return ONLY the digits of the number, nothing else. "
    "If there are dashes, remove them."
)

VISION_RETRIES   = int(os.getenv("VISION_RETRIES", "2"))
VISION_BACKOFF_S = 0.5
VISION_TIMEOUT_S = float(os.getenv("VISION_TIMEOUT_S", "15"))


class RetryableVisionError(Exception):
    """Transport failure, rate limit or 5xx: worth another attempt."""


class VisionRequestError(Exception):
    """The service answered with an error that retrying will not fix."""


def sniff_media_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def extract_result(raw_text: str):
    """Apply the camera-path contract to free model text."""
    code = normalize(raw_text)
    if validate(code).valid:
        return ScanResult(code=code, source="vision", checksum_ok=checksum_ok(code))
    return ScanFailure(errors.ERR_NO_VALID_CODE, "No valid ISBN found", raw=raw_text)


class VisionAdapter:
    name = "vision"

    def __init__(self, status_store, retries: int = VISION_RETRIES,
                 backoff_s: float = VISION_BACKOFF_S, sleep=time.sleep):
        self.status = status_store
        self.retries = max(0, retries)
        self.backoff_s = backoff_s
        self._sleep = sleep

    @property
    def ready(self) -> bool:
        return True

    def ask(self, b64: str, media_type: str) -> str:
        """Send one request; return the model's text reply."""
        raise NotImplementedError

    def recognize(self, image_bytes: bytes):
        """Return ScanResult or ScanFailure for a single still image."""
        if not image_bytes:
            return ScanFailure(errors.ERR_AI_SCAN_FAILED, "No image data provided")
        if not self.ready:
            self.status.log(f"{self.name}: not configured")
            return ScanFailure(errors.ERR_SERVICE_UNAVAILABLE, f"{self.name} is not configured")

        b64 = base64.standard_b64encode(image_bytes).decode("utf-8")
        media_type = sniff_media_type(image_bytes)
        try:
            raw = self._ask_with_retry(b64, media_type)
        except RetryableVisionError as e:
            self.status.log(f"{self.name}: giving up: {e}")
            return ScanFailure(errors.ERR_SERVICE_UNAVAILABLE, f"{self.name} unreachable: {e}")
        except VisionRequestError as e:
            self.status.log(f"{self.name}: request failed: {e}")
            return ScanFailure(errors.ERR_AI_SCAN_FAILED, f"AI Scan failed: {e}")

        raw = (raw or "").strip()
        self.status.log(f"{self.name}: raw response = '{raw}'")
        outcome = extract_result(raw)
        if isinstance(outcome, ScanFailure):
            self.status.log(f"{self.name}: could not find ISBN in '{raw}'")
        return outcome

    def _ask_with_retry(self, b64: str, media_type: str) -> str:
        attempt = 0
        while True:
            try:
                return self.ask(b64, media_type)
            except RetryableVisionError as e:
                if attempt >= self.retries:
                    raise
                delay = self.backoff_s * (2 ** attempt)
                attempt += 1
                self.status.log(f"{self.name}: {e}; retry {attempt}/{self.retries} in {delay:.1f}s")
                self._sleep(delay)
