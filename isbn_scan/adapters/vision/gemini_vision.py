"""
Gemini Vision ISBN reader.
Calls the generateContent REST endpoint directly with httpx.
Requires GEMINI_API_KEY (or GOOGLE_API_KEY) in isbn_scan/.env.
"""
import os
import httpx
from isbn_scan.adapters.vision.base import (
    PROMPT, VISION_TIMEOUT_S, RetryableVisionError, VisionAdapter, VisionRequestError,
)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
GEMINI_MODEL   = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class GeminiVision(VisionAdapter):
    name = "gemini_vision"

    def __init__(self, status_store, http_client: httpx.Client | None = None, **kwargs):
        super().__init__(status_store, **kwargs)
        self._api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self._http = http_client or httpx.Client(timeout=VISION_TIMEOUT_S)
        if self._api_key:
            self.status.log(f"gemini_vision: ready (model={GEMINI_MODEL})")
        else:
            self.status.log("gemini_vision: GEMINI_API_KEY not set")

    @property
    def ready(self) -> bool:
        return bool(self._api_key)

    def ask(self, b64: str, media_type: str) -> str:
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": PROMPT},
                        {"inline_data": {"mime_type": media_type, "data": b64}},
                    ],
                }
            ],
        }
        headers = {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
        }
        url = GEMINI_API_URL.format(model=GEMINI_MODEL)

        try:
            resp = self._http.post(url, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise RetryableVisionError(f"{type(e).__name__}: {e}") from e

        if resp.status_code in RETRYABLE_STATUS:
            raise RetryableVisionError(f"HTTP {resp.status_code}")
        if not resp.is_success:
            raise VisionRequestError(f"HTTP {resp.status_code}: {resp.text[:300]}")

        try:
            return resp.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError, ValueError):
            # no candidate at all (e.g. safety block): treat as an empty answer
            return ""
