"""
Claude Vision ISBN reader.

Sends the still image to Claude via the Anthropic API with the barcode
reading prompt. Requires ANTHROPIC_API_KEY in environment (isbn_scan/.env
or system env). Without a key the adapter reports itself not ready.
"""
import os

import anthropic

from isbn_scan.adapters.vision.base import (
    PROMPT, VISION_TIMEOUT_S, RetryableVisionError, VisionAdapter, VisionRequestError,
)

CLAUDE_MODEL = os.getenv("CLAUDE_VISION_MODEL", "claude-haiku-4-5-20251001")


class ClaudeVision(VisionAdapter):
    name = "claude_vision"

    def __init__(self, status_store, client=None, **kwargs):
        super().__init__(status_store, **kwargs)
        self._client = client
        if self._client is None:
            api_key = os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                self.status.log("claude_vision: ANTHROPIC_API_KEY not set")
                return
            # retries are handled by VisionAdapter
            self._client = anthropic.Anthropic(api_key=api_key, max_retries=0, timeout=VISION_TIMEOUT_S)
        self.status.log(f"claude_vision: ready ({CLAUDE_MODEL})")

    @property
    def ready(self) -> bool:
        return self._client is not None

    def ask(self, b64: str, media_type: str) -> str:
        try:
            message = self._client.messages.create(
                model=CLAUDE_MODEL,
                max_tokens=32,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": b64,
                                },
                            },
                            {"type": "text", "text": PROMPT},
                        ],
                    }
                ],
            )
        except (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError) as e:
            raise RetryableVisionError(f"{type(e).__name__}: {e}") from e
        except anthropic.APIError as e:
            raise VisionRequestError(f"{type(e).__name__}: {e}") from e

        parts = [block.text for block in message.content if getattr(block, "type", None) == "text"]
        return parts[0] if parts else ""
