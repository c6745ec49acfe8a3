import os
from isbn_scan.adapters.vision.base import VisionAdapter

class MockVision(VisionAdapter):
    name = "mock_vision"

    def __init__(self, status_store, reply: str | None = None, **kwargs):
        super().__init__(status_store, **kwargs)
        self.reply = reply if reply is not None else os.getenv("MOCK_VISION_REPLY", "9780134685991")
        self.calls = 0

    def ask(self, b64: str, media_type: str) -> str:
        # Mock: ignore image, return the configured reply
        self.calls += 1
        return self.reply
