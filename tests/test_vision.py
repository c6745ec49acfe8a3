import base64
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from isbn_scan.adapters.vision.base import PROMPT, extract_result, sniff_media_type
from isbn_scan.adapters.vision.claude_vision import ClaudeVision
from isbn_scan.adapters.vision.gemini_vision import GeminiVision
from isbn_scan.adapters.vision.mock_vision import MockVision
from isbn_scan.orchestrator.contracts import ScanFailure, ScanResult

JPEG = b"\xff\xd8\xff\xe0 cover photo"
PNG = b"\x89PNG\r\n\x1a\n rest"


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_gemini(status, handler, monkeypatch, **kwargs):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    client = httpx.Client(transport=httpx.MockTransport(handler))
    sleeps = []
    vision = GeminiVision(status, http_client=client, sleep=sleeps.append, **kwargs)
    return vision, sleeps


# --- shared extraction -------------------------------------------------------

def test_extract_result_accepts_noisy_model_text():
    outcome = extract_result("ISBN: 0-13-468599-1 (paperback)")
    assert isinstance(outcome, ScanResult)
    assert outcome.code == "0134685991"
    assert outcome.source == "vision"


def test_extract_result_rejects_wrong_length_and_keeps_raw():
    outcome = extract_result("97801346859")
    assert isinstance(outcome, ScanFailure)
    assert outcome.error_code == "NO_VALID_CODE_FOUND"
    assert outcome.raw == "97801346859"


def test_extract_result_rejects_long_answers():
    # two codes glued together are not forwarded
    outcome = extract_result("9780134685991 and 0134685997")
    assert outcome.error_code == "NO_VALID_CODE_FOUND"


@pytest.mark.parametrize("data, media_type", [
    (JPEG, "image/jpeg"),
    (PNG, "image/png"),
    (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
    (b"GIF89a...", "image/gif"),
    (b"unknown", "image/jpeg"),
])
def test_sniff_media_type(data, media_type):
    assert sniff_media_type(data) == media_type


def test_empty_image_is_ai_scan_failed(status):
    outcome = MockVision(status).recognize(b"")
    assert outcome.error_code == "AI_SCAN_FAILED"


def test_mock_vision_reply(status):
    outcome = MockVision(status, reply="no barcode visible").recognize(JPEG)
    assert outcome.error_code == "NO_VALID_CODE_FOUND"
    assert outcome.raw == "no barcode visible"


# --- Gemini over httpx ----------------------------------------------------------

def test_gemini_sends_prompt_and_image(status, monkeypatch):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=gemini_reply("9780134685991\n"))

    vision, _ = make_gemini(status, handler, monkeypatch)
    outcome = vision.recognize(PNG)

    assert outcome.code == "9780134685991"
    assert outcome.source == "vision"
    assert seen["key"] == "test-key"
    assert ":generateContent" in seen["url"]
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[0]["text"] == PROMPT
    assert parts[1]["inline_data"]["mime_type"] == "image/png"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == PNG


def test_gemini_retries_transient_errors_with_backoff(status, monkeypatch):
    replies = iter([
        httpx.Response(503, text="overloaded"),
        httpx.Response(429, text="slow down"),
        httpx.Response(200, json=gemini_reply("0134685997")),
    ])
    vision, sleeps = make_gemini(status, lambda request: next(replies), monkeypatch, retries=2, backoff_s=0.5)

    outcome = vision.recognize(JPEG)

    assert outcome.code == "0134685997"
    assert sleeps == [0.5, 1.0]


def test_gemini_gives_up_after_retries(status, monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    vision, sleeps = make_gemini(status, handler, monkeypatch, retries=2)
    outcome = vision.recognize(JPEG)

    assert outcome.error_code == "SERVICE_UNAVAILABLE"
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_gemini_client_error_is_not_retried(status, monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, text="API key not valid")

    vision, sleeps = make_gemini(status, handler, monkeypatch)
    outcome = vision.recognize(JPEG)

    assert outcome.error_code == "AI_SCAN_FAILED"
    assert len(calls) == 1
    assert sleeps == []


def test_gemini_unusable_answer_is_not_retried(status, monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"candidates": []})

    vision, _ = make_gemini(status, handler, monkeypatch)
    outcome = vision.recognize(JPEG)

    assert outcome.error_code == "NO_VALID_CODE_FOUND"
    assert outcome.raw == ""
    assert len(calls) == 1


def test_gemini_without_key_is_unavailable(status, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    vision = GeminiVision(status, http_client=httpx.Client(transport=httpx.MockTransport(lambda r: None)))
    assert not vision.ready
    assert vision.recognize(JPEG).error_code == "SERVICE_UNAVAILABLE"


# --- Claude via the anthropic SDK -------------------------------------------

class FakeMessages:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=outcome)])


def fake_client(*outcomes):
    return SimpleNamespace(messages=FakeMessages(outcomes))


def test_claude_reads_isbn(status):
    client = fake_client("ISBN 978-0-13-468599-1")
    outcome = ClaudeVision(status, client=client).recognize(JPEG)

    assert outcome.code == "9780134685991"
    (call,) = client.messages.calls
    image, text = call["messages"][0]["content"]
    assert image["source"]["media_type"] == "image/jpeg"
    assert base64.b64decode(image["source"]["data"]) == JPEG
    assert text["text"] == PROMPT


def test_claude_retries_connection_errors(status):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = fake_client(anthropic.APIConnectionError(request=request), "0134685997")
    sleeps = []
    outcome = ClaudeVision(status, client=client, sleep=sleeps.append, retries=1).recognize(JPEG)

    assert outcome.code == "0134685997"
    assert len(sleeps) == 1


def test_claude_exhausted_retries_are_unavailable(status):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = fake_client(*[anthropic.APIConnectionError(request=request)] * 3)
    outcome = ClaudeVision(status, client=client, sleep=lambda s: None, retries=2).recognize(JPEG)
    assert outcome.error_code == "SERVICE_UNAVAILABLE"


def test_claude_without_key_is_unavailable(status, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    vision = ClaudeVision(status)
    assert not vision.ready
    assert vision.recognize(JPEG).error_code == "SERVICE_UNAVAILABLE"
