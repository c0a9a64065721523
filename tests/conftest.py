from __future__ import annotations

import base64
import io
import json
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from health_ai.completion_client import CompletionClient
from health_ai.config import Settings
from health_ai.main import create_app
from health_ai.records import InMemoryRecordStore


def gemini_body(text: str) -> dict:
    """A generateContent success body carrying `text`."""
    return {
        "candidates": [
            {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}
        ]
    }


class FakeGemini:
    """Records outbound calls and answers with a canned response."""

    def __init__(self, text: str = "", status_code: int = 200, raw_body: dict | None = None):
        self.text = text
        self.status_code = status_code
        self.raw_body = raw_body
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text='{"error": {"message": "quota exceeded"}}')
        return httpx.Response(200, json=self.raw_body if self.raw_body is not None else gemini_body(self.text))

    def payload(self, index: int = 0) -> dict:
        return json.loads(self.calls[index].content)


def make_client(handler, api_key: str | None = "test-key") -> CompletionClient:
    return CompletionClient(api_key=api_key, transport=httpx.MockTransport(handler))


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def make_test_client(store) -> Callable[..., TestClient]:
    def _make(handler, api_key: str | None = "test-key") -> TestClient:
        settings = Settings(api_key=api_key, log_json=False)
        app = create_app(settings=settings, client=make_client(handler, api_key), store=store)
        return TestClient(app)

    return _make


@pytest.fixture
def png_b64() -> str:
    buffer = io.BytesIO()
    Image.new("L", (16, 12), color=128).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()
