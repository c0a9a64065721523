"""
Completion Client - HTTP client for the Gemini generateContent REST API.

Transport problems never raise: they come back as a TransportFailure so the
pipeline can decide what the caller sees.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS
from .structured_logging import get_request_id

logger = logging.getLogger(__name__)

# Error bodies can be large HTML pages; keep enough to debug
MAX_LOGGED_BODY = 2000


class FailureCause(str, Enum):
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    EMPTY_RESPONSE = "empty_response"


@dataclass(frozen=True)
class TransportFailure:
    cause: FailureCause
    detail: str
    status_code: Optional[int] = None
    body: Optional[str] = None


@dataclass(frozen=True)
class CompletionResult:
    text: Optional[str] = None
    failure: Optional[TransportFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def _candidate_text(data) -> Optional[str]:
    """Join the text parts of the first candidate, if any."""
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts") or []
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    text = "".join(texts)
    return text if text.strip() else None


class CompletionClient:
    """HTTP client for Gemini text and vision completions."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        vision_model: str = "gemini-2.0-flash",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.vision_model = vision_model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _url(self, multimodal: bool) -> str:
        model = self.vision_model if multimodal else self.model
        return f"{self.base_url}/v1beta/models/{model}:generateContent"

    async def invoke(self, payload: dict, multimodal: bool = False) -> CompletionResult:
        """Send one generateContent request.

        Args:
            payload: Gemini request body (contents, generationConfig, ...)
            multimodal: Route to the vision model

        Returns:
            CompletionResult with the model text, or a TransportFailure
        """
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key or "",
        }
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id

        url = self._url(multimodal)
        try:
            response = await self.client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Gemini request timed out after {self.timeout}s: {e!r}")
            return CompletionResult(failure=TransportFailure(
                cause=FailureCause.TIMEOUT,
                detail=f"timed out after {self.timeout}s",
            ))
        except httpx.RequestError as e:
            logger.error(f"Gemini connection error: {e!r}")
            return CompletionResult(failure=TransportFailure(
                cause=FailureCause.CONNECTION,
                detail=str(e) or e.__class__.__name__,
            ))

        if not response.is_success:
            body = response.text[:MAX_LOGGED_BODY]
            logger.error(f"Gemini HTTP error: {response.status_code} - {body}")
            return CompletionResult(failure=TransportFailure(
                cause=FailureCause.HTTP_STATUS,
                detail=f"Gemini API request failed: {response.status_code}",
                status_code=response.status_code,
                body=body,
            ))

        try:
            data = response.json()
        except ValueError:
            data = None

        text = _candidate_text(data)
        if text is None:
            body = response.text[:MAX_LOGGED_BODY]
            logger.warning(f"Gemini returned {response.status_code} without candidate text: {body}")
            return CompletionResult(failure=TransportFailure(
                cause=FailureCause.EMPTY_RESPONSE,
                detail="No response from Gemini",
                status_code=response.status_code,
                body=body,
            ))

        logger.info(f"Gemini response: {len(text)} chars")
        return CompletionResult(text=text)

    async def aclose(self):
        await self.client.aclose()
