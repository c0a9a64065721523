"""
Text and input sanitization for the Health Assistant AI Service.

Two directions:
  - inbound: user text is stripped of HTML/control characters before it is
    embedded in a prompt, and uploaded images are checked before they are
    forwarded to the vision model.
  - outbound: conversational model replies are reduced to a few plain-text
    sentences with a hard character cap.
"""
import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import InvalidRequestError

MAX_MESSAGE_LENGTH = 2000
MAX_SYMPTOMS_LENGTH = 5000
MAX_QUERY_LENGTH = 2000
MAX_CONTEXT_LENGTH = 4000

ELLIPSIS = "…"

# Inline image types Gemini accepts that Pillow can also verify
ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
}


@dataclass(frozen=True)
class ReplyLimits:
    max_sentences: int
    max_chars: int


# Call-site limits for outbound text
CHAT_REPLY_LIMITS = ReplyLimits(max_sentences=3, max_chars=350)
WIDGET_REPLY_LIMITS = ReplyLimits(max_sentences=2, max_chars=150)
SCHEME_REPLY_LIMITS = ReplyLimits(max_sentences=3, max_chars=350)

_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


# ---------------------------------------------------------------------------
# Outbound: model reply -> bounded plain text
# ---------------------------------------------------------------------------

def sanitize_reply(
    raw: Optional[str],
    max_sentences: int = CHAT_REPLY_LIMITS.max_sentences,
    max_chars: int = CHAT_REPLY_LIMITS.max_chars,
) -> str:
    """Reduce model output to short, markdown-free plain text.

    Never raises. The result contains no `*`, `_` or backtick characters
    and is at most ``max_chars + 1`` characters long (the ellipsis).
    """
    if not raw:
        return ""
    text = str(raw)

    text = re.sub(r'[*•·]+', ' ', text)
    # Leading list markers ("- ", "1. ", "2) ") on each line
    text = re.sub(r'^[ \t]*(?:-+|\d+[.)])[ \t]+', '', text, flags=re.MULTILINE)
    text = re.sub(r'[_`]+', '', text)
    text = re.sub(r'\s*\n+\s*', ' ', text)
    text = re.sub(r'\s{2,}', ' ', text).strip()

    sentences = [s for s in _SENTENCE_BOUNDARY.split(text) if s]
    if len(sentences) > max_sentences:
        text = ' '.join(sentences[:max_sentences])

    if len(text) > max_chars:
        text = re.sub(r'\s+\S*$', '', text[:max_chars]) + ELLIPSIS

    return text


def sanitize_with(raw: Optional[str], limits: ReplyLimits) -> str:
    return sanitize_reply(raw, max_sentences=limits.max_sentences, max_chars=limits.max_chars)


# ---------------------------------------------------------------------------
# Inbound: user text
# ---------------------------------------------------------------------------

def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Strip HTML tags and control characters, trim, and cap the length.

    The result goes into a prompt, not a web page, so it is not HTML-escaped.
    """
    if not text:
        return ""

    text = _strip_html_tags(text.strip())
    text = _remove_control_chars(text)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text.strip()


def _strip_html_tags(text: str) -> str:
    text = re.sub(r'<script[^>]*>.*?</script>', '', text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r'<style[^>]*>.*?</style>', '', text, flags=re.IGNORECASE | re.DOTALL)
    return re.sub(r'<[^>]+>', '', text)


def _remove_control_chars(text: str) -> str:
    # Keeps \t, \n and \r
    return re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)


# ---------------------------------------------------------------------------
# Inbound: images
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: str
    size_bytes: int
    mime_type: str

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "sizeBytes": self.size_bytes,
            "mimeType": self.mime_type,
        }


def validate_image_type(content_type: str) -> bool:
    return content_type.lower() in ALLOWED_IMAGE_TYPES


def inspect_image(image_b64: str, mime_type: str, max_bytes: int) -> ImageMetadata:
    """Decode a base64 upload and check it is a readable image.

    Raises:
        InvalidRequestError: unsupported type, bad base64, too large or not an image.
    """
    if not validate_image_type(mime_type):
        raise InvalidRequestError(
            f"Unsupported image type: {mime_type}. "
            f"Accepted: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
        )

    try:
        raw = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequestError("imageData is not valid base64")

    if not raw:
        raise InvalidRequestError("imageData is empty")
    if len(raw) > max_bytes:
        raise InvalidRequestError(f"Image too large: {len(raw)} bytes (limit {max_bytes})")

    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.verify()
            width, height = image.size
            fmt = image.format or ""
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidRequestError(f"Failed to read image: {e}")

    return ImageMetadata(
        width=width,
        height=height,
        format=fmt,
        size_bytes=len(raw),
        mime_type=mime_type,
    )
