"""
JSON extraction and validation for Gemini model output.

The model is prompted to emit JSON but does not always comply: it may wrap
the object in prose or markdown code fences, break long strings across
lines, leave trailing commas, or drop fields. Extraction is tolerant of the
surrounding text and strict about required fields.
"""
import json
import logging
import re
from typing import Iterator, Optional

from pydantic import ValidationError

from .errors import (
    EmptyResponse,
    InvalidField,
    MalformedJson,
    MissingField,
    NoJsonFound,
)
from .models import ANALYSIS_MODELS, RequestKind
from .sanitization import ReplyLimits, sanitize_with

logger = logging.getLogger(__name__)

# Free-text kinds carry the model text in a single field
FREE_TEXT_FIELDS = {
    RequestKind.CHAT: "reply",
    RequestKind.SCHEME_QUERY: "response",
}


def _fix_newlines_in_json_strings(text: str) -> str:
    """Replace literal newlines inside JSON string values with spaces.

    Walks the text tracking quote boundaries; a regex cannot reliably tell
    whether a newline sits inside a string.
    """
    result = []
    in_string = False
    i = 0
    while i < len(text):
        c = text[i]
        if c == '\\' and in_string and i + 1 < len(text):
            result.append(c)
            result.append(text[i + 1])
            i += 2
            continue
        if c == '"':
            in_string = not in_string
        if c == '\n' and in_string:
            result.append(' ')
        else:
            result.append(c)
        i += 1
    return ''.join(result)


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield each top-level balanced {...} span, ignoring braces inside strings."""
    depth = 0
    start = -1
    in_string = False
    i = 0
    while i < len(text):
        c = text[i]
        if in_string:
            if c == '\\':
                i += 2
                continue
            if c == '"':
                in_string = False
        elif c == '"':
            # Quotes only matter once we are inside an object
            in_string = depth > 0
        elif c == '{':
            if depth == 0:
                start = i
            depth += 1
        elif c == '}' and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]
        i += 1


def _loads(text: str) -> Optional[dict]:
    """Parse a JSON object, retrying once with trailing commas removed."""
    text = _fix_newlines_in_json_strings(text)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON parse error (direct): {e}")
        try:
            parsed = json.loads(re.sub(r',\s*([}\]])', r'\1', text))
        except json.JSONDecodeError as e:
            logger.debug(f"JSON parse error (trailing comma fix): {e}")
            return None
    return parsed if isinstance(parsed, dict) else None


def extract_json(text: str, expected_fields: tuple[str, ...] = ()) -> dict:
    """Extract the JSON object embedded in model output.

    Uses the span from the first `{` to the last `}`. If that span does not
    parse (e.g. prose before the object contains braces), each balanced
    object is tried in order and the first carrying every expected field wins.

    Raises:
        NoJsonFound: no `{` or no `}` in the text
        MalformedJson: nothing parseable as a JSON object
    """
    text = text or ""
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1:
        logger.warning(f"No JSON object found in response: {text[:200]!r}")
        raise NoJsonFound("Model response contained no JSON")

    parsed = _loads(text[start:end + 1]) if end > start else None
    if parsed is not None:
        return parsed

    for candidate in _balanced_objects(text):
        parsed = _loads(candidate)
        if parsed is not None and all(f in parsed for f in expected_fields):
            logger.info("JSON recovered from a nested object scan")
            return parsed

    logger.warning(f"Failed to parse model response as JSON: {text[:500]!r}")
    raise MalformedJson("Failed to parse model response as JSON")


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def check_required_fields(data: dict, expected_fields: tuple[str, ...]) -> None:
    """Raise MissingField for the first expected field that is absent or empty.

    0 and false are values, not gaps.
    """
    for name in expected_fields:
        if _is_empty(data.get(name)):
            raise MissingField(name)


def extract_analysis(
    kind: RequestKind,
    raw_text: Optional[str],
    expected_fields: tuple[str, ...],
    reply_limits: Optional[ReplyLimits] = None,
):
    """Turn raw model output into the StructuredAnalysis variant for `kind`.

    Free-text kinds (empty `expected_fields`) skip JSON handling; their text is
    bounded with `reply_limits` when given.

    Raises:
        ExtractionFailure subclass describing the first problem found
    """
    model_cls = ANALYSIS_MODELS[kind]

    if not expected_fields:
        text = (raw_text or "").strip()
        if reply_limits is not None:
            text = sanitize_with(text, reply_limits)
        if not text:
            raise EmptyResponse("Model response was empty")
        return model_cls(**{FREE_TEXT_FIELDS[kind]: text})

    data = extract_json(raw_text, expected_fields)
    check_required_fields(data, expected_fields)

    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ())) or None
        raise InvalidField(f"Invalid field {loc}: {first.get('msg')}", field=loc) from e
