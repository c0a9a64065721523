"""
Prompt templates and request -> Gemini payload construction.
Note: All JSON example braces are doubled ({{ }}) to escape them for .format()
"""
from dataclasses import dataclass
from typing import Callable, Optional

from .formatters import format_patient_info, format_scheme_context, format_xray_context
from .models import RequestKind, SchemeQueryRequest
from .sanitization import (
    CHAT_REPLY_LIMITS,
    MAX_CONTEXT_LENGTH,
    MAX_MESSAGE_LENGTH,
    MAX_QUERY_LENGTH,
    MAX_SYMPTOMS_LENGTH,
    SCHEME_REPLY_LIMITS,
    WIDGET_REPLY_LIMITS,
    ReplyLimits,
    sanitize_text,
)

# --- Chat ---

CHAT_SYSTEM_INSTRUCTION = (
    "You are AI Health Assistant. Respond in 2 to 3 short sentences. "
    "Use plain text only: no bullets, no lists, no asterisks, no markdown. "
    "If symptoms may be serious, include a brief safety note."
)

CHAT_GENERATION_CONFIG = {
    "temperature": 0.3,
    "maxOutputTokens": 110,
    "topK": 40,
    "topP": 0.9,
}

# --- Symptom analysis ---

SYMPTOM_FIELDS = ("analysis", "riskLevel", "recommendations", "medicalHelp", "confidence")

SYMPTOM_PROMPT = """You are a medical AI assistant. Analyze the following symptoms and respond with ONLY this exact JSON format:

{{
  "analysis": "Brief analysis of the symptoms (max 3 sentences)",
  "riskLevel": "low|moderate|high|critical",
  "recommendations": ["recommendation 1", "recommendation 2", "recommendation 3"],
  "medicalHelp": "When to seek medical attention (1-2 sentences)",
  "confidence": 85
}}

Rules:
- riskLevel must be exactly one of: low, moderate, high, critical
- recommendations: 3 to 5 short, actionable items
- confidence: an integer from 0 to 100
- Be medically accurate but conservative. Always emphasize consulting healthcare professionals.

Symptoms: {symptoms}

Patient information:
{patient_info}

Only respond with valid JSON."""

SYMPTOM_GENERATION_CONFIG = {
    "temperature": 0.4,
    "maxOutputTokens": 800,
    "responseMimeType": "application/json",
}

# --- X-ray analysis ---

XRAY_FIELDS = ("confidence", "diseases", "recommendations", "overallAssessment", "urgencyLevel")

XRAY_PROMPT = """You are a radiology AI assistant reviewing the attached X-ray image for a patient-facing health app.

Clinical context:
{clinical_context}

Respond with ONLY this exact JSON format:

{{
  "confidence": 80,
  "diseases": [
    {{
      "name": "Finding or condition name",
      "probability": 60,
      "level": "normal|warning|critical",
      "description": "One sentence describing the finding"
    }}
  ],
  "recommendations": ["recommendation 1", "recommendation 2"],
  "overallAssessment": "Overall impression in 2-3 sentences",
  "urgencyLevel": "low|moderate|high|critical"
}}

Rules:
- Always list at least one entry in diseases. If the image looks normal, use a single entry with level "normal".
- probability and confidence are integers from 0 to 100.
- level must be exactly one of: normal, warning, critical
- urgencyLevel must be exactly one of: low, moderate, high, critical
- Recommend review by a qualified radiologist. Do not claim certainty.

Only respond with valid JSON."""

XRAY_GENERATION_CONFIG = {
    "temperature": 0.2,
    "maxOutputTokens": 1024,
    "responseMimeType": "application/json",
}

# --- Scheme / chatbot queries ---

SCHEME_SYSTEM_INSTRUCTION = (
    "You are a helpful assistant that explains public health and insurance schemes. "
    "Answer only from the scheme context provided and general public knowledge about it. "
    "If you are not sure, say so and point the user to the official portal or helpline. "
    "Use plain text only, no markdown, no lists."
)

SCHEME_PROMPT = """Scheme context:
{scheme_context}

User question: {query}

Answer in 2 or 3 short sentences."""

WIDGET_PROMPT = """Context:
{context}

User question: {query}

Answer in 1 or 2 short sentences."""

SCHEME_GENERATION_CONFIG = {
    "temperature": 0.4,
    "maxOutputTokens": 200,
    "topP": 0.9,
}

WIDGET_GENERATION_CONFIG = {
    "temperature": 0.3,
    "maxOutputTokens": 110,
    "topP": 0.9,
}

GENERIC_SCHEME_CONTEXT = (
    "General questions about government and public health schemes: eligibility, "
    "covered services, how to enrol and where to get help."
)

# Static context for schemes the front end links to, keyed by scheme id
SCHEME_CONTEXT: dict[str, dict] = {
    "pmjay": {
        "name": "Ayushman Bharat Pradhan Mantri Jan Arogya Yojana (AB PM-JAY)",
        "description": (
            "Government-funded health assurance scheme providing cashless secondary "
            "and tertiary hospital care to eligible families."
        ),
        "key_facts": [
            "Cover of up to Rs 5 lakh per family per year",
            "Cashless and paperless treatment at empanelled public and private hospitals",
            "Eligibility based on deprivation and occupational criteria (SECC 2011)",
            "Covers 3 days of pre-hospitalisation and 15 days of post-hospitalisation expenses",
            "National helpline: 14555",
        ],
    },
    "cghs": {
        "name": "Central Government Health Scheme (CGHS)",
        "description": (
            "Comprehensive medical care for central government employees, "
            "pensioners and their dependents."
        ),
        "key_facts": [
            "OPD care through CGHS wellness centres in participating cities",
            "Hospitalisation at government and empanelled private hospitals",
            "Medicines dispensed through wellness centres",
            "Beneficiaries need a valid CGHS card",
        ],
    },
    "jsy": {
        "name": "Janani Suraksha Yojana (JSY)",
        "description": (
            "Safe motherhood scheme under the National Health Mission that promotes "
            "institutional delivery among poor pregnant women."
        ),
        "key_facts": [
            "Cash assistance for delivery in a government or accredited health facility",
            "Focus on low-income households and low institutional-delivery states",
            "ASHA workers help women register and reach a facility",
        ],
    },
    "pmsby": {
        "name": "Pradhan Mantri Suraksha Bima Yojana (PMSBY)",
        "description": "Low-cost accident insurance scheme linked to a bank or post office account.",
        "key_facts": [
            "Rs 2 lakh for accidental death or total permanent disability",
            "Rs 1 lakh for partial permanent disability",
            "Open to account holders aged 18 to 70",
            "Annual premium of Rs 20, auto-debited from the account",
        ],
    },
    "esis": {
        "name": "Employees' State Insurance Scheme (ESIS)",
        "description": (
            "Social security and health insurance for workers in covered establishments "
            "and their families."
        ),
        "key_facts": [
            "Covers employees earning up to Rs 21,000 per month",
            "Full medical care for the insured person and dependents",
            "Cash benefits for sickness, maternity and employment injury",
        ],
    },
}


@dataclass(frozen=True)
class BuiltPrompt:
    payload: dict
    expected_schema: tuple[str, ...]  # empty for free-text kinds
    multimodal: bool = False
    reply_limits: Optional[ReplyLimits] = None


def _user_content(*parts: dict) -> list[dict]:
    return [{"role": "user", "parts": list(parts)}]


def _system(text: str) -> dict:
    return {"parts": [{"text": text}]}


def scheme_context(scheme_id: Optional[str], title: Optional[str] = None,
                   context: Optional[str] = None) -> str:
    """Resolve the context block for a scheme question.

    Known ids always produce the same text; otherwise the caller title, then
    the caller context, then a generic description is used.
    """
    entry = SCHEME_CONTEXT.get((scheme_id or "").strip().lower())
    if entry is not None:
        return format_scheme_context(entry)
    if title and title.strip():
        return f"Scheme: {sanitize_text(title, 200)}"
    if context and context.strip():
        return sanitize_text(context, MAX_CONTEXT_LENGTH)
    return GENERIC_SCHEME_CONTEXT


def build_chat_prompt(request) -> BuiltPrompt:
    message = sanitize_text(request.message, MAX_MESSAGE_LENGTH)
    return BuiltPrompt(
        payload={
            "systemInstruction": _system(CHAT_SYSTEM_INSTRUCTION),
            "generationConfig": dict(CHAT_GENERATION_CONFIG),
            "contents": _user_content({"text": message}),
        },
        expected_schema=(),
        reply_limits=CHAT_REPLY_LIMITS,
    )


def build_symptom_prompt(request) -> BuiltPrompt:
    prompt = SYMPTOM_PROMPT.format(
        symptoms=sanitize_text(request.symptoms, MAX_SYMPTOMS_LENGTH),
        patient_info=format_patient_info(request.additional_info),
    )
    return BuiltPrompt(
        payload={
            "generationConfig": dict(SYMPTOM_GENERATION_CONFIG),
            "contents": _user_content({"text": prompt}),
        },
        expected_schema=SYMPTOM_FIELDS,
    )


def build_xray_prompt(request) -> BuiltPrompt:
    prompt = XRAY_PROMPT.format(
        clinical_context=format_xray_context(
            request.body_part,
            sanitize_text(request.clinical_indication, MAX_QUERY_LENGTH) or None,
        ),
    )
    return BuiltPrompt(
        payload={
            "generationConfig": dict(XRAY_GENERATION_CONFIG),
            "contents": _user_content(
                {"text": prompt},
                {"inlineData": {"mimeType": request.image_type, "data": request.image_data}},
            ),
        },
        expected_schema=XRAY_FIELDS,
        multimodal=True,
    )


def build_scheme_prompt(request: SchemeQueryRequest) -> BuiltPrompt:
    query = sanitize_text(request.query, MAX_QUERY_LENGTH)
    context = scheme_context(request.scheme, request.scheme_title, request.context)

    # A named scheme gets the longer answer; the floating widget stays short
    if request.scheme or request.scheme_title:
        prompt = SCHEME_PROMPT.format(scheme_context=context, query=query)
        config, limits = SCHEME_GENERATION_CONFIG, SCHEME_REPLY_LIMITS
    else:
        prompt = WIDGET_PROMPT.format(context=context, query=query)
        config, limits = WIDGET_GENERATION_CONFIG, WIDGET_REPLY_LIMITS

    return BuiltPrompt(
        payload={
            "systemInstruction": _system(SCHEME_SYSTEM_INSTRUCTION),
            "generationConfig": dict(config),
            "contents": _user_content({"text": prompt}),
        },
        expected_schema=(),
        reply_limits=limits,
    )


PROMPT_BUILDERS: dict[RequestKind, Callable[..., BuiltPrompt]] = {
    RequestKind.CHAT: build_chat_prompt,
    RequestKind.SYMPTOM: build_symptom_prompt,
    RequestKind.XRAY: build_xray_prompt,
    RequestKind.SCHEME_QUERY: build_scheme_prompt,
}


def build_prompt(request) -> BuiltPrompt:
    """Build the outbound Gemini payload and expected schema for a request."""
    return PROMPT_BUILDERS[request.kind](request)
