"""
Static fallback answers, used when the completion service is unreachable or
its output cannot be validated. Partial model output is never merged in.
"""
from typing import Optional

from .models import (
    ChatReply,
    DiseaseFinding,
    RequestKind,
    SchemeAnswer,
    SymptomAnalysis,
    XRayAnalysis,
)
from .prompts import SCHEME_CONTEXT

CHAT_FALLBACK_REPLY = (
    "Sorry, I could not reach the assistant right now. "
    "Please try again in a moment, and contact a healthcare professional if your symptoms are severe."
)

SYMPTOM_FALLBACK_RECOMMENDATIONS = (
    "Monitor your symptoms closely",
    "Keep a symptom diary",
    "Stay hydrated and get adequate rest",
    "Consider over-the-counter remedies for symptom relief",
    "Consult a healthcare provider for proper evaluation",
)

SYMPTOM_FALLBACK_MEDICAL_HELP = (
    "Seek medical attention if symptoms worsen, persist for more than a few days, "
    "or if you experience severe symptoms like difficulty breathing, chest pain, "
    "confusion, or high fever."
)

SYMPTOM_FALLBACK_RISK = "moderate"
SYMPTOM_FALLBACK_CONFIDENCE = 75

XRAY_FALLBACK_RECOMMENDATIONS = (
    "Have the image reviewed by a qualified radiologist",
    "Share the X-ray and its report with your doctor",
    "Seek urgent care if you have severe pain, breathing difficulty or a suspected fracture",
)

XRAY_FALLBACK_ASSESSMENT = (
    "Automated analysis of this X-ray could not be completed. "
    "The image has not been interpreted, so no findings should be inferred from this result."
)


def symptom_fallback(symptoms: str) -> SymptomAnalysis:
    return SymptomAnalysis(
        analysis=(
            f'I\'ve analyzed your symptoms: "{symptoms}". While I can provide general guidance, '
            "it's important to consult with a healthcare professional for accurate diagnosis."
        ),
        risk_level=SYMPTOM_FALLBACK_RISK,
        recommendations=list(SYMPTOM_FALLBACK_RECOMMENDATIONS),
        medical_help=SYMPTOM_FALLBACK_MEDICAL_HELP,
        confidence=SYMPTOM_FALLBACK_CONFIDENCE,
    )


def xray_fallback() -> XRayAnalysis:
    return XRayAnalysis(
        confidence=0,
        diseases=[
            DiseaseFinding(
                name="Analysis unavailable",
                probability=0,
                level="warning",
                description="The image could not be analyzed automatically and needs professional review.",
            )
        ],
        recommendations=list(XRAY_FALLBACK_RECOMMENDATIONS),
        overall_assessment=XRAY_FALLBACK_ASSESSMENT,
        urgency_level="moderate",
    )


def chat_fallback() -> ChatReply:
    return ChatReply(reply=CHAT_FALLBACK_REPLY)


def scheme_fallback(title: Optional[str]) -> SchemeAnswer:
    if not title:
        return SchemeAnswer(response="Sorry, I could not reach the assistant right now. Please try again in a moment.")
    return SchemeAnswer(response=(
        f"I couldn't retrieve details about {title} right now. "
        "Please check the official scheme portal or call its helpline for accurate information."
    ))


def fallback_for(request):
    """Fresh fallback StructuredAnalysis for the request's kind."""
    if request.kind == RequestKind.SYMPTOM:
        return symptom_fallback(request.symptoms)
    if request.kind == RequestKind.XRAY:
        return xray_fallback()
    if request.kind == RequestKind.SCHEME_QUERY:
        return scheme_fallback(_scheme_title(request))
    return chat_fallback()


def _scheme_title(request) -> Optional[str]:
    entry = SCHEME_CONTEXT.get((request.scheme or "").strip().lower())
    if entry is not None:
        return entry["name"]
    if request.scheme_title and request.scheme_title.strip():
        return request.scheme_title.strip()
    return None
