"""
Text formatting utilities for prompt construction.

Converts structured request data (patient info, scheme context, X-ray
clinical context) into readable text blocks for the completion model.
"""
from typing import Optional


def format_patient_info(info) -> str:
    """Format optional PatientInfo into readable text."""
    if info is None:
        return "No additional patient information provided"

    lines = []
    if info.age is not None:
        lines.append(f"- Age: {info.age}")
    if info.gender:
        lines.append(f"- Gender: {info.gender}")
    if info.medical_history:
        lines.append(f"- Medical history: {', '.join(info.medical_history)}")
    if info.current_medications:
        lines.append(f"- Current medications: {', '.join(info.current_medications)}")
    if info.allergies:
        lines.append(f"- Allergies: {', '.join(info.allergies)}")
    if info.recent_travel is not None:
        lines.append(f"- Recent travel: {'yes' if info.recent_travel else 'no'}")
    if info.recent_exposure:
        lines.append(f"- Recent exposure: {info.recent_exposure}")
    if info.pain_scale is not None:
        lines.append(f"- Pain scale: {info.pain_scale}/10")
    return "\n".join(lines) if lines else "No additional patient information provided"


def format_scheme_context(entry: dict) -> str:
    """Format a scheme context table entry into a prompt block."""
    lines = [f"Scheme: {entry['name']}", f"About: {entry['description']}"]
    facts = entry.get("key_facts") or []
    if facts:
        lines.append("Key facts:")
        lines.extend(f"- {fact}" for fact in facts)
    return "\n".join(lines)


def format_xray_context(body_part: Optional[str], clinical_indication: Optional[str]) -> str:
    """Format the clinical context that accompanies an X-ray image."""
    lines = [f"Body part: {body_part or 'not specified'}"]
    if clinical_indication:
        lines.append(f"Clinical indication: {clinical_indication}")
    return "\n".join(lines)
