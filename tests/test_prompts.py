"""Tests for prompt construction and scheme context lookup."""
from health_ai.models import (
    ChatRequest,
    PatientInfo,
    SchemeQueryRequest,
    SymptomRequest,
    XRayRequest,
)
from health_ai.prompts import (
    CHAT_GENERATION_CONFIG,
    GENERIC_SCHEME_CONTEXT,
    SCHEME_CONTEXT,
    SYMPTOM_FIELDS,
    XRAY_FIELDS,
    build_prompt,
    scheme_context,
)
from health_ai.sanitization import CHAT_REPLY_LIMITS, SCHEME_REPLY_LIMITS, WIDGET_REPLY_LIMITS


def _text_parts(payload: dict) -> str:
    return "\n".join(p["text"] for p in payload["contents"][0]["parts"] if "text" in p)


class TestChatPrompt:
    """Test chat payloads."""

    def test_system_instruction_and_sampling(self):
        built = build_prompt(ChatRequest(message="I have a sore throat"))
        system = built.payload["systemInstruction"]["parts"][0]["text"]
        assert "2 to 3 short sentences" in system
        assert "no markdown" in system
        assert built.payload["generationConfig"] == CHAT_GENERATION_CONFIG
        assert _text_parts(built.payload) == "I have a sore throat"

    def test_free_text_schema(self):
        built = build_prompt(ChatRequest(message="hello"))
        assert built.expected_schema == ()
        assert built.multimodal is False
        assert built.reply_limits == CHAT_REPLY_LIMITS

    def test_user_html_stripped(self):
        built = build_prompt(ChatRequest(message="<i>dizzy</i>"))
        assert _text_parts(built.payload) == "dizzy"


class TestSymptomPrompt:
    """Test symptom analysis payloads."""

    def test_mandates_json_fields(self):
        built = build_prompt(SymptomRequest(symptoms="mild headache for 2 hours"))
        text = _text_parts(built.payload)
        assert "mild headache for 2 hours" in text
        for field in SYMPTOM_FIELDS:
            assert f'"{field}"' in text
        assert built.expected_schema == SYMPTOM_FIELDS

    def test_patient_info_included(self):
        info = PatientInfo(age=42, allergies=["penicillin"], pain_scale=6)
        built = build_prompt(SymptomRequest(symptoms="back pain", additional_info=info))
        text = _text_parts(built.payload)
        assert "Age: 42" in text
        assert "penicillin" in text
        assert "6/10" in text

    def test_no_patient_info(self):
        text = _text_parts(build_prompt(SymptomRequest(symptoms="cough")).payload)
        assert "No additional patient information" in text


class TestXRayPrompt:
    """Test X-ray payloads."""

    def test_image_attached(self, png_b64):
        request = XRayRequest(
            image_data=png_b64,
            image_type="image/png",
            body_part="Chest",
            clinical_indication="persistent cough",
        )
        built = build_prompt(request)
        parts = built.payload["contents"][0]["parts"]
        inline = [p["inlineData"] for p in parts if "inlineData" in p]
        assert inline == [{"mimeType": "image/png", "data": png_b64}]
        text = _text_parts(built.payload)
        assert "Body part: chest" in text
        assert "persistent cough" in text
        assert built.multimodal is True
        assert built.expected_schema == XRAY_FIELDS

    def test_jpg_alias_normalized(self, png_b64):
        request = XRayRequest(image_data=png_b64, image_type="IMAGE/JPG")
        assert request.image_type == "image/jpeg"

    def test_unknown_body_part_is_other(self, png_b64):
        request = XRayRequest(image_data=png_b64, image_type="image/png", body_part="elbow")
        assert request.body_part == "other"


class TestSchemePrompt:
    """Test scheme queries and context lookup."""

    def test_known_scheme_context_is_stable(self):
        first = scheme_context("pmjay")
        for _ in range(3):
            assert scheme_context("pmjay") == first
        assert SCHEME_CONTEXT["pmjay"]["name"] in first

    def test_known_scheme_in_prompt(self):
        request = SchemeQueryRequest(scheme="pmjay", scheme_title="Ayushman Bharat", query="Who is eligible?")
        built = build_prompt(request)
        text = _text_parts(built.payload)
        assert scheme_context("pmjay") in text
        assert "Who is eligible?" in text
        assert built.expected_schema == ()
        assert built.reply_limits == SCHEME_REPLY_LIMITS

    def test_same_scheme_same_payload(self):
        request = SchemeQueryRequest(scheme="cghs", query="How do I get a card?")
        assert build_prompt(request).payload == build_prompt(request).payload

    def test_unknown_scheme_uses_title(self):
        assert scheme_context("unknown-id", "State Health Card") == "Scheme: State Health Card"

    def test_chatbot_context_and_generic(self):
        assert scheme_context(None, None, "Clinic hours are 9 to 5.") == "Clinic hours are 9 to 5."
        assert scheme_context(None) == GENERIC_SCHEME_CONTEXT

    def test_widget_limits(self):
        built = build_prompt(SchemeQueryRequest(query="What is PM-JAY?"))
        assert built.reply_limits == WIDGET_REPLY_LIMITS
