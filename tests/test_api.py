"""API tests for the FastAPI service with a mocked Gemini transport."""
import json

import pytest

import health_ai.main
import health_ai.pipeline
from conftest import FakeGemini
from health_ai.fallbacks import CHAT_FALLBACK_REPLY, SYMPTOM_FALLBACK_RECOMMENDATIONS

COMPLIANT_SYMPTOMS = {
    "analysis": "Likely a tension headache.",
    "riskLevel": "low",
    "recommendations": ["rest"],
    "medicalHelp": "See a doctor if it lasts more than 3 days.",
    "confidence": 80,
}

COMPLIANT_XRAY = {
    "confidence": 70,
    "diseases": [
        {"name": "No acute findings", "probability": 85, "level": "normal", "description": "Clear lung fields."}
    ],
    "recommendations": ["Routine follow-up"],
    "overallAssessment": "Normal chest radiograph.",
    "urgencyLevel": "low",
}


class TestHealthEndpoint:
    """Test GET /health."""

    def test_configured(self, make_test_client):
        response = make_test_client(FakeGemini()).get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "completionService": "configured",
            "recordStore": "memory",
        }

    def test_unconfigured(self, make_test_client):
        response = make_test_client(FakeGemini(), api_key=None).get("/health")
        assert response.json()["completionService"] == "unconfigured"


class TestSymptomEndpoint:
    """Test POST /api/analyze-symptoms."""

    def test_compliant_reply(self, make_test_client):
        client = make_test_client(FakeGemini(text=json.dumps(COMPLIANT_SYMPTOMS)))
        response = client.post("/api/analyze-symptoms", json={"symptoms": "mild headache for 2 hours"})
        assert response.status_code == 200
        body = response.json()
        assert body["riskLevel"] == "low"
        assert body["confidence"] == 80
        assert response.headers["X-Analysis-Source"] == "model"

    def test_prose_reply_gets_fallback(self, make_test_client):
        client = make_test_client(FakeGemini(text="I think you should rest and drink fluids."))
        response = client.post("/api/analyze-symptoms", json={"symptoms": "mild headache for 2 hours"})
        assert response.status_code == 200
        body = response.json()
        assert body["riskLevel"] == "moderate"
        assert body["confidence"] == 75
        assert body["recommendations"] == list(SYMPTOM_FALLBACK_RECOMMENDATIONS)
        assert response.headers["X-Analysis-Source"] == "fallback"

    def test_patient_info_forwarded(self, make_test_client):
        fake = FakeGemini(text=json.dumps(COMPLIANT_SYMPTOMS))
        client = make_test_client(fake)
        client.post("/api/analyze-symptoms", json={
            "symptoms": "back pain",
            "additionalInfo": {"age": 42, "allergies": ["penicillin"]},
        })
        prompt = fake.payload()["contents"][0]["parts"][0]["text"]
        assert "Age: 42" in prompt
        assert "penicillin" in prompt

    def test_missing_symptoms(self, make_test_client):
        fake = FakeGemini()
        response = make_test_client(fake).post("/api/analyze-symptoms", json={})
        assert response.status_code == 400
        assert "symptoms" in response.json()["error"]
        assert fake.calls == []

    def test_blank_symptoms(self, make_test_client):
        response = make_test_client(FakeGemini()).post("/api/analyze-symptoms", json={"symptoms": "   "})
        assert response.status_code == 400

    def test_record_stored_for_user(self, make_test_client, store):
        client = make_test_client(FakeGemini(text=json.dumps(dict(COMPLIANT_SYMPTOMS, riskLevel="critical"))))
        client.post("/api/analyze-symptoms", json={"symptoms": "crushing chest pain", "userId": "u1"})
        records = store.recent_for_user("u1")
        assert len(records) == 1
        assert records[0].is_emergency
        assert records[0].record_type == "symptom_analysis"

    def test_no_record_without_user(self, make_test_client, store):
        client = make_test_client(FakeGemini(text=json.dumps(COMPLIANT_SYMPTOMS)))
        client.post("/api/analyze-symptoms", json={"symptoms": "cough"})
        assert store.recent_for_user("u1") == []


class TestChatEndpoint:
    """Test POST /api/chat."""

    def test_reply_is_plain_and_short(self, make_test_client):
        text = "**Rest** well.\n* Drink water.\n* Sleep early.\n* Eat fruit."
        response = make_test_client(FakeGemini(text=text)).post("/api/chat", json={"message": "I feel tired"})
        assert response.status_code == 200
        reply = response.json()["reply"]
        assert reply == "Rest well. Drink water. Sleep early."
        assert "*" not in reply
        assert len(reply) <= 351

    def test_missing_credential(self, make_test_client):
        fake = FakeGemini(text="unused")
        response = make_test_client(fake, api_key=None).post("/api/chat", json={"message": "hello"})
        assert response.status_code == 503
        assert "GEMINI_API_KEY" in response.json()["error"]
        assert fake.calls == []

    def test_missing_message(self, make_test_client):
        response = make_test_client(FakeGemini()).post("/api/chat", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "message is required"}

    def test_invalid_json_body(self, make_test_client):
        response = make_test_client(FakeGemini()).post(
            "/api/chat", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_validation_runs_before_credential_check(self, make_test_client):
        response = make_test_client(FakeGemini(), api_key=None).post("/api/chat", json={})
        assert response.status_code == 400

    def test_upstream_error_gets_fallback(self, make_test_client):
        response = make_test_client(FakeGemini(status_code=503)).post("/api/chat", json={"message": "hi"})
        assert response.status_code == 200
        assert response.json() == {"reply": CHAT_FALLBACK_REPLY}

    def test_request_id_echoed(self, make_test_client):
        response = make_test_client(FakeGemini(text="Hello.")).post(
            "/api/chat", json={"message": "hi"}, headers={"X-Request-ID": "abc123"}
        )
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_generated(self, make_test_client):
        response = make_test_client(FakeGemini(text="Hello.")).post("/api/chat", json={"message": "hi"})
        assert response.headers["X-Request-ID"]


class TestXRayEndpoint:
    """Test POST /api/analyze-xray."""

    def test_compliant_reply(self, make_test_client, png_b64):
        fake = FakeGemini(text=json.dumps(COMPLIANT_XRAY))
        response = make_test_client(fake).post("/api/analyze-xray", json={
            "imageData": png_b64,
            "imageType": "image/png",
            "bodyPart": "chest",
        })
        assert response.status_code == 200
        assert response.json() == COMPLIANT_XRAY
        assert fake.calls[0].url.path.endswith("/models/gemini-2.0-flash:generateContent")

    def test_data_url_prefix_accepted(self, make_test_client, png_b64):
        fake = FakeGemini(text=json.dumps(COMPLIANT_XRAY))
        response = make_test_client(fake).post("/api/analyze-xray", json={
            "imageData": f"data:image/png;base64,{png_b64}",
            "imageType": "image/png",
        })
        assert response.status_code == 200
        parts = fake.payload()["contents"][0]["parts"]
        assert {"inlineData": {"mimeType": "image/png", "data": png_b64}} in parts

    @pytest.mark.parametrize("image_type", ["application/pdf", "image/gif", "image/bmp"])
    def test_unsupported_type(self, make_test_client, png_b64, image_type):
        fake = FakeGemini()
        response = make_test_client(fake).post("/api/analyze-xray", json={
            "imageData": png_b64,
            "imageType": image_type,
        })
        assert response.status_code == 400
        assert fake.calls == []

    def test_missing_image(self, make_test_client):
        response = make_test_client(FakeGemini()).post("/api/analyze-xray", json={"imageType": "image/png"})
        assert response.status_code == 400
        assert "imageData" in response.json()["error"]

    def test_record_has_image_metadata(self, make_test_client, store, png_b64):
        client = make_test_client(FakeGemini(text="not json"))
        client.post("/api/analyze-xray", json={
            "imageData": png_b64,
            "imageType": "image/png",
            "userId": "u2",
        })
        [record] = store.recent_for_user("u2")
        assert record.source == "fallback"
        assert record.image_metadata["width"] == 16


class TestSchemeEndpoints:
    """Test POST /api/scheme-query and /api/chatbot-query."""

    def test_scheme_query(self, make_test_client):
        fake = FakeGemini(text="PM-JAY covers up to Rs 5 lakh per family per year.")
        response = make_test_client(fake).post("/api/scheme-query", json={
            "scheme": "pmjay",
            "schemeTitle": "Ayushman Bharat",
            "query": "What is the cover?",
        })
        assert response.status_code == 200
        assert response.json() == {"response": "PM-JAY covers up to Rs 5 lakh per family per year."}

    def test_chatbot_query_with_context(self, make_test_client):
        fake = FakeGemini(text="The clinic opens at 9.")
        response = make_test_client(fake).post("/api/chatbot-query", json={
            "query": "When does it open?",
            "context": "Clinic hours are 9 to 5.",
        })
        assert response.status_code == 200
        assert response.json()["response"] == "The clinic opens at 9."
        assert "Clinic hours are 9 to 5." in json.dumps(fake.payload())

    def test_missing_query(self, make_test_client):
        response = make_test_client(FakeGemini()).post("/api/chatbot-query", json={"context": "x"})
        assert response.status_code == 400

    def test_scheme_fallback_names_scheme(self, make_test_client):
        response = make_test_client(FakeGemini(status_code=500)).post("/api/scheme-query", json={
            "scheme": "unknown",
            "schemeTitle": "State Health Card",
            "query": "Cover?",
        })
        assert response.status_code == 200
        assert "State Health Card" in response.json()["response"]


class TestUnexpectedErrors:
    """Test handling of unexpected exceptions inside a request."""

    def test_pipeline_exception_is_500_with_error(self, make_test_client, monkeypatch):
        def broken_prompt(request):
            raise RuntimeError("prompt table corrupted")

        monkeypatch.setattr(health_ai.pipeline, "build_prompt", broken_prompt)
        response = make_test_client(FakeGemini(text="unused")).post("/api/chat", json={"message": "hi"})
        assert response.status_code == 500
        assert "prompt table corrupted" in response.json()["error"]
        assert response.headers["X-Request-ID"]

    def test_record_failure_does_not_change_response(self, make_test_client, store, monkeypatch):
        def broken_record(*args, **kwargs):
            raise ValueError("bad record")

        monkeypatch.setattr(health_ai.main, "build_record", broken_record)
        client = make_test_client(FakeGemini(text=json.dumps(COMPLIANT_SYMPTOMS)))
        response = client.post("/api/analyze-symptoms", json={"symptoms": "cough", "userId": "u1"})
        assert response.status_code == 200
        assert response.json() == COMPLIANT_SYMPTOMS
        assert store.recent_for_user("u1") == []
