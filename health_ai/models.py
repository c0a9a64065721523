"""
Pydantic request/response models for the Health Assistant AI Service API.

Wire format is camelCase (the browser front end sends `imageData`, `userId`,
`riskLevel`, ...); Python attributes stay snake_case.
"""
from enum import Enum
from typing import ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator
from pydantic.alias_generators import to_camel


class RequestKind(str, Enum):
    CHAT = "chat"
    SYMPTOM = "symptom"
    XRAY = "xray"
    SCHEME_QUERY = "scheme_query"


RiskLevel = Literal["low", "moderate", "high", "critical"]
FindingLevel = Literal["normal", "warning", "critical"]

# Model-emitted numbers must already be numbers: no true -> 1 or "80" -> 80
Percentage = Union[StrictInt, StrictFloat]

BODY_PARTS = ("chest", "abdomen", "pelvis", "spine", "extremities", "skull", "other")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_blank(v: str, label: str) -> str:
    if not v.strip():
        raise ValueError(f"{label} cannot be empty")
    return v.strip()


def _lower(v):
    if isinstance(v, str):
        return v.strip().lower()
    return v


def _check_percentage(v: Percentage, label: str) -> Percentage:
    if not 0 <= v <= 100:
        raise ValueError(f"{label} must be between 0 and 100")
    return v


# --- Requests ---

class AnalysisRequest(CamelModel):
    """Base for every request kind. Immutable; built once per HTTP call."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    kind: ClassVar[RequestKind]
    user_id: Optional[str] = None


class ChatRequest(AnalysisRequest):
    kind: ClassVar[RequestKind] = RequestKind.CHAT

    message: str

    @field_validator("message")
    @classmethod
    def message_not_empty(cls, v: str) -> str:
        return _not_blank(v, "message")


class PatientInfo(CamelModel):
    """Optional context sent alongside symptoms."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[str] = None
    medical_history: list[str] = []
    current_medications: list[str] = []
    allergies: list[str] = []
    recent_travel: Optional[bool] = None
    recent_exposure: Optional[str] = None
    pain_scale: Optional[int] = Field(default=None, ge=0, le=10)


class SymptomRequest(AnalysisRequest):
    kind: ClassVar[RequestKind] = RequestKind.SYMPTOM

    symptoms: str
    additional_info: Optional[PatientInfo] = None

    @field_validator("symptoms")
    @classmethod
    def symptoms_not_empty(cls, v: str) -> str:
        return _not_blank(v, "symptoms")


class XRayRequest(AnalysisRequest):
    kind: ClassVar[RequestKind] = RequestKind.XRAY

    image_data: str  # base64, with or without a data: URL prefix
    image_type: str  # mime type
    body_part: Optional[str] = None
    clinical_indication: Optional[str] = None

    @field_validator("image_data")
    @classmethod
    def image_not_empty(cls, v: str) -> str:
        v = _not_blank(v, "imageData")
        if v.startswith("data:") and "," in v:
            v = v.split(",", 1)[1]
        return v

    @field_validator("image_type")
    @classmethod
    def image_type_not_empty(cls, v: str) -> str:
        v = _not_blank(v, "imageType").lower()
        return "image/jpeg" if v == "image/jpg" else v

    @field_validator("body_part")
    @classmethod
    def normalize_body_part(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        return v if v in BODY_PARTS else "other"


class SchemeQueryRequest(AnalysisRequest):
    """Question about a public health scheme, or a free chatbot-widget query."""
    kind: ClassVar[RequestKind] = RequestKind.SCHEME_QUERY

    query: str
    scheme: Optional[str] = None  # scheme id from the static context table
    scheme_title: Optional[str] = None
    context: Optional[str] = None

    @field_validator("query")
    @classmethod
    def query_not_empty(cls, v: str) -> str:
        return _not_blank(v, "query")


# --- Structured analysis (responses) ---

class ChatReply(CamelModel):
    reply: str


class SymptomAnalysis(CamelModel):
    analysis: str
    risk_level: RiskLevel
    recommendations: list[str]
    medical_help: str
    confidence: Percentage

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk(cls, v):
        return _lower(v)

    @field_validator("confidence")
    @classmethod
    def confidence_range(cls, v):
        return _check_percentage(v, "confidence")


class DiseaseFinding(CamelModel):
    name: str
    probability: Percentage
    level: FindingLevel
    description: str

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return _lower(v)

    @field_validator("probability")
    @classmethod
    def probability_range(cls, v):
        return _check_percentage(v, "probability")


class XRayAnalysis(CamelModel):
    confidence: Percentage
    diseases: list[DiseaseFinding]
    recommendations: list[str]
    overall_assessment: str
    urgency_level: RiskLevel

    @field_validator("urgency_level", mode="before")
    @classmethod
    def normalize_urgency(cls, v):
        return _lower(v)

    @field_validator("confidence")
    @classmethod
    def confidence_range(cls, v):
        return _check_percentage(v, "confidence")


class SchemeAnswer(CamelModel):
    response: str


StructuredAnalysis = Union[ChatReply, SymptomAnalysis, XRayAnalysis, SchemeAnswer]

ANALYSIS_MODELS: dict[RequestKind, type[CamelModel]] = {
    RequestKind.CHAT: ChatReply,
    RequestKind.SYMPTOM: SymptomAnalysis,
    RequestKind.XRAY: XRayAnalysis,
    RequestKind.SCHEME_QUERY: SchemeAnswer,
}


# --- Health ---

class HealthResponse(CamelModel):
    status: str
    completion_service: str  # "configured" | "unconfigured"
    record_store: str
