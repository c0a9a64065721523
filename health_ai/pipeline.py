"""
Analysis Pipeline - one parameterized path for every request kind.

Flow per request (no state is kept between calls):
  received -> prompt_built -> dispatched -> extracted | failed -> responded

A missing credential stops the run at `received` with ConfigurationError.
Transport and extraction failures are absorbed into the kind's fallback, so
the caller always gets a schema-valid answer.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .completion_client import CompletionClient
from .errors import ConfigurationError, ExtractionFailure
from .fallbacks import fallback_for
from .json_utils import extract_analysis
from .models import RequestKind
from .prompts import build_prompt
from .structured_logging import StructuredLogger

logger = StructuredLogger(__name__)


class Stage(str, Enum):
    RECEIVED = "received"
    PROMPT_BUILT = "prompt_built"
    DISPATCHED = "dispatched"
    EXTRACTED = "extracted"
    FAILED = "failed"
    RESPONDED = "responded"


@dataclass
class PipelineResult:
    kind: RequestKind
    analysis: object  # StructuredAnalysis variant
    source: str  # "model" | "fallback"
    failure_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == "fallback"

    def response_body(self) -> dict:
        return self.analysis.model_dump(by_alias=True)


class AnalysisPipeline:
    """Prompt -> completion -> extraction -> fallback, keyed on request kind."""

    def __init__(self, client: Optional[CompletionClient]):
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None and self.client.configured

    async def run(self, request) -> PipelineResult:
        kind = request.kind
        self._stage(Stage.RECEIVED, kind)

        if not self.configured:
            logger.error("Completion service credential missing", kind=kind.value)
            raise ConfigurationError("AI service is not configured (missing GEMINI_API_KEY)")

        built = build_prompt(request)
        self._stage(Stage.PROMPT_BUILT, kind, multimodal=built.multimodal)

        completion = await self.client.invoke(built.payload, multimodal=built.multimodal)
        self._stage(Stage.DISPATCHED, kind)

        if not completion.ok:
            failure = completion.failure
            return self._fallback(request, f"transport:{failure.cause.value}",
                                  status_code=failure.status_code)

        try:
            analysis = extract_analysis(
                kind,
                completion.text,
                built.expected_schema,
                reply_limits=built.reply_limits,
            )
        except ExtractionFailure as e:
            return self._fallback(request, f"extraction:{e.reason}", detail=str(e))

        self._stage(Stage.EXTRACTED, kind)
        result = PipelineResult(kind=kind, analysis=analysis, source="model")
        self._stage(Stage.RESPONDED, kind, source=result.source)
        return result

    def _fallback(self, request, reason: str, **details) -> PipelineResult:
        self._stage(Stage.FAILED, request.kind, reason=reason, **details)
        result = PipelineResult(
            kind=request.kind,
            analysis=fallback_for(request),
            source="fallback",
            failure_reason=reason,
        )
        self._stage(Stage.RESPONDED, request.kind, source=result.source)
        return result

    @staticmethod
    def _stage(stage: Stage, kind: RequestKind, **data) -> None:
        if stage == Stage.FAILED:
            logger.warning(f"pipeline {stage.value}", kind=kind.value, **data)
        else:
            logger.debug(f"pipeline {stage.value}", kind=kind.value, **data)
