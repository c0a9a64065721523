"""
Health Assistant AI Service - FastAPI Backend

Endpoints:
  POST /api/chat              short plain-text assistant reply
  POST /api/analyze-symptoms  structured symptom triage
  POST /api/analyze-xray      structured X-ray review (vision model)
  POST /api/scheme-query      question about a public health scheme
  POST /api/chatbot-query     floating-widget question with optional context
  GET  /health

Every AI endpoint degrades instead of failing: if Gemini is unreachable or
answers off-schema, the caller still gets a 200 with a fallback payload.
Only bad input (400) and a missing credential (503) are reported as errors.
"""
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .completion_client import CompletionClient
from .config import Settings
from .errors import ConfigurationError, InvalidRequestError
from .models import ChatRequest, HealthResponse, SchemeQueryRequest, SymptomRequest, XRayRequest
from .pipeline import AnalysisPipeline
from .records import RecordPublisher, RecordStore, build_record, open_record_store
from .sanitization import inspect_image
from .structured_logging import (
    StructuredLogger,
    bind_endpoint,
    log_request,
    set_request_id,
    setup_logging,
)

# Load environment variables from .env file
load_dotenv()

logger = StructuredLogger("api")

UNLOGGED_PATHS = {"/health", "/docs", "/openapi.json"}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "body"
    if first.get("type") == "missing":
        return f"{loc} is required"
    msg = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    return f"{loc}: {msg}"


async def _parse_body(req: Request, model_cls):
    try:
        body = await req.json()
    except ValueError:
        raise InvalidRequestError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    try:
        return model_cls.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestError(_validation_message(e)) from e


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[CompletionClient] = None,
    store: Optional[RecordStore] = None,
) -> FastAPI:
    """Build the ASGI app. Tests inject a client with a mock transport."""
    settings = settings or Settings.from_env()
    client = client or CompletionClient(
        api_key=settings.api_key,
        model=settings.model,
        vision_model=settings.vision_model,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
    )
    store = store or open_record_store(settings.record_store_url, settings.max_memory_records)
    pipeline = AnalysisPipeline(client)
    publisher = RecordPublisher(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, use_json=settings.log_json)
        logger.info("Starting Health Assistant AI Service...")
        if not client.configured:
            logger.warning("GEMINI_API_KEY not set; AI endpoints will return 503")
        logger.info("Ready to serve requests.", record_store=store.name, model=settings.model)
        yield
        logger.info("Shutting down...")
        await client.aclose()

    app = FastAPI(
        title="Health Assistant AI Service",
        description="Symptom, X-ray and health-scheme assistant backed by Gemini",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.publisher = publisher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """Request ID tracking and access logging."""
        start_time = time.time()
        request_id = set_request_id(request.headers.get("X-Request-ID"))

        response = await call_next(request)

        if request.url.path not in UNLOGGED_PATHS:
            log_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
                client_ip=request.client.host if request.client else None,
                analysis_source=response.headers.get("X-Analysis-Source"),
            )

        response.headers["X-Request-ID"] = request_id
        return response

    async def handle(
        endpoint: str,
        req: Request,
        model_cls,
        background_tasks: BackgroundTasks,
        inspect: Optional[Callable] = None,
    ) -> JSONResponse:
        """Parse -> (inspect) -> pipeline -> respond -> schedule record."""
        bind_endpoint(endpoint)
        try:
            request_model = await _parse_body(req, model_cls)
            extra = inspect(request_model) if inspect else None
            result = await pipeline.run(request_model)
        except InvalidRequestError as e:
            logger.warning(f"{endpoint} rejected", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=400)
        except ConfigurationError as e:
            return JSONResponse({"error": str(e)}, status_code=503)
        except Exception as e:
            logger.exception(f"{endpoint} failed", error=str(e))
            return JSONResponse({"error": f"Failed to process request: {e}"}, status_code=500)

        try:
            record = build_record(request_model, result, image_metadata=extra)
        except Exception as e:
            logger.error(f"{endpoint} record not built", error=str(e))
            record = None
        if record is not None:
            background_tasks.add_task(publisher.publish, record)

        logger.info(
            f"{endpoint} completed",
            source=result.source,
            failure_reason=result.failure_reason,
        )
        return JSONResponse(
            result.response_body(),
            headers={"X-Analysis-Source": result.source},
        )

    def inspect_xray(request_model: XRayRequest) -> dict:
        metadata = inspect_image(
            request_model.image_data,
            request_model.image_type,
            settings.max_image_bytes,
        )
        return metadata.to_dict()

    @app.post("/api/chat")
    async def chat(req: Request, background_tasks: BackgroundTasks):
        return await handle("chat", req, ChatRequest, background_tasks)

    @app.post("/api/analyze-symptoms")
    async def analyze_symptoms(req: Request, background_tasks: BackgroundTasks):
        return await handle("analyze-symptoms", req, SymptomRequest, background_tasks)

    @app.post("/api/analyze-xray")
    async def analyze_xray(req: Request, background_tasks: BackgroundTasks):
        return await handle("analyze-xray", req, XRayRequest, background_tasks, inspect=inspect_xray)

    @app.post("/api/scheme-query")
    async def scheme_query(req: Request, background_tasks: BackgroundTasks):
        return await handle("scheme-query", req, SchemeQueryRequest, background_tasks)

    @app.post("/api/chatbot-query")
    async def chatbot_query(req: Request, background_tasks: BackgroundTasks):
        return await handle("chatbot-query", req, SchemeQueryRequest, background_tasks)

    @app.get("/health")
    async def health():
        return HealthResponse(
            status="healthy",
            completion_service="configured" if pipeline.configured else "unconfigured",
            record_store=store.name,
        ).model_dump(by_alias=True)

    return app


app = create_app()
