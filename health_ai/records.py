"""
Analysis records and the storage hand-off.

The HTTP response is decided before a record is written: handlers schedule
RecordPublisher.publish as a background task, and a failing store is logged,
never surfaced to the caller.
"""
import json
import sqlite3
from collections import deque
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import Field

from .errors import PersistenceFailure
from .models import CamelModel, RequestKind
from .structured_logging import StructuredLogger

logger = StructuredLogger(__name__)

DEFAULT_MAX_MEMORY_RECORDS = 1000

RECORD_TYPES = {
    RequestKind.CHAT: "chat",
    RequestKind.SYMPTOM: "symptom_analysis",
    RequestKind.XRAY: "xray_analysis",
    RequestKind.SCHEME_QUERY: "scheme_query",
}


class AnalysisRecord(CamelModel):
    id: str = Field(default_factory=lambda: f"rec_{uuid.uuid4().hex[:12]}")
    user_id: str
    record_type: str
    title: str
    input: dict[str, Any]
    ai_analysis: dict[str, Any]
    source: str  # "model" | "fallback"
    status: str = "analyzed"
    is_emergency: bool = False
    is_high_priority: bool = False
    image_metadata: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _levels(analysis: dict) -> set[str]:
    return {analysis.get("riskLevel"), analysis.get("urgencyLevel")} - {None}


def _title_and_input(request) -> tuple[str, dict]:
    if request.kind == RequestKind.SYMPTOM:
        info = request.additional_info
        return (
            f"Symptom analysis: {request.symptoms[:60]}",
            {
                "symptoms": request.symptoms,
                "additionalInfo": info.model_dump(by_alias=True) if info else None,
            },
        )
    if request.kind == RequestKind.XRAY:
        return (
            f"X-ray analysis ({request.body_part or 'unspecified'})",
            {
                "bodyPart": request.body_part,
                "clinicalIndication": request.clinical_indication,
                "imageType": request.image_type,
            },
        )
    if request.kind == RequestKind.SCHEME_QUERY:
        return (
            f"Scheme query: {request.scheme_title or request.scheme or 'general'}",
            {"scheme": request.scheme, "schemeTitle": request.scheme_title, "query": request.query},
        )
    return "Chat", {"message": request.message}


def build_record(request, result, image_metadata: Optional[dict] = None) -> Optional[AnalysisRecord]:
    """Derive the record for a finished pipeline run; None for anonymous calls."""
    if not request.user_id:
        return None

    analysis = result.analysis.model_dump(by_alias=True)
    levels = _levels(analysis)
    title, summary = _title_and_input(request)
    return AnalysisRecord(
        user_id=request.user_id,
        record_type=RECORD_TYPES[request.kind],
        title=title,
        input=summary,
        ai_analysis=analysis,
        source=result.source,
        is_emergency="critical" in levels,
        is_high_priority=bool(levels & {"high", "critical"}),
        image_metadata=image_metadata,
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class RecordStore:
    name = "base"

    def save(self, record: AnalysisRecord) -> None:
        raise NotImplementedError

    def recent_for_user(self, user_id: str, limit: int = 10) -> list[AnalysisRecord]:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    """Process-local store; the oldest record is evicted past `max_records`."""
    name = "memory"

    def __init__(self, max_records: int = DEFAULT_MAX_MEMORY_RECORDS):
        self._records: deque[AnalysisRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def save(self, record: AnalysisRecord) -> None:
        with self._lock:
            self._records.append(record)

    def recent_for_user(self, user_id: str, limit: int = 10) -> list[AnalysisRecord]:
        with self._lock:
            mine = [r for r in self._records if r.user_id == user_id]
        return sorted(mine, key=lambda r: r.created_at, reverse=True)[:limit]


class SQLiteRecordStore(RecordStore):
    name = "sqlite"

    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS analysis_records (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  record_type TEXT NOT NULL,
                  title TEXT NOT NULL,
                  source TEXT NOT NULL,
                  is_emergency INTEGER NOT NULL DEFAULT 0,
                  record_json TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_records_user_created
                  ON analysis_records (user_id, created_at DESC);
                """
            )

    def save(self, record: AnalysisRecord) -> None:
        try:
            self._insert(record)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"sqlite write failed: {e}") from e

    def _insert(self, record: AnalysisRecord) -> None:
        with self._lock, self.connection() as conn:
            conn.execute(
                """
                INSERT INTO analysis_records
                  (id, user_id, record_type, title, source, is_emergency, record_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.record_type,
                    record.title,
                    record.source,
                    int(record.is_emergency),
                    record.model_dump_json(by_alias=True),
                    record.created_at.isoformat(),
                ),
            )

    def recent_for_user(self, user_id: str, limit: int = 10) -> list[AnalysisRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT record_json FROM analysis_records
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [AnalysisRecord.model_validate(json.loads(row["record_json"])) for row in rows]


def open_record_store(url: str, max_memory_records: int = DEFAULT_MAX_MEMORY_RECORDS) -> RecordStore:
    """Open a store from RECORD_STORE_URL: memory:// or sqlite:///path/to.db."""
    if not url or url == "memory://":
        return InMemoryRecordStore(max_records=max_memory_records)
    if url.startswith("sqlite:///"):
        return SQLiteRecordStore(url[len("sqlite:///"):])
    raise ValueError(f"Unsupported RECORD_STORE_URL: {url}")


class RecordPublisher:
    """Hands finished records to the store; errors stop here."""

    def __init__(self, store: RecordStore):
        self.store = store

    def publish(self, record: AnalysisRecord) -> bool:
        try:
            self.store.save(record)
        except Exception as e:
            logger.error(
                "Failed to persist analysis record",
                record_id=record.id,
                record_type=record.record_type,
                error=str(e),
            )
            return False
        logger.info("Analysis record stored", record_id=record.id, record_type=record.record_type)
        return True
