from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from survey_engine.core.config import settings
from survey_engine.core.errors import StorageUnavailableError, ValidationError
from survey_engine.models.responses import ResponseRecord, SessionRecord
from survey_engine.models.survey import Question, Survey, parse_question

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS surveys (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS questions (
        id TEXT PRIMARY KEY,
        survey_id TEXT NOT NULL,
        question_text TEXT NOT NULL,
        question_type TEXT NOT NULL,
        options TEXT,
        required INTEGER NOT NULL DEFAULT 1,
        order_index INTEGER NOT NULL,
        max_selections INTEGER,
        randomize INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        UNIQUE(survey_id, order_index),
        FOREIGN KEY(survey_id) REFERENCES surveys(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS responses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        respondent_id TEXT NOT NULL,
        survey_id TEXT NOT NULL,
        question_id TEXT NOT NULL,
        answer_value TEXT NOT NULL,
        answer_text TEXT,
        original_position INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE(respondent_id, question_id),
        FOREIGN KEY(survey_id) REFERENCES surveys(id) ON DELETE CASCADE,
        FOREIGN KEY(question_id) REFERENCES questions(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS survey_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        respondent_id TEXT NOT NULL,
        survey_id TEXT NOT NULL,
        started_at TEXT NOT NULL,
        completed_at TEXT,
        last_question_answered TEXT,
        UNIQUE(respondent_id, survey_id),
        FOREIGN KEY(survey_id) REFERENCES surveys(id) ON DELETE CASCADE
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_responses_respondent ON responses(respondent_id);",
    "CREATE INDEX IF NOT EXISTS idx_responses_survey ON responses(survey_id);",
    "CREATE INDEX IF NOT EXISTS idx_responses_question ON responses(question_id);",
    "CREATE INDEX IF NOT EXISTS idx_sessions_respondent ON survey_sessions(respondent_id);",
    "CREATE INDEX IF NOT EXISTS idx_sessions_survey ON survey_sessions(survey_id);",
)


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class ExportRow:
    """One response joined with its question text and its respondent's session."""

    respondent_id: str
    question_id: str
    question_text: str
    order_index: int
    answer_value: str
    answer_text: Optional[str]
    original_position: Optional[int]
    answered_at: str
    started_at: Optional[str]
    completed_at: Optional[str]


@dataclass(slots=True)
class SurveyStats:
    survey: Survey
    total_started: int
    total_completed: int


class SurveyDatabaseInterface(Protocol):
    """Storage operations used by the catalog, the response store and the readers."""

    def init_schema(self) -> None: ...

    def save_survey(self, survey: Survey, questions: Sequence[Question]) -> None: ...

    def set_survey_active(self, survey_id: str, active: bool) -> bool: ...

    def get_survey(self, survey_id: str) -> Optional[Survey]: ...

    def list_questions(self, survey_id: str) -> List[Question]: ...

    def get_question(self, survey_id: str, question_id: str) -> Optional[Question]: ...

    def upsert_response(
        self,
        respondent_id: str,
        survey_id: str,
        question_id: str,
        answer_value: str,
        answer_text: Optional[str],
        original_position: Optional[int],
    ) -> ResponseRecord: ...

    def get_response(self, respondent_id: str, question_id: str) -> Optional[ResponseRecord]: ...

    def list_responses(self, survey_id: str, respondent_id: Optional[str] = None) -> List[ResponseRecord]: ...

    def mark_session_completed(self, respondent_id: str, survey_id: str) -> bool: ...

    def get_session(self, respondent_id: str, survey_id: str) -> Optional[SessionRecord]: ...

    def list_sessions(self, survey_id: str) -> List[SessionRecord]: ...

    def session_counts(self, survey_id: str) -> Tuple[int, int]: ...

    def export_rows(self, survey_id: str) -> List[ExportRow]: ...

    def survey_stats(self) -> List[SurveyStats]: ...


class SQLiteSurveyDatabase(SurveyDatabaseInterface):
    """SQLite-backed store.

    Every call opens its own connection so the API server and the Streamlit app
    can share one database file. Multi-statement writes run inside a single
    transaction; the (respondent, question) and (respondent, survey) unique
    indexes make the upserts atomic at the storage layer.
    """

    def __init__(self, db_path: str | Path, *, timeout: float = 5.0) -> None:
        self._path = Path(db_path)
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=self._timeout)
        except sqlite3.OperationalError as exc:
            logger.error("Cannot open survey database at %s: %s", self._path, exc)
            raise StorageUnavailableError(f"Survey database unavailable: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        except sqlite3.OperationalError as exc:
            logger.error("Survey database operation failed: %s", exc)
            raise StorageUnavailableError(f"Survey database unavailable: {exc}") from exc
        finally:
            conn.close()

    def init_schema(self) -> None:
        folder = self._path.parent
        if str(folder):
            folder.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()
        logger.debug("Survey schema ready at %s", self._path)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def save_survey(self, survey: Survey, questions: Sequence[Question]) -> None:
        """Insert or refresh a survey and its questions in one transaction.

        An existing survey keeps its ``active`` flag; use :meth:`set_survey_active`
        to open or close it. Conflicting question ids or order slots raise
        :class:`ValidationError` and leave the stored catalog untouched.
        """

        created_at = survey.created_at or _now_utc_iso()
        try:
            with self._connect() as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO surveys (id, title, description, active, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            title = excluded.title,
                            description = excluded.description;
                        """,
                        (survey.id, survey.title, survey.description, int(survey.active), created_at),
                    )
                    if questions:
                        self._park_questions(conn, survey.id, [question.id for question in questions])
                    for question in questions:
                        options = getattr(question, "options", None)
                        conn.execute(
                            """
                            INSERT INTO questions (
                                id, survey_id, question_text, question_type, options,
                                required, order_index, max_selections, randomize, created_at
                            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                            ON CONFLICT(id) DO UPDATE SET
                                question_text = excluded.question_text,
                                question_type = excluded.question_type,
                                options = excluded.options,
                                required = excluded.required,
                                order_index = excluded.order_index,
                                max_selections = excluded.max_selections,
                                randomize = excluded.randomize;
                            """,
                            (
                                question.id,
                                survey.id,
                                question.question_text,
                                question.question_type,
                                json.dumps(options, ensure_ascii=False) if options is not None else None,
                                int(question.required),
                                question.order_index,
                                getattr(question, "max_selections", None),
                                int(getattr(question, "randomize", True)),
                                created_at,
                            ),
                        )
        except sqlite3.IntegrityError as exc:
            logger.warning("Rejected catalog for survey=%s: %s", survey.id, exc)
            raise ValidationError(f"Invalid catalog for survey {survey.id}: {exc}") from exc

    @staticmethod
    def _park_questions(conn: sqlite3.Connection, survey_id: str, question_ids: Sequence[str]) -> None:
        placeholders = ", ".join("?" for _ in question_ids)
        foreign = conn.execute(
            f"SELECT id, survey_id FROM questions WHERE survey_id != ? AND id IN ({placeholders});",
            (survey_id, *question_ids),
        ).fetchall()
        if foreign:
            owned = ", ".join(f"{row['id']} ({row['survey_id']})" for row in foreign)
            raise ValidationError(f"Question ids already belong to another survey: {owned}")
        # Negative slots free every order_index so a re-seed may reorder questions.
        conn.execute(
            f"""
            UPDATE questions SET order_index = -1 - order_index
            WHERE survey_id = ? AND id IN ({placeholders});
            """,
            (survey_id, *question_ids),
        )

    def set_survey_active(self, survey_id: str, active: bool) -> bool:
        """Open or close a survey to respondents. Returns False for unknown surveys."""

        with self._connect() as conn:
            with conn:
                cursor = conn.execute(
                    "UPDATE surveys SET active = ? WHERE id = ?;",
                    (int(active), survey_id),
                )
        return cursor.rowcount > 0

    def get_survey(self, survey_id: str) -> Optional[Survey]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, title, description, active, created_at FROM surveys WHERE id = ?;",
                (survey_id,),
            ).fetchone()
        return _survey_from_row(row) if row else None

    def list_questions(self, survey_id: str) -> List[Question]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, survey_id, question_text, question_type, options, required,
                       order_index, max_selections, randomize
                FROM questions
                WHERE survey_id = ?
                ORDER BY order_index ASC;
                """,
                (survey_id,),
            ).fetchall()
        return [_question_from_row(row) for row in rows]

    def get_question(self, survey_id: str, question_id: str) -> Optional[Question]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, survey_id, question_text, question_type, options, required,
                       order_index, max_selections, randomize
                FROM questions
                WHERE survey_id = ? AND id = ?;
                """,
                (survey_id, question_id),
            ).fetchone()
        return _question_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Responses and sessions
    # ------------------------------------------------------------------

    def upsert_response(
        self,
        respondent_id: str,
        survey_id: str,
        question_id: str,
        answer_value: str,
        answer_text: Optional[str],
        original_position: Optional[int],
    ) -> ResponseRecord:
        now = _now_utc_iso()
        with self._connect() as conn:
            # Response and session touch commit together or not at all.
            with conn:
                conn.execute(
                    """
                    INSERT INTO responses (
                        respondent_id, survey_id, question_id, answer_value, answer_text,
                        original_position, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(respondent_id, question_id) DO UPDATE SET
                        answer_value = excluded.answer_value,
                        answer_text = excluded.answer_text,
                        original_position = excluded.original_position,
                        updated_at = excluded.updated_at;
                    """,
                    (respondent_id, survey_id, question_id, answer_value, answer_text, original_position, now, now),
                )
                conn.execute(
                    """
                    INSERT INTO survey_sessions (respondent_id, survey_id, started_at, last_question_answered)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(respondent_id, survey_id) DO UPDATE SET
                        last_question_answered = excluded.last_question_answered;
                    """,
                    (respondent_id, survey_id, now, question_id),
                )
            row = conn.execute(
                f"SELECT {_RESPONSE_COLUMNS} FROM responses WHERE respondent_id = ? AND question_id = ?;",
                (respondent_id, question_id),
            ).fetchone()
        return _response_from_row(row)

    def get_response(self, respondent_id: str, question_id: str) -> Optional[ResponseRecord]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_RESPONSE_COLUMNS} FROM responses WHERE respondent_id = ? AND question_id = ?;",
                (respondent_id, question_id),
            ).fetchone()
        return _response_from_row(row) if row else None

    def list_responses(self, survey_id: str, respondent_id: Optional[str] = None) -> List[ResponseRecord]:
        query = f"SELECT {_RESPONSE_COLUMNS} FROM responses WHERE survey_id = ?"
        params: Tuple[Any, ...] = (survey_id,)
        if respondent_id is not None:
            query += " AND respondent_id = ?"
            params += (respondent_id,)
        query += " ORDER BY id ASC;"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_response_from_row(row) for row in rows]

    def mark_session_completed(self, respondent_id: str, survey_id: str) -> bool:
        """Complete an in-progress session. Returns False when nothing transitioned."""

        with self._connect() as conn:
            with conn:
                cur = conn.execute(
                    """
                    UPDATE survey_sessions
                    SET completed_at = ?
                    WHERE respondent_id = ? AND survey_id = ? AND completed_at IS NULL;
                    """,
                    (_now_utc_iso(), respondent_id, survey_id),
                )
                transitioned = cur.rowcount > 0
        return transitioned

    def get_session(self, respondent_id: str, survey_id: str) -> Optional[SessionRecord]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM survey_sessions WHERE respondent_id = ? AND survey_id = ?;",
                (respondent_id, survey_id),
            ).fetchone()
        return _session_from_row(row) if row else None

    def list_sessions(self, survey_id: str) -> List[SessionRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM survey_sessions WHERE survey_id = ? ORDER BY id ASC;",
                (survey_id,),
            ).fetchall()
        return [_session_from_row(row) for row in rows]

    def session_counts(self, survey_id: str) -> Tuple[int, int]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total_started, COUNT(completed_at) AS total_completed
                FROM survey_sessions
                WHERE survey_id = ?;
                """,
                (survey_id,),
            ).fetchone()
        return int(row["total_started"]), int(row["total_completed"])

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def export_rows(self, survey_id: str) -> List[ExportRow]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    r.respondent_id,
                    r.question_id,
                    q.question_text,
                    q.order_index,
                    r.answer_value,
                    r.answer_text,
                    r.original_position,
                    r.created_at AS answered_at,
                    ss.started_at,
                    ss.completed_at
                FROM responses r
                JOIN questions q ON r.question_id = q.id
                LEFT JOIN survey_sessions ss
                    ON r.respondent_id = ss.respondent_id AND r.survey_id = ss.survey_id
                WHERE r.survey_id = ?
                ORDER BY r.respondent_id, q.order_index;
                """,
                (survey_id,),
            ).fetchall()
        return [
            ExportRow(
                respondent_id=row["respondent_id"],
                question_id=row["question_id"],
                question_text=row["question_text"],
                order_index=int(row["order_index"]),
                answer_value=row["answer_value"],
                answer_text=row["answer_text"],
                original_position=row["original_position"],
                answered_at=row["answered_at"],
                started_at=row["started_at"],
                completed_at=row["completed_at"],
            )
            for row in rows
        ]

    def survey_stats(self) -> List[SurveyStats]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    s.id, s.title, s.description, s.active, s.created_at,
                    COUNT(ss.id) AS total_started,
                    COUNT(ss.completed_at) AS total_completed
                FROM surveys s
                LEFT JOIN survey_sessions ss ON s.id = ss.survey_id
                GROUP BY s.id
                ORDER BY s.created_at DESC, s.id ASC;
                """
            ).fetchall()
        return [
            SurveyStats(
                survey=_survey_from_row(row),
                total_started=int(row["total_started"]),
                total_completed=int(row["total_completed"]),
            )
            for row in rows
        ]


_RESPONSE_COLUMNS = (
    "respondent_id, survey_id, question_id, answer_value, answer_text, "
    "original_position, created_at, updated_at"
)
_SESSION_COLUMNS = "respondent_id, survey_id, started_at, completed_at, last_question_answered"


def _survey_from_row(row: sqlite3.Row) -> Survey:
    return Survey(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        active=bool(row["active"]),
        created_at=row["created_at"],
    )


def _question_from_row(row: sqlite3.Row) -> Question:
    payload: Dict[str, Any] = {
        "id": row["id"],
        "survey_id": row["survey_id"],
        "question_text": row["question_text"],
        "question_type": row["question_type"],
        "required": bool(row["required"]),
        "order_index": int(row["order_index"]),
    }
    if row["options"] is not None:
        payload["options"] = json.loads(row["options"])
        payload["randomize"] = bool(row["randomize"])
    if row["max_selections"] is not None:
        payload["max_selections"] = int(row["max_selections"])
    return parse_question(payload)


def _response_from_row(row: sqlite3.Row) -> ResponseRecord:
    return ResponseRecord(
        respondent_id=row["respondent_id"],
        survey_id=row["survey_id"],
        question_id=row["question_id"],
        answer_value=row["answer_value"],
        answer_text=row["answer_text"],
        original_position=row["original_position"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _session_from_row(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        respondent_id=row["respondent_id"],
        survey_id=row["survey_id"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        last_question_answered=row["last_question_answered"],
    )


_DATABASE_INSTANCE: Optional[SurveyDatabaseInterface] = None
_DATABASE_LOCK = threading.Lock()


def get_survey_database() -> SurveyDatabaseInterface:
    """Return the shared survey database instance."""

    global _DATABASE_INSTANCE
    if _DATABASE_INSTANCE is None:
        with _DATABASE_LOCK:
            if _DATABASE_INSTANCE is None:
                database = SQLiteSurveyDatabase(settings.database_path)
                database.init_schema()
                _DATABASE_INSTANCE = database
    return _DATABASE_INSTANCE


__all__ = [
    "ExportRow",
    "SurveyStats",
    "SurveyDatabaseInterface",
    "SQLiteSurveyDatabase",
    "get_survey_database",
]
