"""
SQLite document store for transcripts.
Best-effort persistence: the in-memory VideoStore stays authoritative.
Thread-safe via check_same_thread=False + explicit locking.
"""

import sqlite3
import threading
import logging
from datetime import datetime
from pathlib import Path

from vidscript.core.constants import DB_PATH
from vidscript.core.error_codes import PersistenceError
from vidscript.core.models import Transcript

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS transcripts (
    video_id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    raw_structured_data TEXT,
    language TEXT,
    is_placeholder INTEGER DEFAULT 0,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_transcripts_created_at ON transcripts(created_at DESC);
"""


class SqliteDocumentStore:
    """Stores one document per transcript, keyed by video id."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.Lock()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self._migrate()

    def _migrate(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(_CREATE_TABLES)
            cur.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    @staticmethod
    def _row_to_transcript(row: sqlite3.Row) -> Transcript:
        data = dict(row)
        return Transcript(
            video_id=data['video_id'],
            content=data['content'],
            raw_structured_data=data['raw_structured_data'],
            language=data['language'],
            created_at=datetime.fromisoformat(data['created_at']),
            is_placeholder=bool(data['is_placeholder']),
        )

    def create(self, transcript: Transcript):
        """Insert (or replace) a transcript document. Raises PersistenceError."""
        try:
            with self._lock:
                self.conn.execute(
                    """INSERT OR REPLACE INTO transcripts
                       (video_id, content, raw_structured_data, language,
                        is_placeholder, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (transcript.video_id, transcript.content,
                     transcript.raw_structured_data, transcript.language,
                     int(transcript.is_placeholder),
                     transcript.created_at.isoformat()),
                )
                self.conn.commit()
        except (sqlite3.Error, AttributeError) as e:
            raise PersistenceError(f"Failed to save transcript {transcript.video_id}: {e}")
        logger.info("Transcript for video %s saved to document store", transcript.video_id)

    def get(self, video_id: str) -> Transcript | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM transcripts WHERE video_id = ?", (video_id,)
            ).fetchone()
        return self._row_to_transcript(row) if row else None

