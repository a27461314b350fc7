"""
Data models (plain dataclasses) for vidscript.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from vidscript.core.constants import (
    VideoStatus, AnalysisState, Severity, DEFAULT_LANGUAGE,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Video:
    id: str                          # UUID
    name: str
    upload_date: datetime = field(default_factory=utc_now)
    media_url: Optional[str] = None
    status: str = VideoStatus.UPLOADING
    upload_progress: int = 0
    processing_progress: int = 0
    content_type: Optional[str] = None
    size_bytes: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    used_local_fallback: bool = False


@dataclass
class Transcript:
    video_id: str
    content: str                     # WEBVTT-style cue text
    raw_structured_data: Optional[str] = None   # JSON: {"phrases": [...], "response": {...}}
    language: str = DEFAULT_LANGUAGE
    created_at: datetime = field(default_factory=utc_now)
    is_placeholder: bool = False


@dataclass(frozen=True)
class JobHandle:
    job_id: str


# ── Analysis job status (decoded at the service boundary) ─────────────

@dataclass(frozen=True)
class AnalysisRunning:
    state = AnalysisState.RUNNING
    service_status: str = ""


@dataclass(frozen=True)
class AnalysisSucceeded:
    state = AnalysisState.SUCCEEDED
    result: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisFailed:
    state = AnalysisState.FAILED
    reason: str = ""


AnalysisStatus = Union[AnalysisRunning, AnalysisSucceeded, AnalysisFailed]


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: str = Severity.INFO


@dataclass(frozen=True)
class TranscriptDownload:
    filename: str
    data: bytes
    media_type: str
