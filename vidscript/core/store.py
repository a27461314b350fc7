"""
In-memory Video/Transcript repository.
Thread-safe via a single re-entrant lock; every record handed out is a copy.
"""

import copy
import logging
import threading
from typing import Callable, Optional

from vidscript.core.models import Video, Transcript

logger = logging.getLogger(__name__)


class VideoStore:
    """Authoritative collection of Videos and Transcripts for the session."""

    def __init__(self):
        self._lock = threading.RLock()
        self._videos: dict[str, Video] = {}        # insertion ordered
        self._transcripts: dict[str, Transcript] = {}

    # ── Videos ────────────────────────────────────────────────────────

    def upsert_video(self, video: Video) -> Video:
        with self._lock:
            self._videos[video.id] = copy.deepcopy(video)
            return copy.deepcopy(video)

    def find_video(self, video_id: str) -> Video | None:
        with self._lock:
            video = self._videos.get(video_id)
            return copy.deepcopy(video) if video else None

    def update_video(self, video_id: str, **changes) -> Video | None:
        """Apply field changes to a stored video. Returns the updated copy."""
        def apply(video: Video):
            for key, value in changes.items():
                if not hasattr(video, key):
                    raise AttributeError(f"Video has no field {key!r}")
                setattr(video, key, value)
        return self.modify_video(video_id, apply)

    def modify_video(self, video_id: str,
                     mutator: Callable[[Video], None]) -> Video | None:
        """
        Atomic read-modify-write of one video.
        Returns None (and does nothing) if the video is unknown.
        """
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                logger.debug("modify_video: unknown video %s", video_id)
                return None
            working = copy.deepcopy(video)
            mutator(working)
            self._videos[video_id] = working
            return copy.deepcopy(working)

    def list_videos_by_recency_descending(self) -> list[Video]:
        with self._lock:
            videos = [copy.deepcopy(v) for v in self._videos.values()]
        # reverse=True keeps insertion order among equal upload dates
        return sorted(videos, key=lambda v: v.upload_date, reverse=True)

    # ── Transcripts ───────────────────────────────────────────────────

    def upsert_transcript(self, transcript: Transcript) -> Transcript:
        with self._lock:
            if transcript.video_id in self._transcripts:
                logger.info("Replacing transcript for video %s", transcript.video_id)
            self._transcripts[transcript.video_id] = copy.deepcopy(transcript)
            return copy.deepcopy(transcript)

    def find_transcript_by_video_id(self, video_id: str) -> Optional[Transcript]:
        with self._lock:
            transcript = self._transcripts.get(video_id)
            return copy.deepcopy(transcript) if transcript else None
