"""
Video lifecycle controller.
Drives one video through upload → processing → completed/error,
emitting progress and notification callbacks for the UI.
"""

import logging
import mimetypes
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from vidscript.core.constants import (
    VideoStatus, ErrorPolicy, ErrorCode, Severity, VIDEO_MIME_PREFIX,
    PROGRESS_COMPLETE, PROCESSING_PROGRESS_STEP, PROCESSING_PROGRESS_CAP,
    POLL_INTERVAL_SEC, POLL_BACKOFF_FACTOR, MAX_POLL_INTERVAL_SEC,
    MAX_POLL_ATTEMPTS, MAX_PROCESSING_SEC,
)
from vidscript.core.analysis_client import AnalysisClient
from vidscript.core.blob_upload import is_local_reference
from vidscript.core.config import AppConfig
from vidscript.core.error_codes import (
    JobError, InvalidInput, UploadError, JobFailed,
    ProcessingTimeout, ProcessingCancelled,
)
from vidscript.core.models import (
    Video, Transcript, Notification, AnalysisSucceeded, AnalysisFailed,
)
from vidscript.core.store import VideoStore
from vidscript.core.transcript_builder import (
    build_transcript, build_placeholder_transcript,
)

logger = logging.getLogger(__name__)


class VideoLifecycleController:
    """
    Owns Video state transitions. Multiple videos may be in flight at once,
    each on its own worker thread with a single sequential poll loop.

    policy decides what a failure looks like to the user:
      ErrorPolicy.STRICT  → video ends in ERROR
      ErrorPolicy.LENIENT → video ends COMPLETED with a placeholder transcript
    """

    def __init__(self, store: VideoStore, uploader, analysis_client: AnalysisClient,
                 policy: str, document_store=None, fallback_uploader=None,
                 poll_interval_sec: float = POLL_INTERVAL_SEC,
                 poll_backoff_factor: float = POLL_BACKOFF_FACTOR,
                 max_poll_interval_sec: float = MAX_POLL_INTERVAL_SEC,
                 max_poll_attempts: int = MAX_POLL_ATTEMPTS,
                 max_processing_sec: float = MAX_PROCESSING_SEC,
                 clock: Callable[[], float] = time.monotonic):
        if policy not in ErrorPolicy.ALL:
            raise ValueError(f"policy must be one of {ErrorPolicy.ALL}, got {policy!r}")

        self.store = store
        self.uploader = uploader
        self.fallback_uploader = fallback_uploader
        self.analysis_client = analysis_client
        self.document_store = document_store
        self.policy = policy
        self.poll_interval_sec = poll_interval_sec
        self.poll_backoff_factor = poll_backoff_factor
        self.max_poll_interval_sec = max(max_poll_interval_sec, poll_interval_sec)
        self.max_poll_attempts = max_poll_attempts
        self.max_processing_sec = max_processing_sec
        self._clock = clock

        self._lock = threading.Lock()
        self._workers: dict[str, threading.Thread] = {}
        self._cancel_events: dict[str, threading.Event] = {}

        # Callbacks
        self.on_video_updated: Optional[Callable[[Video], None]] = None
        self.on_notification: Optional[Callable[[Notification], None]] = None

    @classmethod
    def from_config(cls, config: AppConfig, store: VideoStore, uploader,
                    analysis_client: AnalysisClient, policy: str,
                    document_store=None, fallback_uploader=None):
        return cls(
            store, uploader, analysis_client, policy,
            document_store=document_store,
            fallback_uploader=fallback_uploader,
            poll_interval_sec=config.get('poll_interval_sec'),
            poll_backoff_factor=config.get('poll_backoff_factor'),
            max_poll_interval_sec=config.get('max_poll_interval_sec'),
            max_poll_attempts=config.get('max_poll_attempts'),
            max_processing_sec=config.get('max_processing_sec'),
        )

    # ── Public operations ─────────────────────────────────────────────

    def create_video(self, path: Path, content_type: str | None = None) -> Video:
        """Validate the file and register a new Video in UPLOADING state."""
        path = Path(path)
        if not path.is_file():
            raise InvalidInput(f"File not found: {path}")

        content_type = content_type or mimetypes.guess_type(path.name)[0] or ""
        if not content_type.startswith(VIDEO_MIME_PREFIX):
            raise InvalidInput(f"{path.name} is not a video file ({content_type or 'unknown type'})")

        video = Video(
            id=str(uuid.uuid4()),
            name=path.name,
            content_type=content_type,
            size_bytes=path.stat().st_size,
        )
        video = self.store.upsert_video(video)
        logger.info("Created video %s for %s (%d bytes)", video.id, video.name, video.size_bytes)
        self._emit_video(video)
        return video

    def process_video_file(self, path: Path, content_type: str | None = None) -> Video:
        """Create, upload and analyse a video on the calling thread."""
        video = self.create_video(path, content_type)
        return self.run(video.id, Path(path))

    def submit(self, path: Path, content_type: str | None = None) -> Video:
        """Create the video now; upload and analyse it on a worker thread."""
        video = self.create_video(path, content_type)
        worker = threading.Thread(
            target=self.run, args=(video.id, Path(path)),
            name=f"video-{video.id[:8]}", daemon=True,
        )
        with self._lock:
            self._workers[video.id] = worker
            # registered before start so cancel() works before the worker runs
            self._cancel_events.setdefault(video.id, threading.Event())
        worker.start()
        return video

    def wait(self, video_id: str, timeout: float | None = None) -> Video | None:
        with self._lock:
            worker = self._workers.get(video_id)
        if worker:
            worker.join(timeout)
        return self.store.find_video(video_id)

    def cancel(self, video_id: str) -> bool:
        """Ask the poll loop for this video to stop at its next boundary."""
        with self._lock:
            event = self._cancel_events.get(video_id)
        if event is None:
            return False
        event.set()
        return True

    def run(self, video_id: str, path: Path) -> Video | None:
        """Upload then analyse. Never raises; failures land per policy."""
        with self._lock:
            cancel_event = self._cancel_events.setdefault(video_id, threading.Event())

        try:
            media_url = self._upload(video_id, path)
            self._process(video_id, media_url, cancel_event)
        except JobError as e:
            self._handle_failure(video_id, e)
        except Exception as e:
            logger.error("Unexpected error processing video %s: %s", video_id, e, exc_info=True)
            self._handle_failure(video_id, JobError(ErrorCode.UNEXPECTED, str(e)[:2000]))
        finally:
            with self._lock:
                self._cancel_events.pop(video_id, None)
                self._workers.pop(video_id, None)

        return self.store.find_video(video_id)

    # ── Upload ────────────────────────────────────────────────────────

    def _upload(self, video_id: str, path: Path) -> str:
        blob_name = f"{video_id}{path.suffix}"

        def on_progress(percent):
            self._advance_upload_progress(video_id, percent)

        used_fallback = False
        try:
            media_url = self.uploader.upload(path, blob_name, on_progress)
        except UploadError as e:
            if self.fallback_uploader is None:
                raise
            logger.warning("Upload failed for video %s: %s — using local reference",
                           video_id, e.message)
            self._notify("Upload failed",
                         f'Could not upload "{path.name}" to storage; using the local copy.',
                         Severity.WARNING)
            media_url = self.fallback_uploader.upload(path, blob_name, on_progress)
            used_fallback = True

        video = self.store.update_video(
            video_id,
            media_url=media_url,
            status=VideoStatus.PROCESSING,
            upload_progress=PROGRESS_COMPLETE,
            processing_progress=0,
            used_local_fallback=used_fallback,
        )
        self._emit_video(video)
        return media_url

    def _advance_upload_progress(self, video_id: str, percent):
        try:
            percent = int(percent)
        except (TypeError, ValueError):
            return
        percent = max(0, min(PROGRESS_COMPLETE, percent))

        def apply(video: Video):
            if video.status == VideoStatus.UPLOADING and percent > video.upload_progress:
                video.upload_progress = percent

        self._emit_video(self.store.modify_video(video_id, apply))

    # ── Processing ────────────────────────────────────────────────────

    def _process(self, video_id: str, media_url: str, cancel_event: threading.Event):
        if is_local_reference(media_url):
            raise UploadError("Video is only available locally; "
                              "the analysis service cannot read it")

        if cancel_event.is_set():
            raise ProcessingCancelled()

        handle = self.analysis_client.start(media_url)
        logger.info("Video %s: analysis job %s started", video_id, handle.job_id)

        started = self._clock()
        interval = self.poll_interval_sec
        estimated = 0
        attempts = 0

        while True:
            if cancel_event.is_set():
                raise ProcessingCancelled()
            if attempts >= self.max_poll_attempts:
                raise ProcessingTimeout(
                    f"Analysis job {handle.job_id} not finished after {attempts} polls")
            elapsed = self._clock() - started
            if elapsed > self.max_processing_sec:
                raise ProcessingTimeout(
                    f"Analysis job {handle.job_id} not finished after {elapsed:.0f}s")
            attempts += 1

            # Estimated progress, held below 100 until success is confirmed
            estimated = min(estimated + PROCESSING_PROGRESS_STEP, PROCESSING_PROGRESS_CAP)
            self._advance_processing_progress(video_id, estimated)

            status = self.analysis_client.poll(handle)
            if isinstance(status, AnalysisSucceeded):
                self._complete(video_id, status.result)
                return
            if isinstance(status, AnalysisFailed):
                raise JobFailed(status.reason)

            logger.debug("Video %s: job %s still %s (poll %d), next poll in %.1fs",
                         video_id, handle.job_id, status.service_status or "running",
                         attempts, interval)
            if cancel_event.wait(interval):
                raise ProcessingCancelled()
            interval = min(interval * self.poll_backoff_factor, self.max_poll_interval_sec)

    def _advance_processing_progress(self, video_id: str, percent: int):
        def apply(video: Video):
            if video.status == VideoStatus.PROCESSING and percent > video.processing_progress:
                video.processing_progress = percent

        self._emit_video(self.store.modify_video(video_id, apply))

    def _complete(self, video_id: str, result: dict):
        transcript = build_transcript(video_id, result, self.store)
        self._persist(transcript)

        video = self.store.update_video(
            video_id,
            status=VideoStatus.COMPLETED,
            processing_progress=PROGRESS_COMPLETE,
        )
        self._emit_video(video)
        name = video.name if video else video_id
        self._notify("Processing complete", f'Transcript for "{name}" is ready.')

    def _persist(self, transcript: Transcript):
        """Best-effort save to the document store; failures are only logged."""
        if self.document_store is None:
            return
        try:
            self.document_store.create(transcript)
        except Exception as e:
            logger.warning("Could not persist transcript for video %s: %s",
                           transcript.video_id, e)

    # ── Failure handling ──────────────────────────────────────────────

    def _handle_failure(self, video_id: str, error: JobError):
        video = self.store.find_video(video_id)
        name = video.name if video else video_id
        logger.error("Video %s failed [%s]: %s (policy=%s, retryable=%s)",
                     video_id, error.code, error.message, self.policy, error.retryable)

        if self.policy == ErrorPolicy.LENIENT:
            self.store.upsert_transcript(
                build_placeholder_transcript(video_id, error.message))
            video = self.store.update_video(
                video_id,
                status=VideoStatus.COMPLETED,
                processing_progress=PROGRESS_COMPLETE,
                error_code=error.code,
                error_message=error.message[:2000],
            )
        else:
            video = self.store.update_video(
                video_id,
                status=VideoStatus.ERROR,
                processing_progress=0,
                error_code=error.code,
                error_message=error.message[:2000],
            )

        self._emit_video(video)
        description = f'Failed to process "{name}". {error.message}'
        if error.retryable:
            description += " The problem may be temporary; try uploading again."
        self._notify("Processing failed", description, Severity.ERROR)

    # ── Callbacks ─────────────────────────────────────────────────────

    def _emit_video(self, video: Video | None):
        if video is None or not self.on_video_updated:
            return
        try:
            self.on_video_updated(video)
        except Exception as e:
            logger.warning("on_video_updated callback raised: %s", e)

    def _notify(self, title: str, description: str, severity: str = Severity.INFO):
        log = logger.error if severity == Severity.ERROR else logger.info
        log("Notification [%s] %s: %s", severity, title, description)
        if not self.on_notification:
            return
        try:
            self.on_notification(Notification(title, description, severity))
        except Exception as e:
            logger.warning("on_notification callback raised: %s", e)
