#!/usr/bin/env python3
"""
Tests for the analysis client, blob uploaders and the video lifecycle controller.
External services are replaced with fakes / unittest.mock.
"""

import sys
import tempfile
import threading
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from vidscript.core.analysis_client import AnalysisClient, decode_status
from vidscript.core.blob_upload import HttpBlobUploader, LocalBlobUploader
from vidscript.core.constants import ErrorCode, ErrorPolicy, Severity, VideoStatus
from vidscript.core.document_store import SqliteDocumentStore
from vidscript.core.error_codes import (
    InvalidInput, JobStartError, PersistenceError, RemoteServiceError, UploadError,
)
from vidscript.core.export import download_transcript
from vidscript.core.lifecycle import VideoLifecycleController
from vidscript.core.models import (
    JobHandle, AnalysisRunning, AnalysisSucceeded, AnalysisFailed,
)
from vidscript.core.store import VideoStore


TWO_PHRASE_RESULT = {
    "id": "job-1",
    "status": "Succeeded",
    "result": {"contents": [{"transcriptPhrases": [
        {"startTimeMs": 0, "endTimeMs": 1200, "text": "Hello"},
        {"startTimeMs": 1200, "endTimeMs": 2500, "text": "World"},
    ]}]},
}


def _response(status_code=200, payload=None, text=None):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.text = text if text is not None else ("{}" if payload is not None else "")
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


def _session():
    session = mock.MagicMock()
    session.headers = {}
    return session


# ── Fakes ─────────────────────────────────────────────────────────────

class FakeUploader:
    """Reports a scripted progress sequence then returns a remote URL."""

    def __init__(self, ticks=(10, 30, 30, 20, 60, 100), error: Exception | None = None):
        self.ticks = ticks
        self.error = error
        self.calls = []

    def upload(self, path, blob_name, on_progress):
        self.calls.append(blob_name)
        for tick in self.ticks:
            on_progress(tick)
        if self.error:
            raise self.error
        return f"https://blobs.example.com/videos/{blob_name}"


class FakeAnalysisClient:
    """Returns scripted poll statuses; the last one repeats."""

    def __init__(self, statuses=(), start_error: Exception | None = None):
        self.statuses = list(statuses)
        self.start_error = start_error
        self.started_with = []
        self.polls = 0
        self.polled = threading.Event()

    def start(self, media_url):
        self.started_with.append(media_url)
        if self.start_error:
            raise self.start_error
        return JobHandle(job_id="job-1")

    def poll(self, handle):
        self.polls += 1
        self.polled.set()
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class TestAnalysisClient(unittest.TestCase):
    """Test the HTTP analysis client against a mocked session."""

    def setUp(self):
        self.session = _session()
        self.client = AnalysisClient(
            "https://ai.example.com/", "secret-key",
            analyzer_id="Transcripts", api_version="2024-12-01-preview",
            max_retries=2, retry_base_delay=0, session=self.session,
        )
        sleep_patch = mock.patch("vidscript.core.analysis_client.time.sleep")
        self.sleep = sleep_patch.start()
        self.addCleanup(sleep_patch.stop)

    def test_sets_subscription_key(self):
        self.assertEqual(self.session.headers["Ocp-Apim-Subscription-Key"], "secret-key")

    def test_start(self):
        self.session.request.return_value = _response(202, {"id": "job-42", "status": "Running"})
        handle = self.client.start("https://blobs.example.com/v.mp4")
        self.assertEqual(handle.job_id, "job-42")

        args, kwargs = self.session.request.call_args
        self.assertEqual(args[0], "POST")
        self.assertEqual(args[1], "https://ai.example.com/content-understanding/analyzers/Transcripts:analyze")
        self.assertEqual(kwargs["params"], {"api-version": "2024-12-01-preview"})
        self.assertEqual(kwargs["json"],
                         {"analysisInput": {"sources": [{"uri": "https://blobs.example.com/v.mp4"}]}})

    def test_start_without_id(self):
        self.session.request.return_value = _response(200, {"status": "Running"})
        with self.assertRaises(JobStartError):
            self.client.start("https://blobs.example.com/v.mp4")

    def test_start_http_error(self):
        self.session.request.return_value = _response(400, text="bad analyzer")
        with self.assertRaises(RemoteServiceError) as ctx:
            self.client.start("https://blobs.example.com/v.mp4")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.body, "bad analyzer")

    def test_poll_statuses(self):
        self.session.request.return_value = _response(200, {"status": "Running"})
        self.assertIsInstance(self.client.poll(JobHandle("j")), AnalysisRunning)

        self.session.request.return_value = _response(200, TWO_PHRASE_RESULT)
        status = self.client.poll(JobHandle("j"))
        self.assertIsInstance(status, AnalysisSucceeded)
        self.assertEqual(status.result, TWO_PHRASE_RESULT)

        self.session.request.return_value = _response(
            200, {"status": "Failed", "error": {"message": "unsupported codec"}})
        status = self.client.poll(JobHandle("j"))
        self.assertIsInstance(status, AnalysisFailed)
        self.assertEqual(status.reason, "unsupported codec")

        args, _ = self.session.request.call_args
        self.assertEqual(args[0], "GET")
        self.assertTrue(args[1].endswith("/analyzers/Transcripts/analyzes/j"))

    def test_rate_limit_then_success(self):
        self.session.request.side_effect = [
            _response(429, text="slow down"),
            _response(200, {"id": "job-7"}),
        ]
        self.assertEqual(self.client.start("u").job_id, "job-7")
        self.assertEqual(self.sleep.call_count, 1)

    def test_server_error_after_retries(self):
        self.session.request.return_value = _response(503, text="unavailable")
        with self.assertRaises(RemoteServiceError) as ctx:
            self.client.poll(JobHandle("j"))
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(self.session.request.call_count, 3)

    def test_transport_error_after_retries(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(RemoteServiceError) as ctx:
            self.client.poll(JobHandle("j"))
        self.assertIsNone(ctx.exception.status_code)
        self.assertEqual(ctx.exception.code, ErrorCode.NETWORK_TRANSIENT)
        self.assertEqual(self.session.request.call_count, 3)

    def test_invalid_json(self):
        self.session.request.return_value = _response(200, payload=None, text="<html>")
        with self.assertRaises(RemoteServiceError):
            self.client.poll(JobHandle("j"))

    def test_decode_status_lowercase(self):
        self.assertIsInstance(decode_status({"status": "succeeded"}), AnalysisSucceeded)
        self.assertIsInstance(decode_status({"status": "NotStarted"}), AnalysisRunning)
        self.assertIsInstance(decode_status(None), AnalysisRunning)


class TestBlobUploaders(unittest.TestCase):
    """Test HTTP and local uploaders."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "clip.mp4"
        self.path.write_bytes(b"x" * (9 * 1024 * 1024))

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_http_upload_reports_progress(self):
        session = _session()

        def fake_put(url, data, headers, timeout):
            self.assertEqual(len(data), 9 * 1024 * 1024)
            while data.read(1024 * 1024):
                pass
            return _response(201, text="")

        session.put.side_effect = fake_put
        uploader = HttpBlobUploader("https://acct.blob.example.com/videos/", "?sv=1&sig=abc",
                                    session=session)
        ticks = []
        url = uploader.upload(self.path, "vid-1.mp4", ticks.append)

        self.assertEqual(url, "https://acct.blob.example.com/videos/vid-1.mp4?sv=1&sig=abc")
        self.assertEqual(ticks, sorted(ticks))
        self.assertEqual(ticks[-1], 100)
        self.assertGreater(len(ticks), 2)
        _, kwargs = session.put.call_args
        self.assertEqual(kwargs["headers"]["x-ms-blob-type"], "BlockBlob")

    def test_http_upload_rejected(self):
        session = _session()
        session.put.return_value = _response(403, text="AuthenticationFailed")
        uploader = HttpBlobUploader("https://acct.blob.example.com/videos", session=session)
        with self.assertRaises(UploadError):
            uploader.upload(self.path, "vid-1.mp4", lambda p: None)

    def test_http_upload_transport_error(self):
        session = _session()
        session.put.side_effect = requests.exceptions.ConnectionError("dns")
        uploader = HttpBlobUploader("https://acct.blob.example.com/videos", session=session)
        with self.assertRaises(UploadError):
            uploader.upload(self.path, "vid-1.mp4", lambda p: None)

    def test_unconfigured_container(self):
        with self.assertRaises(UploadError):
            HttpBlobUploader("").upload(self.path, "vid-1.mp4", lambda p: None)

    def test_local_uploader(self):
        ticks = []
        url = LocalBlobUploader().upload(self.path, "vid-1.mp4", ticks.append)
        self.assertTrue(url.startswith("file:"))
        self.assertEqual(ticks, [100])


class TestVideoLifecycle(unittest.TestCase):
    """End-to-end state machine scenarios with fake collaborators."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.video_path = Path(self.tmpdir.name) / "clip.mp4"
        with open(self.video_path, "wb") as f:
            f.truncate(10 * 1024 * 1024)    # 10MB
        self.store = VideoStore()
        self.snapshots = []
        self.notifications = []

    def tearDown(self):
        self.tmpdir.cleanup()

    def _controller(self, client, policy=ErrorPolicy.STRICT, uploader=None, **kwargs):
        kwargs.setdefault("poll_interval_sec", 0)
        controller = VideoLifecycleController(
            self.store, uploader or FakeUploader(), client, policy, **kwargs)
        controller.on_video_updated = self.snapshots.append
        controller.on_notification = self.notifications.append
        return controller

    def test_successful_processing(self):
        client = FakeAnalysisClient([
            AnalysisRunning("Running"),
            AnalysisRunning("Running"),
            AnalysisSucceeded(TWO_PHRASE_RESULT),
        ])
        uploader = FakeUploader()
        video = self._controller(client, uploader=uploader).process_video_file(self.video_path)

        # Upload progress: non-decreasing, ends at 100 on entering processing
        uploading = [s.upload_progress for s in self.snapshots if s.status == VideoStatus.UPLOADING]
        self.assertEqual(uploading, sorted(uploading))
        first_processing = next(s for s in self.snapshots if s.status == VideoStatus.PROCESSING)
        self.assertEqual(first_processing.upload_progress, 100)
        self.assertEqual(first_processing.processing_progress, 0)
        self.assertTrue(first_processing.media_url.startswith("https://blobs.example.com/"))

        # Processing progress: estimated, capped, then 100
        processing = [s.processing_progress for s in self.snapshots if s.status == VideoStatus.PROCESSING]
        self.assertEqual(processing, sorted(processing))
        self.assertLessEqual(max(processing), 95)

        self.assertEqual(client.polls, 3)
        self.assertEqual(video.status, VideoStatus.COMPLETED)
        self.assertEqual(video.processing_progress, 100)
        self.assertEqual(video.size_bytes, 10 * 1024 * 1024)
        self.assertEqual(uploader.calls, [f"{video.id}.mp4"])

        transcript = self.store.find_transcript_by_video_id(video.id)
        self.assertIn("00:00:00.000 --> 00:00:01.200\nHello\n\n"
                      "00:00:01.200 --> 00:00:02.500\nWorld\n\n", transcript.content)

        download = download_transcript(self.store, video.id, "clip.mp4", "subtitle")
        self.assertEqual(download.filename, "clip_transcript.srt")
        self.assertEqual(
            download.data.decode("utf-8"),
            "1\n00:00:00,000 --> 00:00:01,200\nHello\n\n"
            "2\n00:00:01,200 --> 00:00:02,500\nWorld\n\n",
        )
        self.assertEqual(self.notifications[-1].title, "Processing complete")

    def test_progress_capped_at_95(self):
        client = FakeAnalysisClient([AnalysisRunning()] * 30 + [AnalysisSucceeded(TWO_PHRASE_RESULT)])
        self._controller(client).process_video_file(self.video_path)
        processing = [s.processing_progress for s in self.snapshots if s.status == VideoStatus.PROCESSING]
        self.assertEqual(max(processing), 95)

    def test_failed_job_strict(self):
        client = FakeAnalysisClient([AnalysisRunning(), AnalysisFailed("bad media")])
        video = self._controller(client, ErrorPolicy.STRICT).process_video_file(self.video_path)

        self.assertEqual(video.status, VideoStatus.ERROR)
        self.assertEqual(video.error_code, ErrorCode.JOB_FAILED)
        self.assertIn("bad media", video.error_message)
        self.assertIsNone(self.store.find_transcript_by_video_id(video.id))
        self.assertEqual(self.notifications[-1].severity, Severity.ERROR)
        self.assertNotIn("try uploading again", self.notifications[-1].description)

    def test_failed_job_lenient(self):
        client = FakeAnalysisClient([AnalysisFailed("bad media")])
        video = self._controller(client, ErrorPolicy.LENIENT).process_video_file(self.video_path)

        self.assertEqual(video.status, VideoStatus.COMPLETED)
        self.assertEqual(video.processing_progress, 100)
        self.assertEqual(video.error_code, ErrorCode.JOB_FAILED)
        transcript = self.store.find_transcript_by_video_id(video.id)
        self.assertTrue(transcript.is_placeholder)
        self.assertIn("Transcription failed", transcript.content)
        self.assertEqual(self.notifications[-1].severity, Severity.ERROR)

        srt = download_transcript(self.store, video.id, video.name, "subtitle").data.decode()
        self.assertTrue(srt.startswith("1\n00:00:00,000 --> 00:00:05,000\nTranscription failed"))

    def test_job_start_error(self):
        client = FakeAnalysisClient(start_error=JobStartError())
        video = self._controller(client).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.ERROR)
        self.assertEqual(video.error_code, ErrorCode.JOB_START)

    def test_remote_error_lenient(self):
        client = FakeAnalysisClient(start_error=RemoteServiceError(401, "denied"))
        video = self._controller(client, ErrorPolicy.LENIENT).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.COMPLETED)
        self.assertIn("401", self.store.find_transcript_by_video_id(video.id).content)

    def test_unexpected_exception_is_contained(self):
        client = FakeAnalysisClient([AnalysisRunning()])
        client.poll = mock.Mock(side_effect=RuntimeError("boom"))
        video = self._controller(client).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.ERROR)
        self.assertEqual(video.error_code, ErrorCode.UNEXPECTED)

    def test_upload_error_without_fallback(self):
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        uploader = FakeUploader(ticks=(10,), error=UploadError("network down"))
        video = self._controller(client, uploader=uploader).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.ERROR)
        self.assertEqual(video.error_code, ErrorCode.UPLOAD_FAILED)
        self.assertEqual(client.started_with, [])
        self.assertIn("try uploading again", self.notifications[-1].description)

    def test_upload_error_local_fallback_lenient(self):
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        uploader = FakeUploader(ticks=(10, 40), error=UploadError("network down"))
        controller = self._controller(client, ErrorPolicy.LENIENT, uploader=uploader,
                                      fallback_uploader=LocalBlobUploader())
        video = controller.process_video_file(self.video_path)

        self.assertTrue(video.used_local_fallback)
        self.assertTrue(video.media_url.startswith("file:"))
        self.assertEqual(video.status, VideoStatus.COMPLETED)
        self.assertEqual(client.started_with, [])
        self.assertTrue(self.store.find_transcript_by_video_id(video.id).is_placeholder)
        self.assertIn(Severity.WARNING, [n.severity for n in self.notifications])

    def test_invalid_input_rejected_before_state(self):
        notes = Path(self.tmpdir.name) / "notes.txt"
        notes.write_text("hello")
        controller = self._controller(FakeAnalysisClient([AnalysisRunning()]))
        with self.assertRaises(InvalidInput):
            controller.process_video_file(notes)
        with self.assertRaises(InvalidInput):
            controller.process_video_file(Path(self.tmpdir.name) / "missing.mp4")
        self.assertEqual(self.store.list_videos_by_recency_descending(), [])

    def test_explicit_content_type(self):
        odd = Path(self.tmpdir.name) / "recording.bin"
        odd.write_bytes(b"\x00" * 10)
        controller = self._controller(FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)]))
        video = controller.process_video_file(odd, content_type="video/webm")
        self.assertEqual(video.status, VideoStatus.COMPLETED)

    def test_max_poll_attempts(self):
        client = FakeAnalysisClient([AnalysisRunning()])
        video = self._controller(client, max_poll_attempts=3).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.ERROR)
        self.assertEqual(video.error_code, ErrorCode.PROCESSING_TIMEOUT)
        self.assertEqual(client.polls, 3)

    def test_wall_clock_timeout(self):
        ticks = iter(range(0, 10_000, 100))
        client = FakeAnalysisClient([AnalysisRunning()])
        controller = self._controller(client, max_processing_sec=250,
                                      clock=lambda: next(ticks))
        video = controller.process_video_file(self.video_path)
        self.assertEqual(video.error_code, ErrorCode.PROCESSING_TIMEOUT)
        self.assertEqual(client.polls, 2)

    def test_cancel_background_job(self):
        client = FakeAnalysisClient([AnalysisRunning()])
        controller = self._controller(client, poll_interval_sec=30)
        video = controller.submit(self.video_path)

        self.assertTrue(client.polled.wait(5))
        self.assertTrue(controller.cancel(video.id))
        final = controller.wait(video.id, timeout=5)

        self.assertEqual(final.status, VideoStatus.ERROR)
        self.assertEqual(final.error_code, ErrorCode.PROCESSING_CANCELLED)
        self.assertFalse(controller.cancel(video.id))

    def test_cancel_before_worker_starts(self):
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        controller = self._controller(client)
        with mock.patch.object(threading.Thread, "start"):
            video = controller.submit(self.video_path)

        self.assertTrue(controller.cancel(video.id))
        # the deferred worker body runs on this thread
        final = controller.run(video.id, self.video_path)

        self.assertEqual(final.status, VideoStatus.ERROR)
        self.assertEqual(final.error_code, ErrorCode.PROCESSING_CANCELLED)
        self.assertEqual(client.started_with, [])
        self.assertEqual(client.polls, 0)

    def test_concurrent_videos(self):
        second_path = Path(self.tmpdir.name) / "other.mov"
        second_path.write_bytes(b"\x00" * 100)
        controller = self._controller(FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)]))
        first = controller.submit(self.video_path)
        second = controller.submit(second_path)
        self.assertEqual(controller.wait(first.id, 5).status, VideoStatus.COMPLETED)
        self.assertEqual(controller.wait(second.id, 5).status, VideoStatus.COMPLETED)
        self.assertIsNotNone(self.store.find_transcript_by_video_id(second.id))

    def test_document_store_persistence(self):
        db = SqliteDocumentStore(Path(self.tmpdir.name) / "t.db")
        self.addCleanup(db.close)
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        video = self._controller(client, document_store=db).process_video_file(self.video_path)
        self.assertEqual(db.get(video.id).content,
                         self.store.find_transcript_by_video_id(video.id).content)

    def test_document_store_failure_is_swallowed(self):
        db = mock.Mock()
        db.create.side_effect = PersistenceError("disk full")
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        video = self._controller(client, document_store=db).process_video_file(self.video_path)
        self.assertEqual(video.status, VideoStatus.COMPLETED)
        db.create.assert_called_once()

    def test_callback_errors_do_not_escape(self):
        client = FakeAnalysisClient([AnalysisSucceeded(TWO_PHRASE_RESULT)])
        controller = self._controller(client)
        controller.on_video_updated = mock.Mock(side_effect=RuntimeError("ui gone"))
        controller.on_notification = mock.Mock(side_effect=RuntimeError("ui gone"))
        self.assertEqual(controller.process_video_file(self.video_path).status,
                         VideoStatus.COMPLETED)

    def test_policy_required(self):
        with self.assertRaises(ValueError):
            VideoLifecycleController(self.store, FakeUploader(), FakeAnalysisClient(), "sometimes")


if __name__ == "__main__":
    unittest.main()
