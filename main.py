#!/usr/bin/env python3
"""
vidscript v1.0.0 — Main entry point.
Uploads a video, waits for its AI transcript and writes the download.

Usage:
    python3 main.py clip.mp4 --policy lenient --format subtitle
"""

import argparse
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from vidscript.core.constants import (
    APP_NAME, APP_VERSION, LOG_DIR, ErrorPolicy, TranscriptFormat, VideoStatus,
    FORMAT_ALIASES, ENV_ANALYSIS_KEY,
)

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool = False):
    """Log to <LOG_DIR>/app.log, and to stderr when verbose."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8")]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=APP_NAME, description=__doc__.strip().splitlines()[0])
    parser.add_argument("video", type=Path, help="local video file to transcribe")
    parser.add_argument("--format", default=TranscriptFormat.TEXT,
                        choices=sorted(FORMAT_ALIASES), help="download format")
    parser.add_argument("--policy", choices=ErrorPolicy.ALL,
                        help="failure policy (overrides config error_policy)")
    parser.add_argument("--output", type=Path, help="directory for the transcript file")
    parser.add_argument("--config", type=Path, help="path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> int:
    from vidscript.core.analysis_client import AnalysisClient
    from vidscript.core.blob_upload import HttpBlobUploader, LocalBlobUploader
    from vidscript.core.config import AppConfig
    from vidscript.core.document_store import SqliteDocumentStore
    from vidscript.core.error_codes import JobError
    from vidscript.core.export import download_transcript, save_download
    from vidscript.core.lifecycle import VideoLifecycleController
    from vidscript.core.store import VideoStore

    config = AppConfig(args.config)
    policy = args.policy or config.error_policy
    if policy is None:
        print("No failure policy configured: pass --policy strict|lenient "
              "or set error_policy in config.json", file=sys.stderr)
        return 2

    api_key = config.analysis_api_key()
    if not api_key:
        print(f"Analysis API key missing: set {ENV_ANALYSIS_KEY}", file=sys.stderr)
        return 2

    client = AnalysisClient(
        config.get('analysis_endpoint'), api_key,
        analyzer_id=config.get('analyzer_id'),
        api_version=config.get('api_version'),
        timeout_sec=config.get('request_timeout_sec'),
        max_retries=config.get('max_request_retries'),
    )
    uploader = HttpBlobUploader(config.get('blob_container_url'), config.blob_sas_token())
    fallback = LocalBlobUploader() if config.get('upload_fallback_local') else None
    document_store = SqliteDocumentStore(config.db_path)
    store = VideoStore()

    controller = VideoLifecycleController.from_config(
        config, store, uploader, client, policy,
        document_store=document_store, fallback_uploader=fallback,
    )
    controller.on_notification = lambda n: print(f"[{n.severity}] {n.title}: {n.description}")

    last_shown = {}

    def show_progress(video):
        key = (video.status, video.upload_progress, video.processing_progress)
        if last_shown.get(video.id) != key:
            last_shown[video.id] = key
            print(f"{video.name}: {video.status} "
                  f"upload={video.upload_progress}% processing={video.processing_progress}%")

    controller.on_video_updated = show_progress

    try:
        video = controller.process_video_file(args.video)
    except JobError as e:
        print(e.message, file=sys.stderr)
        return 1
    finally:
        document_store.close()

    if video.status != VideoStatus.COMPLETED:
        return 1

    download = download_transcript(store, video.id, video.name, args.format)
    path = save_download(download, args.output or config.output_root)
    print(f"Transcript written to {path}")
    return 0


def main(argv: list[str] | None = None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("=" * 60)

    try:
        code = run(args)
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
