"""
Transcript downloads: text (WEBVTT cue text) or subtitle (SRT).
"""

import logging
import re
from pathlib import Path

from vidscript.core.constants import (
    TranscriptFormat, FORMAT_ALIASES, FORMAT_EXTENSIONS, FORMAT_MEDIA_TYPES,
)
from vidscript.core.error_codes import InvalidInput, TranscriptNotFound
from vidscript.core.models import TranscriptDownload
from vidscript.core.security_utils import safe_output_path
from vidscript.core.store import VideoStore
from vidscript.core.subtitle_convert import convert_to_srt

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r'\.[^/.]+$')


def normalize_format(fmt: str) -> str:
    resolved = FORMAT_ALIASES.get((fmt or "").strip().lower())
    if resolved is None:
        raise InvalidInput(f"Unsupported transcript format: {fmt!r}")
    return resolved


def download_filename(video_name: str, fmt: str) -> str:
    """clip.mp4 → clip_transcript.srt"""
    stem = _EXTENSION_RE.sub('', video_name or '')
    return f"{stem}_transcript.{FORMAT_EXTENSIONS[fmt]}"


def download_transcript(store: VideoStore, video_id: str, video_name: str,
                        fmt: str = TranscriptFormat.TEXT) -> TranscriptDownload:
    """Render a stored transcript for download. Raises TranscriptNotFound."""
    fmt = normalize_format(fmt)
    transcript = store.find_transcript_by_video_id(video_id)
    if transcript is None:
        raise TranscriptNotFound(video_id)

    if fmt == TranscriptFormat.SUBTITLE:
        text = convert_to_srt(transcript)
    else:
        text = transcript.content

    return TranscriptDownload(
        filename=download_filename(video_name, fmt),
        data=text.encode('utf-8'),
        media_type=FORMAT_MEDIA_TYPES[fmt],
    )


def save_download(download: TranscriptDownload, output_root: Path) -> Path:
    """Write a download under output_root. Returns the path written."""
    output_root.mkdir(parents=True, exist_ok=True)
    ext = download.filename.rsplit('.', 1)[-1]
    path = safe_output_path(output_root, download.filename, f"transcript.{ext}")
    path.write_bytes(download.data)
    logger.info("Wrote transcript: %s", path)
    return path
