"""
Analysis response → Transcript.
Collects timed phrases from every content section, renders WEBVTT-style
cue text and keeps the structured phrases for higher-fidelity export.
"""

import json
import logging
import math
import re

from vidscript.core.constants import VTT_HEADER, DEFAULT_LANGUAGE, PLACEHOLDER_CUE_END_MS
from vidscript.core.models import Transcript
from vidscript.core.store import VideoStore
from vidscript.core.timecode import format_vtt_time

logger = logging.getLogger(__name__)

_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def phrase_time_ms(value) -> float | None:
    """Return a usable millisecond offset, or None if missing/non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return None
    return ms if math.isfinite(ms) else None


def extract_phrases(response: dict) -> list[dict]:
    """
    Gather phrases with non-blank text and a start time from all
    result.contents[*].transcriptPhrases, sorted by start time.
    """
    result = (response or {}).get('result') or {}
    contents = result.get('contents') or []

    phrases = []
    for content in contents:
        if not isinstance(content, dict):
            continue
        for phrase in content.get('transcriptPhrases') or []:
            if not isinstance(phrase, dict):
                continue
            text = phrase.get('text')
            if not isinstance(text, str) or not text.strip():
                continue
            if phrase_time_ms(phrase.get('startTimeMs')) is None:
                continue
            phrases.append(phrase)

    # sorted() is stable: equal start times keep their input order
    return sorted(phrases, key=lambda p: phrase_time_ms(p['startTimeMs']))


def render_vtt(phrases: list[dict]) -> str:
    """Render phrases as WEBVTT cue blocks. Phrases without an end time are skipped."""
    parts = [f"{VTT_HEADER}\n\n"]
    for phrase in phrases:
        end_ms = phrase_time_ms(phrase.get('endTimeMs'))
        if end_ms is None:
            continue
        start = format_vtt_time(phrase_time_ms(phrase['startTimeMs']))
        end = format_vtt_time(end_ms)
        block = f"{start} --> {end}\n"
        if phrase.get('speaker'):
            block += f"<v {phrase['speaker']}>\n"
        block += f"{phrase['text']}\n\n"
        parts.append(block)
    return ''.join(parts)


def build_transcript(video_id: str, response: dict,
                     store: VideoStore | None = None) -> Transcript:
    """
    Build the Transcript for a succeeded analysis job.
    When a store is given the transcript is upserted into it.
    """
    phrases = extract_phrases(response)
    language = DEFAULT_LANGUAGE
    if phrases and phrases[0].get('locale'):
        language = phrases[0]['locale']

    raw = json.dumps({'phrases': phrases, 'response': response}, default=str)

    transcript = Transcript(
        video_id=video_id,
        content=render_vtt(phrases),
        raw_structured_data=raw,
        language=language,
    )
    logger.info("Built transcript for video %s: %d phrases, language=%s",
                video_id, len(phrases), language)

    if store is not None:
        store.upsert_transcript(transcript)
    return transcript


def build_placeholder_transcript(video_id: str, message: str) -> Transcript:
    """Stand-in transcript for a video whose analysis failed."""
    # A blank line would end the cue early
    message = _BLANK_LINES_RE.sub("\n", message.strip())
    start = format_vtt_time(0)
    end = format_vtt_time(PLACEHOLDER_CUE_END_MS)
    content = (
        f"{VTT_HEADER}\n\n"
        f"{start} --> {end}\n"
        f"Transcription failed: {message}\n\n"
    )
    return Transcript(
        video_id=video_id,
        content=content,
        raw_structured_data=None,
        is_placeholder=True,
    )
