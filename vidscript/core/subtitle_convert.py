"""
Transcript → SRT subtitle text.

Two paths:
  * primary: the structured phrase list kept in Transcript.raw_structured_data
  * fallback: the WEBVTT cue text in Transcript.content

The primary path is attempted first. If the structured data is absent, does
not decode, cannot be ordered, or yields no cues, the fallback path is used.
convert_to_srt never raises.
"""

import json
import logging
import math
import re

from vidscript.core.models import Transcript
from vidscript.core.timecode import format_srt_time
from vidscript.core.transcript_builder import phrase_time_ms

logger = logging.getLogger(__name__)

_VTT_HEADER_RE = re.compile(r'^\ufeff?WEBVTT[^\n]*\n?')
_CUE_SPLIT_RE = re.compile(r'\n[ \t]*\n+')
_TIMING_RE = re.compile(
    r'^\s*((?:\d+:)?\d{1,2}:\d{2}[.,]\d{3})\s+-->\s+((?:\d+:)?\d{1,2}:\d{2}[.,]\d{3})'
)
_VOICE_ONLY_RE = re.compile(r'^\s*<v(?:\.[^\s>]*)?\s+([^>]+)>\s*(?:</v>)?\s*$')
_VOICE_TAG_RE = re.compile(r'<v(?:\.[^\s>]*)?\s+([^>]+)>')
_VOICE_CLOSE_RE = re.compile(r'</v>')


def _srt_cue(index: int, timing: str, text: str) -> str:
    return f"{index}\n{timing}\n{text}\n\n"


def _structured_to_srt(raw_structured_data: str) -> str:
    """Primary path. Raises on malformed data; the caller falls back."""
    data = json.loads(raw_structured_data)
    phrases = data.get('phrases') or []
    if not isinstance(phrases, list):
        raise TypeError("phrases is not a list")

    def start_key(phrase):
        start = phrase_time_ms(phrase.get('startTimeMs'))
        # untimed phrases sort last and are skipped below
        return math.inf if start is None else start

    ordered = sorted(phrases, key=start_key)

    cues = []
    for phrase in ordered:
        start_ms = phrase_time_ms(phrase.get('startTimeMs'))
        end_ms = phrase_time_ms(phrase.get('endTimeMs'))
        text = phrase.get('text')
        if start_ms is None or end_ms is None:
            continue
        if not isinstance(text, str) or not text.strip():
            continue
        if phrase.get('speaker'):
            text = f"[{phrase['speaker']}] {text}"
        timing = f"{format_srt_time(start_ms)} --> {format_srt_time(end_ms)}"
        cues.append(_srt_cue(len(cues) + 1, timing, text))
    return ''.join(cues)


def convert_vtt_to_srt(vtt_content: str) -> str:
    """Fallback path: re-number WEBVTT cue text as SRT."""
    if not vtt_content:
        return ''

    content = vtt_content.replace('\r\n', '\n').replace('\r', '\n')
    content = _VTT_HEADER_RE.sub('', content, count=1)

    cues = []
    for block in _CUE_SPLIT_RE.split(content.strip()):
        lines = block.strip().split('\n')
        timing_idx = next(
            (i for i, line in enumerate(lines) if _TIMING_RE.match(line)), None
        )
        if timing_idx is None:
            continue

        start, end = _TIMING_RE.match(lines[timing_idx]).groups()
        timing = f"{start.replace('.', ',')} --> {end.replace('.', ',')}"

        # Lines before the timing line are cue identifiers
        text_lines = []
        pending_speaker = None
        for line in lines[timing_idx + 1:]:
            voice_only = _VOICE_ONLY_RE.match(line)
            if voice_only:
                pending_speaker = voice_only.group(1).strip()
                continue
            line = _VOICE_TAG_RE.sub(lambda m: f"[{m.group(1).strip()}] ", line)
            line = _VOICE_CLOSE_RE.sub('', line).rstrip()
            if pending_speaker:
                line = f"[{pending_speaker}] {line}"
                pending_speaker = None
            text_lines.append(line)
        if pending_speaker:
            text_lines.append(f"[{pending_speaker}]")

        cues.append(_srt_cue(len(cues) + 1, timing, '\n'.join(text_lines).strip()))

    return ''.join(cues)


def convert_to_srt(transcript: Transcript) -> str:
    """Convert a transcript to SRT text, preferring the structured phrases."""
    if transcript.raw_structured_data:
        try:
            srt = _structured_to_srt(transcript.raw_structured_data)
        except Exception as e:
            logger.warning("Structured SRT conversion failed for video %s: %s — "
                           "using cue text", transcript.video_id, e)
        else:
            if srt:
                return srt
    try:
        return convert_vtt_to_srt(transcript.content)
    except Exception as e:
        logger.error("Cue text SRT conversion failed for video %s: %s",
                     transcript.video_id, e, exc_info=True)
        return ''
