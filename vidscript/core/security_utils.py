"""
Security utilities for vidscript.
- Path traversal protection
- Filename sanitization
"""

import re
import pathlib
import logging

from vidscript.core.constants import UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN

logger = logging.getLogger(__name__)


def sanitize_filename(name: str) -> str:
    """Sanitize a user supplied name for use as a file name."""
    if not name:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse runs of whitespace
    safe = re.sub(r'\s+', ' ', safe).strip()
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN].rstrip()
    # Remove leading/trailing dots (hidden files)
    safe = safe.strip('.')
    return safe


def safe_output_path(output_root: pathlib.Path, filename: str,
                     fallback: str) -> pathlib.Path:
    """
    Build a safe output file path. Enforces that realpath(result) starts
    with realpath(output_root). Falls back to <fallback> on failure.
    """
    sanitized = sanitize_filename(filename) or fallback

    candidate = output_root / sanitized
    try:
        real_root = output_root.resolve(strict=False)
        real_candidate = candidate.resolve(strict=False)
        if real_candidate.parent != real_root:
            raise ValueError("Path traversal detected")
    except (OSError, ValueError) as e:
        logger.warning("Unsafe output name %r (%s) — using %s", filename, e, fallback)
        candidate = output_root / fallback

    return candidate
