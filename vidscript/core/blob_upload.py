"""
Blob uploaders: hand video bytes to storage and report progress.

HttpBlobUploader PUTs the file to a blob container URL (SAS-authorised).
LocalBlobUploader keeps the file where it is and returns a file:// reference;
it is used when remote storage is unreachable.
"""

import logging
from pathlib import Path
from typing import Callable
from urllib.parse import quote

import requests

from vidscript.core.constants import UPLOAD_CHUNK_BYTES, PROGRESS_COMPLETE
from vidscript.core.error_codes import UploadError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class _ProgressReader:
    """File wrapper that reports percent read. len() lets requests send Content-Length."""

    def __init__(self, fileobj, total: int, on_progress: ProgressCallback):
        self._file = fileobj
        self._total = total
        self._read = 0
        self._last_pct = -1
        self._on_progress = on_progress

    def __len__(self):
        return self._total

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = UPLOAD_CHUNK_BYTES
        chunk = self._file.read(min(size, UPLOAD_CHUNK_BYTES))
        if chunk:
            self._read += len(chunk)
            pct = int(self._read * 100 / self._total) if self._total else PROGRESS_COMPLETE
            pct = min(pct, PROGRESS_COMPLETE)
            if pct != self._last_pct:
                self._last_pct = pct
                self._on_progress(pct)
        return chunk


class HttpBlobUploader:
    """Upload to <container_url>/<blob_name>?<sas_token> as a block blob."""

    def __init__(self, container_url: str, sas_token: str = "",
                 timeout_sec: float = 600,
                 session: requests.Session | None = None):
        self.container_url = container_url.rstrip('/')
        self.sas_token = sas_token.lstrip('?')
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()

    def blob_url(self, blob_name: str) -> str:
        url = f"{self.container_url}/{quote(blob_name)}"
        return f"{url}?{self.sas_token}" if self.sas_token else url

    def upload(self, path: Path, blob_name: str,
               on_progress: ProgressCallback) -> str:
        if not self.container_url:
            raise UploadError("Blob container URL is not configured")

        url = self.blob_url(blob_name)
        size = path.stat().st_size
        headers = {"x-ms-blob-type": "BlockBlob"}

        try:
            with open(path, 'rb') as f:
                resp = self.session.put(
                    url,
                    data=_ProgressReader(f, size, on_progress),
                    headers=headers,
                    timeout=self.timeout_sec,
                )
        except requests.exceptions.RequestException as e:
            raise UploadError(f"Upload to blob storage failed: {e}")
        except OSError as e:
            raise UploadError(f"Could not read {path.name}: {e}")

        if not resp.ok:
            body = resp.text[:300] if resp.text else "No response body"
            raise UploadError(f"Blob storage returned {resp.status_code}: {body}")

        on_progress(PROGRESS_COMPLETE)
        logger.info("Uploaded %s (%d bytes) to blob storage", path.name, size)
        return url


class LocalBlobUploader:
    """No transfer; the media stays on disk and is referenced by file:// URI."""

    def upload(self, path: Path, blob_name: str,
               on_progress: ProgressCallback) -> str:
        if not path.exists():
            raise UploadError(f"File not found: {path}")
        on_progress(PROGRESS_COMPLETE)
        return path.resolve().as_uri()


def is_local_reference(media_url: str | None) -> bool:
    return bool(media_url) and media_url.startswith("file:")
