"""
Content-understanding analysis service client.
Starts a long-running analysis job for a media URL and polls it.
Includes exponential backoff for rate-limit (429), 5xx and transport errors.
"""

import json
import logging
import random
import time

import requests

from vidscript.core.constants import (
    ErrorCode, DEFAULT_ANALYZER_ID, DEFAULT_API_VERSION, SUBSCRIPTION_KEY_HEADER,
    SERVICE_STATUS_SUCCEEDED, SERVICE_STATUS_FAILED, RETRYABLE_HTTP_STATUSES,
    REQUEST_TIMEOUT_SEC, MAX_REQUEST_RETRIES, RETRY_BASE_DELAY_SEC,
)
from vidscript.core.error_codes import RemoteServiceError, JobStartError
from vidscript.core.models import (
    JobHandle, AnalysisStatus, AnalysisRunning, AnalysisSucceeded, AnalysisFailed,
)

logger = logging.getLogger(__name__)

_MAX_BODY_CHARS = 300


class AnalysisClient:
    """Thin client over the analyzer's :analyze / analyzes/{id} endpoints."""

    def __init__(self, endpoint: str, api_key: str,
                 analyzer_id: str = DEFAULT_ANALYZER_ID,
                 api_version: str = DEFAULT_API_VERSION,
                 timeout_sec: float = REQUEST_TIMEOUT_SEC,
                 max_retries: int = MAX_REQUEST_RETRIES,
                 retry_base_delay: float = RETRY_BASE_DELAY_SEC,
                 session: requests.Session | None = None):
        self.endpoint = endpoint.rstrip('/')
        self.analyzer_id = analyzer_id
        self.api_version = api_version
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.session = session or requests.Session()
        self.session.headers[SUBSCRIPTION_KEY_HEADER] = api_key

    # ── URLs ──────────────────────────────────────────────────────────

    @property
    def analyze_url(self) -> str:
        return (f"{self.endpoint}/content-understanding/analyzers/"
                f"{self.analyzer_id}:analyze")

    def result_url(self, job_id: str) -> str:
        return (f"{self.endpoint}/content-understanding/analyzers/"
                f"{self.analyzer_id}/analyzes/{job_id}")

    # ── Operations ────────────────────────────────────────────────────

    def start(self, media_url: str) -> JobHandle:
        """Submit media for analysis. Returns the job handle."""
        body = {"analysisInput": {"sources": [{"uri": media_url}]}}
        payload = self._request("POST", self.analyze_url, json=body)

        job_id = payload.get("id") if isinstance(payload, dict) else None
        if not job_id:
            raise JobStartError()

        logger.info("Started analysis job %s", job_id)
        return JobHandle(job_id=str(job_id))

    def poll(self, handle: JobHandle) -> AnalysisStatus:
        """Fetch the current job status, decoded into a tagged variant."""
        payload = self._request("GET", self.result_url(handle.job_id))
        return decode_status(payload)

    # ── HTTP ──────────────────────────────────────────────────────────

    def _request(self, method: str, url: str, **kwargs) -> dict:
        params = {"api-version": self.api_version}

        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.request(method, url, params=params,
                                            timeout=self.timeout_sec, **kwargs)
            except (requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout) as e:
                if attempt < self.max_retries:
                    self._backoff(attempt, f"transport error ({type(e).__name__})")
                    continue
                raise RemoteServiceError(None, str(e)[:_MAX_BODY_CHARS],
                                         code=ErrorCode.NETWORK_TRANSIENT)
            except requests.exceptions.RequestException as e:
                raise RemoteServiceError(None, str(e)[:_MAX_BODY_CHARS])

            if resp.status_code in RETRYABLE_HTTP_STATUSES and attempt < self.max_retries:
                self._backoff(attempt, f"HTTP {resp.status_code}")
                continue

            if not resp.ok:
                # Sanitize error body (never log the key)
                error_body = resp.text[:_MAX_BODY_CHARS] if resp.text else "No response body"
                raise RemoteServiceError(resp.status_code, error_body)

            try:
                return resp.json()
            except (json.JSONDecodeError, ValueError):
                raise RemoteServiceError(resp.status_code,
                                         "Failed to parse analysis response JSON")

        # Should never reach here
        raise RemoteServiceError(None, "Analysis request exhausted retries")

    def _backoff(self, attempt: int, reason: str):
        # Exponential backoff with jitter: 2s, 4s, 8s, 16s (+/- 10%)
        delay = self.retry_base_delay * (2 ** attempt)
        delay *= 1 + random.uniform(-0.1, 0.1)
        logger.warning("Analysis service %s — retrying in %.1fs (attempt %d/%d)",
                       reason, delay, attempt + 1, self.max_retries)
        time.sleep(delay)


def decode_status(payload: dict) -> AnalysisStatus:
    """Map the service's status field onto Running / Succeeded / Failed."""
    if not isinstance(payload, dict):
        return AnalysisRunning(service_status="")

    status = str(payload.get("status") or "")
    normalized = status.lower()
    if normalized == SERVICE_STATUS_SUCCEEDED:
        return AnalysisSucceeded(result=payload)
    if normalized == SERVICE_STATUS_FAILED:
        error = payload.get("error") or {}
        reason = error.get("message") if isinstance(error, dict) else str(error)
        return AnalysisFailed(reason=reason or "Analysis service reported failure")
    return AnalysisRunning(service_status=status)
