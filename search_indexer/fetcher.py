from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
from curl_cffi import requests as curl_requests

from .backoff import BackoffStrategy

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

TRANSIENT_HTTP_STATUSES = {429, 500, 502, 503, 504}


class HttpStatusError(Exception):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"HTTP_{status_code} for {url}")
        self.status_code = status_code


class Fetcher:
    """Retrieves raw HTML with a bounded timeout and never raises.

    Every failure (network error, timeout, non-2xx status, oversized or
    undecodable body) is logged and turned into an empty string, which
    callers treat as "nothing to extract". Transient failures are retried
    with exponential backoff.

    Sessions are kept per thread. With ``impersonate`` set (e.g.
    ``"chrome120"``) requests go through curl_cffi with a browser TLS
    fingerprint instead of plain requests.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        max_retries: int = 1,
        max_bytes: int = 5 * 1024 * 1024,
        backoff: Optional[BackoffStrategy] = None,
        headers: Optional[Dict[str, str]] = None,
        impersonate: Optional[str] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._max_bytes = max_bytes
        self._backoff = backoff or BackoffStrategy()
        self._headers = dict(headers or DEFAULT_HEADERS)
        self._impersonate = impersonate
        if session_factory is None:
            session_factory = curl_requests.Session if impersonate else requests.Session
        self._session_factory = session_factory
        self._local = threading.local()

    def fetch_html(self, url: str) -> str:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._fetch_once(url)
            except Exception as exc:  # noqa: BLE001
                if attempt > self._max_retries or not _is_transient(exc):
                    logger.debug("fetch failed url=%s error=%s", url, exc)
                    return ""
                logger.debug("retrying url=%s attempt=%d error=%s", url, attempt, type(exc).__name__)
                self._backoff.wait(attempt)

    def _fetch_once(self, url: str) -> str:
        # The session timeout bounds each socket read; the deadline bounds the whole fetch.
        deadline = time.monotonic() + self._timeout
        kwargs: Dict[str, Any] = {"headers": self._headers, "timeout": self._timeout, "stream": True}
        if self._impersonate:
            kwargs["impersonate"] = self._impersonate
        response = self._session().get(url, **kwargs)
        try:
            status_code = int(response.status_code)
            if not 200 <= status_code < 300:
                raise HttpStatusError(url, status_code)
            body = self._read_capped(response, deadline)
            encoding = response.encoding or "utf-8"
        finally:
            response.close()
        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")

    def _read_capped(self, response: Any, deadline: float) -> bytes:
        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            if time.monotonic() > deadline:
                raise TimeoutError(f"body not received within {self._timeout}s")
            if not chunk:
                continue
            size += len(chunk)
            if size > self._max_bytes:
                raise ValueError(f"body exceeds {self._max_bytes} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    def _session(self) -> Any:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
        return session


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, HttpStatusError):
        return exc.status_code in TRANSIENT_HTTP_STATUSES
    return not isinstance(exc, ValueError)
