"""HTTP session management and fetch helpers for feed_timeline."""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.utils import requote_uri
from urllib3.util.retry import Retry

from . import progress
from .exceptions import FeedFetchError

logger = logging.getLogger(__name__)

DEFAULT_HTTP_BACKOFF_FACTOR = 0.5
DEFAULT_HTTP_RETRY_TOTAL = 3
DOWNLOAD_CHUNK_SIZE = 1024 * 64
HTTP_NOT_FOUND = 404
HTTP_RETRY_ALLOWED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
HTTP_RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

_THREAD_LOCAL = threading.local()
_SESSION_REGISTRY: List[requests.Session] = []
_SESSION_REGISTRY_LOCK = threading.Lock()


def normalize_url(url: str) -> str:
    """Normalize URLs while preserving already-encoded segments."""
    return requote_uri(url)


def _configure_http_session(session: requests.Session) -> None:
    """Attach retry-enabled HTTP adapters to a session."""

    class LoggingRetry(Retry):
        def increment(self, method=None, url=None, *args, **kwargs):  # type: ignore[override]
            new_retry = super().increment(method=method, url=url, *args, **kwargs)
            attempt = len(new_retry.history) + 1
            reason = kwargs.get("error") or kwargs.get("response")
            logger.warning(
                f"Retrying HTTP request (attempt {attempt}/{new_retry.total}) "
                f"{method or ''} {url or ''} due to {reason}"
            )
            return new_retry

    retry = LoggingRetry(
        total=DEFAULT_HTTP_RETRY_TOTAL,
        read=DEFAULT_HTTP_RETRY_TOTAL,
        connect=DEFAULT_HTTP_RETRY_TOTAL,
        status=DEFAULT_HTTP_RETRY_TOTAL,
        backoff_factor=DEFAULT_HTTP_BACKOFF_FACTOR,
        status_forcelist=HTTP_RETRY_STATUS_CODES,
        allowed_methods=HTTP_RETRY_ALLOWED_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)


def _get_thread_request_session() -> requests.Session:
    session = getattr(_THREAD_LOCAL, "session", None)
    if session is None:
        session = requests.Session()
        _configure_http_session(session)
        setattr(_THREAD_LOCAL, "session", session)
        with _SESSION_REGISTRY_LOCK:
            _SESSION_REGISTRY.append(session)
    return session


def _close_all_sessions() -> None:
    with _SESSION_REGISTRY_LOCK:
        for session in _SESSION_REGISTRY:
            try:
                session.close()
            except Exception:  # pragma: no cover - best effort cleanup
                pass
        _SESSION_REGISTRY.clear()


atexit.register(_close_all_sessions)


def fetch_url(
    url: str,
    user_agent: str,
    timeout: int,
    *,
    stream: bool = False,
    params: Optional[Dict[str, str]] = None,
) -> requests.Response:
    """Execute an HTTP GET request through the retry-enabled session.

    Raises:
        requests.RequestException: If the request fails or returns an error status
    """
    normalized_url = normalize_url(url)
    headers = {"User-Agent": user_agent}
    session = _get_thread_request_session()
    resp = session.get(
        normalized_url, headers=headers, timeout=timeout, stream=stream, params=params
    )
    try:
        resp.raise_for_status()
    except requests.RequestException:
        resp.close()
        raise
    return resp


def fetch_feed(url: str, user_agent: str, timeout: int) -> bytes:
    """Fetch a feed document.

    Args:
        url: Feed URL
        user_agent: User-Agent header value
        timeout: Request timeout in seconds

    Returns:
        Raw document bytes; an empty body is returned as ``b""``

    Raises:
        FeedFetchError: If the request fails or the body cannot be read
    """
    try:
        resp = fetch_url(url, user_agent, timeout, stream=True)
    except requests.RequestException as exc:
        logger.warning(f"Failed to fetch {url}: {exc}")
        raise FeedFetchError(url, str(exc)) from exc

    try:
        content_length = resp.headers.get("Content-Length")
        try:
            total_size = int(content_length) if content_length else None
        except (TypeError, ValueError):
            total_size = None

        body_parts: List[bytes] = []
        with progress.progress_context(total_size, f"Fetching {url}") as reporter:
            for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if not chunk:
                    continue
                body_parts.append(chunk)
                reporter.update(len(chunk))
        return b"".join(body_parts)
    except (requests.RequestException, OSError) as exc:
        logger.warning(f"Failed to read response from {url}: {exc}")
        raise FeedFetchError(url, str(exc)) from exc
    finally:
        resp.close()


def fetch_json(
    url: str,
    user_agent: str,
    timeout: int,
    params: Optional[Dict[str, str]] = None,
) -> Optional[Any]:
    """Fetch and decode a JSON document.

    Returns:
        Decoded JSON, or None when the server answers 404 (no data)

    Raises:
        requests.RequestException: On other HTTP or transport failures
        ValueError: If the body is not valid JSON
    """
    try:
        resp = fetch_url(url, user_agent, timeout, params=params)
    except requests.HTTPError as exc:
        if exc.response is not None and exc.response.status_code == HTTP_NOT_FOUND:
            logger.debug(f"No data at {url} ({params or {}})")
            return None
        raise
    try:
        return resp.json()
    finally:
        resp.close()
