"""Shared HTTP client used by the registry index and the package fetcher.

Encapsulates timeout, proxy, auth and error handling so callers only deal
with status codes and ``NetworkError``. Nothing here retries; callers that
want resilience wrap the calls themselves.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from ..config import Config
from ..errors import NetworkError
from .logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper over ``requests.Session`` configured from ``Config``.

    ``requests`` does not promise that a ``Session`` is thread-safe, so each
    thread (the download workers included) gets its own session. A session
    passed in explicitly is shared by every thread.
    """

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            config: Runtime configuration (timeout, proxy, token, user agent).
            session: Optional pre-built session, mostly for tests.
        """
        self._config = config
        self._shared = self._configure(session) if session is not None else None
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread."""
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._configure(requests.Session())
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _configure(self, session: requests.Session) -> requests.Session:
        session.headers["User-Agent"] = self._config.user_agent
        if self._config.proxies:
            session.proxies.update(self._config.proxies)
        return session

    def get(
        self,
        url: str,
        *,
        context: str,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> requests.Response:
        """Perform a GET request with consistent error handling and DEBUG traces.

        Args:
            url: Target URL.
            context: Human-readable source tag for logs (e.g., "index", "download").
            headers: Extra request headers.
            authenticated: Attach the configured registry token when True.
            **kwargs: Passed through to ``Session.get``.

        Returns:
            requests.Response: The HTTP response; status >= 500 never returns.

        Raises:
            NetworkError: On connection/DNS/TLS failure, timeout or 5xx status.
        """
        request_headers = dict(headers or {})
        if authenticated and self._config.token:
            request_headers.setdefault("Authorization", self._config.token)

        safe_target = safe_url(url)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                    ),
                )
            try:
                res = self.session.get(
                    url,
                    headers=request_headers,
                    timeout=self._config.timeout,
                    **kwargs,
                )
            except requests.Timeout as exc:
                logger.error(
                    "%s request timed out after %s seconds",
                    context,
                    self._config.timeout,
                )
                raise NetworkError(safe_target, f"timed out after {self._config.timeout}s") from exc
            except requests.RequestException as exc:  # includes ConnectionError and SSLError
                logger.error("%s connection error: %s", context, exc)
                raise NetworkError(safe_target, str(exc)) from exc

        if res.status_code >= 500:
            logger.warning(
                "HTTP server error",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="server_error",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
            raise NetworkError(safe_target, f"HTTP {res.status_code}", status_code=res.status_code)

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res

    def close(self) -> None:
        """Close pooled connections of every session this client handed out."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        if self._shared is not None:
            sessions.append(self._shared)
        for session in sessions:
            session.close()
