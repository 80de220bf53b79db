"""HTTP fetch client with browser-like headers and a hard wall-clock timeout."""

from __future__ import annotations

import logging
from threading import Lock, Thread

from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException, Timeout
from urllib3.exceptions import ReadTimeoutError
from urllib3.util.retry import Retry

from .config import (
    DEFAULT_ACCEPT,
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_USER_AGENT,
)
from .errors import FetchError, NetworkError, RequestTimeoutError
from .models import FetchedPage
from .validation import is_supported_url

CHUNK_SIZE = 64 * 1024


def make_session(user_agent: str = DEFAULT_USER_AGENT, *, pool_size: int = 10) -> Session:
    """Create a requests session that looks like a desktop browser and never retries.

    Retry policy belongs to the hunt orchestrator, so the adapter is mounted
    with ``Retry(total=0)``.
    """
    session = Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": DEFAULT_ACCEPT,
            "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
    )
    retry = Retry(total=0, read=False, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class _Transfer:
    """One streamed GET running on its own thread so the caller can walk away from it."""

    def __init__(
        self, session: Session, url: str, headers: dict[str, str] | None, limit: float
    ) -> None:
        self._session = session
        self._url = url
        self._headers = headers
        self._limit = limit
        self._lock = Lock()
        self._abandoned = False
        self._response: Response | None = None
        self.status_code = 0
        self.final_url = url
        self.encoding: str | None = None
        self.body = b""
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            response = self._session.get(
                self._url, headers=self._headers, timeout=(self._limit, self._limit), stream=True
            )
        except Exception as exc:  # re-raised on the calling thread
            self.error = exc
            return
        with self._lock:
            self._response = response
            abandoned = self._abandoned
        try:
            if abandoned:
                return
            self.status_code = response.status_code
            self.final_url = str(response.url or self._url)
            self.encoding = response.encoding
            chunks: list[bytes] = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if self._abandoned:
                    return
                chunks.append(chunk)
            self.body = b"".join(chunks)
        except Exception as exc:  # re-raised on the calling thread
            self.error = exc
        finally:
            response.close()

    def abandon(self) -> None:
        """Stop reading; a blocked receive on the response socket returns immediately."""
        with self._lock:
            self._abandoned = True
            response = self._response
        if response is None:
            return
        try:
            response.raw.shutdown()
        except (ValueError, RuntimeError):
            # Connection already released: the body was fully read.
            return


class RequestsFetcher:
    """Requests-based fetcher that raises typed errors instead of returning blanks.

    Every fetch runs on a daemon thread and the caller waits at most the
    timeout for it, so a server that trickles headers or body bytes cannot
    hold a visit past its wall-clock budget.
    """

    def __init__(
        self,
        *,
        session: Session,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._logger = logger

    def fetch(
        self, url: str, *, headers: dict[str, str] | None = None, timeout: float | None = None
    ) -> FetchedPage:
        if not is_supported_url(url):
            raise NetworkError(url, f"Unsupported URL: {url}")
        limit = self._timeout if timeout is None else timeout
        transfer = _Transfer(self._session, url, headers, limit)
        worker = Thread(target=transfer.run, name=f"fetch {url}", daemon=True)
        worker.start()
        worker.join(limit)
        if worker.is_alive():
            transfer.abandon()
            self._logger.debug("Abandoned %s after %.1fs", url, limit)
            raise RequestTimeoutError(url, limit)
        if transfer.error is not None:
            error = _as_fetch_error(transfer.error, url, limit)
            if error is None:
                raise transfer.error
            raise error from transfer.error

        self._logger.debug(
            "Fetched %s (%s, %d bytes)", url, transfer.status_code, len(transfer.body)
        )
        return FetchedPage(
            url=transfer.final_url,
            status_code=transfer.status_code,
            text=_decode(transfer.body, transfer.encoding),
        )


def _as_fetch_error(exc: Exception, url: str, limit: float) -> FetchError | None:
    if isinstance(exc, Timeout):
        return RequestTimeoutError(url, limit)
    if isinstance(exc, RequestException):
        # requests re-raises body read timeouts as ConnectionError.
        if exc.args and isinstance(exc.args[0], ReadTimeoutError):
            return RequestTimeoutError(url, limit)
        return NetworkError(url, str(exc))
    return None


def _decode(body: bytes, encoding: str | None) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
