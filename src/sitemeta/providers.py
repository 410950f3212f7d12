"""Metadata API adapters and the shared JSON request helper."""

from __future__ import annotations

import logging
import re
from typing import Any

from bs4 import BeautifulSoup
from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from .breaker import CircuitBreaker
from .config import DEFAULT_REQUEST_TIMEOUT
from .errors import PayloadError, ProviderError, ProviderHTTPError, RateLimitedError
from .models import Provider, WebsiteData
from .request_queue import SerialRequestQueue

RATE_LIMIT_CODES = frozenset({"ERATE", "ERATELIMIT"})
_WHITESPACE = re.compile(r"\s+")


def make_session(user_agent: str, pool_size: int = 10) -> Session:
    """Create a requests session shared by all providers (no automatic retries)."""
    session = Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def request_json(
    session: Session, endpoint: str, *, params: dict[str, str], timeout: float
) -> Any:
    """GET a JSON endpoint, raising ProviderError subclasses for bad answers.

    Transport failures propagate as ``requests.RequestException``.
    """
    response = session.get(endpoint, params=params, timeout=timeout)
    if response.status_code == 429:
        raise RateLimitedError("HTTP 429")
    if not response.ok:
        raise ProviderHTTPError(response.status_code)
    content_type = response.headers.get("Content-Type", "")
    if "application/json" not in content_type.lower():
        raise PayloadError(f"non-JSON response ({content_type or 'no content type'})")
    try:
        return response.json()
    except ValueError as exc:
        raise PayloadError(f"invalid JSON body: {exc}") from exc


def clean_text(value: Any) -> str | None:
    """Normalize a provider string: strip markup and entities, collapse whitespace."""
    if not isinstance(value, str):
        return None
    text = value
    if "<" in text or "&" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    text = _WHITESPACE.sub(" ", text).strip()
    return text or None


def _as_dict(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


class JsonApiProvider:
    """Base adapter: one GET per URL, envelope parsing left to subclasses.

    ``fetch`` never raises; every failure ends as an empty WebsiteData and a
    log line.
    """

    name = "json-api"
    endpoint = ""

    def __init__(
        self,
        *,
        session: Session,
        logger: logging.Logger,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._logger = logger
        self._timeout = timeout

    def params(self, url: str) -> dict[str, str]:
        return {"url": url}

    def parse(self, payload: dict[str, Any]) -> WebsiteData:
        """Turn a decoded response envelope into WebsiteData."""
        raise NotImplementedError

    def on_rate_limited(self, url: str, reason: str) -> None:
        self._logger.warning("[%s] %s rate limited: %s", self.name, url, reason)

    def on_transport_error(self, url: str, exc: RequestException) -> None:
        self._logger.warning("[%s] %s request blocked or timed out: %s", self.name, url, exc)

    def fetch(self, url: str) -> WebsiteData:
        try:
            payload = request_json(
                self._session, self.endpoint, params=self.params(url), timeout=self._timeout
            )
            envelope = _as_dict(payload)
            if envelope is None:
                raise PayloadError(f"unexpected JSON type {type(payload).__name__}")
            return self.parse(envelope)
        except RateLimitedError as exc:
            self.on_rate_limited(url, str(exc))
        except ProviderError as exc:
            self._logger.warning("[%s] %s failed: %s", self.name, url, exc)
        except (Timeout, RequestsConnectionError) as exc:
            self.on_transport_error(url, exc)
        except RequestException as exc:
            self._logger.error("[%s] %s request failed: %s", self.name, url, exc)
        return WebsiteData()


class CodeEnvelopeProvider(JsonApiProvider):
    """Adapters answering ``{"code": 200, "data": {"title", "description"}}``."""

    def parse(self, payload: dict[str, Any]) -> WebsiteData:
        data = _as_dict(payload.get("data"))
        if payload.get("code") != 200 or data is None:
            self._logger.debug("[%s] unexpected envelope: code=%r", self.name, payload.get("code"))
            return WebsiteData()
        return WebsiteData(
            title=clean_text(data.get("title")),
            description=clean_text(data.get("description")),
        )


class MicrolinkProvider(JsonApiProvider):
    """microlink.io: ``{"status": "success", "data": {...}}``.

    The only provider that throttles aggressively; throttling and transport
    failures open the shared circuit breaker.
    """

    name = "microlink"
    endpoint = "https://api.microlink.io/"

    def __init__(
        self,
        *,
        session: Session,
        logger: logging.Logger,
        breaker: CircuitBreaker,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(session=session, logger=logger, timeout=timeout)
        self._breaker = breaker

    def params(self, url: str) -> dict[str, str]:
        return {"url": url, "data": "title,description"}

    def parse(self, payload: dict[str, Any]) -> WebsiteData:
        status = payload.get("status")
        code = payload.get("code")
        if status == "fail" and code in RATE_LIMIT_CODES:
            raise RateLimitedError(f"rate limit code {code}")
        data = _as_dict(payload.get("data"))
        if status == "success" and data is not None:
            return WebsiteData(
                title=clean_text(data.get("title")),
                description=clean_text(data.get("description")),
            )
        if status == "fail":
            self._logger.warning(
                "[%s] API error %s: %s", self.name, code or "unknown", payload.get("message", "")
            )
        return WebsiteData()

    def on_rate_limited(self, url: str, reason: str) -> None:
        super().on_rate_limited(url, reason)
        self._breaker.block(f"rate limited ({reason})")

    def on_transport_error(self, url: str, exc: RequestException) -> None:
        super().on_transport_error(url, exc)
        self._breaker.block(f"blocked or network error ({type(exc).__name__})")


class AhfiProvider(CodeEnvelopeProvider):
    """api.ahfi.cn website info; also reports a favicon URL."""

    name = "ahfi"
    endpoint = "https://api.ahfi.cn/api/websiteinfo"

    def parse(self, payload: dict[str, Any]) -> WebsiteData:
        result = super().parse(payload)
        if result.is_empty():
            return result
        data = _as_dict(payload.get("data")) or {}
        return WebsiteData(
            title=result.title,
            description=result.description,
            icon=clean_text(data.get("ico_url")),
        )


class XxapiProvider(CodeEnvelopeProvider):
    """v2.xxapi.cn TDK lookup; usually title only."""

    name = "xxapi"
    endpoint = "https://v2.xxapi.cn/api/tdk"


class JxcxinProvider(CodeEnvelopeProvider):
    name = "jxcxin"
    endpoint = "https://apis.jxcxin.cn/api/title"


class UapisProvider(JsonApiProvider):
    """uapis.cn metadata parser. Three envelopes have been observed:
    bare ``{title, description}``, ``{code: 200, data}`` and ``{success: true, data}``.
    """

    name = "uapis"
    endpoint = "https://uapis.cn/api/v1/webparse/metadata"

    def parse(self, payload: dict[str, Any]) -> WebsiteData:
        if payload.get("title") or payload.get("description"):
            return WebsiteData(
                title=clean_text(payload.get("title")),
                description=clean_text(payload.get("description")),
            )
        data = _as_dict(payload.get("data"))
        if data is not None and (payload.get("code") == 200 or payload.get("success")):
            return WebsiteData(
                title=clean_text(data.get("title")),
                description=clean_text(data.get("description")),
            )
        return WebsiteData()


class QueuedProvider:
    """Routes a provider through the serial queue and skips it while its breaker is open."""

    def __init__(
        self, provider: Provider, *, queue: SerialRequestQueue, breaker: CircuitBreaker
    ) -> None:
        self.name = provider.name
        self._provider = provider
        self._queue = queue
        self._breaker = breaker

    def is_available(self) -> bool:
        return self._breaker.is_available()

    def fetch(self, url: str) -> WebsiteData:
        return self._queue.submit(lambda: self._provider.fetch(url))


def build_providers(
    *,
    session: Session,
    logger: logging.Logger,
    breaker: CircuitBreaker,
    queue: SerialRequestQueue,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> dict[str, Provider]:
    """Create the five adapters keyed by name, Microlink behind its queue."""
    microlink = MicrolinkProvider(session=session, logger=logger, breaker=breaker, timeout=timeout)
    providers: list[Provider] = [
        QueuedProvider(microlink, queue=queue, breaker=breaker),
        AhfiProvider(session=session, logger=logger, timeout=timeout),
        XxapiProvider(session=session, logger=logger, timeout=timeout),
        JxcxinProvider(session=session, logger=logger, timeout=timeout),
        UapisProvider(session=session, logger=logger, timeout=timeout),
    ]
    return {provider.name: provider for provider in providers}
