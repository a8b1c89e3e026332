from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import httpx

ENV_HTTP_DEBUG = "FETCH_EVENT_SOURCE_HTTP_DEBUG"
ENV_BASE_URL = "FETCH_EVENT_SOURCE_BASE_URL"
ENV_CONNECT_TIMEOUT = "FETCH_EVENT_SOURCE_CONNECT_TIMEOUT_S"
ENV_READ_TIMEOUT = "FETCH_EVENT_SOURCE_READ_TIMEOUT_S"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in {"1", "true", "yes", "on"}


def _env_seconds(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    if raw.lower() in {"none", "off"}:
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class HttpConfig:
    base_url: str = ""
    connect_timeout_s: Optional[float] = 10.0
    # Un event-stream puede pasar mucho tiempo sin bytes: sin timeout de lectura por defecto.
    read_timeout_s: Optional[float] = None

    @staticmethod
    def from_env() -> HttpConfig:
        """
        Build an HttpConfig from FETCH_EVENT_SOURCE_* environment variables.

        Returns:
            An HttpConfig with the defaults replaced by any variable that is defined.

        Raises:
            ValueError: If a timeout variable is not a number.
        """
        defaults = HttpConfig()
        return HttpConfig(
            base_url=os.getenv(ENV_BASE_URL, defaults.base_url),
            connect_timeout_s=_env_seconds(ENV_CONNECT_TIMEOUT, defaults.connect_timeout_s),
            read_timeout_s=_env_seconds(ENV_READ_TIMEOUT, defaults.read_timeout_s),
        )

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(None, connect=self.connect_timeout_s, read=self.read_timeout_s)


def _redact_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(headers)
    for k in ("authorization", "Authorization"):
        if k in out:
            out[k] = "Bearer ***REDACTED***"
    return out


class EventSourceHttpClient:
    """
    Wrapper HTTPX ligero para event-streams:
    - Streaming via httpx.AsyncClient.stream
    - Debug logging opcional (FETCH_EVENT_SOURCE_HTTP_DEBUG)
    - Acepta un httpx.AsyncClient externo, que nunca se cierra aquí
    """

    def __init__(self, *, config: HttpConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or HttpConfig()
        self._debug_http = _env_flag(ENV_HTTP_DEBUG)
        self._owns_client = client is None

        async def _log_request(request: httpx.Request) -> None:
            if not self._debug_http:
                return
            logging.warning("HTTPX REQUEST %s %s", request.method, request.url)
            logging.warning("HTTPX REQUEST headers=%s", _redact_headers(dict(request.headers)))
            if request.content:
                try:
                    logging.warning("HTTPX REQUEST body=%s", request.content.decode("utf-8", "ignore"))
                except Exception:
                    logging.warning("HTTPX REQUEST body=(binary) len=%s", len(request.content))

        async def _log_response(response: httpx.Response) -> None:
            if not self._debug_http:
                return
            req = response.request
            logging.warning("HTTPX RESPONSE %s %s -> %s", req.method, req.url, response.status_code)
            logging.warning("HTTPX RESPONSE headers=%s", dict(response.headers))
            # El cuerpo es un stream de larga duración: nunca se lee aquí.
            logging.warning("HTTPX RESPONSE body=(streamed; not auto-logged)")

        EventHooksDict = dict[str, list[Callable[..., Any]]]

        if client is None:
            hooks: EventHooksDict = {"request": [_log_request], "response": [_log_response]}
            client = httpx.AsyncClient(timeout=self._config.timeout(), event_hooks=hooks)
        self._client = client

    @property
    def config(self) -> HttpConfig:
        return self._config

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def url_for(self, target: str) -> str:
        if self._config.base_url and not target.startswith(("http://", "https://")):
            return f"{self._config.base_url.rstrip('/')}/{target.lstrip('/')}"
        return target

    def stream(
        self,
        method: str,
        target: str,
        *,
        headers: Mapping[str, str],
        **kwargs: Any,
    ) -> Any:
        """
        Retorna un httpx stream context manager asíncrono.

        Usage:
            async with client.stream("GET", "/events", headers=h) as r:
                async for chunk in r.aiter_bytes():
                    ...
        """
        return self._client.stream(method, self.url_for(target), headers=dict(headers), **kwargs)
