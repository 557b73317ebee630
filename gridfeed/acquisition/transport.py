"""
HTTP transport: requests.Session calls run in worker threads, wrapped in
retry, per-attempt timeout and governor admission.

Status mapping:
  2xx          -> response returned
  404          -> NotFoundError (caller tries the next candidate)
  other        -> TransientNetworkError (retried)
  requests connection/timeout errors -> TransientNetworkError (retried)
  any other requests error           -> NetworkError (not retried)
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import numpy as np
import requests

from ..core.errors import NetworkError, NotFoundError, ParseError, TransientNetworkError
from .base import HttpResponse
from .resilience import ConcurrencyGovernor, RetryConfig, Sleep, resilient_call

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "gridfeed-loader"


class HttpTransport:
    """Retrying, governed HTTP GET over a shared requests.Session."""

    def __init__(
        self,
        session: Optional[Any] = None,
        *,
        retry_config: Optional[RetryConfig] = None,
        governor: Optional[ConcurrencyGovernor] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._retry_config = retry_config or RetryConfig()
        self._governor = governor or ConcurrencyGovernor()
        self._user_agent = user_agent
        self._sleep = sleep
        self._rng = rng or np.random.default_rng()

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    @property
    def governor(self) -> ConcurrencyGovernor:
        return self._governor

    @property
    def sleep(self) -> Sleep:
        return self._sleep

    @property
    def rng(self) -> np.random.Generator:
        return self._rng

    async def fetch(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        stream: bool = False,
        attempts: Optional[int] = None,
        backoff_ms: Optional[float] = None,
        timeout_ms: Optional[float] = None,
    ) -> HttpResponse:
        """GET url with retry; returns the 2xx response."""
        cfg = self._retry_config.with_overrides(attempts, backoff_ms, timeout_ms)
        merged: Dict[str, str] = {"User-Agent": self._user_agent}
        merged.update(headers or {})
        return await resilient_call(
            self._attempt,
            url,
            merged,
            dict(params) if params else None,
            stream,
            cfg.timeout_ms / 1000.0,
            retry_config=cfg,
            governor=self._governor,
            sleep=self._sleep,
            rng=self._rng,
            label=url,
        )

    async def fetch_bytes(self, url: str, **kwargs: Any) -> bytes:
        resp = await self.fetch(url, **kwargs)
        return resp.content

    async def fetch_json(self, url: str, **kwargs: Any) -> Any:
        resp = await self.fetch(url, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise ParseError(f"Invalid JSON from {url}: {exc}", url=url) from exc

    async def open_stream(self, url: str, **kwargs: Any) -> HttpResponse:
        """Response with an unread body; caller must close it."""
        return await self.fetch(url, stream=True, **kwargs)

    async def _attempt(
        self,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        stream: bool,
        timeout_s: float,
    ) -> HttpResponse:
        try:
            resp = await asyncio.to_thread(
                self._session.get,
                url,
                headers=headers,
                params=params,
                timeout=timeout_s,
                stream=stream,
                allow_redirects=True,
            )
        except (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError) as exc:
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}", url=url) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}", url=url) from exc

        status = int(resp.status_code)
        if 200 <= status < 300:
            return resp
        resp.close()
        if status == 404:
            raise NotFoundError(url)
        raise TransientNetworkError(f"HTTP {status} {url}", url=url, status=status)
