"""Async HTTP client for the NeoNginx ``login`` and ``stats`` endpoints."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .payloads import StatsResult, TransportError, decode_login_response, decode_stats_response
from .session import CredentialStore, MemoryCredentialStore, attach_credential, attach_password

API_BASE = "/neonginx/api/v1"

logger = logging.getLogger(__name__)


class StatsClient:
    """Issue API requests and turn every outcome into a value.

    Network errors never escape ``fetch_stats``; they come back as
    ``TransportError`` so the poll loop only has to branch on the result.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_base: str = API_BASE,
        store: Optional[CredentialStore] = None,
        timeout: float | None = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.store = store or MemoryCredentialStore()
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    # -- login --------------------------------------------------------------
    async def login(self, password: str) -> Optional[str]:
        """Exchange ``password`` for a session token and store it.

        Returns the token, or ``None`` on wrong credentials or any failure.
        """

        request = self._http.build_request("GET", f"{self.api_base}/login")
        attach_password(request, password)
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as exc:
            logger.warning("login request failed: %s", exc)
            return None

        body = decode_login_response(response)
        if response.status_code != 200 or body is None or body.status != 1 or not body.session:
            logger.warning(
                "login rejected (HTTP %s): %s",
                response.status_code,
                body.message if body is not None else "malformed payload",
            )
            return None
        self.store.set(body.session)
        logger.info("logged in")
        return body.session

    # -- stats --------------------------------------------------------------
    async def fetch_stats(self) -> StatsResult:
        request = self._http.build_request("GET", f"{self.api_base}/stats")
        attach_credential(request, self.store.get())
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as exc:
            return TransportError(f"{type(exc).__name__}: {exc}")
        return decode_stats_response(response)

    async def aclose(self) -> None:
        await self._http.aclose()
