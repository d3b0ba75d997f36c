"""Wire models for the NeoNginx JSON API and the decoded stats result.

Responses are decoded exactly once, at the HTTP boundary, into one of four
outcomes (``Ok``, ``AppError``, ``TransportError``, ``AuthFailure``) so the
poll loop and everything downstream never touch raw JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .session import is_auth_failure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire models


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BackendSample(_WireModel):
    """Counters of one virtual server as reported in ``SERVERS``."""

    name: str = Field(alias="NAME")
    requests_total: int = Field(0, alias="REQUESTS_TOTAL")
    bytes_in: int = Field(0, alias="BYTES_IN")
    bytes_out: int = Field(0, alias="BYTES_OUT")


class UpstreamPeer(_WireModel):
    name: str = Field(alias="NAME")
    checked: int = Field(0, alias="CHECKED")
    fails: int = Field(0, alias="FAILS")
    max_fails: int = Field(0, alias="MAX_FAILS")
    weight: int = Field(0, alias="WEIGHT")
    connections: int = Field(0, alias="CONNECTIONS")


class Upstream(_WireModel):
    name: str = Field(alias="NAME")
    peers: List[UpstreamPeer] = Field(default_factory=list, alias="PEERS")


class StatsPayload(_WireModel):
    status: int = Field(alias="STATUS")
    message: Optional[str] = Field(None, alias="MESSAGE")
    requests_total: int = Field(0, alias="REQUESTS_TOTAL")
    active_connections: int = Field(0, alias="ACTIVE_CONNECTIONS")
    servers: List[BackendSample] = Field(default_factory=list, alias="SERVERS")
    upstreams: List[Upstream] = Field(default_factory=list, alias="UPSTREAMS")


class LoginPayload(_WireModel):
    status: int = Field(alias="STATUS")
    message: Optional[str] = Field(None, alias="MESSAGE")
    session: Optional[str] = Field(None, alias="SESSION")


# ---------------------------------------------------------------------------
# Decoded outcome of one stats request


@dataclass(frozen=True)
class Ok:
    payload: StatsPayload


@dataclass(frozen=True)
class AppError:
    """Payload-level failure (``STATUS`` other than 1)."""

    message: Optional[str] = None


@dataclass(frozen=True)
class TransportError:
    """Network failure, timeout, unexpected HTTP status or malformed body."""

    reason: str


@dataclass(frozen=True)
class AuthFailure:
    """HTTP 401 on the stats call: the session is missing or expired."""

    message: Optional[str] = None


StatsResult = Union[Ok, AppError, TransportError, AuthFailure]


def _message_of(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except (ValueError, RecursionError):
        return None
    if isinstance(data, dict) and isinstance(data.get("MESSAGE"), str):
        return data["MESSAGE"]
    return None


def decode_stats_response(response: httpx.Response) -> StatsResult:
    """Classify a stats response and decode its body."""

    if is_auth_failure(response):
        return AuthFailure(_message_of(response))
    if response.is_error:
        return TransportError(f"HTTP {response.status_code}")
    try:
        data = response.json()
    except (ValueError, RecursionError):
        return TransportError("malformed payload")
    if not isinstance(data, dict):
        return TransportError("malformed payload")
    if data.get("STATUS") != 1:
        message = data.get("MESSAGE")
        return AppError(message if isinstance(message, str) else None)
    try:
        payload = StatsPayload.model_validate(data)
    except ValidationError as exc:
        logger.debug("stats payload rejected: %s", exc)
        return TransportError("malformed payload")
    return Ok(payload)


def decode_login_response(response: httpx.Response) -> Optional[LoginPayload]:
    """Return the login body, or ``None`` when it cannot be decoded."""

    try:
        return LoginPayload.model_validate(response.json())
    except (ValueError, ValidationError, RecursionError):
        return None
