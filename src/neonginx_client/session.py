from __future__ import annotations

"""Session gate: credential headers, auth failure detection and token stores.

The token itself is opaque. Where it is kept between runs is up to the
``CredentialStore`` handed to the client; the file store writes a small JSON
document the same way the config module does.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import httpx

AUTH_HEADER = "NeoNginx-Auth"
PASSWORD_HEADER = "NeoNginx-Password"

logger = logging.getLogger(__name__)


def attach_credential(request: httpx.Request, token: Optional[str]) -> None:
    """Add the session token to an outgoing request."""

    if token:
        request.headers[AUTH_HEADER] = token


def attach_password(request: httpx.Request, password: str) -> None:
    request.headers[PASSWORD_HEADER] = password


def is_auth_failure(response: httpx.Response) -> bool:
    return response.status_code == 401


# ---------------------------------------------------------------------------
# Credential stores


class CredentialStore:
    """Interface for keeping the session token."""

    def get(self) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def set(self, token: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def clear(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileCredentialStore(CredentialStore):
    """Keep the token in a JSON file as ``{"session": "<token>"}``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def get(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable session file %s: %s", self.path, exc)
            return None
        token = data.get("session") if isinstance(data, dict) else None
        return token if isinstance(token, str) else None

    def set(self, token: str) -> None:
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump({"session": token}, fh)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
