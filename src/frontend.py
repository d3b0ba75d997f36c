"""Minimal web frontend that polls NeoNginx and shows the latest stats."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from neonginx_client.client import StatsClient
from neonginx_client.config import load_config
from neonginx_client.poll_loop import PollLoop, Scheduler
from neonginx_client.session import CredentialStore, FileCredentialStore, MemoryCredentialStore
from neonginx_client.view import SnapshotRenderer

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    password: str


INDEX_HTML = (
    "<html><body><h1>NeoNginx</h1>"
    "<pre id='data'>Loading...</pre>"
    "<script>"
    "async function fetchData(){"
    "const res=await fetch('/api/dashboard');"
    "const el=document.getElementById('data');"
    "if(res.status===401){el.textContent='Session expired, please log in again.';return;}"
    "if(!res.ok){return;}"
    "const data=await res.json();"
    "el.textContent=JSON.stringify(data,null,2);"
    "}"
    "fetchData();setInterval(fetchData,1000);"
    "</script></body></html>"
)


def _make_store(config: Dict[str, Any]) -> CredentialStore:
    if config.get("session_file"):
        return FileCredentialStore(config["session_file"])
    return MemoryCredentialStore()


def create_app(
    config: Optional[Dict[str, Any]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    scheduler: Optional[Scheduler] = None,
) -> FastAPI:
    """Build the dashboard app.

    The poll loop lives on ``app.state.poll_loop`` and runs in the server's
    event loop. A 401 from NeoNginx ends it; logging in again through
    ``POST /api/login`` starts a fresh one.
    """

    cfg = config or load_config()
    app = FastAPI(title="NeoNginxDashboard")
    app.state.config = cfg
    app.state.client = None
    app.state.poll_loop = None
    app.state.renderer = SnapshotRenderer()
    app.state.session_expired = False

    def _on_session_expired() -> None:
        app.state.session_expired = True

    def _start_loop() -> None:
        if app.state.poll_loop is not None:
            app.state.poll_loop.stop()
        app.state.session_expired = False
        app.state.renderer = SnapshotRenderer()
        loop = PollLoop(
            app.state.client,
            app.state.renderer,
            redirect=_on_session_expired,
            interval=float(cfg["interval_s"]),
            scheduler=scheduler,
        )
        app.state.poll_loop = loop
        loop.start()

    @app.on_event("startup")
    async def _on_startup() -> None:
        app.state.client = StatsClient(
            cfg["base_url"],
            api_base=cfg["api_base"],
            store=_make_store(cfg),
            timeout=cfg["timeout_s"],
            transport=transport,
        )
        # resume with a stored session if there is one
        if app.state.client.store.get():
            _start_loop()

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        if app.state.poll_loop is not None:
            await app.state.poll_loop.aclose()
        if app.state.client is not None:
            await app.state.client.aclose()

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        """Return a simple page that shows the latest stats."""
        return INDEX_HTML

    @app.get("/api/dashboard")
    async def dashboard() -> Dict[str, Any]:
        """Return the latest formatted snapshot."""
        if app.state.session_expired or app.state.poll_loop is None:
            raise HTTPException(status_code=401, detail="not logged in")
        view = app.state.renderer.latest
        if view is None:
            raise HTTPException(status_code=503, detail="no data yet")
        return view.as_dict()

    @app.post("/api/login")
    async def login(req: LoginRequest) -> Dict[str, str]:
        try:
            token = await app.state.client.login(req.password)
        except OSError as exc:
            logger.error("could not store session token: %s", exc)
            raise HTTPException(status_code=500, detail=f"could not store session token: {exc}")
        if token is None:
            raise HTTPException(status_code=403, detail="login failed")
        _start_loop()
        return {"status": "ok"}

    return app


# The module exposes ``app`` for ASGI servers like uvicorn.
app = create_app()
