"""Terminal monitor for a NeoNginx-enabled nginx.

Logs in (optionally), then polls the stats endpoint and prints one block per
cycle until the session expires or the process is interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from neonginx_client.client import StatsClient
from neonginx_client.config import CONFIG_FILE, load_config, save_config
from neonginx_client.poll_loop import PollLoop
from neonginx_client.session import FileCredentialStore, MemoryCredentialStore
from neonginx_client.view import ConsoleRenderer

logger = logging.getLogger("monitor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Poll NeoNginx stats and print them")
    parser.add_argument("--url", help="Base URL of the nginx server")
    parser.add_argument("--password", help="Log in with this password before polling")
    parser.add_argument("--interval", type=float, help="Seconds between polls")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--session-file", help="JSON file keeping the session token")
    parser.add_argument(
        "--config", default=str(CONFIG_FILE), help="Path to configuration JSON"
    )
    parser.add_argument("--logout", action="store_true", help="Forget the stored session token and exit")
    parser.add_argument(
        "--save-config", action="store_true", help="Write the effective settings to --config and exit"
    )
    parser.add_argument("--verbose", action="store_true", help="Log every cycle")
    return parser


async def run(args: argparse.Namespace) -> int:
    cfg = load_config(Path(args.config))
    if args.url:
        cfg["base_url"] = args.url
    if args.interval is not None:
        cfg["interval_s"] = args.interval
    if args.timeout is not None:
        cfg["timeout_s"] = args.timeout
    if args.session_file:
        cfg["session_file"] = args.session_file

    if args.save_config:
        save_config(cfg, Path(args.config))
        logger.info("settings written to %s", args.config)
        return 0

    store = FileCredentialStore(cfg["session_file"]) if cfg.get("session_file") else MemoryCredentialStore()
    if args.logout:
        store.clear()
        logger.info("session token removed")
        return 0

    client = StatsClient(cfg["base_url"], api_base=cfg["api_base"], store=store, timeout=cfg["timeout_s"])
    expired = False

    def on_expired() -> None:
        nonlocal expired
        expired = True
        logger.error("session expired or missing; log in again with --password")

    try:
        try:
            token = await client.login(args.password) if args.password else None
        except OSError as exc:
            logger.error("could not store session token: %s", exc)
            return 1
        if args.password and token is None:
            logger.error("login failed")
            return 1
        loop = PollLoop(client, ConsoleRenderer(), redirect=on_expired, interval=float(cfg["interval_s"]))
        await loop.run()
    finally:
        await client.aclose()
    return 1 if expired else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:  # pragma: no cover - interactive
        return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
