from __future__ import annotations

"""Formatted dashboard snapshot and the renderers that consume it."""

import sys
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, TextIO

from .aggregator import AggregateState, CycleTotals
from .formatter import format_bits, format_bytes, format_integer
from .payloads import StatsPayload


@dataclass
class BackendRow:
    name: str
    requests: str
    bytes_in: str
    bytes_out: str


@dataclass
class UpstreamRow:
    upstream: str
    peer: str
    weight: str
    fails: str  # "fails/max_fails"
    connections: str


@dataclass
class DashboardView:
    """Everything the dashboard shows for one cycle, already formatted."""

    total_requests: str
    active_connections: str
    server_count: str
    inbound_rate: str
    outbound_rate: str
    servers: List[BackendRow] = field(default_factory=list)
    upstreams: List[UpstreamRow] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _signed(fmt: Callable[[int], str], value: int) -> str:
    # formatters only accept non-negative input
    if value < 0:
        return "-" + fmt(-value)
    return fmt(value)


def format_rate(byte_delta: int) -> str:
    """Render a per-cycle byte delta as bits per second."""

    return _signed(format_bits, byte_delta * 8) + "/s"


def build_view(payload: StatsPayload, totals: CycleTotals, state: AggregateState) -> DashboardView:
    servers = [
        BackendRow(
            name=s.name,
            requests=format_integer(s.requests_total),
            bytes_in=format_bytes(s.bytes_in),
            bytes_out=format_bytes(s.bytes_out),
        )
        for s in payload.servers
    ]
    upstreams = [
        UpstreamRow(
            upstream=u.name,
            peer=p.name,
            weight=format_integer(p.weight),
            fails=f"{p.fails}/{p.max_fails}",
            connections=format_integer(p.connections),
        )
        for u in payload.upstreams
        for p in u.peers
    ]
    return DashboardView(
        total_requests=format_integer(payload.requests_total),
        active_connections=format_integer(payload.active_connections),
        server_count=format_integer(totals.server_count),
        inbound_rate=format_rate(state.rate_inbound),
        outbound_rate=format_rate(state.rate_outbound),
        servers=servers,
        upstreams=upstreams,
    )


# ---------------------------------------------------------------------------
# Renderers


class Renderer:
    """Receives one formatted view per successful cycle."""

    def render(self, view: DashboardView) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class SnapshotRenderer(Renderer):
    """Keep the latest view for a front end to read on demand."""

    def __init__(self) -> None:
        self.latest: Optional[DashboardView] = None
        self.renders = 0

    def render(self, view: DashboardView) -> None:
        self.latest = view
        self.renders += 1


class ConsoleRenderer(Renderer):
    """Write a compact text block per cycle."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def render(self, view: DashboardView) -> None:
        out = self.stream
        out.write(
            f"requests {view.total_requests} | active {view.active_connections} | "
            f"servers {view.server_count} | in {view.inbound_rate} | out {view.outbound_rate}\n"
        )
        for row in view.servers:
            out.write(f"  {row.name:<32} {row.requests:>14} {row.bytes_in:>10} {row.bytes_out:>10}\n")
        for up in view.upstreams:
            out.write(
                f"  [{up.upstream}] {up.peer:<26} w={up.weight} fails={up.fails} conns={up.connections}\n"
            )
        out.flush()
