"""Fold one poll's backend samples into totals and per-cycle rates."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Protocol, Tuple


class _Sample(Protocol):
    bytes_in: int
    bytes_out: int


@dataclass(frozen=True)
class CycleTotals:
    total_inbound: int = 0
    total_outbound: int = 0
    server_count: int = 0


@dataclass(frozen=True)
class AggregateState:
    """Totals of the previous cycle and the latest computed rates.

    All fields start at zero, so the first cycle's rate equals its totals.
    """

    prior_inbound: int = 0
    prior_outbound: int = 0
    rate_inbound: int = 0
    rate_outbound: int = 0


def aggregate(samples: Iterable[_Sample], state: AggregateState) -> Tuple[CycleTotals, AggregateState]:
    """Sum ``samples`` and derive rates against ``state``.

    The rate is the plain difference to the previous totals; a counter that
    went backwards (backend restart) produces a negative rate. Backends absent
    from ``samples`` simply do not contribute. ``state`` is left untouched and
    the updated state is returned alongside the totals.
    """

    inbound = outbound = count = 0
    for sample in samples:
        inbound += sample.bytes_in
        outbound += sample.bytes_out
        count += 1

    totals = CycleTotals(total_inbound=inbound, total_outbound=outbound, server_count=count)
    new_state = replace(
        state,
        rate_inbound=inbound - state.prior_inbound,
        rate_outbound=outbound - state.prior_outbound,
        prior_inbound=inbound,
        prior_outbound=outbound,
    )
    return totals, new_state
