import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from neonginx_client.payloads import (  # noqa: E402
    AppError,
    AuthFailure,
    Ok,
    StatsPayload,
    TransportError,
)
from neonginx_client.poll_loop import AsyncioScheduler, LoopState, PollLoop  # noqa: E402
from neonginx_client.view import SnapshotRenderer  # noqa: E402


class ManualScheduler:
    """Record scheduled callbacks instead of running them."""

    class Handle:
        def __init__(self, delay, callback):
            self.delay = delay
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.calls = []

    def call_later(self, delay, callback):
        handle = self.Handle(delay, callback)
        self.calls.append(handle)
        return handle


class ScriptedSource:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch_stats(self):
        self.calls += 1
        return self.results.pop(0)


def ok(*servers, requests=10, active=1):
    return Ok(
        StatsPayload(
            status=1,
            requests_total=requests,
            active_connections=active,
            servers=[
                {"NAME": name, "REQUESTS_TOTAL": 1, "BYTES_IN": b_in, "BYTES_OUT": b_out}
                for name, b_in, b_out in servers
            ],
        )
    )


def make_loop(source, interval=1.0):
    renderer = SnapshotRenderer()
    redirects = []
    scheduler = ManualScheduler()
    loop = PollLoop(source, renderer, lambda: redirects.append(True), interval=interval, scheduler=scheduler)
    return loop, renderer, redirects, scheduler


def test_start_schedules_first_cycle_immediately():
    loop, _, _, scheduler = make_loop(ScriptedSource())
    loop.start()
    loop.start()
    assert len(scheduler.calls) == 1
    assert scheduler.calls[0].delay == 0
    assert loop.state is LoopState.IDLE


def test_successful_cycles_render_and_reschedule():
    source = ScriptedSource(ok(("a", 100, 50)), ok(("a", 150, 80)))
    loop, renderer, redirects, scheduler = make_loop(source, interval=2.5)

    asyncio.run(loop.run_cycle())
    assert renderer.renders == 1
    assert renderer.latest.server_count == "1"
    assert scheduler.calls[-1].delay == 2.5

    asyncio.run(scheduler.calls[-1].callback())
    state = loop.aggregate_state
    assert (state.rate_inbound, state.rate_outbound) == (50, 30)
    assert renderer.renders == 2
    assert renderer.latest.inbound_rate == "400b/s"
    assert renderer.latest.outbound_rate == "240b/s"
    assert len(scheduler.calls) == 2
    assert loop.cycles == 2
    assert loop.state is LoopState.IDLE
    assert redirects == []


@pytest.mark.parametrize("failure", [AppError("NOPE"), TransportError("timeout")])
def test_failed_cycle_skips_render_but_reschedules(failure):
    source = ScriptedSource(ok(("a", 100, 50)), failure, ok(("a", 300, 50)))
    loop, renderer, redirects, scheduler = make_loop(source)

    asyncio.run(loop.run_cycle())
    result = asyncio.run(loop.run_cycle())
    assert result == failure
    assert renderer.renders == 1
    assert len(scheduler.calls) == 2
    # state is untouched by the skipped cycle
    assert loop.aggregate_state.prior_inbound == 100

    asyncio.run(loop.run_cycle())
    assert loop.aggregate_state.rate_inbound == 200
    assert redirects == []


def test_auth_failure_redirects_once_and_stops():
    source = ScriptedSource(AuthFailure("expired"))
    loop, renderer, redirects, scheduler = make_loop(source)

    result = asyncio.run(loop.run_cycle())
    assert isinstance(result, AuthFailure)
    assert redirects == [True]
    assert renderer.renders == 0
    assert scheduler.calls == []
    assert loop.state is LoopState.STOPPED
    with pytest.raises(RuntimeError):
        loop.start()


def test_counter_reset_is_rendered_with_sign():
    source = ScriptedSource(ok(("a", 5000, 0)), ok(("a", 1000, 0)))
    loop, renderer, _, _ = make_loop(source)
    asyncio.run(loop.run_cycle())
    asyncio.run(loop.run_cycle())
    assert loop.aggregate_state.rate_inbound == -4000
    assert renderer.latest.inbound_rate == "-31.25Kb/s"


def test_stop_cancels_pending_timer_and_blocks_reschedule():
    source = ScriptedSource(ok(("a", 1, 1)), ok(("a", 2, 2)))
    loop, _, _, scheduler = make_loop(source)
    asyncio.run(loop.run_cycle())
    pending = scheduler.calls[-1]
    loop.stop()
    assert pending.cancelled
    assert loop.stopped

    asyncio.run(loop.run_cycle())
    assert len(scheduler.calls) == 1


def test_renderer_error_does_not_break_loop():
    class Broken:
        def render(self, view):
            raise RuntimeError("boom")

    scheduler = ManualScheduler()
    loop = PollLoop(ScriptedSource(ok(("a", 1, 1))), Broken(), lambda: None, scheduler=scheduler)
    asyncio.run(loop.run_cycle())
    assert len(scheduler.calls) == 1
    assert loop.aggregate_state.prior_inbound == 1


def test_run_with_asyncio_scheduler_until_auth_failure():
    source = ScriptedSource(ok(("a", 10, 10)), TransportError("reset"), ok(("a", 20, 30)), AuthFailure())
    renderer = SnapshotRenderer()
    redirects = []

    async def scenario():
        loop = PollLoop(source, renderer, lambda: redirects.append(1), interval=0.001, scheduler=AsyncioScheduler())
        await asyncio.wait_for(loop.run(), timeout=5)
        return loop

    loop = asyncio.run(scenario())
    assert source.calls == 4
    assert renderer.renders == 2
    assert redirects == [1]
    assert loop.stopped
    assert loop.cycles == 4


def test_unexpected_source_error_counts_as_transport_error():
    class Flaky:
        def __init__(self):
            self.calls = 0

        async def fetch_stats(self):
            self.calls += 1
            if self.calls == 1:
                raise RecursionError("maximum recursion depth exceeded")
            return ok(("a", 10, 10))

    loop, renderer, redirects, scheduler = make_loop(Flaky())
    result = asyncio.run(loop.run_cycle())
    assert isinstance(result, TransportError)
    assert "RecursionError" in result.reason
    assert renderer.renders == 0
    assert len(scheduler.calls) == 1
    assert loop.state is LoopState.IDLE

    asyncio.run(scheduler.calls[-1].callback())
    assert renderer.renders == 1
    assert redirects == []


def test_deeply_nested_body_does_not_stall_the_loop():
    import httpx

    from neonginx_client.client import StatsClient
    from neonginx_client.session import MemoryCredentialStore

    bodies = [b"[" * 100000 + b"]" * 100000]

    def handler(request):
        if bodies:
            return httpx.Response(200, content=bodies.pop())
        return httpx.Response(401, json={"STATUS": 0})

    redirects = []

    async def scenario():
        client = StatsClient(
            "http://nginx", store=MemoryCredentialStore("tok"), transport=httpx.MockTransport(handler)
        )
        loop = PollLoop(client, SnapshotRenderer(), lambda: redirects.append(1), interval=0.001)
        try:
            await asyncio.wait_for(loop.run(), timeout=5)
        finally:
            await client.aclose()
        return loop

    loop = asyncio.run(scenario())
    assert loop.cycles == 2
    assert redirects == [1]


def test_aclose_cancels_cycle_in_flight():
    class Hanging:
        def __init__(self):
            self.started = None
            self.cancelled = False

        async def fetch_stats(self):
            self.started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise

    source = Hanging()
    scheduler = AsyncioScheduler()

    async def scenario():
        source.started = asyncio.Event()
        loop = PollLoop(source, SnapshotRenderer(), lambda: None, scheduler=scheduler)
        loop.start()
        await asyncio.wait_for(source.started.wait(), timeout=5)
        await loop.aclose()
        return loop

    loop = asyncio.run(scenario())
    assert source.cancelled
    assert loop.stopped
    assert scheduler._tasks == set()
