from __future__ import annotations

import asyncio
import heapq
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from fillstation.core.models import InProgressSession, OccupancySnapshot, Station, StationSet
from fillstation.core.sequencer import SessionListener
from fillstation.drivers.authority import RemoteAuthority, RemoteAuthorityError

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
SETTLE_ROUNDS = 50


class VirtualTime:
    """Deterministic stand-in for asyncio.sleep and the wall clock."""

    def __init__(self, start: datetime = T0):
        self.start = start
        self.now_s = 0.0
        self.sleeps: list[float] = []
        self._waiters: list = []
        self._seq = 0

    def clock(self) -> datetime:
        return self.start + timedelta(seconds=self.now_s)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self._seq += 1
        heapq.heappush(self._waiters, (self.now_s + delay, self._seq, fut))
        await fut

    async def settle(self) -> None:
        for _ in range(SETTLE_ROUNDS):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now_s + seconds
        await self.settle()
        while self._waiters and self._waiters[0][0] <= target + 1e-9:
            deadline, _, fut = heapq.heappop(self._waiters)
            self.now_s = max(self.now_s, deadline)
            if not fut.done():
                fut.set_result(None)
            await self.settle()
        self.now_s = target
        await self.settle()


class FakeAuthority(RemoteAuthority):
    """In-memory authority that records every call."""

    def __init__(self):
        self.occupancy = OccupancySnapshot.empty()
        self.in_progress: dict[str, InProgressSession] = {}
        self.calls: list[tuple] = []
        self.estimate: Optional[int] = 120
        self.amount: Optional[float] = 250.0
        self.next_session_id = 900
        self.fail_start: dict[Station, Exception] = {}
        self.fail_stop: dict[Station, Exception] = {}
        self.fail: dict[str, Exception] = {}
        self.stop_gate: Optional[asyncio.Event] = None
        self.occupancy_gate: Optional[asyncio.Event] = None
        self.record_gate: Optional[asyncio.Event] = None

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def station_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("start_station", "stop_station")]

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise self.fail[name]

    async def get_occupancy(self) -> OccupancySnapshot:
        self.calls.append(("get_occupancy",))
        self._maybe_fail("get_occupancy")
        # Answer with the state as of the request, however late it arrives
        snapshot = self.occupancy
        if self.occupancy_gate is not None:
            await self.occupancy_gate.wait()
        return snapshot

    async def get_in_progress_session(self, actor_id: str) -> Optional[InProgressSession]:
        self.calls.append(("get_in_progress_session", actor_id))
        self._maybe_fail("get_in_progress_session")
        return self.in_progress.get(actor_id)

    async def start_station(self, station: Station) -> None:
        self.calls.append(("start_station", station))
        if station in self.fail_start:
            raise self.fail_start[station]

    async def stop_station(self, station: Station) -> None:
        self.calls.append(("stop_station", station))
        if self.stop_gate is not None:
            await self.stop_gate.wait()
        if station in self.fail_stop:
            raise self.fail_stop[station]

    async def estimate_duration(self, actor_id: str, stations: StationSet, capacity_l: float) -> int:
        self.calls.append(("estimate_duration", actor_id, stations, capacity_l))
        if self.estimate is None:
            raise RemoteAuthorityError("estimator down", status=503)
        return self.estimate

    async def get_session_amount(self, actor_id: str) -> Optional[float]:
        self.calls.append(("get_session_amount", actor_id))
        self._maybe_fail("get_session_amount")
        return self.amount

    async def record_session(self, actor_id: str, amount: float, stations: StationSet) -> Optional[str]:
        self.calls.append(("record_session", actor_id, amount, stations))
        if self.record_gate is not None:
            await self.record_gate.wait()
        self._maybe_fail("record_session")
        self.next_session_id += 1
        # The authority now reports this actor filling on the requested stations
        self.occupancy = OccupancySnapshot(
            active_actor_id=actor_id,
            station_a_on=Station.A in stations.stations,
            station_b_on=Station.B in stations.stations,
        )
        return str(self.next_session_id)

    async def record_stop(self, actor_id: str, remote_session_id: str) -> None:
        self.calls.append(("record_stop", actor_id, remote_session_id))
        self._maybe_fail("record_stop")


class RecordingListener(SessionListener):
    def __init__(self):
        self.states = []
        self.progress = []
        self.denials = []
        self.errors = []
        self.completions = []
        self.countdowns = []
        self.banners = []

    def on_state_changed(self, state, session):
        self.states.append(state)

    def on_countdown(self, remaining_s, final_approach):
        self.countdowns.append((remaining_s, final_approach))

    def on_progress(self, message, countdown_s):
        self.progress.append((message, countdown_s))

    def on_denied(self, decision):
        self.denials.append(decision)

    def on_error(self, error, operation):
        self.errors.append((error, operation))

    def on_completed(self, report):
        self.completions.append(report)

    def on_occupancy(self, occupancy, banner):
        self.banners.append(banner)


@pytest.fixture
def vtime():
    return VirtualTime()


@pytest.fixture
def authority():
    return FakeAuthority()


@pytest.fixture
def listener():
    return RecordingListener()
