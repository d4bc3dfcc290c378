import asyncio

import pytest

from fillstation.core.poller import AdaptivePoller, PollIntervals, polling_interval_s
from fillstation.drivers.authority import RemoteAuthorityError


@pytest.mark.parametrize(
    "remaining, completed, expected",
    [
        (None, False, 30.0),
        (300, False, 30.0),
        (31, False, 30.0),
        (30, False, 5.0),
        (6, False, 5.0),
        (5, False, 1.0),
        (0, False, 1.0),
        (300, True, 2.0),
        (None, True, 2.0),
    ],
)
def test_interval_table(remaining, completed, expected):
    assert polling_interval_s(remaining, completed) == expected


def test_custom_intervals():
    intervals = PollIntervals(normal=60, last_30_seconds=10, last_5_seconds=2, post_completion=3)
    assert polling_interval_s(100, False, intervals) == 60
    assert polling_interval_s(20, False, intervals) == 10
    assert polling_interval_s(1, False, intervals) == 2
    assert polling_interval_s(1, True, intervals) == 3


class _Status:
    def __init__(self, remaining=None, completed=False):
        self.remaining = remaining
        self.completed = completed

    def __call__(self):
        return self.remaining, self.completed


@pytest.mark.asyncio
async def test_cadence_change_applies_from_next_interval(vtime):
    polls = []
    status = _Status()

    async def reconcile():
        polls.append(vtime.now_s)

    poller = AdaptivePoller(reconcile, status, sleep=vtime.sleep)
    poller.start()
    await vtime.settle()
    assert vtime.sleeps == [30.0]

    # The interval already in progress keeps its length
    status.remaining = 3
    await vtime.advance(10)
    assert polls == []
    await vtime.advance(20)
    assert polls == [30.0]
    assert vtime.sleeps == [30.0, 1.0]

    await vtime.advance(3)
    assert polls == [30.0, 31.0, 32.0, 33.0]
    poller.stop()


@pytest.mark.asyncio
async def test_stop_cancels_schedule(vtime):
    polls = []

    async def reconcile():
        polls.append(vtime.now_s)

    poller = AdaptivePoller(reconcile, _Status(), sleep=vtime.sleep)
    poller.start()
    await vtime.advance(30)
    poller.stop()
    await vtime.advance(120)
    assert polls == [30.0]
    assert poller.enabled is False


@pytest.mark.asyncio
async def test_poll_now_joins_inflight_reconcile():
    gate = asyncio.Event()
    calls = []

    async def reconcile():
        calls.append(1)
        await gate.wait()

    poller = AdaptivePoller(reconcile, _Status())
    first = asyncio.ensure_future(poller.poll_now())
    second = asyncio.ensure_future(poller.poll_now())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert len(calls) == 1
    gate.set()
    await asyncio.gather(first, second)
    assert len(calls) == 1
    assert poller.polls == 1

    await poller.poll_now()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_failed_reconcile_keeps_polling(vtime):
    calls = []

    async def reconcile():
        calls.append(vtime.now_s)
        raise RemoteAuthorityError("network down")

    poller = AdaptivePoller(reconcile, _Status(remaining=20), sleep=vtime.sleep)
    poller.start()
    await vtime.advance(15)
    assert calls == [5.0, 10.0, 15.0]
    assert poller.enabled is True
    assert poller.last_interval_s == 5.0
    poller.stop()
