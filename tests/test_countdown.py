import pytest

from fillstation.core.countdown import CountdownEngine


class _Recorder:
    def __init__(self):
        self.engine = None
        self.final_at = []
        self.exhausted_at = []

    def final(self):
        self.final_at.append(self.engine.value)

    def exhausted(self):
        self.exhausted_at.append(self.engine.value)


def _engine(initial):
    rec = _Recorder()
    rec.engine = CountdownEngine(initial, on_final_approach=rec.final, on_exhausted=rec.exhausted)
    return rec.engine, rec


def test_final_approach_fires_once_at_five():
    engine, rec = _engine(7)
    for _ in range(3):
        engine.tick()
    assert engine.value == 4
    assert rec.final_at == [5]
    assert rec.exhausted_at == []


def test_exhausted_fires_once_then_holds():
    engine, rec = _engine(7)
    for _ in range(7):
        engine.tick()
    assert engine.value == 0
    assert rec.exhausted_at == [0]
    for _ in range(5):
        engine.tick()
    assert engine.value == 0
    assert rec.final_at == [5]
    assert rec.exhausted_at == [0]


def test_reset_after_exhaustion_rearms_both_callbacks():
    engine, rec = _engine(7)
    for _ in range(7):
        engine.tick()
    engine.reset(6)
    for _ in range(6):
        engine.tick()
    assert rec.final_at == [5, 5]
    assert rec.exhausted_at == [0, 0]


def test_reset_to_zero_does_not_fire_exhausted():
    engine, rec = _engine(10)
    engine.reset(0)
    engine.tick()
    assert engine.value == 0
    assert rec.exhausted_at == []


def test_starting_at_threshold_never_fires_final_approach():
    engine, rec = _engine(5)
    engine.tick()
    assert engine.value == 4
    assert rec.final_at == []


def test_in_final_approach_flag():
    engine, _ = _engine(6)
    assert engine.in_final_approach is False
    engine.tick()
    assert engine.in_final_approach is True


@pytest.mark.asyncio
async def test_schedule_ticks_once_per_second(vtime):
    engine = CountdownEngine(10, sleep=vtime.sleep)
    engine.enable()
    await vtime.advance(3)
    assert engine.value == 7
    engine.cancel()


@pytest.mark.asyncio
async def test_disable_keeps_value_and_enable_resumes(vtime):
    engine = CountdownEngine(10, sleep=vtime.sleep)
    engine.enable()
    await vtime.advance(2)
    engine.disable()
    await vtime.advance(5)
    assert engine.value == 8
    assert engine.enabled is False
    engine.enable()
    await vtime.advance(3)
    assert engine.value == 5
    engine.cancel()


@pytest.mark.asyncio
async def test_enabling_twice_keeps_a_single_schedule(vtime):
    engine = CountdownEngine(20, sleep=vtime.sleep)
    engine.enable()
    engine.enable()
    await vtime.advance(4)
    assert engine.value == 16
    engine.cancel()
