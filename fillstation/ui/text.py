"""Display strings for stations, states and countdowns."""
from __future__ import annotations

from fillstation.core.models import CompletedReason, SequencerState, StationSet

SECONDS_PER_MIN = 60

STATION_SET_TITLES = {
    StationSet.A: "Station 1 (Inside)",
    StationSet.B: "Station 2 (Outside)",
    StationSet.DUAL: "Both Stations",
}

STATE_TEXT = {
    SequencerState.IDLE: "Ready",
    SequencerState.AWAITING_START_CONFIRM: "Confirm start",
    SequencerState.AWAITING_COCK_CONFIRM: "Check valve position",
    SequencerState.STARTING_HARDWARE: "Starting...",
    SequencerState.RUNNING: "Filling",
    SequencerState.FINAL_APPROACH: "Almost done",
    SequencerState.COMPLETING: "Completing",
    SequencerState.STOP_PENDING: "Stop pending",
    SequencerState.ERROR: "Error",
}

COMPLETION_TEXT = {
    CompletedReason.MANUAL: "Pump stopped successfully",
    CompletedReason.REMOTE_AUTO_STOP: "Filling completed",
    CompletedReason.NONE: "",
}

COCK_PROMPT = "Make sure the cock valve is open before starting the inside pump."


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, SECONDS_PER_MIN)
    return f"{mins}:{secs:02d}"


def state_text(state: SequencerState) -> str:
    return STATE_TEXT.get(state, state.value)
