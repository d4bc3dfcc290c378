"""Stations, occupancy snapshots and fill session records."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Station(str, Enum):
    """One physical pump outlet."""

    A = "stationA"
    B = "stationB"

    @property
    def wire_name(self) -> str:
        return "inside" if self is Station.A else "outside"

    @property
    def has_manual_valve(self) -> bool:
        # Station A is routed through the hand-operated cock
        return self is Station.A


class StationSet(str, Enum):
    A = "stationA"
    B = "stationB"
    DUAL = "dual"

    @property
    def stations(self) -> tuple[Station, ...]:
        if self is StationSet.DUAL:
            return (Station.A, Station.B)
        return (Station(self.value),)

    @property
    def is_dual(self) -> bool:
        return self is StationSet.DUAL

    @property
    def needs_valve_confirm(self) -> bool:
        return any(s.has_manual_valve for s in self.stations)

    @property
    def wire_name(self) -> str:
        return {StationSet.A: "INSIDE", StationSet.B: "OUTSIDE", StationSet.DUAL: "BOTH"}[self]

    @classmethod
    def from_wire(cls, value: str) -> "StationSet":
        key = (value or "").strip().upper()
        mapping = {
            "INSIDE": cls.A,
            "OUTSIDE": cls.B,
            "BOTH": cls.DUAL,
            "STATIONA": cls.A,
            "STATIONB": cls.B,
            "DUAL": cls.DUAL,
        }
        if key not in mapping:
            raise ValueError(f"Unknown station set: {value!r}")
        return mapping[key]


class SequencerState(str, Enum):
    IDLE = "Idle"
    AWAITING_START_CONFIRM = "AwaitingStartConfirm"
    AWAITING_COCK_CONFIRM = "AwaitingCockConfirm"
    STARTING_HARDWARE = "StartingHardware"
    RUNNING = "Running"
    FINAL_APPROACH = "FinalApproach"
    COMPLETING = "Completing"
    STOP_PENDING = "StopPending"
    ERROR = "Error"

    @property
    def pump_on(self) -> bool:
        """States in which this actor's pump is believed to be running."""
        return self in (
            SequencerState.RUNNING,
            SequencerState.FINAL_APPROACH,
            SequencerState.COMPLETING,
            SequencerState.STOP_PENDING,
        )


class CompletedReason(str, Enum):
    MANUAL = "manual"
    REMOTE_AUTO_STOP = "remote-auto-stop"
    NONE = "none"


@dataclass(frozen=True)
class OccupancySnapshot:
    """System-wide view of who is filling and which stations are on."""

    active_actor_id: Optional[str] = None
    station_a_on: bool = False
    station_b_on: bool = False

    @classmethod
    def empty(cls) -> "OccupancySnapshot":
        return cls()

    def is_on(self, station: Station) -> bool:
        return self.station_a_on if station is Station.A else self.station_b_on

    def held_by(self, actor_id: Optional[str]) -> bool:
        if actor_id is None or self.active_actor_id is None:
            return False
        return str(self.active_actor_id) == str(actor_id)


@dataclass
class InProgressSession:
    """The authority's record of a session that is physically running."""

    remote_session_id: Optional[str]
    actor_id: str
    station_set: StationSet
    started_at: Optional[datetime] = None
    status: str = "FILLING"
    actor_name: Optional[str] = None


@dataclass
class FillSession:
    actor_id: str
    requested: StationSet
    state: SequencerState = SequencerState.AWAITING_START_CONFIRM
    capacity_l: float = 0.0
    predicted_duration_s: int = 0
    started_at: Optional[datetime] = None
    remote_session_id: Optional[str] = None
    completed_reason: CompletedReason = CompletedReason.NONE


@dataclass
class CompletionReport:
    actor_id: str
    stations: StationSet
    reason: CompletedReason
    remote_session_id: Optional[str] = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
