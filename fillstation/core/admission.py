"""Admission rules for claiming pump stations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fillstation.core.models import OccupancySnapshot, Station, StationSet

ALREADY_FILLING = (
    "You already have an active filling operation. "
    "Please stop it before starting a new one."
)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: str = ""
    title: str = ""


def can_admit(requested: StationSet, actor_id: Optional[str], occupancy: OccupancySnapshot) -> bool:
    return evaluate(requested, actor_id, occupancy).allowed


def evaluate(
    requested: StationSet,
    actor_id: Optional[str],
    occupancy: OccupancySnapshot,
    other_actor_name: Optional[str] = None,
) -> AdmissionDecision:
    """Decide whether ``actor_id`` may start ``requested`` given a fresh snapshot.

    Rules, in priority order: the actor's own running session blocks any new
    one; another actor's session blocks the stations it has on; with nobody
    active everything is free.
    """
    if occupancy.held_by(actor_id):
        return AdmissionDecision(False, ALREADY_FILLING, "Filling in Progress")

    if occupancy.active_actor_id is not None:
        busy = [s for s in requested.stations if occupancy.is_on(s)]
        if busy:
            if other_actor_name:
                subject = "Both pumps are" if requested.is_dual else "This pump is"
                reason = f"{subject} currently in use by another customer."
            else:
                reason = "This pump is currently in use. Please try again later."
            return AdmissionDecision(False, reason, "Pump Not Available")

    return AdmissionDecision(True)


def occupancy_banner(occupancy: OccupancySnapshot, actor_id: Optional[str]) -> Optional[str]:
    """Status line describing another actor's use of the stations, if any."""
    if occupancy.active_actor_id is None or occupancy.held_by(actor_id):
        return None
    a_on = occupancy.is_on(Station.A)
    b_on = occupancy.is_on(Station.B)
    if a_on and b_on:
        return "Both pumps are currently in use by another customer"
    if a_on:
        return "Station 1 (Inside) is in use - Station 2 (Outside) is available"
    if b_on:
        return "Station 2 (Outside) is in use - Station 1 (Inside) is available"
    return None
