"""Re-attach to a fill that is already running when the controller (re)opens."""
from __future__ import annotations

from typing import Optional

from fillstation.core.estimate import estimate_duration
from fillstation.core.logger import APP_LOGGER
from fillstation.core.models import FillSession, SequencerState
from fillstation.core.sequencer import SessionSequencer, remaining_after
from fillstation.drivers.authority import RemoteAuthorityError


class SessionRecovery:
    """Reconstructs sequencer and countdown state from the authority's record.

    Recovery only ever re-attaches to a pump that is physically running; it
    never issues a station start.
    """

    def __init__(self, sequencer: SessionSequencer):
        self.sequencer = sequencer

    async def recover(self, capacity_l: Optional[float] = None) -> Optional[FillSession]:
        seq = self.sequencer
        if seq.state not in (SequencerState.IDLE, SequencerState.ERROR):
            APP_LOGGER.debug(f"Skipping recovery, sequencer is {seq.state.value}")
            return None

        APP_LOGGER.info(f"Checking for active session for actor {seq.actor_id}")
        try:
            in_progress = await seq.authority.get_in_progress_session(seq.actor_id)
        except RemoteAuthorityError as e:
            # Not critical: the poller converges on the real state
            APP_LOGGER.warning(f"Error restoring active session: {e}")
            return None

        if in_progress is None:
            APP_LOGGER.info("No active session found for actor")
            return None
        if not in_progress.remote_session_id:
            APP_LOGGER.info("No valid session id found, not restoring state")
            return None

        capacity = float(capacity_l) if capacity_l else seq.default_capacity_l
        predicted = await estimate_duration(seq.authority, seq.actor_id, in_progress.station_set, capacity)

        if seq.state not in (SequencerState.IDLE, SequencerState.ERROR) or seq.closed:
            APP_LOGGER.info("Sequencer changed state during recovery; not re-attaching")
            return None

        now = seq.clock()
        if in_progress.started_at is None:
            APP_LOGGER.warning(
                "Active session has no start time; assuming it just started (best effort)"
            )
        remaining = remaining_after(predicted, in_progress.started_at, now)
        APP_LOGGER.info(
            f"Restoring session {in_progress.remote_session_id} on {in_progress.station_set.value}: "
            f"{remaining}s of {predicted}s remaining"
        )
        return seq.attach(in_progress, predicted, remaining, capacity)
