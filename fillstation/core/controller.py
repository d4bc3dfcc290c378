"""Fill session controller: one actor, one authority, all schedules."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from fillstation.core.admission import AdmissionDecision, occupancy_banner
from fillstation.core.configio import ControllerConfig
from fillstation.core.logger import APP_LOGGER, SessionEventLog
from fillstation.core.models import (
    CompletionReport,
    FillSession,
    OccupancySnapshot,
    SequencerState,
    StationSet,
)
from fillstation.core.poller import AdaptivePoller, PollIntervals
from fillstation.core.recovery import SessionRecovery
from fillstation.core.sequencer import SessionListener, SessionSequencer, utcnow
from fillstation.drivers.authority import RemoteAuthority


class FillSessionController:
    """Owning context for a fill session.

    ``open()`` starts the reconciliation poller and re-attaches to any session
    already running for the actor; ``close()`` cancels every schedule (the
    countdown and the poller) without cancelling in-flight network calls.
    """

    def __init__(
        self,
        authority: RemoteAuthority,
        actor_id: str,
        config: Optional[ControllerConfig] = None,
        listener: Optional[SessionListener] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        event_log: Optional[SessionEventLog] = None,
    ):
        self.config = config or ControllerConfig()
        self.authority = authority
        self.sequencer = SessionSequencer(
            authority,
            actor_id,
            listener=listener,
            default_capacity_l=self.config.tanker_capacity_l,
            settling_delay_s=self.config.settling_delay_s,
            final_approach_s=self.config.final_approach_s,
            sleep=sleep,
            clock=clock,
            event_log=event_log,
        )
        self.poller = AdaptivePoller(
            self.sequencer.reconcile,
            self.sequencer.poll_status,
            intervals=PollIntervals(
                normal=self.config.poll_normal_s,
                last_30_seconds=self.config.poll_last_30_s,
                last_5_seconds=self.config.poll_last_5_s,
                post_completion=self.config.poll_post_completion_s,
            ),
            sleep=sleep,
        )
        self.sequencer.force_poll = self.poller.poll_now
        self.recovery = SessionRecovery(self.sequencer)
        self._open = False

    @classmethod
    def from_config(cls, authority: RemoteAuthority, config: ControllerConfig, **kwargs) -> "FillSessionController":
        if not config.actor_id:
            raise ValueError("config.actor_id is required")
        return cls(authority, config.actor_id, config=config, **kwargs)

    # --- lifecycle ----------------------------------------------------
    async def open(self) -> Optional[FillSession]:
        if not self._open:
            self.sequencer.reopen()
            # Always on: the only way to see other actors or a remote stop
            self.poller.start()
            self._open = True
            APP_LOGGER.info(f"Fill session controller opened for actor {self.actor_id}")
        recovered = await self.recovery.recover()
        await self.poller.poll_now()
        return recovered

    async def resume(self) -> Optional[FillSession]:
        """Owning context regained focus: recover and reconcile again."""
        return await self.open()

    def close(self) -> None:
        if not self._open:
            return
        self.poller.stop()
        self.sequencer.close()
        self._open = False
        APP_LOGGER.info(f"Fill session controller closed for actor {self.actor_id}")

    async def __aenter__(self) -> "FillSessionController":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    # --- user actions -------------------------------------------------
    async def request(self, stations: StationSet, capacity_l: Optional[float] = None) -> AdmissionDecision:
        return await self.sequencer.request(stations, capacity_l)

    async def confirm_start(self) -> None:
        await self.sequencer.confirm_start()

    async def confirm_cock(self) -> None:
        await self.sequencer.confirm_cock()

    def cancel_request(self) -> None:
        self.sequencer.cancel_request()

    async def stop(self) -> None:
        await self.sequencer.stop()

    def acknowledge_error(self) -> None:
        self.sequencer.acknowledge_error()

    async def refresh(self) -> None:
        await self.poller.poll_now()

    # --- UI surface ---------------------------------------------------
    @property
    def actor_id(self) -> str:
        return self.sequencer.actor_id

    @property
    def state(self) -> SequencerState:
        return self.sequencer.state

    @property
    def session(self) -> Optional[FillSession]:
        return self.sequencer.session

    @property
    def countdown_value(self) -> int:
        engine = self.sequencer.countdown
        return engine.value if engine is not None else 0

    @property
    def final_approach(self) -> bool:
        return self.sequencer.final_approach

    @property
    def progress(self) -> str:
        return self.sequencer.last_progress

    @property
    def last_completed(self) -> Optional[CompletionReport]:
        return self.sequencer.last_completed

    @property
    def occupancy(self) -> Optional[OccupancySnapshot]:
        return self.sequencer.occupancy

    @property
    def banner(self) -> Optional[str]:
        if self.sequencer.occupancy is None:
            return None
        return occupancy_banner(self.sequencer.occupancy, self.actor_id)
