"""Fill session state machine.

The sequencer owns at most one ``FillSession`` for its actor and moves it
through confirmation, staged hardware start, the timed run and stop. Two
independent sources can force a transition: the session's countdown engine
and occupancy snapshots delivered by the reconciliation poller. Snapshots
always win; every forced transition checks that it still applies to the
current session, so late or duplicate triggers are no-ops.
"""
from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fillstation.core import admission
from fillstation.core.countdown import CountdownEngine, FINAL_APPROACH_S
from fillstation.core.errors import (
    AdmissionDenied,
    ErrorContext,
    ErrorMessage,
    InvalidTransition,
    describe_error,
)
from fillstation.core.estimate import estimate_duration
from fillstation.core.logger import APP_LOGGER, SessionEventLog
from fillstation.core.models import (
    CompletedReason,
    CompletionReport,
    FillSession,
    InProgressSession,
    OccupancySnapshot,
    SequencerState,
    Station,
    StationSet,
)
from fillstation.drivers.authority import RemoteAuthority, RemoteAuthorityError

SETTLING_DELAY_S = 5
DEFAULT_CAPACITY_L = 5000.0

STATION_LABELS = {Station.A: "inside", Station.B: "outside"}

# Marks an omitted ``tracked`` argument; ``None`` is a meaningful value there
_UNSET = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionListener:
    """Receives everything the UI layer shows. Override what you need."""

    def on_state_changed(self, state: SequencerState, session: Optional[FillSession]) -> None:
        pass

    def on_countdown(self, remaining_s: int, final_approach: bool) -> None:
        pass

    def on_progress(self, message: str, countdown_s: int) -> None:
        pass

    def on_denied(self, decision: admission.AdmissionDecision) -> None:
        pass

    def on_error(self, error: ErrorMessage, operation: str) -> None:
        pass

    def on_completed(self, report: CompletionReport) -> None:
        pass

    def on_occupancy(self, occupancy: OccupancySnapshot, banner: Optional[str]) -> None:
        pass


class SessionSequencer:
    def __init__(
        self,
        authority: RemoteAuthority,
        actor_id: str,
        listener: Optional[SessionListener] = None,
        default_capacity_l: float = DEFAULT_CAPACITY_L,
        settling_delay_s: int = SETTLING_DELAY_S,
        final_approach_s: int = FINAL_APPROACH_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        event_log: Optional[SessionEventLog] = None,
    ):
        self.authority = authority
        self.actor_id = str(actor_id)
        self.listener = listener or SessionListener()
        self.default_capacity_l = float(default_capacity_l)
        self.settling_delay_s = int(settling_delay_s)
        self.final_approach_s = int(final_approach_s)
        self._sleep = sleep
        self.clock = clock
        self.event_log = event_log

        self.state = SequencerState.IDLE
        self.session: Optional[FillSession] = None
        self.countdown: Optional[CountdownEngine] = None
        self.occupancy: Optional[OccupancySnapshot] = None
        self.last_completed: Optional[CompletionReport] = None
        self.last_error: Optional[ErrorMessage] = None
        self.last_progress: str = ""

        # Set by the owning controller to route forced polls through the poller
        self.force_poll: Optional[Callable[[], Awaitable[None]]] = None

        self._stopping = False
        self._closed = False
        self._tracked: Optional[FillSession] = None
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------
    @property
    def remaining_s(self) -> Optional[int]:
        if self.countdown is None or not self.state.pump_on:
            return None
        return self.countdown.value

    @property
    def final_approach(self) -> bool:
        return self.state in (SequencerState.FINAL_APPROACH, SequencerState.COMPLETING)

    @property
    def completed_locally(self) -> bool:
        return self.state in (SequencerState.COMPLETING, SequencerState.STOP_PENDING)

    def poll_status(self) -> tuple[Optional[int], bool]:
        return self.remaining_s, self.completed_locally

    # ------------------------------------------------------------------
    # Start path
    # ------------------------------------------------------------------
    async def request(self, stations: StationSet, capacity_l: Optional[float] = None) -> admission.AdmissionDecision:
        """Idle -> AwaitingStartConfirm, or back to Idle with a denial."""
        if self.state not in (SequencerState.IDLE, SequencerState.ERROR):
            raise InvalidTransition(f"Cannot request stations while {self.state.value}")
        stations = StationSet(stations)
        capacity = float(capacity_l) if capacity_l else self.default_capacity_l
        session = FillSession(actor_id=self.actor_id, requested=stations, capacity_l=capacity)
        self.session = session
        self.last_error = None
        self._set_state(SequencerState.AWAITING_START_CONFIRM)

        try:
            decision = await self._check_admission(stations)
        except RemoteAuthorityError as e:
            self._fail(session, e, "start", ErrorContext.MOTOR_STATUS)
            return admission.AdmissionDecision(False, describe_error(e, ErrorContext.MOTOR_STATUS).message)
        if self.session is not session:
            return admission.AdmissionDecision(False, "Request was superseded.")
        if not decision.allowed:
            self._deny(session, decision)
            return decision

        session.predicted_duration_s = await estimate_duration(self.authority, self.actor_id, stations, capacity)
        APP_LOGGER.info(
            f"Actor {self.actor_id} requested {stations.value}; predicted {session.predicted_duration_s}s"
        )
        self._log_event("request", detail=f"predicted={session.predicted_duration_s}")
        return decision

    async def confirm_start(self) -> None:
        session = self._require(SequencerState.AWAITING_START_CONFIRM)
        if session.requested.needs_valve_confirm:
            self._set_state(SequencerState.AWAITING_COCK_CONFIRM)
            return
        await self._start_hardware(session)

    async def confirm_cock(self) -> None:
        session = self._require(SequencerState.AWAITING_COCK_CONFIRM)
        await self._start_hardware(session)

    def cancel_request(self) -> None:
        if self.state not in (SequencerState.AWAITING_START_CONFIRM, SequencerState.AWAITING_COCK_CONFIRM):
            raise InvalidTransition(f"Nothing to cancel while {self.state.value}")
        APP_LOGGER.info("Pump start cancelled by user")
        self._log_event("cancel")
        self.session = None
        self._set_state(SequencerState.IDLE)

    def acknowledge_error(self) -> None:
        if self.state is SequencerState.ERROR:
            self.session = None
            self._set_state(SequencerState.IDLE)

    async def _check_admission(self, stations: StationSet) -> admission.AdmissionDecision:
        # Always a fresh snapshot: occupancy may change between render and press
        occupancy = await self.authority.get_occupancy()
        self._store_occupancy(occupancy)
        other_name = None
        if occupancy.active_actor_id is not None and not occupancy.held_by(self.actor_id):
            other_name = await self._other_actor_name(occupancy.active_actor_id)
        return admission.evaluate(stations, self.actor_id, occupancy, other_name)

    async def _other_actor_name(self, actor_id: str) -> Optional[str]:
        try:
            other = await self.authority.get_in_progress_session(actor_id)
        except RemoteAuthorityError as e:
            APP_LOGGER.debug(f"Could not load active session of actor {actor_id}: {e}")
            return None
        if other is None:
            return None
        return other.actor_name or str(other.actor_id)

    async def _start_hardware(self, session: FillSession) -> None:
        self._set_state(SequencerState.STARTING_HARDWARE)
        stations = session.requested
        try:
            if stations.is_dual:
                await self._start_one(session, Station.A, "Starting inside pump...")
                self._progress("Inside pump started. Waiting for voltage stabilization...", self.settling_delay_s)
                for i in range(self.settling_delay_s, 0, -1):
                    await self._sleep(1.0)
                    if i > 1:
                        self._progress(f"Voltage stabilizing... {i - 1} seconds remaining", i - 1)
                await self._start_one(session, Station.B, "Starting outside pump...")
                self._progress("Both pumps started successfully!", 0)
            else:
                station = stations.stations[0]
                label = STATION_LABELS[station]
                await self._start_one(session, station, f"Starting {label} pump...")
                self._progress(f"{label} pump started successfully!", 0)
        except _Denied:
            return
        except AdmissionDenied as e:
            if self.session is session:
                self._fail(session, e, "start")
            return
        except RemoteAuthorityError as e:
            if self.session is session:
                self._fail(session, e, "start")
            return

        started_at = self.clock()
        if self.session is session and not self._closed:
            self._enter_running(session, started_at, session.predicted_duration_s)
        else:
            session.started_at = started_at
            APP_LOGGER.warning(f"Pump start for actor {self.actor_id} finished after its context was closed")
        await self._record_session(session)

    async def _start_one(self, session: FillSession, station: Station, message: str) -> None:
        decision = await self._check_admission(StationSet(station.value))
        if not decision.allowed:
            if station is Station.A or not session.requested.is_dual:
                # Nothing is on yet: a plain denial
                self._deny(session, decision)
                raise _Denied()
            raise AdmissionDenied(decision.reason)
        self._progress(message, 0)
        APP_LOGGER.info(f"Starting {station.wire_name} pump for actor {self.actor_id}")
        await self.authority.start_station(station)
        self._log_event("station_started", detail=station.value)

    async def _record_session(self, session: FillSession) -> None:
        # Best effort: the pump is already on, accounting must not block it
        try:
            amount = await self.authority.get_session_amount(self.actor_id)
            if amount is not None:
                session.remote_session_id = await self.authority.record_session(
                    self.actor_id, amount, session.requested
                )
                APP_LOGGER.info(f"Session recorded for actor {self.actor_id}: {session.remote_session_id}")
        except Exception as e:
            APP_LOGGER.warning(f"Could not record session for actor {self.actor_id}: {e}")
        finally:
            self._tracked = session

    def attach(self, recovered: InProgressSession, predicted_s: int, remaining_s: int, capacity_l: float) -> FillSession:
        """Re-enter a session that is already physically running. No hardware calls."""
        if self.state not in (SequencerState.IDLE, SequencerState.ERROR):
            raise InvalidTransition(f"Cannot attach a recovered session while {self.state.value}")
        session = FillSession(
            actor_id=self.actor_id,
            requested=recovered.station_set,
            state=SequencerState.RUNNING,
            capacity_l=capacity_l,
            predicted_duration_s=predicted_s,
            started_at=recovered.started_at,
            remote_session_id=recovered.remote_session_id,
        )
        self.session = session
        self._tracked = session
        self._enter_running(session, recovered.started_at or self.clock(), remaining_s)
        return session

    def _enter_running(self, session: FillSession, started_at: datetime, remaining_s: int) -> None:
        session.started_at = started_at
        engine = CountdownEngine(
            initial_s=max(0, int(remaining_s)),
            on_final_approach=lambda: self._on_final_approach(session),
            on_exhausted=lambda: self._on_exhausted(session),
            on_tick=self._on_tick,
            final_approach_s=self.final_approach_s,
            sleep=self._sleep,
        )
        if self.countdown is not None:
            self.countdown.cancel()
        self.countdown = engine
        if engine.value <= 0:
            # Already past the prediction: straight to Completing
            self._log_event("running", detail="remaining=0")
            self._set_state(SequencerState.COMPLETING)
            self._spawn(self._confirm_completion())
            return
        self._set_state(SequencerState.RUNNING)
        self._log_event("running", detail=f"remaining={engine.value}")
        if engine.value <= self.final_approach_s:
            self._on_final_approach(session)
        engine.enable()
        self._emit_countdown()

    # ------------------------------------------------------------------
    # Countdown-driven transitions
    # ------------------------------------------------------------------
    def _on_tick(self, value: int) -> None:
        self._emit_countdown()

    def _on_final_approach(self, session: FillSession) -> None:
        if self.session is not session or self.state is not SequencerState.RUNNING:
            return
        self._set_state(SequencerState.FINAL_APPROACH)
        self._progress("Filling complete! Stopping pump...", self.countdown.value if self.countdown else 0)

    def _on_exhausted(self, session: FillSession) -> None:
        if self.session is not session or self.state not in (SequencerState.RUNNING, SequencerState.FINAL_APPROACH):
            return
        self._set_state(SequencerState.COMPLETING)
        self._spawn(self._confirm_completion())

    async def _confirm_completion(self) -> None:
        if self.force_poll is not None:
            await self.force_poll()
            return
        try:
            await self.reconcile()
        except RemoteAuthorityError as e:
            APP_LOGGER.warning(f"Completion check failed: {e}")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    async def reconcile(self) -> None:
        """Fetch occupancy and apply it. Raises RemoteAuthorityError on failure."""
        tracked = self._tracked
        occupancy = await self.authority.get_occupancy()
        self.apply_occupancy(occupancy, tracked)

    def apply_occupancy(self, occupancy: OccupancySnapshot, tracked=_UNSET) -> None:
        """Apply a snapshot; remote truth wins over the local prediction.

        ``tracked`` is the session the authority was expected to know about
        when the snapshot was requested (``None`` when nothing was recorded
        yet). A session whose recording was still in flight is not stopped by
        a snapshot that predates it. Omitted, the current session is used.
        """
        if tracked is _UNSET:
            tracked = self._tracked
        self._store_occupancy(occupancy)
        session = self.session
        if session is None or not self.state.pump_on or tracked is not session:
            return
        if occupancy.held_by(self.actor_id):
            return
        if self._stopping or self.state is SequencerState.STOP_PENDING:
            # The user asked for this stop; the snapshot only confirms it
            APP_LOGGER.info(f"Stop for actor {self.actor_id} confirmed by remote authority")
            self._finish(session, CompletedReason.MANUAL)
            return
        APP_LOGGER.info(
            f"Remote authority no longer reports actor {self.actor_id} filling "
            f"(countdown {self.remaining_s}s); treating as remote stop"
        )
        self._finish(session, CompletedReason.REMOTE_AUTO_STOP)

    def _store_occupancy(self, occupancy: OccupancySnapshot) -> None:
        self.occupancy = occupancy
        if not self._closed:
            self.listener.on_occupancy(occupancy, admission.occupancy_banner(occupancy, self.actor_id))

    # ------------------------------------------------------------------
    # Stop path
    # ------------------------------------------------------------------
    async def stop(self) -> None:
        """Manual stop. Duplicate calls while a stop is in flight are ignored."""
        if self._stopping:
            APP_LOGGER.debug("Stop already in flight; ignoring duplicate request")
            return
        if not self.state.pump_on:
            if self.state is SequencerState.IDLE:
                return
            raise InvalidTransition(f"Cannot stop while {self.state.value}")

        session = self.session
        self._stopping = True
        try:
            stations = session.requested.stations
            APP_LOGGER.info(f"Stopping {session.requested.value} for actor {self.actor_id}")
            if len(stations) > 1:
                # Shutdown has no settling constraint: issue both at once
                results = await asyncio.gather(
                    *(self.authority.stop_station(s) for s in stations), return_exceptions=True
                )
                failures = [r for r in results if isinstance(r, BaseException)]
                if failures:
                    raise failures[0]
            else:
                await self.authority.stop_station(stations[0])
        except RemoteAuthorityError as e:
            if self.session is session:
                if self.countdown is not None:
                    self.countdown.disable()
                self._set_state(SequencerState.STOP_PENDING)
                self._surface_error(e, "stop")
            return
        finally:
            self._stopping = False

        remote_id = session.remote_session_id
        self._finish(session, CompletedReason.MANUAL)
        if remote_id:
            try:
                await self.authority.record_stop(self.actor_id, remote_id)
                APP_LOGGER.info(f"Stop time recorded for actor {self.actor_id}, session {remote_id}")
            except Exception as e:
                APP_LOGGER.warning(f"Could not record stop time: {e}")

    def _finish(self, session: FillSession, reason: CompletedReason) -> None:
        if self.session is not session:
            return
        if self.countdown is not None:
            self.countdown.cancel()
        self.countdown = None
        session.completed_reason = reason
        report = CompletionReport(
            actor_id=session.actor_id,
            stations=session.requested,
            reason=reason,
            remote_session_id=session.remote_session_id,
            completed_at=self.clock(),
        )
        self.last_completed = report
        self.session = None
        self._tracked = None
        self._set_state(SequencerState.IDLE)
        self._log_event("completed", detail=reason.value, stations=session.requested)
        APP_LOGGER.info(f"Session for actor {self.actor_id} completed: {reason.value}")
        if not self._closed:
            self.listener.on_completed(report)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Drop local session state and schedules. In-flight calls finish unobserved."""
        self._closed = True
        if self.countdown is not None:
            self.countdown.cancel()
        self.countdown = None
        self.session = None
        self._tracked = None
        self.state = SequencerState.IDLE

    def reopen(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def drain(self) -> None:
        """Wait for background work spawned by forced transitions."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require(self, state: SequencerState) -> FillSession:
        if self.state is not state or self.session is None:
            raise InvalidTransition(f"Expected {state.value}, sequencer is {self.state.value}")
        return self.session

    def _set_state(self, state: SequencerState) -> None:
        if state is self.state:
            return
        APP_LOGGER.debug(f"Sequencer {self.state.value} -> {state.value}")
        self.state = state
        if self.session is not None:
            self.session.state = state
        self._log_event("state")
        if not self._closed:
            self.listener.on_state_changed(state, self.session)

    def _progress(self, message: str, countdown_s: int) -> None:
        self.last_progress = message
        APP_LOGGER.info(message)
        self._log_event("progress", detail=message)
        if not self._closed:
            self.listener.on_progress(message, countdown_s)

    def _emit_countdown(self) -> None:
        if self.countdown is None or self._closed:
            return
        self.listener.on_countdown(self.countdown.value, self.countdown.in_final_approach)

    def _deny(self, session: FillSession, decision: admission.AdmissionDecision) -> None:
        APP_LOGGER.info(f"Admission denied for actor {self.actor_id}: {decision.reason}")
        self._log_event("denied", detail=decision.reason)
        if self.session is session:
            self.session = None
            self._set_state(SequencerState.IDLE)
        if not self._closed:
            self.listener.on_denied(decision)

    def _fail(self, session: FillSession, exc: Exception, operation: str,
              context: ErrorContext = ErrorContext.PUMP_CONTROL) -> None:
        if self.countdown is not None:
            self.countdown.cancel()
            self.countdown = None
        self._set_state(SequencerState.ERROR)
        self._surface_error(exc, operation, context)

    def _surface_error(self, exc: Exception, operation: str,
                       context: ErrorContext = ErrorContext.PUMP_CONTROL) -> None:
        if isinstance(exc, AdmissionDenied):
            message = ErrorMessage("Pump Not Available", exc.reason)
        else:
            message = describe_error(exc, context)
        self.last_error = message
        APP_LOGGER.error(f"Error {operation}ing pump for actor {self.actor_id}: {exc}")
        self._log_event("error", detail=f"{operation}: {exc}")
        if not self._closed:
            self.listener.on_error(message, operation)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _log_event(self, kind: str, detail: Optional[str] = None, stations: Optional[StationSet] = None) -> None:
        if self.event_log is None:
            return
        session = self.session
        if stations is None and session is not None:
            stations = session.requested
        self.event_log.log_event(
            kind,
            actor_id=self.actor_id,
            stations=stations.value if stations else None,
            state=self.state.value,
            countdown_s=self.countdown.value if self.countdown is not None else None,
            detail=detail,
        )


class _Denied(Exception):
    """Internal: the start was denied before any station was switched on."""


def remaining_after(predicted_s: int, started_at: Optional[datetime], now: datetime) -> int:
    """Seconds left of ``predicted_s`` for a session started at ``started_at``."""
    if started_at is None:
        return max(0, int(predicted_s))
    elapsed = int(math.floor((now - started_at).total_seconds()))
    return max(0, int(predicted_s) - elapsed)
