"""Terminal front end for the fill session controller."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from fillstation import __version__
from fillstation.core.configio import DEFAULT_LOG_DIR, DEFAULT_PATH, ControllerConfig, load_controller_config
from fillstation.core.controller import FillSessionController
from fillstation.core.logger import APP_LOGGER, SessionEventLog, configure_file_logging, set_log_level
from fillstation.core.models import SequencerState, StationSet
from fillstation.core.sequencer import SessionListener
from fillstation.drivers.http_authority import HttpAuthority
from fillstation.ui.text import COCK_PROMPT, COMPLETION_TEXT, STATION_SET_TITLES, format_time, state_text

WAIT_POLL_S = 0.5
TERMINAL_STATES = (SequencerState.IDLE, SequencerState.ERROR)


class ConsoleListener(SessionListener):
    def __init__(self, out=sys.stdout):
        self.out = out
        self._last_banner: Optional[str] = None

    def _print(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def on_state_changed(self, state, session) -> None:
        self._print(f"[{state_text(state)}]")

    def on_countdown(self, remaining_s, final_approach) -> None:
        if final_approach or remaining_s % 30 == 0:
            self._print(f"  remaining {format_time(remaining_s)}")

    def on_progress(self, message, countdown_s) -> None:
        self._print(f"  {message}")

    def on_denied(self, decision) -> None:
        self._print(f"{decision.title}: {decision.reason}")

    def on_error(self, error, operation) -> None:
        self._print(f"{error.title}: {error.message}")

    def on_completed(self, report) -> None:
        self._print(COMPLETION_TEXT[report.reason])

    def on_occupancy(self, occupancy, banner) -> None:
        if banner != self._last_banner:
            self._last_banner = banner
            if banner:
                self._print(f"Pump Status: {banner}")


def _confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def _wait_until_done(controller: FillSessionController) -> None:
    while controller.state not in TERMINAL_STATES:
        await asyncio.sleep(WAIT_POLL_S)


async def _run(args, config: ControllerConfig) -> int:
    authority = HttpAuthority(config.base_url, api_key=config.api_key, timeout_s=config.request_timeout_s)
    event_log = SessionEventLog(config.event_log_dir or DEFAULT_LOG_DIR)
    listener = ConsoleListener()
    controller = FillSessionController.from_config(authority, config, listener=listener, event_log=event_log)
    try:
        recovered = await controller.open()
        if args.status:
            occ = controller.occupancy
            if occ is not None:
                print(f"Active actor: {occ.active_actor_id or '-'}  "
                      f"station A: {'ON' if occ.station_a_on else 'OFF'}  "
                      f"station B: {'ON' if occ.station_b_on else 'OFF'}")
            if recovered is not None:
                print(f"Your session: {STATION_SET_TITLES[recovered.requested]}, "
                      f"{format_time(controller.countdown_value)} remaining")
            else:
                print("No session in progress")
            return 0

        if args.stop:
            if not controller.state.pump_on:
                print("No session in progress")
                return 1
            await controller.stop()
            return 0 if controller.state is SequencerState.IDLE else 1

        if args.start:
            if recovered is None:
                stations = StationSet(args.start)
                decision = await controller.request(stations, args.capacity)
                if not decision.allowed:
                    return 1
                if not _confirm(f"Start {STATION_SET_TITLES[stations]}?", args.yes):
                    controller.cancel_request()
                    return 1
                await controller.confirm_start()
                if controller.state is SequencerState.AWAITING_COCK_CONFIRM:
                    if not _confirm(COCK_PROMPT, args.yes):
                        controller.cancel_request()
                        return 1
                    await controller.confirm_cock()
            try:
                await _wait_until_done(controller)
            except asyncio.CancelledError:
                APP_LOGGER.info("Interrupted; stopping pump")
                await controller.stop()
                raise
            return 0 if controller.state is SequencerState.IDLE else 1
        return 0
    finally:
        controller.close()
        event_log.close()
        await authority.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Control a fill session on the shared pump stations.")
    parser.add_argument("--config", default=str(DEFAULT_PATH), help="JSON config path")
    parser.add_argument("--actor", default=None, help="Customer id (overrides config)")
    parser.add_argument("--capacity", type=float, default=None, help="Tanker capacity in litres")
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    parser.add_argument("--yes", action="store_true", help="Answer yes to confirmation prompts")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="Show occupancy and your session")
    group.add_argument("--start", choices=[s.value for s in StationSet], help="Start a fill session")
    group.add_argument("--stop", action="store_true", help="Stop your running session")
    args = parser.parse_args(argv)

    config = load_controller_config(Path(args.config))
    if args.actor:
        config.actor_id = str(args.actor)
    if not config.actor_id:
        parser.error("an actor id is required (--actor or actor_id in config)")
    set_log_level(config.log_level)
    log_file = args.log_file or config.log_file
    if log_file:
        configure_file_logging(Path(log_file))

    try:
        return asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
