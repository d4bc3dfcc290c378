"""Qt adapter: re-emits sequencer events as signals for widgets."""
from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject, Signal

from fillstation.core.admission import AdmissionDecision
from fillstation.core.errors import ErrorMessage
from fillstation.core.models import CompletionReport, FillSession, OccupancySnapshot, SequencerState
from fillstation.core.sequencer import SessionListener
from fillstation.ui.text import COMPLETION_TEXT, format_time


class SessionBridge(QObject, SessionListener):
    stateChanged = Signal(str)
    countdownChanged = Signal(int, bool)
    countdownText = Signal(str)
    progressChanged = Signal(str, int)
    denied = Signal(str, str)  # title, reason
    errorRaised = Signal(str, str, str)  # title, message, operation
    completed = Signal(str)  # completion text
    occupancyChanged = Signal(object, str)  # snapshot, banner ("" when none)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.last_report: Optional[CompletionReport] = None

    def on_state_changed(self, state: SequencerState, session: Optional[FillSession]) -> None:
        self.stateChanged.emit(state.value)

    def on_countdown(self, remaining_s: int, final_approach: bool) -> None:
        self.countdownChanged.emit(remaining_s, final_approach)
        self.countdownText.emit(format_time(remaining_s))

    def on_progress(self, message: str, countdown_s: int) -> None:
        self.progressChanged.emit(message, countdown_s)

    def on_denied(self, decision: AdmissionDecision) -> None:
        self.denied.emit(decision.title, decision.reason)

    def on_error(self, error: ErrorMessage, operation: str) -> None:
        self.errorRaised.emit(error.title, error.message, operation)

    def on_completed(self, report: CompletionReport) -> None:
        self.last_report = report
        self.completed.emit(COMPLETION_TEXT[report.reason])

    def on_occupancy(self, occupancy: OccupancySnapshot, banner: Optional[str]) -> None:
        self.occupancyChanged.emit(occupancy, banner or "")
