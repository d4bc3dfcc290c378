"""Controller error taxonomy and user-facing error messages."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fillstation.drivers.authority import RemoteAuthorityError


class AdmissionDenied(Exception):
    """A start request failed the admission rules. Not an error; no retry."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidTransition(RuntimeError):
    """The requested action is not valid from the sequencer's current state."""


class ErrorContext(str, Enum):
    MOTOR_STATUS = "motor_status"
    PUMP_CONTROL = "pump_control"
    GENERAL = "general"


@dataclass(frozen=True)
class ErrorMessage:
    title: str
    message: str


_SESSION_EXPIRED = ErrorMessage("Session Expired", "Your session has expired. Please login again.")

_BY_CONTEXT = {
    ErrorContext.MOTOR_STATUS: {
        401: _SESSION_EXPIRED,
        403: ErrorMessage("Access Denied", "You may not have permission to view motor status."),
        500: ErrorMessage("Server Error", "Unable to fetch motor status. Please try again later."),
        None: ErrorMessage("Error", "Failed to fetch motor status. Please check your connection."),
    },
    ErrorContext.PUMP_CONTROL: {
        401: _SESSION_EXPIRED,
        403: ErrorMessage("Access Denied", "You may not have permission to control pumps."),
        500: ErrorMessage("Server Error", "Unable to control pump. Please try again later."),
        None: ErrorMessage("Error", "Failed to control pump. Please check your connection."),
    },
    ErrorContext.GENERAL: {
        401: ErrorMessage("Authentication Required", "Please login to continue."),
        403: ErrorMessage("Access Denied", "You do not have permission to perform this action."),
        404: ErrorMessage("Not Found", "The requested resource was not found."),
        500: ErrorMessage("Server Error", "There was a problem with the server. Please try again later."),
        None: ErrorMessage("Error", "An unexpected error occurred. Please try again."),
    },
}


def describe_error(exc: BaseException, context: ErrorContext = ErrorContext.GENERAL) -> ErrorMessage:
    """Map a failure to the title/message shown to the user."""
    if isinstance(exc, RemoteAuthorityError):
        if exc.status:
            table = _BY_CONTEXT[context]
            return table.get(exc.status, table[None])
        return ErrorMessage(
            "Connection Error",
            "Unable to connect to server. Please check your internet connection.\n\n"
            f"Technical details: {exc}",
        )
    return ErrorMessage("Unknown Error", "An unexpected error occurred. Please try again.")
