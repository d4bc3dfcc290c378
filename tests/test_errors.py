import pytest

from fillstation.core.errors import AdmissionDenied, ErrorContext, describe_error
from fillstation.drivers.authority import RemoteAuthorityError


@pytest.mark.parametrize(
    "status, context, title",
    [
        (401, ErrorContext.PUMP_CONTROL, "Session Expired"),
        (403, ErrorContext.PUMP_CONTROL, "Access Denied"),
        (500, ErrorContext.MOTOR_STATUS, "Server Error"),
        (502, ErrorContext.PUMP_CONTROL, "Error"),
        (404, ErrorContext.GENERAL, "Not Found"),
        (401, ErrorContext.GENERAL, "Authentication Required"),
    ],
)
def test_status_mapping(status, context, title):
    assert describe_error(RemoteAuthorityError("x", status=status), context).title == title


def test_connection_error_includes_details():
    msg = describe_error(RemoteAuthorityError("connect timeout"), ErrorContext.PUMP_CONTROL)
    assert msg.title == "Connection Error"
    assert "Technical details: connect timeout" in msg.message


def test_unknown_error():
    assert describe_error(KeyError("boom")).title == "Unknown Error"


def test_admission_denied_keeps_reason():
    exc = AdmissionDenied("Both pumps are currently in use by another customer.")
    assert exc.reason == str(exc)
