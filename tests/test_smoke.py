"""Basic smoke test to ensure the package imports cleanly."""

import io

import pytest

from fillstation.core.admission import AdmissionDecision
from fillstation.core.models import CompletedReason, CompletionReport, StationSet


def test_import_main():
    import fillstation.main as app_main
    assert app_main is not None


def test_version_flag(capsys):
    from fillstation.main import main
    with pytest.raises(SystemExit) as info:
        main(["--version"])
    assert info.value.code == 0
    assert "0.3.0" in capsys.readouterr().out


def test_actor_required(tmp_path):
    from fillstation.main import main
    with pytest.raises(SystemExit) as info:
        main(["--config", str(tmp_path / "none.json"), "--status"])
    assert info.value.code == 2


def test_console_listener_output():
    from fillstation.main import ConsoleListener
    out = io.StringIO()
    listener = ConsoleListener(out)
    listener.on_denied(AdmissionDecision(False, "This pump is currently in use.", "Pump Not Available"))
    listener.on_completed(CompletionReport("42", StationSet.B, CompletedReason.REMOTE_AUTO_STOP))
    listener.on_countdown(95, False)
    listener.on_countdown(90, False)
    lines = out.getvalue().splitlines()
    assert lines == [
        "Pump Not Available: This pump is currently in use.",
        "Filling completed",
        "  remaining 1:30",
    ]
