import csv
import pytest
from fillstation.core.logger import SessionEventLog, set_log_level, APP_LOGGER
from fillstation.core.models import SequencerState, StationSet
from fillstation.ui.text import format_time, state_text, STATION_SET_TITLES

# --- SessionEventLog Tests ---
def test_session_event_log(tmp_path):
    log_dir = tmp_path / "logs"
    log = SessionEventLog(log_dir)

    # Check if directory and file created
    assert log_dir.exists()
    assert log.path.exists()

    log.log_event("state", actor_id="42", stations="stationB", state="Running", countdown_s=120)
    log.log_event("completed", actor_id="42", detail="manual")
    log.close()

    with open(log.path, "r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 2
    assert rows[0]["event_id"] == "1"
    assert rows[0]["countdown_s"] == "120"
    assert rows[1]["countdown_s"] == ""
    assert rows[1]["detail"] == "manual"

def test_session_event_log_appends(tmp_path):
    first = SessionEventLog(tmp_path)
    first.log_event("request", actor_id="42")
    first.close()
    second = SessionEventLog(tmp_path)
    second.log_event("cancel", actor_id="42")
    second.close()

    with open(second.path, "r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    # Header written once
    assert [r["kind"] for r in rows] == ["request", "cancel"]

def test_log_after_close_is_ignored(tmp_path):
    log = SessionEventLog(tmp_path)
    log.close()
    log.log_event("state")  # Should fail safely

# --- Log level ---
def test_set_log_level():
    set_log_level("debug")
    assert APP_LOGGER.level == 10
    set_log_level("nonsense")
    assert APP_LOGGER.level == 10
    set_log_level("INFO")

# --- Display text ---
@pytest.mark.parametrize("seconds, text", [(0, "0:00"), (5, "0:05"), (65, "1:05"), (4500, "75:00"), (-3, "0:00")])
def test_format_time(seconds, text):
    assert format_time(seconds) == text

def test_titles_cover_every_state():
    for state in SequencerState:
        assert state_text(state)
    assert STATION_SET_TITLES[StationSet.DUAL] == "Both Stations"
