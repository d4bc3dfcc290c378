# logger.py — app logger + CSV log of fill session events
import csv, time, uuid, logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

# --- App-wide logger ---
# Use a named logger for controller events and errors.
# Defaults to console, but can be configured to log to file.
APP_LOGGER = logging.getLogger("fillstation")
APP_LOGGER.setLevel(logging.INFO)
_formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S")
_console_handler = logging.StreamHandler()
_console_handler.setFormatter(_formatter)
APP_LOGGER.addHandler(_console_handler)


def set_log_level(level: Union[int, str]) -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            APP_LOGGER.warning(f"Unknown log level, keeping {logging.getLevelName(APP_LOGGER.level)}")
            return
    APP_LOGGER.setLevel(level)


def configure_file_logging(log_path: Path, level=logging.DEBUG):
    """Configures file logging for APP_LOGGER."""
    # Remove existing file handlers first to prevent duplicates
    for handler in list(APP_LOGGER.handlers):
        if isinstance(handler, logging.FileHandler):
            APP_LOGGER.removeHandler(handler)
            try:
                handler.close()
            except Exception:
                pass

    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setFormatter(_formatter)
    file_handler.setLevel(level)
    APP_LOGGER.addHandler(file_handler)
    APP_LOGGER.info(f"File logging enabled at: {log_path}")


# --- Session event CSV log ---
CSV_FIELDS = [
    "event_id",
    "event_uuid",
    "t_host_ms",
    "t_host_iso",
    "actor_id",
    "stations",
    "kind",
    "state",
    "countdown_s",
    "detail",
]

MS_PER_SEC = 1000.0


class SessionEventLog:
    """Appends one row per sequencer event to sessions.csv."""

    def __init__(self, log_dir: Union[Path, str]):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.event_id = 0
        self._f = None
        self._w = None
        try:
            self._f = open(self.log_dir / "sessions.csv", "a", newline="", encoding="utf-8")
            self._w = csv.DictWriter(self._f, fieldnames=CSV_FIELDS)
            if self._f.tell() == 0:
                self._w.writeheader()
        except Exception as e:
            APP_LOGGER.error(f"Failed to open sessions.csv for writing: {e}")
            self._f = None
            self._w = None

    @property
    def path(self) -> Path:
        return self.log_dir / "sessions.csv"

    def log_event(
        self,
        kind: str,
        actor_id: Optional[str] = None,
        stations: Optional[str] = None,
        state: Optional[str] = None,
        countdown_s: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        if self._w is None:
            APP_LOGGER.warning("SessionEventLog is not initialized, cannot log event.")
            return

        self.event_id += 1
        now = time.time()
        row = {
            "event_id": self.event_id,
            "event_uuid": str(uuid.uuid4()),
            "t_host_ms": int(round(now * MS_PER_SEC)),
            "t_host_iso": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "actor_id": actor_id or "",
            "stations": stations or "",
            "kind": kind,
            "state": state or "",
            "countdown_s": "" if countdown_s is None else int(countdown_s),
            "detail": detail or "",
        }
        try:
            self._w.writerow(row)
            self._f.flush()
        except Exception as e:
            APP_LOGGER.error(f"Failed to write session event to CSV: {e}")

    def close(self):
        try:
            if self._f and not self._f.closed:
                self._f.close()
        except Exception as e:
            APP_LOGGER.error(f"Failed to close sessions.csv: {e}")
