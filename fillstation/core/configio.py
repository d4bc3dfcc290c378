# configio.py — config save/load for the fill session controller
from __future__ import annotations

import json, os, tempfile
from dataclasses import dataclass, asdict, fields
from pathlib import Path

from fillstation.core.logger import APP_LOGGER

DATA_DIR = Path.home() / ".fillstation"
DEFAULT_PATH = DATA_DIR / "config.json"
DEFAULT_LOG_DIR = DATA_DIR / "logs"

ENV_BASE_URL = "FILLSTATION_BASE_URL"
ENV_API_KEY = "FILLSTATION_API_KEY"


@dataclass
class ControllerConfig:
    base_url: str = "http://192.168.1.39:8080/api"
    api_key: str | None = None
    actor_id: str | None = None
    tanker_capacity_l: float = 5000.0
    request_timeout_s: float = 15.0
    settling_delay_s: int = 5
    final_approach_s: int = 5
    poll_normal_s: float = 30.0
    poll_last_30_s: float = 5.0
    poll_last_5_s: float = 1.0
    poll_post_completion_s: float = 2.0
    log_level: str = "INFO"
    log_file: str | None = None
    event_log_dir: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "ControllerConfig":
        """Build a config from a loaded dict; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key in known:
                values[key] = value
            else:
                APP_LOGGER.debug(f"Ignoring unknown config key: {key}")
        cfg = cls(**values)
        if cfg.tanker_capacity_l <= 0:
            raise ValueError("tanker_capacity_l must be > 0")
        if cfg.settling_delay_s < 0:
            raise ValueError("settling_delay_s must be >= 0")
        if cfg.actor_id is not None:
            cfg.actor_id = str(cfg.actor_id)
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)

    def apply_env(self, environ=None) -> "ControllerConfig":
        env = os.environ if environ is None else environ
        if env.get(ENV_BASE_URL):
            self.base_url = env[ENV_BASE_URL]
        if env.get(ENV_API_KEY):
            self.api_key = env[ENV_API_KEY]
        return self


def ensure_dir(p: Path) -> Path:
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    except PermissionError:
        # Fallback to temp dir if home is not writable
        tmp = Path(tempfile.gettempdir()) / ".fillstation" / p.name
        APP_LOGGER.warning(f"Permission denied for {p}, falling back to {tmp}")
        tmp.parent.mkdir(parents=True, exist_ok=True)
        return tmp

def save_config(cfg: dict, path: Path = DEFAULT_PATH):
    target_path = ensure_dir(path)
    try:
        with open(target_path, "w", encoding="utf-8") as f:
            json.dump(cfg, f, indent=2)
    except Exception as e:
        APP_LOGGER.error(f"Failed to save config to {target_path}: {e}")

def load_config(path: Path = DEFAULT_PATH) -> dict | None:
    try:
        if not path.exists():
            # A previous save may have fallen back to the temp dir
            tmp = Path(tempfile.gettempdir()) / ".fillstation" / path.name
            if tmp.exists():
                path = tmp

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception as e:
        APP_LOGGER.warning(f"Failed to load config from {path}: {e}")
        return None

def load_controller_config(path: Path = DEFAULT_PATH, environ=None) -> ControllerConfig:
    """Load the JSON config (defaults when missing) and apply env overrides."""
    return ControllerConfig.from_dict(load_config(path)).apply_env(environ)
