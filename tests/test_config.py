import pytest
from pathlib import Path
from fillstation.core.configio import ControllerConfig, save_config, load_config, load_controller_config

def test_config_save_load(tmp_path):
    cfg_path = tmp_path / "test_config.json"
    cfg = ControllerConfig(actor_id="42", tanker_capacity_l=8000.0).to_dict()

    save_config(cfg, cfg_path)
    assert cfg_path.exists()

    loaded = load_config(cfg_path)
    assert loaded == cfg
    assert ControllerConfig.from_dict(loaded).tanker_capacity_l == 8000.0

def test_load_nonexistent_config(tmp_path):
    assert load_config(tmp_path / "nope.json") is None

def test_missing_file_gives_defaults(tmp_path):
    cfg = load_controller_config(tmp_path / "nope.json", environ={})
    assert cfg == ControllerConfig()
    assert cfg.settling_delay_s == 5
    assert cfg.poll_normal_s == 30.0

def test_unknown_keys_ignored_and_actor_stringified():
    cfg = ControllerConfig.from_dict({"actor_id": 42, "camera_index": 0})
    assert cfg.actor_id == "42"

@pytest.mark.parametrize("bad", [{"tanker_capacity_l": 0}, {"settling_delay_s": -1}])
def test_invalid_values_rejected(bad):
    with pytest.raises(ValueError):
        ControllerConfig.from_dict(bad)

def test_env_overrides(tmp_path):
    save_config({"base_url": "http://from-file/api", "api_key": "file-key"}, tmp_path / "c.json")
    cfg = load_controller_config(
        tmp_path / "c.json",
        environ={"FILLSTATION_BASE_URL": "http://from-env/api", "FILLSTATION_API_KEY": ""},
    )
    assert cfg.base_url == "http://from-env/api"
    assert cfg.api_key == "file-key"
