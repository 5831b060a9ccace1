import json
import stat

import pytest

from flowdictate import config
from flowdictate.models import DEFAULT_HOTKEY, Config
from flowdictate.providers import Provider


@pytest.fixture
def cfg_path(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", path)
    monkeypatch.delenv("FLOWDICTATE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("FLOWDICTATE_GROQ_API_KEY", raising=False)
    return path


def test_load_default_config_when_missing(cfg_path):
    cfg = config.load_config()
    assert isinstance(cfg, Config)
    assert cfg.provider == "openai"
    assert cfg.hotkey == DEFAULT_HOTKEY
    assert cfg.insert_destination == "clipboard"


def test_save_and_load_config(cfg_path):
    cfg = Config(provider="groq", groq_api_key="gsk_secret", hotkey=["option", "cmd"])
    config.save_config(cfg)

    loaded = config.load_config()
    assert loaded.provider == "groq"
    assert loaded.groq_api_key == "gsk_secret"
    assert loaded.hotkey == ["option", "cmd"]
    assert "openai_api_key" not in json.loads(cfg_path.read_text())


def test_saved_config_is_private(cfg_path):
    config.save_config(Config(openai_api_key="sk-test"))
    assert stat.S_IMODE(cfg_path.stat().st_mode) == 0o600


def test_update_config_validates_keys(cfg_path):
    config.update_config(provider="Groq")
    assert config.load_config().provider == "groq"

    with pytest.raises(config.ConfigError):
        config.update_config(unknown="value")
    with pytest.raises(config.ConfigError):
        config.update_config(provider="whisper")
    with pytest.raises(config.ConfigError):
        config.update_config(insert_destination="type")


def test_load_config_reports_corrupt_file(cfg_path):
    cfg_path.write_text("{not json")
    with pytest.raises(config.ConfigError):
        config.load_config()

    cfg_path.write_text(json.dumps({"backend": "whisper"}))
    with pytest.raises(config.ConfigError):
        config.load_config()


def test_credentials_prefer_environment(cfg_path, monkeypatch):
    config.set_credential(Provider.OPENAI, "  sk-file  ")
    cfg = config.load_config()
    assert config.get_credential(cfg, "openai") == "sk-file"
    assert config.get_credential(cfg, Provider.GROQ) == ""

    monkeypatch.setenv("FLOWDICTATE_OPENAI_API_KEY", "sk-env")
    assert config.get_credential(cfg, Provider.OPENAI) == "sk-env"


def test_set_credential_clears_blank_key(cfg_path):
    config.set_credential("groq", "gsk_abc")
    config.set_credential("groq", "   ")
    assert config.load_config().groq_api_key is None


def test_mask_secret():
    assert config.mask_secret("") == ""
    assert config.mask_secret("short") == "*****"
    assert config.mask_secret("sk-1234567890abcd") == "sk-…abcd"
