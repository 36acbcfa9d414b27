from pathlib import Path

import config
from core.changes import CONFLICT_STRATEGY_ETAG_FIRST, CONFLICT_STRATEGY_TS_ONLY


def test_defaults_without_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "USER_CONFIG_PATH", tmp_path / "missing.yaml")
    settings = config.load_settings(env={})
    assert settings.records_dir == config.DEFAULT_RECORDS_DIR
    assert settings.conflict_strategy == CONFLICT_STRATEGY_ETAG_FIRST
    assert settings.request_cache and settings.audit and settings.front_matter


def test_config_file_then_env_override(monkeypatch, tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("records_dir: /srv/records\nconflict_strategy: ts_only\naudit: false\n", encoding="utf-8")
    monkeypatch.setattr(config, "USER_CONFIG_PATH", cfg)

    settings = config.load_settings(env={})
    assert settings.records_dir == Path("/srv/records")
    assert settings.conflict_strategy == CONFLICT_STRATEGY_TS_ONLY
    assert settings.audit is False

    settings = config.load_settings(
        env={config.ENV_RECORDS_DIR: str(tmp_path), config.ENV_AUDIT: "yes", config.ENV_REQUEST_CACHE: "0"}
    )
    assert settings.records_dir == tmp_path
    assert settings.audit is True
    assert settings.request_cache is False


def test_unknown_strategy_falls_back(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "USER_CONFIG_PATH", tmp_path / "missing.yaml")
    settings = config.load_settings(env={config.ENV_CONFLICT_STRATEGY: "newest"})
    assert settings.conflict_strategy == CONFLICT_STRATEGY_ETAG_FIRST


def test_unreadable_config_is_ignored(monkeypatch, tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("records_dir: [oops\n", encoding="utf-8")
    monkeypatch.setattr(config, "USER_CONFIG_PATH", cfg)
    assert config.load_settings(env={}).records_dir == config.DEFAULT_RECORDS_DIR


def test_user_records_dir_persists(monkeypatch, tmp_path):
    cfg = tmp_path / "cfg.yaml"
    monkeypatch.setattr(config, "USER_CONFIG_PATH", cfg)
    config.set_user_records_dir(str(tmp_path / "records"))
    assert config.get_user_records_dir() == str(tmp_path / "records")
    config.set_user_records_dir("")
    assert config.get_user_records_dir() == ""
    assert not cfg.exists()


def test_with_records_dir():
    settings = config.SyncSettings()
    assert settings.with_records_dir(None) is settings
    assert settings.with_records_dir(Path("/tmp/x")).records_dir == Path("/tmp/x")
