from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.changes import CONFLICT_STRATEGIES, CONFLICT_STRATEGY_ETAG_FIRST

USER_CONFIG_PATH = Path.home() / ".panel_sync_config.yaml"
DEFAULT_RECORDS_DIR = Path.home() / ".panel_sync" / "records"

ENV_RECORDS_DIR = "PANEL_SYNC_RECORDS_DIR"
ENV_CONFLICT_STRATEGY = "PANEL_SYNC_CONFLICT_STRATEGY"
ENV_REQUEST_CACHE = "PANEL_SYNC_REQUEST_CACHE"
ENV_AUDIT = "PANEL_SYNC_AUDIT"
ENV_FRONT_MATTER = "PANEL_SYNC_FRONT_MATTER"

logger = logging.getLogger("panel_sync.config")


@dataclass(frozen=True)
class SyncSettings:
    records_dir: Path = DEFAULT_RECORDS_DIR
    conflict_strategy: str = CONFLICT_STRATEGY_ETAG_FIRST
    request_cache: bool = True
    audit: bool = True
    front_matter: bool = True

    def with_records_dir(self, path: Optional[Path]) -> "SyncSettings":
        return self if path is None else replace(self, records_dir=Path(path))


def _load_config() -> Dict[str, Any]:
    if not USER_CONFIG_PATH.exists():
        return {}
    try:
        data = yaml.safe_load(USER_CONFIG_PATH.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("ignoring unreadable config %s: %s", USER_CONFIG_PATH, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _save_config(data: Dict[str, Any]) -> None:
    if not data:
        if USER_CONFIG_PATH.exists():
            USER_CONFIG_PATH.unlink()
        return
    USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_PATH.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in ("1", "true", "yes", "on"):
        return True
    if token in ("0", "false", "no", "off"):
        return False
    return default


def _strategy(value: Any) -> str:
    token = str(value or "").strip().lower()
    if token in CONFLICT_STRATEGIES:
        return token
    if token:
        logger.warning("unknown conflict strategy %r, using %s", token, CONFLICT_STRATEGY_ETAG_FIRST)
    return CONFLICT_STRATEGY_ETAG_FIRST


def load_settings(env: Optional[Dict[str, str]] = None) -> SyncSettings:
    """User config file first, environment variables override it."""
    env = os.environ if env is None else env
    data = _load_config()
    records_dir = env.get(ENV_RECORDS_DIR) or data.get("records_dir") or DEFAULT_RECORDS_DIR
    return SyncSettings(
        records_dir=Path(records_dir).expanduser(),
        conflict_strategy=_strategy(env.get(ENV_CONFLICT_STRATEGY) or data.get("conflict_strategy")),
        request_cache=_flag(env.get(ENV_REQUEST_CACHE, data.get("request_cache")), True),
        audit=_flag(env.get(ENV_AUDIT, data.get("audit")), True),
        front_matter=_flag(env.get(ENV_FRONT_MATTER, data.get("front_matter")), True),
    )


def get_user_records_dir() -> str:
    return str(_load_config().get("records_dir", "") or "").strip()


def set_user_records_dir(value: str) -> None:
    data = _load_config()
    value = (value or "").strip()
    if value:
        data["records_dir"] = value
    else:
        data.pop("records_dir", None)
    _save_config(data)
