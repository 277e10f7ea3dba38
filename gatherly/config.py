"""Global configuration for Gatherly."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

DEFAULTS: dict[str, Any] = {
    "for_you_page_size": 10,
    "load_more_page_size": 5,
    "popular_limit": 50,
    "search_limit": 20,
    "public_base_url": "http://localhost:8000",
    "seed_users": 12,
    "seed_events": 30,
    "seed_friendships_per_user": 3,
    "seed_rsvps_per_event": 4,
    "app_host": "0.0.0.0",
    "app_port": 8000,
    # Empty means the SQLite file at database_path.
    "database_url": "",
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "for_you_page_size": int,
    "load_more_page_size": int,
    "popular_limit": int,
    "search_limit": int,
    "public_base_url": str,
    "seed_users": int,
    "seed_events": int,
    "seed_friendships_per_user": int,
    "seed_rsvps_per_event": int,
    "app_host": str,
    "app_port": int,
    "database_url": str,
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    for_you_page_size: int
    load_more_page_size: int
    popular_limit: int
    search_limit: int
    public_base_url: str
    seed_users: int
    seed_events: int
    seed_friendships_per_user: int
    seed_rsvps_per_event: int
    app_host: str
    app_port: int
    database_url: str
    config_path: Path


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    return TYPE_CASTERS[key](value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"GATHERLY_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = Path(database_path) if database_path else resolved_data / "gatherly.db"
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    return resolved_base, resolved_data, resolved_db


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("GATHERLY_BASE_DIR", Path.cwd()))
    env_config = os.getenv("GATHERLY_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "gatherly.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("GATHERLY_DATA_DIR", toml_config.get("data_dir")),
        database_path=os.getenv("GATHERLY_DB", toml_config.get("database_path")),
    )

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    values["public_base_url"] = str(values["public_base_url"]).rstrip("/")
    values["database_url"] = (
        str(values["database_url"]).strip() or f"sqlite:///{database_path_value}"
    )
    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        config_path=config_path,
        **values,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
    }
    for key in DEFAULTS:
        payload[key] = getattr(settings, key)
    return payload


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# Gatherly configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
