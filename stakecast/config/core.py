from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .protocol_params import ProtocolParams


_SECRET_MARKERS = ("password", "secret", "token", "key")
_last_yaml_path: Optional[str] = None


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _data_dir(test_mode: bool = False) -> Path:
    return _project_root() / "stakecast" / "data" / ("test" if test_mode else "main")


class DatabaseSettings(BaseModel):
    filename: str = "stakecast.db"
    url: Optional[str] = None
    echo: bool = False

    def database_url(self, test_mode: bool = False) -> str:
        if self.url:
            return self.url
        data_dir = _data_dir(test_mode)
        os.makedirs(data_dir, exist_ok=True)
        return f"sqlite+aiosqlite:///{os.path.abspath(data_dir / self.filename)}"


class LoggingSettings(BaseModel):
    json_logs: bool = True
    level: str = "INFO"
    events_dir: Optional[str] = None
    events_retention_size: int = Field(default=2 * 1024 * 1024, ge=1024)

    @model_validator(mode="before")
    @classmethod
    def _alias_json(cls, data: dict[str, object]) -> dict[str, object]:
        if isinstance(data, dict) and "json" in data and "json_logs" not in data:
            data = dict(data)
            data["json_logs"] = data.pop("json")
        return data


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STAKECAST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    owner: str = "owner"
    test_mode: bool = False
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    protocol: ProtocolParams = Field(default_factory=ProtocolParams)


def last_yaml_path() -> Optional[str]:
    return _last_yaml_path


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    return data


def load_settings(yaml_path: str | os.PathLike[str] | None = None) -> Settings:
    """Build settings from YAML with environment variables taking precedence.

    Lookup order for the YAML file: explicit argument, ``STAKECAST_CONFIG``,
    then ``config/stakecast.yaml`` under the project root. A missing default
    file is not an error; a missing explicit file is.
    """
    global _last_yaml_path

    explicit = yaml_path or os.environ.get("STAKECAST_CONFIG")
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"config file not found: {path}")
    else:
        path = _project_root() / "config" / "stakecast.yaml"

    data: Dict[str, Any] = {}
    if path.exists():
        data = _load_yaml(path)
        _last_yaml_path = str(path.resolve())

    # Init kwargs outrank env vars, so drop the YAML leaves the environment sets
    for env_key in os.environ:
        if env_key.startswith("STAKECAST_") and env_key != "STAKECAST_CONFIG":
            _drop_path(data, env_key[len("STAKECAST_"):].lower().split("__"))
    return Settings(**data)


def _drop_path(data: Dict[str, Any], parts: list[str]) -> None:
    node: Any = data
    for part in parts[:-1]:
        node = node.get(part) if isinstance(node, dict) else None
        if node is None:
            return
    if isinstance(node, dict):
        node.pop(parts[-1], None)


def sanitize_dict(data: Any) -> Any:
    """Redact secret-looking values before logging a settings dump."""
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if any(marker in str(k).lower() for marker in _SECRET_MARKERS):
                out[k] = "***" if v else v
            else:
                out[k] = sanitize_dict(v)
        return out
    if isinstance(data, list):
        return [sanitize_dict(v) for v in data]
    return data


__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "Settings",
    "load_settings",
    "last_yaml_path",
    "sanitize_dict",
    "_project_root",
    "_data_dir",
]
