"""indexer.core.config

Two config surfaces only:
1) `config/default.yaml` (optionally a user file next to it)
2) Environment variables (``LEDGER_INDEXER_`` prefix, ``__`` for nesting)

Everything else is derived.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from indexer import DEFAULT_GENESIS_HEIGHT
from indexer.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class IndexerConfig(BaseModel):
    """What to watch and where to start."""

    contracts: list[str] = ["dev-1660278675045-43011334123486"]
    genesis_height: int = DEFAULT_GENESIS_HEIGHT
    concurrency: int = 1

    @field_validator("contracts")
    @classmethod
    def contracts_must_not_be_empty(cls, v: list[str]) -> list[str]:
        cleaned = [c.strip() for c in v if c and c.strip()]
        if not cleaned:
            raise ValueError("at least one contract id must be watched")
        return cleaned

    @field_validator("genesis_height")
    @classmethod
    def genesis_height_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("genesis_height must be >= 0")
        return v

    @field_validator("concurrency")
    @classmethod
    def concurrency_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("concurrency must be >= 1")
        return v


class SourceConfig(BaseModel):
    kind: Literal["http", "file"] = "http"
    url: str = "http://127.0.0.1:8080"
    path: Path = Path("blocks.jsonl")
    batch_size: int = 10
    poll_interval_seconds: float = 2.0
    follow: bool = False

    @field_validator("batch_size")
    @classmethod
    def batch_size_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("batch_size must be >= 1")
        return v


class StorageConfig(BaseModel):
    data_dir: Path = Path("data")
    snapshot_file: str = "data.json"
    checkpoint_file: str = "last_block.txt"
    state_file: str = "state.json"


class ClientSettings(BaseModel):
    rate_limit_rps: float = 5.0
    max_retries: int = 3
    timeout_s: float = 20.0
    backoff_base_s: float = 1.0
    backoff_max_s: float = 8.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown_s: float = 30.0
    max_response_bytes: int = 32 * 1024 * 1024


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def level_must_be_known(cls, v: str) -> str:
        lvl = v.upper()
        if lvl not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return lvl


class Config(BaseSettings):
    """Root configuration. Single source of truth.

    Precedence, highest first: environment, YAML files (passed as init
    values by ``from_yaml``), field defaults.
    """

    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "LEDGER_INDEXER_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = _load_yaml(path)

        # user.yaml overlays default.yaml when both live in the same directory
        user = path.parent / "user.yaml"
        if path.name != "user.yaml" and user.exists():
            raw = _deep_merge(raw, _load_yaml(user))

        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid config in {path}: {e}") from e


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must hold a mapping: {path}")
    return data
