from __future__ import annotations

from pathlib import Path

import pytest

from indexer import DEFAULT_GENESIS_HEIGHT
from indexer.core.config import Config, IndexerConfig
from indexer.core.exceptions import ConfigError


def test_defaults_match_the_deployed_contract() -> None:
    cfg = Config()
    assert cfg.indexer.contracts == ["dev-1660278675045-43011334123486"]
    assert cfg.indexer.genesis_height == DEFAULT_GENESIS_HEIGHT
    assert cfg.indexer.concurrency == 1
    assert cfg.storage.checkpoint_file == "last_block.txt"


def test_repo_default_yaml_loads(test_config: Config) -> None:
    assert test_config.source.kind == "file"
    assert test_config.logging.level == "INFO"


def test_config_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_INDEXER_INDEXER__CONCURRENCY", "4")
    monkeypatch.setenv("LEDGER_INDEXER_SOURCE__KIND", "file")
    cfg = Config()
    assert cfg.indexer.concurrency == 4
    assert cfg.source.kind == "file"


def test_user_yaml_overlays_default(tmp_path: Path) -> None:
    (tmp_path / "default.yaml").write_text("indexer:\n  concurrency: 2\n  genesis_height: 5\n")
    (tmp_path / "user.yaml").write_text("indexer:\n  concurrency: 8\n")

    cfg = Config.from_yaml(tmp_path / "default.yaml")
    assert cfg.indexer.concurrency == 8
    assert cfg.indexer.genesis_height == 5


def test_contract_watch_set_from_yaml(tmp_path: Path) -> None:
    (tmp_path / "default.yaml").write_text("indexer:\n  contracts: [a.testnet, ' b.testnet ']\n")
    cfg = Config.from_yaml(tmp_path / "default.yaml")
    assert cfg.indexer.contracts == ["a.testnet", "b.testnet"]


def test_config_from_yaml_raises_if_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        Config.from_yaml(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "indexer:\n  concurrency: 0\n",
        "indexer:\n  contracts: []\n",
        "indexer:\n  genesis_height: -1\n",
        "source:\n  kind: carrier-pigeon\n",
        "logging:\n  level: LOUD\n",
        "indexer: [unclosed\n",
    ],
)
def test_invalid_config_raises_config_error(tmp_path: Path, content: str) -> None:
    (tmp_path / "default.yaml").write_text(content)
    with pytest.raises(ConfigError):
        Config.from_yaml(tmp_path / "default.yaml")


def test_indexer_config_validators() -> None:
    with pytest.raises(ValueError):
        IndexerConfig(concurrency=0)


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "default.yaml").write_text(
        "indexer:\n  concurrency: 1\n  genesis_height: 5\nlogging:\n  level: INFO\n"
    )
    monkeypatch.setenv("LEDGER_INDEXER_INDEXER__CONCURRENCY", "4")
    monkeypatch.setenv("LEDGER_INDEXER_LOGGING__LEVEL", "debug")

    cfg = Config.from_yaml(tmp_path / "default.yaml")
    assert cfg.indexer.concurrency == 4
    assert cfg.indexer.genesis_height == 5
    assert cfg.logging.level == "DEBUG"


def test_env_overrides_repo_default_yaml(test_config: Config, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_INDEXER_SOURCE__BATCH_SIZE", "50")
    cfg = Config.from_yaml(temp_dir / "config" / "default.yaml")
    assert cfg.source.batch_size == 50
    assert cfg.indexer.contracts == test_config.indexer.contracts


@pytest.mark.parametrize("user_content", ["indexer: [unclosed\n", "- just\n- a list\n"])
def test_malformed_user_yaml_raises_config_error(tmp_path: Path, user_content: str) -> None:
    (tmp_path / "default.yaml").write_text("indexer:\n  concurrency: 2\n")
    (tmp_path / "user.yaml").write_text(user_content)
    with pytest.raises(ConfigError):
        Config.from_yaml(tmp_path / "default.yaml")
