from __future__ import annotations

import shutil
import sys
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from indexer.core.config import Config  # noqa: E402
from indexer.ledger.store import CheckpointStore  # noqa: E402


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config(temp_dir: Path) -> Config:
    """Config fixture: repo defaults, file source, data_dir in a temp directory."""

    cfg_dst_dir = temp_dir / "config"
    cfg_dst_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(REPO_ROOT / "config" / "default.yaml", cfg_dst_dir / "default.yaml")

    c = Config.from_yaml(cfg_dst_dir / "default.yaml")
    return c.model_copy(
        update={
            "storage": c.storage.model_copy(update={"data_dir": temp_dir / "data"}),
            "source": c.source.model_copy(
                update={"kind": "file", "path": temp_dir / "blocks.jsonl", "poll_interval_seconds": 0.01}
            ),
        }
    )


@pytest.fixture()
def store(temp_dir: Path) -> CheckpointStore:
    return CheckpointStore(temp_dir / "data", genesis_height=100)
