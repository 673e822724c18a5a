"""indexer.sources.registry

Sources report for duty by name.

Registry responsibilities:
- @register_source("name") decorator
- lookup/list helpers
- module auto-discovery (import indexer.sources.* to trigger decorators)
- build the configured source
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from collections.abc import Callable
from typing import Any

from indexer.core.client import BlockFeedClient
from indexer.core.config import SourceConfig
from indexer.core.exceptions import ConfigError
from indexer.sources.base import BaseBlockSource, SourceContext

_REGISTRY: dict[str, type[BaseBlockSource]] = {}
_DISCOVERED = False


def register_source(name: str) -> Callable[[type[Any]], type[Any]]:
    def _decorator(cls: type[Any]) -> type[Any]:
        if name in _REGISTRY and _REGISTRY[name] is not cls:
            raise ValueError(f"source already registered: {name}")

        setattr(cls, "name", name)
        _REGISTRY[name] = cls
        return cls

    return _decorator


def discover() -> None:
    global _DISCOVERED
    if _DISCOVERED:
        return

    pkg_name = "indexer.sources"
    pkg = importlib.import_module(pkg_name)

    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{pkg_name}."):
        if m.name.endswith(".base") or m.name.endswith(".registry"):
            continue
        importlib.import_module(m.name)

    _DISCOVERED = True


def get_source(name: str) -> type[BaseBlockSource]:
    discover()
    try:
        return _REGISTRY[name]
    except KeyError as e:
        raise ConfigError(f"unknown block source: {name} (known: {', '.join(list_sources())})") from e


def list_sources() -> list[str]:
    discover()
    return sorted(_REGISTRY)


def build_source(config: SourceConfig, *, client: BlockFeedClient | None, logger: logging.Logger) -> BaseBlockSource:
    cls = get_source(config.kind)
    return cls(SourceContext(config=config, client=client, logger=logger))
