"""indexer.cli

Command line interface entry point for ledger-indexer.

Design constraints:
- argparse-based.
- Lazy imports: do not import heavy dependencies at parse time.
- Exit codes: 0 clean stop, 1 fatal indexer error, 2 usage error.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from indexer.core.config import Config

EPILOG = "Blocks in, balances out. Restart anytime; the checkpoint remembers."


@dataclass(frozen=True)
class CliContext:
    repo_root: Path
    config_path: Path | None


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-indexer",
        description="Project NEP-141 token events from a block stream into a balance ledger.",
        epilog=EPILOG,
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: config/default.yaml overlaid with config/user.yaml).",
    )

    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Consume blocks and keep the ledger current")
    p_run.add_argument("--from-height", type=int, default=None, help="Override the resume height.")
    p_run.add_argument("--concurrency", type=int, default=None, help="In-flight block handlers.")

    sub.add_parser("status", help="Print checkpoint and ledger summary")

    p_bal = sub.add_parser("balances", help="Print ledger balances")
    p_bal.add_argument("--account", default=None, help="Only this account.")

    return parser


def _print_version() -> None:
    from indexer import __version__

    print(f"ledger-indexer v{__version__}")


def _load_config(ctx: CliContext) -> Config:
    from indexer.core.config import Config

    if ctx.config_path is not None:
        return Config.from_yaml(ctx.config_path)

    cfg_dir = ctx.repo_root / "config"
    # default.yaml pulls in user.yaml itself when both exist
    for name in ("default.yaml", "user.yaml"):
        p = cfg_dir / name
        if p.exists():
            return Config.from_yaml(p)
    return Config()


def _cmd_run(ctx: CliContext, args: argparse.Namespace) -> int:
    import asyncio
    import contextlib
    import signal

    from indexer.core.exceptions import IndexerError
    from indexer.core.log import configure_logging
    from indexer.pipeline import Indexer

    config = _load_config(ctx)
    if args.concurrency is not None:
        if args.concurrency < 1:
            print("error: --concurrency must be >= 1", file=sys.stderr)
            return 2
        config = config.model_copy(
            update={"indexer": config.indexer.model_copy(update={"concurrency": args.concurrency})}
        )

    logger = configure_logging(config.logging)
    indexer = Indexer(config, logger=logger)

    async def _main() -> None:
        loop = asyncio.get_running_loop()
        run = asyncio.create_task(indexer.run(from_height=args.from_height), name="indexer-run")
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, run.cancel)
        try:
            await run
        except asyncio.CancelledError:
            if not run.cancelled():
                raise
            logger.info("indexer_stopped", extra={"reason": "signal"})

    try:
        asyncio.run(_main())
    except IndexerError as e:
        logger.error("indexer_failed", exc_info=True, extra={"error_type": type(e).__name__})
        return 1
    return 0


def _cmd_status(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.exceptions import IndexerError
    from indexer.ledger.store import CheckpointStore

    config = _load_config(ctx)
    store = CheckpointStore.from_config(config.storage, config.indexer)

    try:
        checkpoint = store.read_checkpoint()
        state = store.read_state()
        entries = state[1] if state is not None else (store.read_snapshot() or [])
    except IndexerError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print("ledger-indexer status")
    print(f"- data_dir: {store.data_dir}")
    print(f"- contracts: {', '.join(config.indexer.contracts)}")
    print(f"- checkpoint: {checkpoint if checkpoint is not None else f'none (genesis {store.genesis_height})'}")
    print(f"- state height: {state[0] if state is not None else 'none'}")
    print(f"- accounts: {len(entries)}")
    print(f"- total supply: {sum(e.balance for e in entries)}")
    return 0


def _cmd_balances(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.exceptions import IndexerError
    from indexer.ledger.store import CheckpointStore

    config = _load_config(ctx)
    store = CheckpointStore.from_config(config.storage, config.indexer)

    try:
        state = store.read_state()
        entries = state[1] if state is not None else (store.read_snapshot() or [])
    except IndexerError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.account is not None:
        entries = [e for e in entries if e.account_id == args.account]
        if not entries:
            print(f"unknown account: {args.account}", file=sys.stderr)
            return 1

    for e in sorted(entries, key=lambda x: x.account_id):
        print(f"{e.account_id}\t{e.balance}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd(), config_path=args.config)

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "run": _cmd_run,
        "status": _cmd_status,
        "balances": _cmd_balances,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    from indexer.core.exceptions import ConfigError

    try:
        return int(fn(ctx, args))
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
