"""Entrypoint for running the client core from the command line.

``run`` starts connectivity monitoring and replays queued writes whenever the
network comes back; the other commands are one-shot maintenance tasks.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime

from . import config
from .logger import setup_logging
from .runtime import ClientRuntime, build_runtime

logger = logging.getLogger(__name__)

STARTUP_TIME = datetime.now()


async def _serve(runtime: ClientRuntime) -> None:
    await runtime.start()
    logger.info("Client core running since %s", STARTUP_TIME.strftime("%Y-%m-%d %H:%M:%S"))
    try:
        await asyncio.Event().wait()
    finally:
        await runtime.stop()


async def _stats(runtime: ClientRuntime) -> dict[str, object]:
    stats = await runtime.cache.stats()
    return {
        "memory_items": stats.memory_items,
        "persistent_items": stats.persistent_items,
        "expired_items": stats.expired_items,
        "total_size_bytes": stats.total_size_bytes,
        "total_size_kb": stats.total_size_kb,
        "pending_operations": len(await runtime.queue.pending_operations()),
        "dead_letters": len(await runtime.queue.dead_letters()),
    }


async def _pending(runtime: ClientRuntime) -> list[dict[str, object]]:
    return [op.to_dict() for op in await runtime.queue.pending_operations()]


async def _sync(runtime: ClientRuntime) -> dict[str, object]:
    result = await runtime.queue.sync_pending_operations()
    return {
        "processed": result.processed,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "requeued": result.requeued,
        "dead_lettered": result.dead_lettered,
        "errors": result.errors,
    }


async def _clear_expired(runtime: ClientRuntime) -> dict[str, object]:
    return {"removed": await runtime.cache.clear_expired()}


async def _clear_cache(runtime: ClientRuntime) -> dict[str, object]:
    await runtime.cache.clear_all()
    return {"cleared": True}


COMMANDS = {
    "stats": _stats,
    "pending": _pending,
    "sync": _sync,
    "clear-expired": _clear_expired,
    "clear-cache": _clear_cache,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="barbershop-client")
    parser.add_argument(
        "command",
        choices=["run", *COMMANDS],
        help="run the sync service or a maintenance command",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    config.validate_settings()
    runtime = build_runtime(config.settings)

    if args.command == "run":
        logger.info("Starting barbershop_client")
        try:
            asyncio.run(_serve(runtime))
        except KeyboardInterrupt:
            logger.info("Stopped")
        return 0

    output = asyncio.run(COMMANDS[args.command](runtime))
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
