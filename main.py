"""CLI entrypoint: serve the API or run lookups and maintenance from the shell."""

from __future__ import annotations

import argparse
import asyncio
import json

from config import get_server_settings, get_settings
from core import KEY_FIELDS
from utils.exceptions import KeyValidationError
from utils.logger import setup_logger
from webapp.runtime import ServiceRuntime, set_runtime


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str, indent=2))


async def _lookup(runtime: ServiceRuntime, args: argparse.Namespace) -> None:
    key = {name: getattr(args, name) for name in KEY_FIELDS}
    result = await runtime.coordinator.lookup(key, provider=args.provider, force_refresh=args.force_refresh)
    _print(result.response_body())
    if result.job_launched and args.wait:
        await runtime.runner.drain()
        _print(await runtime.mirror.fetch(result.key.composite_id))


async def _repopulate(runtime: ServiceRuntime, args: argparse.Namespace) -> None:
    summary = await runtime.repopulator.run(
        days=args.days,
        provider=args.provider,
        limit=args.limit,
        concurrency=args.concurrency,
    )
    _print(summary.model_dump(mode="json", exclude_none=True))


async def _purge(runtime: ServiceRuntime, args: argparse.Namespace) -> None:
    purged = await runtime.coordinator.purge_older_than(args.days)
    _print({"ok": True, "purged_older_than_days": args.days, "purged": purged})


async def _run(handler, args: argparse.Namespace) -> None:
    runtime = ServiceRuntime.build(get_settings())
    set_runtime(runtime)
    await runtime.start()
    try:
        await handler(runtime, args)
    finally:
        await runtime.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="Visa requirements cache CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    lookup = sub.add_parser("lookup")
    for name in KEY_FIELDS:
        lookup.add_argument(f"--{name.replace('_', '-')}", dest=name, required=True)
    lookup.add_argument("--provider", default="openai")
    lookup.add_argument("--force-refresh", action="store_true")
    lookup.add_argument("--wait", action="store_true", help="wait for the regeneration job and print the result")

    repop = sub.add_parser("repopulate")
    repop.add_argument("--days", type=int, default=30)
    repop.add_argument("--provider", default="openai")
    repop.add_argument("--limit", type=int, default=100)
    repop.add_argument("--concurrency", type=int, default=3)

    purge = sub.add_parser("purge")
    purge.add_argument("--days", type=int, default=30)

    args = parser.parse_args()
    setup_logger()

    if args.command == "serve":
        import uvicorn

        server = get_server_settings()
        uvicorn.run(
            "webapp.app:app",
            host=args.host or server.host,
            port=args.port or server.port,
        )
        return

    handlers = {
        "lookup": _lookup,
        "repopulate": _repopulate,
        "purge": _purge,
    }
    try:
        asyncio.run(_run(handlers[args.command], args))
    except KeyValidationError as exc:
        _print({"error": exc.message})
        raise SystemExit(2)


if __name__ == "__main__":
    main()
