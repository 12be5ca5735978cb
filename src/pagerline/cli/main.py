from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from pagerline.cli.oncall import handle_oncall_command, register_oncall_parsers
from pagerline.cli.ux import error, info
from pagerline.config import get_settings
from pagerline.core.errors import (
    ExitCode,
    PagerlineError,
    format_error_message,
    main_with_error_handling,
)
from pagerline.db.session import dispose_engine, init_engine
from pagerline.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagerline", description="Pagerline on-call CLI")
    subparsers = parser.add_subparsers(dest="command")

    register_oncall_parsers(subparsers)

    worker = subparsers.add_parser("worker", help="Run the paging job worker (memory/redis queue)")
    worker.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    return parser


async def _run_worker() -> None:
    from pagerline.workers.handler import run_worker

    settings = get_settings()
    init_engine(settings)
    try:
        await run_worker(settings)
    finally:
        await dispose_engine()


def worker_command(log_level: str = "INFO") -> int:
    configure_logging(log_level.upper())
    info(f"Worker polling the {get_settings().job_queue_backend} queue (Ctrl+C to stop)")
    asyncio.run(_run_worker())
    return ExitCode.SUCCESS


@main_with_error_handling(log_errors=False)
def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return ExitCode.SUCCESS

    try:
        if args.command == "worker":
            return worker_command(args.log_level)
        return handle_oncall_command(args)
    except PagerlineError as exc:
        error(format_error_message(exc))
        raise


if __name__ == "__main__":
    raise SystemExit(main())
