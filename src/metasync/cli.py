"""metasync CLI.

Usage:
    python -m metasync serve [--host HOST] [--port PORT]
    python -m metasync worker [--poll-seconds N]
    python -m metasync run-due [--limit N]
    python -m metasync list [--bucket NAME] [--cursor CURSOR] [--limit N]
    python -m metasync job <job_id>
    python -m metasync cancel <job_id>

Configuration comes from the environment (see metasync.config).

Exit codes:
    0: Success
    1: Error (configuration, store, unknown job, or unexpected)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import Any

from metasync.errors import MetasyncError
from metasync.factory import Runtime, build_runtime
from metasync.retry.worker import RetryWorker

logger = logging.getLogger(__name__)


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2, default=str))


def _error(code: str, message: str) -> int:
    _output_json({"code": code, "message": message})
    return 1


def cmd_serve(args: argparse.Namespace, runtime: Runtime) -> int:
    """Serve the HTTP API with the retry worker running alongside."""
    import uvicorn

    from metasync.api.main import create_app

    worker = RetryWorker(runtime.executor, poll_interval=runtime.settings.worker_poll_seconds)
    app = create_app(runtime.client, worker=worker)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def cmd_worker(args: argparse.Namespace, runtime: Runtime) -> int:
    """Run the retry worker until interrupted."""
    poll = args.poll_seconds or runtime.settings.worker_poll_seconds
    worker = RetryWorker(runtime.executor, poll_interval=poll)

    async def _run() -> None:
        await worker.start()
        try:
            await asyncio.Event().wait()
        finally:
            await worker.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted; retry worker exiting")
    return 0


def cmd_run_due(args: argparse.Namespace, runtime: Runtime) -> int:
    """Execute due retry jobs once."""
    executed = runtime.executor.run_due(limit=args.limit)
    _output_json({"executed": executed})
    return 0


def cmd_list(args: argparse.Namespace, runtime: Runtime) -> int:
    """Print one page of a bucket's metadata."""
    page = runtime.client.page_metadata(args.bucket, args.cursor, args.limit)
    _output_json(page.to_dict())
    return 0


def cmd_job(args: argparse.Namespace, runtime: Runtime) -> int:
    """Print a retry job's state."""
    _output_json(runtime.client.job_status(args.job_id).to_dict())
    return 0


def cmd_cancel(args: argparse.Namespace, runtime: Runtime) -> int:
    """Cancel an in-progress retry job."""
    canceled = runtime.client.cancel_job(args.job_id)
    _output_json({"job_id": args.job_id, "canceled": canceled})
    return 0


COMMANDS: dict[str, Callable[[argparse.Namespace, Runtime], int]] = {
    "serve": cmd_serve,
    "worker": cmd_worker,
    "run-due": cmd_run_due,
    "list": cmd_list,
    "job": cmd_job,
    "cancel": cmd_cancel,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="metasync",
        description="metasync - object metadata index kept in sync with an object store",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    worker_parser = subparsers.add_parser("worker", help="Run the retry worker")
    worker_parser.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        metavar="N",
        help="Seconds between polls (default: METASYNC_WORKER_POLL_SECONDS)",
    )

    run_due_parser = subparsers.add_parser("run-due", help="Execute due retry jobs once")
    run_due_parser.add_argument("--limit", type=int, default=50, help="Most jobs to run")

    list_parser = subparsers.add_parser("list", help="Print a page of bucket metadata")
    list_parser.add_argument("--bucket", default=None, help="Bucket (default: R2_BUCKET)")
    list_parser.add_argument("--cursor", default=None, help="continue_cursor from a prior page")
    list_parser.add_argument("--limit", type=int, default=None, help="Page size")

    job_parser = subparsers.add_parser("job", help="Print a retry job's state")
    job_parser.add_argument("job_id")

    cancel_parser = subparsers.add_parser("cancel", help="Cancel an in-progress retry job")
    cancel_parser.add_argument("job_id")

    return parser


def main(
    argv: list[str] | None = None,
    *,
    runtime_factory: Callable[[], Runtime] = build_runtime,
) -> int:
    """Main entry point.

    Args:
        argv: Arguments (default: sys.argv[1:]).
        runtime_factory: Builds the wired components; injectable for tests.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        runtime = runtime_factory()
        return COMMANDS[args.command](args, runtime)
    except MetasyncError as e:
        return _error(type(e).__name__, str(e))
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        logger.exception("Unexpected error running %s", args.command)
        return _error("INTERNAL_ERROR", str(e))


if __name__ == "__main__":
    sys.exit(main())
