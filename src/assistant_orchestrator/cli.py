"""Command line entry point for migrations, the job worker, backfills, and the API."""

from __future__ import annotations

import argparse
import logging
import sys

from assistant_orchestrator.config.settings import get_settings
from assistant_orchestrator.runtime import build_runtime

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="assistant-orchestrator")
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Create database tables if they do not exist.")

    worker = subparsers.add_parser("worker", help="Run the job worker until interrupted.")
    worker.add_argument("--worker-id", default=None)
    worker.add_argument(
        "--drain",
        action="store_true",
        help="Process ready jobs and exit instead of polling forever.",
    )

    backfill = subparsers.add_parser(
        "backfill-embeddings", help="Embed tasks and chat messages stored without vectors."
    )
    backfill.add_argument("--limit", type=int, default=100)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("assistant_orchestrator.api.main:app", host=args.host, port=args.port)
        return 0

    try:
        runtime = build_runtime(settings, migrate=args.command == "migrate")
    except RuntimeError as exc:
        logger.error("event=startup_failed reason=%s", exc)
        return 2

    if args.command == "migrate":
        logger.info("event=migrate_done")
        return 0

    if args.command == "worker":
        worker = runtime.build_worker(worker_id=args.worker_id)
        if args.drain:
            processed = worker.drain()
            logger.info("event=worker_drained jobs=%d", processed)
        else:
            worker.run_forever()
        return 0

    if args.command == "backfill-embeddings":
        report = runtime.memory.backfill_embeddings(limit=args.limit)
        print(report.model_dump_json())
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
