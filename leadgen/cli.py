# leadgen/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any, TextIO

from redis.exceptions import RedisError

from leadgen.admin.metrics import queue_status_payload
from leadgen.cache import DOMAIN_NAMESPACE, EXECUTIVE_NAMESPACE, LookupCache, RedisCache
from leadgen.config import AppConfig, load_settings
from leadgen.db import LeadStore
from leadgen.queueing.context import build_context
from leadgen.queueing.redis_conn import get_redis
from leadgen.queueing.scheduler import RQScheduler
from leadgen.queueing.tasks import enqueue_domain_job, run_inline

log = logging.getLogger(__name__)

REQUEUE_STATUSES = ("pending",)


def _section(title: str, out: TextIO) -> None:
    out.write(f"=== {title} ===\n")


def _dump_json(payload: Any, out: TextIO) -> None:
    json.dump(payload, out, indent=2, sort_keys=True, default=str)
    out.write("\n")


def _print_file_stats(file_id: str, stats: dict[str, int], out: TextIO) -> None:
    _section(f"File {file_id}", out)
    for key in (
        "current_total",
        "pending",
        "processing",
        "completed",
        "failed",
        "with_domain",
        "with_ceo",
    ):
        out.write(f"  {key:14} {int(stats.get(key, 0)):6d}\n")


def _print_queue_status(payload: dict[str, Any], out: TextIO) -> None:
    _section("Queues", out)
    queues = payload.get("queues", {}) or {}
    header = f"{'name':16} {'queued':>8} {'started':>8} {'failed':>8} {'scheduled':>10}"
    out.write("  " + header + "\n")
    out.write("  " + "-" * len(header) + "\n")
    for name, q in queues.items():
        out.write(
            f"  {name:16} {int(q.get('queued', 0)):8d} {int(q.get('started', 0)):8d} "
            f"{int(q.get('failed', 0)):8d} {int(q.get('scheduled', 0)):10d}\n"
        )

    _section("Workers", out)
    workers = payload.get("workers", []) or []
    if not workers:
        out.write("  (no workers reported)\n")
    for w in workers:
        out.write(f"  - {w.get('name', '(unnamed)')}: state={w.get('state', 'unknown')}, "
                  f"queues=[{', '.join(w.get('queues', []) or [])}]\n")


# -----------------------------
# Commands
# -----------------------------


def cmd_init_db(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    LeadStore(settings.db.path).ensure_schema()
    out.write(f"schema ready: {settings.db.path}\n")
    return 0


def cmd_serve(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    import uvicorn

    from leadgen.api.app import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


def cmd_worker(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    from leadgen.queueing import worker

    worker.run(args.queues or None, burst=args.burst)
    return 0


def cmd_status(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    store = LeadStore(settings.db.path)
    if store.get_file(args.file_id) is None:
        sys.stderr.write(f"unknown file: {args.file_id}\n")
        return 1
    stats = store.file_stats(args.file_id)
    if args.json:
        _dump_json({"file_id": args.file_id, **stats}, out)
    else:
        _print_file_stats(args.file_id, stats, out)
    return 0


def cmd_queues(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    try:
        redis = get_redis(settings.queue.redis_url)
        redis.ping()
    except RedisError as exc:
        log.warning("redis unavailable; reporting zeroed stats", extra={"exc": str(exc)})
        redis = None
    payload = queue_status_payload(redis, settings.queue)
    if args.json:
        _dump_json(payload, out)
    else:
        _print_queue_status(payload, out)
    return 0


def cmd_requeue(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    store = LeadStore(settings.db.path)
    leads = store.list_leads(args.file_id, statuses=REQUEUE_STATUSES)
    scheduler = RQScheduler(get_redis(settings.queue.redis_url), settings.queue)
    for lead in leads:
        enqueue_domain_job(
            scheduler,
            lead.id,
            lead.company,
            jitter_seconds=settings.scheduling.domain_jitter_seconds,
            user_id="cli-requeue",
        )
    out.write(f"requeued {len(leads)} lead(s) from file {args.file_id}\n")
    return 0


def cmd_clear_cache(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    cache = LookupCache(RedisCache(get_redis(settings.queue.redis_url)), prefix=settings.cache.prefix)
    namespace = {
        "domain": DOMAIN_NAMESPACE,
        "executive": EXECUTIVE_NAMESPACE,
        "all": None,
    }[args.which]
    removed = cache.clear(namespace)
    out.write(f"removed {removed} cache entr{'y' if removed == 1 else 'ies'}\n")
    return 0


def cmd_run_inline(args: argparse.Namespace, settings: AppConfig, out: TextIO) -> int:
    """Run every pending lead of a file through the whole pipeline in this process."""
    ctx = build_context(settings, inline=True)
    try:
        leads = ctx.store.list_leads(args.file_id, statuses=REQUEUE_STATUSES)
        for lead in leads:
            enqueue_domain_job(ctx.scheduler, lead.id, lead.company, jitter_seconds=0.0)
        ran = run_inline(ctx)
        stats = ctx.store.file_stats(args.file_id)
    finally:
        ctx.close()
    out.write(f"ran {ran} job(s) for {len(leads)} lead(s)\n")
    _print_file_stats(args.file_id, stats, out)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leadgen",
        description="Lead enrichment pipeline: workers, status and maintenance.",
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("init-db", help="Create the sqlite schema if missing.")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("worker", help="Run an RQ worker for the pipeline queues.")
    p.add_argument("--queues", nargs="*", default=None, help="Queue names (default: all stages).")
    p.add_argument("--burst", action="store_true", help="Exit once the queues are empty.")
    p.set_defaults(func=cmd_worker)

    p = sub.add_parser("serve", help="Serve the HTTP API with uvicorn.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("status", help="Show lead counts for an extraction file.")
    p.add_argument("file_id")
    p.add_argument("--json", action="store_true", help="Emit JSON instead of text.")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("queues", help="Show queue and worker stats.")
    p.add_argument("--json", action="store_true", help="Emit JSON instead of text.")
    p.set_defaults(func=cmd_queues)

    p = sub.add_parser("requeue", help="Re-enqueue domain jobs for a file's pending leads.")
    p.add_argument("file_id")
    p.set_defaults(func=cmd_requeue)

    p = sub.add_parser("clear-cache", help="Drop cached lookups.")
    p.add_argument("which", choices=["domain", "executive", "all"])
    p.set_defaults(func=cmd_clear_cache)

    p = sub.add_parser("run-inline", help="Process a file's pending leads without Redis.")
    p.add_argument("file_id")
    p.set_defaults(func=cmd_run_inline)

    return parser


def main(argv: Sequence[str] | None = None, *, out: TextIO | None = None) -> int:
    """
    Entry point for the leadgen CLI.

        python -m leadgen.cli init-db
        python -m leadgen.cli worker --queues find-domain
        python -m leadgen.cli status <file-id> --json
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if not getattr(args, "func", None):
        parser.print_help(file=sys.stderr)
        return 1

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    return args.func(args, load_settings(), out or sys.stdout)


__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
