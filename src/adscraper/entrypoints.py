"""Process entrypoints: fetch one assignment, run a worker, report an exit code."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from dataclasses import dataclass
from typing import Any, Callable

from .config import CrawlerFlags
from .db import CrawlDb, sql_connect
from .errors import ExitCode, InputError
from .logging import add_log_file, configure_logging, jlog, logging_context, set_log_level
from .queue import POLL_ATTEMPTS, POLL_INTERVAL_S, JobQueue
from .worker import Worker

DEFAULT_BROKER_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
DEFAULT_DATA_DIR = os.getenv("ADSCRAPER_DATA_DIR", "/home/node/data")


@dataclass
class WorkerArgs:
    job_id: int
    broker_url: str
    completion_index: int | None
    data_dir: str
    log_level: str


def parse_args(argv: list[str] | None = None) -> WorkerArgs:
    p = argparse.ArgumentParser(description="Run one ad crawler worker")
    p.add_argument("--job-id", type=int, required=True)
    p.add_argument("--broker-url", default=DEFAULT_BROKER_URL, help="Redis URL of the work queue")
    p.add_argument(
        "--completion-index",
        type=int,
        default=os.getenv("JOB_COMPLETION_INDEX"),
        help="Index of the crawl input file to run (indexed workers only)",
    )
    p.add_argument("--data-dir", default=DEFAULT_DATA_DIR)
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info"), choices=["error", "warning", "info", "debug", "verbose"])
    args = p.parse_args(argv)
    return WorkerArgs(
        job_id=args.job_id,
        broker_url=args.broker_url,
        completion_index=None if args.completion_index is None else int(args.completion_index),
        data_dir=args.data_dir,
        log_level=args.log_level,
    )


def crawl_input_path(data_dir: str, job_id: int, index: int) -> str:
    return os.path.join(data_dir, f"job{job_id}", "crawl_inputs", f"crawl_input_{index}.json")


def parse_assignment(body: str | bytes) -> CrawlerFlags:
    try:
        doc: Any = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise InputError(f"crawl assignment is not valid JSON: {exc}") from exc
    return CrawlerFlags.from_dict(doc)


def process_assignment(
    body: str | bytes,
    db: CrawlDb,
    requeue: Callable[[], object] | None = None,
    worker_factory: Callable[..., Worker] = Worker,
) -> int:
    """Run the crawl described by ``body``; return the worker's exit code."""

    try:
        flags = parse_assignment(body)
    except InputError as exc:
        jlog("error", event="invalid_assignment", error=str(exc))
        return int(ExitCode.INPUT_ERROR)

    set_log_level(flags.log_level)
    jlog("debug", event="assignment_parsed", job_id=flags.job_id, crawl_name=flags.crawl_name)
    if os.path.isdir(flags.output_dir):
        add_log_file(flags.output_dir, flags.crawl_name)
    with logging_context(job_id=flags.job_id, crawl_name=flags.crawl_name):
        worker = worker_factory(flags, db, requeue=requeue)
        return asyncio.run(worker.main())


def run_queue_worker(
    args: WorkerArgs,
    queue: JobQueue | None = None,
    db: CrawlDb | None = None,
    worker_factory: Callable[..., Worker] = Worker,
    poll_interval_s: float = POLL_INTERVAL_S,
) -> int:
    """Take one assignment from the job's queue and crawl it.

    The delivery is acknowledged only once the worker has finished, or once
    an error escapes it. A worker killed by a signal before it started
    crawling hands its delivery back to the queue untouched.
    """

    db = db or CrawlDb(sql_connect())
    queue = queue or JobQueue.from_url(args.broker_url, args.job_id)
    delivery = queue.poll(attempts=POLL_ATTEMPTS, interval_s=poll_interval_s)
    if delivery is None:
        jlog("info", event="queue_empty", queue=queue.name)
        return int(ExitCode.OK)

    with logging_context(delivery=delivery.token, priority=delivery.priority):
        try:
            code = process_assignment(
                delivery.body,
                db,
                requeue=lambda: queue.requeue(delivery),
                worker_factory=worker_factory,
            )
        except SystemExit:
            queue.release(delivery)
            raise
        except Exception:
            # Not redelivered: the error is in the assignment or the runner, not the crawl.
            queue.ack(delivery)
            raise
        queue.ack(delivery)
    jlog("info", event="worker_finished", exit_code=code)
    return code


def run_indexed_worker(
    args: WorkerArgs,
    db: CrawlDb | None = None,
    worker_factory: Callable[..., Worker] = Worker,
) -> int:
    """Crawl the input file selected by the job completion index."""

    if args.completion_index is None:
        raise InputError("no completion index given (--completion-index or JOB_COMPLETION_INDEX)")
    path = crawl_input_path(args.data_dir, args.job_id, args.completion_index)
    with open(path, encoding="utf-8") as fh:
        body = fh.read()
    db = db or CrawlDb(sql_connect())
    with logging_context(completion_index=args.completion_index):
        code = process_assignment(body, db, worker_factory=worker_factory)
    jlog("info", event="worker_finished", exit_code=code)
    return code


def _guarded(run: Callable[[WorkerArgs], int], argv: list[str] | None) -> int:
    try:
        args = parse_args(argv)
        configure_logging(args.log_level)
        return run(args)
    except Exception as exc:
        jlog("error", event="run_script_failed", error=str(exc), error_type=type(exc).__name__)
        return int(ExitCode.RUN_SCRIPT_ERROR)


def queue_worker_main(argv: list[str] | None = None) -> int:
    return _guarded(run_queue_worker, argv)


def indexed_worker_main(argv: list[str] | None = None) -> int:
    return _guarded(run_indexed_worker, argv)


__all__ = [
    "WorkerArgs",
    "crawl_input_path",
    "indexed_worker_main",
    "parse_args",
    "parse_assignment",
    "process_assignment",
    "queue_worker_main",
    "run_indexed_worker",
    "run_queue_worker",
]
