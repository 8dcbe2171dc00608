"""Worker lifecycle: pre-crawl checks, the crawl itself, cleanup and exit code.

A worker moves through ``PRE_CRAWL -> CRAWLING -> POST_CRAWL``. A termination
signal during ``PRE_CRAWL`` exits straight away since nothing needs cleaning
up. During ``CRAWLING`` it closes the browser, which makes the traversal loop
stop early, and cleanup still runs. During ``POST_CRAWL`` it is only recorded
so that the profile write-back can finish. Whenever a signal was recorded the
process exits with ``128 + signum``.
"""

from __future__ import annotations

import asyncio
import os
import signal
from enum import Enum
from typing import Callable

from .ads.detection import load_ad_selectors
from .config import CrawlerFlags
from .context import CrawlContext
from .crawler import CrawlList, CrawlState, load_crawl_list, run_crawl, start_or_resume_crawl
from .db import CrawlDb
from .errors import ExitCode, InputError, NonRetryableError, signal_exit_code
from .logging import jlog
from .playwright import BrowserSession
from .profile import Checkpointer, ProfileStore
from .retry import FailureClass, classify_failure, exit_code_for, should_requeue, should_save_profile

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class WorkerState(Enum):
    PRE_CRAWL = "pre_crawl"
    CRAWLING = "crawling"
    POST_CRAWL = "post_crawl"


class Worker:
    def __init__(
        self,
        flags: CrawlerFlags,
        db: CrawlDb,
        *,
        requeue: Callable[[], object] | None = None,
        session_factory: Callable[..., BrowserSession] = BrowserSession,
        store_factory: Callable[..., ProfileStore] = ProfileStore,
    ) -> None:
        self.flags = flags
        self.db = db
        # Pushes the assignment back onto the work queue; None for indexed workers.
        self.requeue = requeue
        self.session_factory = session_factory
        self.store = store_factory(flags.profile)
        self.ctx = CrawlContext(flags=flags, db=db)
        self.state = WorkerState.PRE_CRAWL
        self.received_signal: int | None = None
        self._shutdown: asyncio.Task | None = None

    def handle_signal(self, signum: int) -> None:
        jlog("warning", event="signal_received", signal=int(signum), state=self.state.value)
        if self.state is WorkerState.PRE_CRAWL:
            raise SystemExit(signal_exit_code(signum))
        self.received_signal = int(signum)
        if self.state is WorkerState.CRAWLING and not self.ctx.interrupted:
            self.ctx.interrupted = True
            if self.ctx.session is not None:
                self._shutdown = asyncio.get_running_loop().create_task(self.ctx.session.close_browser())

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in TERMINATION_SIGNALS:
            loop.add_signal_handler(signum, self.handle_signal, signum)

    async def main(self) -> int:
        self.install_signal_handlers()
        return await self.run()

    def _check_output_dir(self) -> None:
        output_dir = self.flags.output_dir
        if not os.path.isdir(output_dir):
            raise InputError(f"output directory {output_dir} does not exist")
        if not os.access(output_dir, os.W_OK):
            raise NonRetryableError(f"output directory {output_dir} is not writable")

    def _already_completed(self) -> bool:
        name = self.flags.crawl_name
        if not name:
            return False
        previous = self.db.find_crawl_by_name(name)
        return bool(previous and previous.get("completed"))

    async def _prepare(self) -> tuple[CrawlList, CrawlState] | None:
        """Validate the assignment and environment; ``None`` if there is nothing to do."""

        self._check_output_dir()
        if self._already_completed():
            jlog("info", event="crawl_already_completed", crawl_name=self.flags.crawl_name)
            return None
        if self.store.new_target_exists():
            raise InputError(f"profile write-back location {self.flags.profile.new_profile_dir} already exists")
        crawl_list = load_crawl_list(self.flags)
        state = start_or_resume_crawl(self.flags, self.db, crawl_list)
        await asyncio.to_thread(self.store.restore)
        try:
            self.ctx.ad_selectors = load_ad_selectors(self.flags.ad_selectors_file)
        except (OSError, ValueError) as exc:
            raise InputError(f"could not load ad selectors: {exc}") from exc
        return crawl_list, state

    async def run(self) -> int:
        try:
            prepared = await self._prepare()
        except Exception as exc:
            failure = classify_failure(exc)
            jlog("error", event="pre_crawl_failed", failure=failure.value, error=str(exc))
            self._maybe_requeue(failure)
            return int(exit_code_for(failure))
        if prepared is None:
            return int(ExitCode.OK)
        crawl_list, state = prepared

        self.state = WorkerState.CRAWLING
        failure: FailureClass | None = None
        try:
            session = self.session_factory(self.flags.chrome, self.flags.profile)
            self.ctx.session = session
            await session.launch()
            checkpointer = Checkpointer(self.ctx, self.store) if self.flags.should_checkpoint else None
            await run_crawl(self.ctx, crawl_list, state, checkpointer)
        except Exception as exc:
            failure = classify_failure(exc)
            jlog("error", event="crawl_failed", crawl_id=state.crawl_id, failure=failure.value, error=str(exc))
        finally:
            self.state = WorkerState.POST_CRAWL

        failure = await self._post_crawl(state, failure)
        self._maybe_requeue(failure)
        if self.received_signal is not None:
            return signal_exit_code(self.received_signal)
        return int(exit_code_for(failure))

    async def _post_crawl(self, state: CrawlState, failure: FailureClass | None) -> FailureClass | None:
        if self._shutdown is not None:
            await self._shutdown
        if self.ctx.session is not None:
            await self.ctx.session.close()

        if self.flags.profile.write_profile and should_save_profile(failure):
            try:
                await asyncio.to_thread(
                    self.store.save,
                    job_id=self.flags.job_id,
                    crawl_id=state.crawl_id,
                    crawl_name=self.flags.crawl_name,
                )
            except Exception as exc:
                jlog("error", event="profile_save_failed", error=str(exc))
                if failure is None:
                    failure = classify_failure(exc)
        return failure

    def _maybe_requeue(self, failure: FailureClass | None) -> None:
        if not should_requeue(failure):
            return
        if self.requeue is None:
            jlog("info", event="requeue_unavailable", job_id=self.flags.job_id)
            return
        self.requeue()


__all__ = ["TERMINATION_SIGNALS", "Worker", "WorkerState"]
