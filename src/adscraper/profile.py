"""Browser profile persistence: restore before launch, write back after crawling.

The browser always runs on a local working copy of the profile. The durable
copy lives either in a local directory (mounted volume) or under a
``gs://bucket/prefix`` location, where it is stored as a single tar.gz
object. Chromium's ``Singleton*`` lock files, symlinks and files that vanish
while copying are never persisted.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import socket
import tarfile
import tempfile
import time
from datetime import datetime, timezone
from typing import Callable

from google.cloud import storage  # type: ignore[attr-defined]

from .config import ProfileOptions
from .context import CrawlContext
from .errors import NonRetryableError
from .logging import jlog
from .metadata import build_profile_metadata
from .storage import PROFILE_ARCHIVE_NAME, download_profile_archive, is_gcs_uri, profile_archive_exists, upload_profile_archive
from .versioning import get_crawler_version

UTC = getattr(datetime, "UTC", timezone.utc)
SINGLETON_PREFIX = "Singleton"


def _skip(path: str) -> bool:
    return os.path.basename(path).startswith(SINGLETON_PREFIX) or os.path.islink(path) or not os.path.lexists(path)


def _ignore_unsafe(directory: str, names: list[str]) -> set[str]:
    return {n for n in names if _skip(os.path.join(directory, n))}


def _copy_file(src: str, dst: str) -> None:
    try:
        shutil.copy2(src, dst)
    except FileNotFoundError:
        pass


def copy_profile(src: str, dst: str) -> None:
    shutil.copytree(src, dst, ignore=_ignore_unsafe, copy_function=_copy_file, dirs_exist_ok=True)


def make_profile_archive(src: str, archive_path: str) -> None:
    with tarfile.open(archive_path, "w:gz") as tar:
        for root, dirs, files in os.walk(src):
            dirs[:] = [d for d in dirs if not _skip(os.path.join(root, d))]
            for name in files:
                path = os.path.join(root, name)
                if _skip(path):
                    continue
                try:
                    tar.add(path, arcname=os.path.relpath(path, src), recursive=False)
                except FileNotFoundError:
                    continue


def extract_profile_archive(archive_path: str, dst: str) -> None:
    with tarfile.open(archive_path, "r:gz") as tar:
        tar.extractall(dst, filter="data")


def _replace_dir(staged: str, target: str) -> None:
    if os.path.exists(target):
        shutil.rmtree(target)
    os.rename(staged, target)


class ProfileStore:
    def __init__(
        self,
        options: ProfileOptions,
        storage_client_factory: Callable[[], storage.Client] = storage.Client,
    ) -> None:
        self.options = options
        self._storage_client_factory = storage_client_factory
        self._storage_client: storage.Client | None = None

    @property
    def work_dir(self) -> str:
        return self.options.work_profile_dir

    @property
    def target(self) -> str | None:
        """Where :meth:`save` writes."""

        return self.options.new_profile_dir or self.options.profile_dir

    def _client(self) -> storage.Client:
        if self._storage_client is None:
            self._storage_client = self._storage_client_factory()
        return self._storage_client

    def new_target_exists(self) -> bool:
        """Whether a separate write-back location would overwrite existing data."""

        new_dir = self.options.new_profile_dir
        if not new_dir:
            return False
        if is_gcs_uri(new_dir):
            return profile_archive_exists(self._client(), new_dir)
        return os.path.exists(new_dir)

    def restore(self) -> bool:
        """Populate a fresh working directory; ``True`` if a saved profile was loaded."""

        try:
            if os.path.exists(self.work_dir):
                shutil.rmtree(self.work_dir)
            os.makedirs(self.work_dir)
            source = self.options.profile_dir
            if not (self.options.use_existing_profile and source):
                return False
            if is_gcs_uri(source):
                with tempfile.TemporaryDirectory() as tmp:
                    archive = os.path.join(tmp, PROFILE_ARCHIVE_NAME)
                    if not download_profile_archive(self._client(), source, archive):
                        return False
                    extract_profile_archive(archive, self.work_dir)
            elif not os.path.isdir(source):
                os.makedirs(source, exist_ok=True)
                jlog("info", event="profile_created", profile_dir=source)
                return False
            elif os.path.isfile(os.path.join(source, PROFILE_ARCHIVE_NAME)):
                extract_profile_archive(os.path.join(source, PROFILE_ARCHIVE_NAME), self.work_dir)
            else:
                copy_profile(source, self.work_dir)
        except OSError as exc:
            raise NonRetryableError(f"could not restore profile from {self.options.profile_dir}: {exc}") from exc
        jlog("info", event="profile_restored", profile_dir=source, work_dir=self.work_dir)
        return True

    def save(
        self,
        *,
        job_id: int,
        crawl_id: int | None = None,
        crawl_name: str | None = None,
        checkpoint_index: int | None = None,
    ) -> str:
        """Write the working profile back to :attr:`target`; return the location."""

        target = self.target
        if not target:
            raise NonRetryableError("no profile write-back location configured")
        try:
            if is_gcs_uri(target):
                with tempfile.TemporaryDirectory() as tmp:
                    archive = os.path.join(tmp, PROFILE_ARCHIVE_NAME)
                    make_profile_archive(self.work_dir, archive)
                    md = build_profile_metadata(
                        job_id=job_id,
                        crawl_id=crawl_id,
                        crawl_name=crawl_name,
                        crawler_version=get_crawler_version(),
                        crawler_hostname=socket.gethostname(),
                        saved_at=datetime.now(UTC).isoformat(),
                        checkpoint_index=checkpoint_index,
                    )
                    upload_profile_archive(self._client(), target, archive, md)
            else:
                staged = f"{target.rstrip(os.sep)}-temp"
                if os.path.exists(staged):
                    shutil.rmtree(staged)
                if self.options.compress_profile:
                    os.makedirs(staged)
                    make_profile_archive(self.work_dir, os.path.join(staged, PROFILE_ARCHIVE_NAME))
                else:
                    copy_profile(self.work_dir, staged)
                _replace_dir(staged, target)
        except OSError as exc:
            raise NonRetryableError(f"could not write profile to {target}: {exc}") from exc
        jlog("info", event="profile_saved", target=target, checkpoint_index=checkpoint_index)
        return target


class Checkpointer:
    """Periodically persists the profile mid-crawl without losing the crawl position."""

    def __init__(self, ctx: CrawlContext, store: ProfileStore, clock: Callable[[], float] = time.monotonic) -> None:
        self.ctx = ctx
        self.store = store
        self.clock = clock
        self.freq = ctx.flags.profile.checkpoint_freq
        self.last = clock()

    def due(self) -> bool:
        return self.freq > 0 and self.clock() - self.last >= self.freq

    async def checkpoint(self, index: int) -> None:
        """Close the browser, save the profile, record ``index``, relaunch."""

        ctx = self.ctx
        jlog("info", event="checkpoint_start", crawl_list_index=index)
        await ctx.session.close_browser()
        await asyncio.to_thread(
            self.store.save,
            job_id=ctx.flags.job_id,
            crawl_id=ctx.crawl_id,
            crawl_name=ctx.flags.crawl_name,
            checkpoint_index=index,
        )
        ctx.db.record_checkpoint(ctx.crawl_id, index)
        await ctx.session.launch()
        self.last = self.clock()

    async def maybe_checkpoint(self, index: int) -> bool:
        if not self.due() or self.ctx.interrupted:
            return False
        await self.checkpoint(index)
        return True


__all__ = [
    "Checkpointer",
    "ProfileStore",
    "copy_profile",
    "extract_profile_archive",
    "make_profile_archive",
]
