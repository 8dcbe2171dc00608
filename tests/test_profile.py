import asyncio
import os

import pytest

from adscraper.config import ProfileOptions
from adscraper.errors import NonRetryableError
from adscraper.profile import Checkpointer, ProfileStore

from fakes import FakeSession, FakeStorageClient, FakeStore, make_ctx


def _populate(work):
    (work / "Default").mkdir(parents=True)
    (work / "Default" / "Cookies").write_text("cookie-db")
    (work / "Local State").write_text("{}")
    (work / "SingletonLock").write_text("host-123")
    os.symlink(work / "Local State", work / "link-to-state")


def _store(tmp_path, client=None, **options):
    options.setdefault("work_profile_dir", str(tmp_path / "work"))
    return ProfileStore(ProfileOptions(**options), storage_client_factory=lambda: client)


def test_local_save_skips_lock_files_and_symlinks(tmp_path):
    work = tmp_path / "work"
    _populate(work)
    durable = tmp_path / "durable"
    store = _store(tmp_path, profile_dir=str(durable), write_profile=True)

    assert store.save(job_id=7) == str(durable)

    assert (durable / "Default" / "Cookies").read_text() == "cookie-db"
    assert (durable / "Local State").exists()
    assert not (durable / "SingletonLock").exists()
    assert not os.path.lexists(durable / "link-to-state")
    assert not (tmp_path / "durable-temp").exists()


def test_local_save_replaces_previous_copy(tmp_path):
    work = tmp_path / "work"
    _populate(work)
    durable = tmp_path / "durable"
    durable.mkdir()
    (durable / "stale").write_text("old")
    store = _store(tmp_path, profile_dir=str(durable), write_profile=True)

    store.save(job_id=7)

    assert not (durable / "stale").exists()
    assert (durable / "Default" / "Cookies").exists()


def test_restore_copies_existing_profile_into_fresh_work_dir(tmp_path):
    durable = tmp_path / "durable"
    _populate(durable)
    work = tmp_path / "work"
    work.mkdir()
    (work / "leftover").write_text("x")
    store = _store(tmp_path, profile_dir=str(durable), use_existing_profile=True)

    assert store.restore()

    assert (work / "Default" / "Cookies").read_text() == "cookie-db"
    assert not (work / "leftover").exists()
    assert not (work / "SingletonLock").exists()


def test_restore_without_existing_profile_starts_clean(tmp_path):
    store = _store(tmp_path, profile_dir=str(tmp_path / "durable"), use_existing_profile=False)

    assert not store.restore()
    assert os.listdir(tmp_path / "work") == []


def test_restore_creates_missing_profile_dir(tmp_path):
    durable = tmp_path / "durable"
    store = _store(tmp_path, profile_dir=str(durable), use_existing_profile=True)

    assert not store.restore()
    assert durable.is_dir()


def test_compressed_local_profile_round_trips(tmp_path):
    work = tmp_path / "work"
    _populate(work)
    durable = tmp_path / "durable"
    store = _store(tmp_path, profile_dir=str(durable), write_profile=True, compress_profile=True, use_existing_profile=True)

    store.save(job_id=7)
    assert os.listdir(durable) == ["profile.tar.gz"]

    assert store.restore()
    assert (work / "Default" / "Cookies").read_text() == "cookie-db"
    assert not os.path.lexists(work / "link-to-state")


def test_gcs_profile_round_trips_with_metadata(tmp_path):
    client = FakeStorageClient()
    work = tmp_path / "work"
    _populate(work)
    store = _store(tmp_path, client, profile_dir="gs://profiles/crawls/a", write_profile=True, use_existing_profile=True)

    assert store.save(job_id=7, crawl_id=3, crawl_name="weekly", checkpoint_index=12) == "gs://profiles/crawls/a"

    _, content_type, metadata = client.buckets["profiles"].objects["crawls/a/profile.tar.gz"]
    assert content_type == "application/gzip"
    assert metadata["crawl_name"] == "weekly"
    assert metadata["checkpoint_index"] == "12"

    assert store.restore()
    assert (work / "Default" / "Cookies").read_text() == "cookie-db"


def test_restore_from_empty_gcs_location_starts_clean(tmp_path):
    store = _store(tmp_path, FakeStorageClient(), profile_dir="gs://profiles/new", use_existing_profile=True)

    assert not store.restore()


def test_new_target_exists(tmp_path):
    existing = tmp_path / "taken"
    existing.mkdir()

    assert _store(tmp_path, profile_dir="/p", new_profile_dir=str(existing)).new_target_exists()
    assert not _store(tmp_path, profile_dir="/p", new_profile_dir=str(tmp_path / "free")).new_target_exists()
    assert not _store(tmp_path, profile_dir="/p").new_target_exists()
    assert not _store(tmp_path, FakeStorageClient(), new_profile_dir="gs://profiles/fresh").new_target_exists()


def test_save_writes_to_new_profile_dir(tmp_path):
    _populate(tmp_path / "work")
    original = tmp_path / "original"
    store = _store(tmp_path, profile_dir=str(original), new_profile_dir=str(tmp_path / "copy"), write_profile=True)

    store.save(job_id=7)

    assert (tmp_path / "copy" / "Local State").exists()
    assert not original.exists()


def test_save_without_target_is_non_retryable(tmp_path):
    with pytest.raises(NonRetryableError):
        _store(tmp_path).save(job_id=7)


def test_checkpointer_saves_on_schedule_and_relaunches(tmp_path):
    now = [0.0]
    session = FakeSession(running=True)
    ctx = make_ctx(tmp_path, session=session, profile=ProfileOptions(profile_dir="/p", write_profile=True, checkpoint_freq=60))
    store = FakeStore(ctx.flags.profile)
    checkpointer = Checkpointer(ctx, store, clock=lambda: now[0])

    now[0] = 30.0
    assert not asyncio.run(checkpointer.maybe_checkpoint(1))

    now[0] = 61.0
    assert asyncio.run(checkpointer.maybe_checkpoint(2))
    assert session.browser_closes == 1
    assert session.launches == 1
    assert store.saves[0]["checkpoint_index"] == 2
    assert ctx.db.checkpoints == [2]

    now[0] = 100.0
    assert not asyncio.run(checkpointer.maybe_checkpoint(3))


def test_checkpointer_stays_idle_once_interrupted(tmp_path):
    ctx = make_ctx(tmp_path, profile=ProfileOptions(profile_dir="/p", write_profile=True, checkpoint_freq=1))
    ctx.interrupted = True
    now = [0.0]
    checkpointer = Checkpointer(ctx, FakeStore(ctx.flags.profile), clock=lambda: now[0])
    now[0] = 1000.0

    assert not asyncio.run(checkpointer.maybe_checkpoint(5))
