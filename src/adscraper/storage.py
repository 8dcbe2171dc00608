"""Google Cloud Storage helpers for browser profile archives."""

from __future__ import annotations

from typing import Mapping

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage  # type: ignore[attr-defined]

from .logging import jlog

PROFILE_ARCHIVE_NAME = "profile.tar.gz"
ARCHIVE_CONTENT_TYPE = "application/gzip"


def is_gcs_uri(location: str | None) -> bool:
    return bool(location) and location.startswith("gs://")


def parse_gcs_uri(uri: str) -> tuple[str, str]:
    """Split ``gs://bucket/prefix`` into ``(bucket, prefix)`` without slashes at the ends."""

    if not is_gcs_uri(uri):
        raise ValueError(f"not a gs:// uri: {uri!r}")
    bucket, _, prefix = uri[len("gs://"):].partition("/")
    if not bucket:
        raise ValueError(f"no bucket in {uri!r}")
    return bucket, prefix.strip("/")


def archive_blob_name(prefix: str) -> str:
    return f"{prefix}/{PROFILE_ARCHIVE_NAME}" if prefix else PROFILE_ARCHIVE_NAME


def profile_archive_exists(storage_client: storage.Client, uri: str) -> bool:
    bucket_name, prefix = parse_gcs_uri(uri)
    return storage_client.bucket(bucket_name).blob(archive_blob_name(prefix)).exists()


def upload_profile_archive(
    storage_client: storage.Client,
    uri: str,
    archive_path: str,
    metadata: Mapping[str, str],
) -> str:
    """Upload a profile tarball under ``uri``; return the object's gs:// path."""

    bucket_name, prefix = parse_gcs_uri(uri)
    name = archive_blob_name(prefix)
    blob = storage_client.bucket(bucket_name).blob(name)
    blob.cache_control = "no-store"
    blob.metadata = dict(metadata or {})
    blob.upload_from_filename(archive_path, content_type=ARCHIVE_CONTENT_TYPE)
    path = f"gs://{bucket_name}/{name}"
    jlog("info", event="profile_uploaded", path=path)
    return path


def download_profile_archive(storage_client: storage.Client, uri: str, dest_path: str) -> bool:
    """Fetch the profile tarball under ``uri``; ``False`` if there is none yet."""

    bucket_name, prefix = parse_gcs_uri(uri)
    blob = storage_client.bucket(bucket_name).blob(archive_blob_name(prefix))
    try:
        blob.download_to_filename(dest_path)
    except gcs_exceptions.NotFound:
        jlog("info", event="profile_archive_missing", path=f"gs://{bucket_name}/{blob.name}")
        return False
    return True


__all__ = [
    "PROFILE_ARCHIVE_NAME",
    "archive_blob_name",
    "download_profile_archive",
    "is_gcs_uri",
    "parse_gcs_uri",
    "profile_archive_exists",
    "upload_profile_archive",
]
