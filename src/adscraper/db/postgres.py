"""Postgres persistence helpers used by the crawler."""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

import psycopg2

from ..logging import jlog

UTC = getattr(datetime, "UTC", timezone.utc)
_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

EXTERNAL_URL_TYPES = ("anchor_href", "iframe_src", "script_src", "img_src")


def sql_connect(
    host: str | None = None,
    port: int | None = None,
    dbname: str | None = None,
    user: str | None = None,
):
    """Return an autocommit psycopg2 connection configured from ``PG_*`` variables."""

    password = os.getenv("PG_PASSWORD")
    if not password:
        raise RuntimeError("PG_PASSWORD environment variable is required for database connections")
    con = psycopg2.connect(
        host=host or os.getenv("PG_HOST", "localhost"),
        port=port or int(os.getenv("PG_PORT", "5432")),
        dbname=dbname or os.getenv("PG_DATABASE", "adscraper"),
        user=user or os.getenv("PG_USER", "adscraper"),
        password=password,
        connect_timeout=10,
    )
    # Single-row writes only; each statement stands on its own.
    con.autocommit = True
    return con


def _ident(name: str) -> str:
    if not _IDENT_RE.match(name):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return name


def _hostname(url: str) -> str | None:
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


class CrawlDb:
    """Typed wrapper over the worker's single long-lived connection."""

    def __init__(self, con) -> None:
        self.con = con

    def close(self) -> None:
        self.con.close()

    # Generic helpers -----------------------------------------------------

    def insert(self, table: str, data: Mapping[str, Any], returning: str | None = "id") -> Any:
        columns = [_ident(c) for c in data]
        sql = "INSERT INTO {} ({}) VALUES ({})".format(
            _ident(table), ", ".join(columns), ", ".join(["%s"] * len(columns))
        )
        if returning:
            sql += f" RETURNING {_ident(returning)}"
        with self.con.cursor() as cur:
            cur.execute(sql, list(data.values()))
            if not returning:
                return None
            row = cur.fetchone()
        if row is None:
            raise RuntimeError(f"insert into {table} did not return {returning}")
        return row[0]

    def update(self, table: str, row_id: int, data: Mapping[str, Any]) -> None:
        if not data:
            return
        assignments = ", ".join(f"{_ident(c)}=%s" for c in data)
        with self.con.cursor() as cur:
            cur.execute(
                f"UPDATE {_ident(table)} SET {assignments} WHERE id=%s",
                [*data.values(), row_id],
            )

    # Crawl ---------------------------------------------------------------

    def create_crawl(self, data: Mapping[str, Any]) -> int:
        return self.insert("crawl", data)

    def get_crawl(self, crawl_id: int) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM crawl WHERE id=%s", (crawl_id,))

    def find_crawl_by_name(self, name: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM crawl WHERE name=%s ORDER BY id DESC LIMIT 1", (name,))

    def update_crawl_index(self, crawl_id: int, index: int) -> None:
        with self.con.cursor() as cur:
            cur.execute(
                "UPDATE crawl SET crawl_list_current_index=%s WHERE id=%s",
                (index, crawl_id),
            )

    def record_checkpoint(self, crawl_id: int, index: int) -> None:
        with self.con.cursor() as cur:
            cur.execute(
                "UPDATE crawl SET last_checkpoint_index=%s WHERE id=%s",
                (index, crawl_id),
            )

    def mark_crawl_complete(self, crawl_id: int) -> None:
        with self.con.cursor() as cur:
            cur.execute(
                "UPDATE crawl SET completed=TRUE, completed_time=%s WHERE id=%s",
                (datetime.now(UTC), crawl_id),
            )

    # Pages ---------------------------------------------------------------

    def archive_page(self, data: Mapping[str, Any]) -> int:
        if data.get("referrer_page") is not None and data.get("referrer_ad") is not None:
            raise ValueError("a page has either a referrer page or a referrer ad, not both")
        return self.insert("page", data)

    def update_page(self, page_id: int, data: Mapping[str, Any]) -> None:
        self.update("page", page_id, data)

    def archive_request(self, data: Mapping[str, Any]) -> None:
        self.insert("request", data, returning=None)

    # Ads -----------------------------------------------------------------

    def create_empty_ad(self) -> int:
        with self.con.cursor() as cur:
            cur.execute("INSERT INTO ad DEFAULT VALUES RETURNING id")
            row = cur.fetchone()
        return row[0]

    def update_ad(self, ad_id: int, data: Mapping[str, Any]) -> None:
        self.update("ad", ad_id, data)

    def delete_ad(self, ad_id: int) -> None:
        """Delete an ad together with the ad_domain and iframe rows that reference it."""
        with self.con.cursor() as cur:
            cur.execute("DELETE FROM ad_domain WHERE ad_id=%s", (ad_id,))
            cur.execute("DELETE FROM iframe WHERE parent_ad=%s", (ad_id,))
            cur.execute("DELETE FROM ad WHERE id=%s", (ad_id,))

    def insert_chumbox(self, platform: str, parent_page: int) -> int:
        return self.insert("chumbox", {"platform": platform, "parent_page": parent_page})

    def archive_external_urls(
        self,
        externals: Mapping[str, Iterable[str]],
        ad_id: int,
        frame_id: int | None = None,
    ) -> int:
        """Store extracted URLs as ``ad_domain`` rows; return how many were saved."""

        prefix = "subframe_" if frame_id is not None else ""
        saved = 0
        for kind in EXTERNAL_URL_TYPES:
            for url in externals.get(kind) or ():
                hostname = _hostname(url)
                if not hostname:
                    continue
                self.insert(
                    "ad_domain",
                    {
                        "ad_id": ad_id,
                        "iframe_id": frame_id,
                        "url": url,
                        "hostname": hostname,
                        "type": prefix + kind,
                    },
                    returning=None,
                )
                saved += 1
        return saved

    def archive_frame_tree(
        self,
        frame,
        *,
        ad_id: int | None = None,
        page_id: int | None = None,
        parent_id: int | None = None,
    ) -> int:
        """Persist a scraped frame, then its children; return the frame's id."""

        frame_id = self.insert(
            "iframe",
            {
                "timestamp": frame.timestamp,
                "url": frame.url,
                "html": frame.html,
                "parent_ad": ad_id,
                "parent_page": page_id,
                "parent_iframe": parent_id,
            },
        )
        if frame.externals and ad_id is not None:
            self.archive_external_urls(frame.externals, ad_id, frame_id)
        for child in frame.children:
            self.archive_frame_tree(child, ad_id=ad_id, page_id=page_id, parent_id=frame_id)
        return frame_id

    def _fetch_one(self, sql: str, params: tuple) -> dict[str, Any] | None:
        with self.con.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
            if row is None:
                return None
            columns = [d[0] for d in cur.description]
        return dict(zip(columns, row))


def archive_frames(db: CrawlDb, frames, **owner: int | None) -> None:
    """Persist top-level frames; a failing frame is logged and skipped."""

    for frame in frames:
        try:
            db.archive_frame_tree(frame, **owner)
        except psycopg2.Error as exc:
            jlog("error", event="frame_archive_failed", frame_url=frame.url, error=str(exc))


__all__ = ["CrawlDb", "EXTERNAL_URL_TYPES", "archive_frames", "sql_connect"]
