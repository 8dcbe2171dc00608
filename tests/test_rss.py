import asyncio

import requests

from adscraper.pages.rss import fetch_first_article, first_item_link, get_article_from_rss, guessed_feed_urls

from fakes import FakePage

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>News</title>
  <item><title>First</title><link> https://news.test/2024/first </link></item>
  <item><title>Second</title><link>https://news.test/2024/second</link></item>
</channel></rss>"""

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"><title>News</title>
  <entry><title>First</title>
    <link rel="edit" href="https://news.test/edit/1"/>
    <link href="https://news.test/2024/atom-first"/>
  </entry>
</feed>"""


class FakeResponse:
    def __init__(self, content, status=200):
        self.content = content
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class FakeHttp:
    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        response = self.responses.get(url)
        if response is None:
            raise requests.ConnectionError("connection refused")
        return response


def test_first_item_link_rss():
    assert first_item_link(RSS) == "https://news.test/2024/first"


def test_first_item_link_atom_prefers_alternate_link():
    assert first_item_link(ATOM) == "https://news.test/2024/atom-first"


def test_first_item_link_empty_feed():
    assert first_item_link(b"<rss><channel></channel></rss>") is None


def test_fetch_first_article():
    http = FakeHttp({"https://news.test/feed": FakeResponse(RSS)})

    assert fetch_first_article("https://news.test/feed", session=http) == "https://news.test/2024/first"


def test_fetch_first_article_tolerates_bad_feeds():
    http = FakeHttp(
        {
            "https://news.test/missing": FakeResponse(b"", status=404),
            "https://news.test/html": FakeResponse(b"<html><body>not a feed"),
        }
    )

    assert fetch_first_article("https://news.test/missing", session=http) is None
    assert fetch_first_article("https://news.test/html", session=http) is None
    assert fetch_first_article("https://news.test/down", session=http) is None


def test_guessed_feed_urls_drop_path_and_query():
    assert guessed_feed_urls("https://news.test/section/story?id=1") == [
        "https://news.test/feed",
        "https://news.test/feeds",
        "https://news.test/rss",
    ]


def test_header_feed_is_tried_first_and_relative_links_resolved(monkeypatch):
    tried = []

    def fake_fetch(feed_url):
        tried.append(feed_url)
        return "/2024/story" if feed_url == "https://news.test/feeds/all.xml" else None

    monkeypatch.setattr("adscraper.pages.rss.fetch_first_article", fake_fetch)
    page = FakePage("https://news.test/", feed_links=["https://news.test/feeds/all.xml"])

    assert asyncio.run(get_article_from_rss(page)) == "https://news.test/2024/story"
    assert tried == ["https://news.test/feeds/all.xml"]


def test_falls_back_to_guessed_feed_paths(monkeypatch):
    tried = []

    def fake_fetch(feed_url):
        tried.append(feed_url)
        return "https://news.test/from-rss" if feed_url.endswith("/rss") else None

    monkeypatch.setattr("adscraper.pages.rss.fetch_first_article", fake_fetch)
    page = FakePage("https://news.test/home")

    assert asyncio.run(get_article_from_rss(page)) == "https://news.test/from-rss"
    assert tried == ["https://news.test/feed", "https://news.test/feeds", "https://news.test/rss"]


def test_no_feed_found(monkeypatch):
    monkeypatch.setattr("adscraper.pages.rss.fetch_first_article", lambda feed_url: None)

    assert asyncio.run(get_article_from_rss(FakePage("https://news.test/"))) is None
