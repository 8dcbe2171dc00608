from adscraper.urls import is_valid_url, origin, same_origin


def test_is_valid_url_accepts_only_absolute_http():
    assert is_valid_url("https://example.com/path")
    assert is_valid_url("  http://example.com  ")
    assert not is_valid_url("ftp://example.com/")
    assert not is_valid_url("example.com")
    assert not is_valid_url("https://")
    assert not is_valid_url(None)


def test_origin_fills_default_ports():
    assert origin("https://example.com/a") == ("https", "example.com", 443)
    assert origin("http://example.com:8080/") == ("http", "example.com", 8080)
    assert origin("/relative") is None


def test_same_origin():
    assert same_origin("https://news.test/a", "https://news.test:443/b")
    assert not same_origin("https://news.test/", "http://news.test/")
    assert not same_origin("https://news.test/", "https://cdn.news.test/")
    assert not same_origin("not a url", "not a url")
