import asyncio
import itertools
import json

import pytest

from adscraper.ads.detection import CUSTOM_SELECTORS, identify_ads, load_ad_selectors, remove_nested

from fakes import FakeElement, FakePage


def _tree():
    # html > body > [outer.ad > inner.ad, side.ad, plain]
    inner = FakeElement(id="inner", classes=["ad"])
    outer = FakeElement(id="outer", classes=["ad"], children=[inner])
    side = FakeElement(id="side", classes=["ad"])
    plain = FakeElement(id="plain")
    body = FakeElement("body", children=[outer, side, plain])
    return FakeElement("html", children=[body]), outer, inner, side


def test_nested_match_is_dropped_keeping_two_top_level_ads():
    root, outer, inner, side = _tree()
    page = FakePage("https://news.test/", root=root)

    ads = asyncio.run(identify_ads(page, [".ad"]))

    assert [ad.handle for ad in ads] == [outer, side]
    assert [ad.key for ad in ads] == ["ad-1", "ad-2"]
    assert inner.disposed


def test_element_matching_several_selectors_is_returned_once():
    root, outer, inner, side = _tree()
    page = FakePage("https://news.test/", root=root)

    ads = asyncio.run(identify_ads(page, ["#side", ".ad", "div.ad"]))

    handles = [ad.handle for ad in ads]
    assert handles.count(side) == 1
    assert set(handles) == {outer, side}


def test_page_without_matches_yields_no_ads():
    root, *_ = _tree()
    page = FakePage("https://news.test/", root=root)

    assert asyncio.run(identify_ads(page, [".sponsored"])) == []


def test_remove_nested_is_order_independent_and_idempotent():
    # 0 contains 1 contains 2; 3 stands alone; 4 sits under an unmatched node.
    ancestors = {0: [], 1: [0], 2: [1, 0], 3: [], 4: [99]}
    expected = {0, 3, 4}
    for order in itertools.permutations(ancestors):
        kept = remove_nested(order, ancestors)
        assert set(kept) == expected
        assert set(remove_nested(kept, ancestors)) == expected


def test_remove_nested_result_has_no_ancestor_pairs():
    ancestors = [[], [0], [], [2], [3, 2], []]
    kept = remove_nested(range(len(ancestors)), ancestors)
    for a in kept:
        for b in kept:
            assert a not in ancestors[b]


def test_load_ad_selectors_uses_bundled_list_and_appends_custom():
    selectors = load_ad_selectors()
    assert ".adsbygoogle" in selectors
    for custom in CUSTOM_SELECTORS:
        assert selectors.count(custom) == 1


def test_load_ad_selectors_from_file(tmp_path):
    path = tmp_path / "selectors.json"
    path.write_text(json.dumps([".promo", "", 5, ".ob-widget"]))

    selectors = load_ad_selectors(str(path))

    assert selectors[0] == ".promo"
    assert selectors.count(".ob-widget") == 1
    assert 5 not in selectors and "" not in selectors


def test_load_ad_selectors_rejects_non_list(tmp_path):
    path = tmp_path / "selectors.json"
    path.write_text(json.dumps({"selectors": [".promo"]}))

    with pytest.raises(ValueError):
        load_ad_selectors(str(path))
