import asyncio

from adscraper.ads.chumbox import CHUMBOX_DEFINITIONS, ChumboxDefinition, split_chumbox

from fakes import FakeElement


def _adblade_widget():
    links = [FakeElement("a", classes=["description"]) for _ in range(3)]
    cells = [FakeElement("td", children=[FakeElement("span", children=[link])]) for link in links]
    widget = FakeElement(classes=["adblade-dyna"], children=cells)
    return widget, links, cells


def test_adblade_items_screenshot_two_levels_up():
    widget, links, cells = _adblade_widget()

    split = asyncio.run(split_chumbox(widget))

    assert split.platform == "adblade"
    assert [h.click_target for h in split.handles] == links
    assert [h.screenshot_target for h in split.handles] == cells


def test_zero_depth_uses_click_target_for_screenshot():
    items = [FakeElement(classes=["rc-item"]) for _ in range(2)]
    widget = FakeElement(children=items)

    split = asyncio.run(split_chumbox(widget))

    assert split.platform == "revcontent"
    assert all(h.click_target is h.screenshot_target for h in split.handles)


def test_first_matching_definition_wins():
    # Both an mgid and a taboola sub-item are present; mgid comes first.
    widget = FakeElement(
        children=[
            FakeElement(classes=["trc_spotlight_item", "syndicatedItem"]),
            FakeElement(classes=["mgline"]),
        ]
    )

    split = asyncio.run(split_chumbox(widget))

    assert split.platform == "mgid"
    assert len(split.handles) == 1
    order = [d.platform for d in CHUMBOX_DEFINITIONS]
    assert order.index("mgid") < order.index("taboola")


def test_custom_definitions_respect_given_order():
    widget = FakeElement(children=[FakeElement(classes=["tile"]), FakeElement(classes=["tile", "promo"])])
    definitions = [ChumboxDefinition("later", ".tile"), ChumboxDefinition("never", ".promo")]

    split = asyncio.run(split_chumbox(widget, definitions))

    assert split.platform == "later"
    assert len(split.handles) == 2


def test_plain_ad_is_not_a_chumbox():
    ad = FakeElement(classes=["ad"], children=[FakeElement("img")])

    assert asyncio.run(split_chumbox(ad)) is None
