from pagesweep.parsers.nodes import (
    Box,
    NodeInfo,
    describe,
    ensure_soup,
    in_positional_zone,
    is_visible,
    landmark,
    matches_boilerplate,
    viewport_height,
)


def test_describe_reads_attributes_and_layout_stamps():
    soup = ensure_soup(
        '<div id="Main" class="Card fees" role="region" style="display: none; Opacity:0.5" '
        'data-ps-hidden="1" data-ps-box="0,10,300,40" aria-hidden="true">x</div>'
    )
    info = describe(soup.find("div"))
    assert info.tag == "div"
    assert info.id == "main"
    assert info.classes == "card fees"
    assert info.role == "region"
    assert info.style_value("display") == "none"
    assert info.style_value("opacity") == "0.5"
    assert info.computed_hidden is True
    assert info.aria_hidden is True
    assert info.box == Box(0, 10, 300, 40)


def test_is_visible():
    assert is_visible(NodeInfo(tag="p"))
    assert not is_visible(NodeInfo(tag="p", style=(("display", "none"),)))
    assert not is_visible(NodeInfo(tag="p", style=(("visibility", "hidden"),)))
    assert not is_visible(NodeInfo(tag="p", style=(("opacity", "0"),)))
    assert not is_visible(NodeInfo(tag="p", hidden_attr=True))
    assert not is_visible(NodeInfo(tag="p", aria_hidden=True))
    assert not is_visible(NodeInfo(tag="p", computed_hidden=True))
    assert not is_visible(NodeInfo(tag="p", box=Box(0, 0, 0, 20)))
    assert is_visible(NodeInfo(tag="p", box=Box(0, 0, 10, 20), computed_hidden=False))


def test_matches_boilerplate():
    assert matches_boilerplate(NodeInfo(tag="nav"))
    assert matches_boilerplate(NodeInfo(tag="div", role="banner"))
    assert matches_boilerplate(NodeInfo(tag="div", classes="main-menu"))
    assert matches_boilerplate(NodeInfo(tag="div", classes="ads"))
    assert matches_boilerplate(NodeInfo(tag="div", id="ad-slot"))
    assert not matches_boilerplate(NodeInfo(tag="div", classes="content"))
    assert not matches_boilerplate(NodeInfo(tag="div", classes="loads"))


def test_landmarks_and_positional_zone():
    assert landmark(NodeInfo(tag="header")) == "header"
    assert landmark(NodeInfo(tag="div", classes="site-header")) == "header"
    assert landmark(NodeInfo(tag="div", role="contentinfo")) == "footer"
    assert landmark(NodeInfo(tag="div")) is None

    top = NodeInfo(tag="p", box=Box(0, 10, 100, 20))
    assert in_positional_zone(top, 800, [NodeInfo(tag="header")])
    assert not in_positional_zone(top, 800, [])
    assert not in_positional_zone(top, None, [NodeInfo(tag="header")])

    bottom = NodeInfo(tag="p", box=Box(0, 700, 100, 50))
    assert in_positional_zone(bottom, 800, [NodeInfo(tag="footer")])
    assert not in_positional_zone(bottom, 800, [NodeInfo(tag="header")])


def test_viewport_height_stamp():
    assert viewport_height(ensure_soup('<html data-ps-vh="768"><body></body></html>')) == 768
    assert viewport_height(ensure_soup("<html><body></body></html>")) is None
