from conftest import FakeResponse, FakeSession

from pagesweep.tools.link_sweep import (
    PAGINATION_TOKEN_RE,
    LinkSweeper,
    collect_detached_paragraphs,
    merge_detached_pages,
    same_origin,
)

BASE = "https://example.edu/programs/"

PAGE = """
<body>
  <a href="?page=2">Page 2</a>
  <a href="/programs?page=3">Next</a>
  <a href="https://other.org/page/4">More</a>
  <a href="/brochure.pdf">More details</a>
  <a href="#top">Next</a>
  <a href="javascript:void(0)">More</a>
  <a href="/programs/fees">Fee Structure</a>
  <a href="/programs/eligibility">Eligibility</a>
  <a href="/programs/download">Overview</a>
  <a href="/programs/missing">Placement</a>
  <a href="/contact">Contact us</a>
</body>
"""

PAGE_A = "<body><h1>Programmes</h1><p>Listing page</p></body>"
PAGE_B = "<body><h2>Fees</h2><p>Tuition ₹50,000</p></body>"
PAGE_C = "<body><h2>Eligibility</h2><li>60% in Class 12</li></body>"


def _sweeper(**kw):
    session = FakeSession(
        {
            "https://example.edu/programs/?page=2": FakeResponse(PAGE_A),
            "https://example.edu/programs?page=3": FakeResponse(PAGE_A),
            "https://example.edu/programs/fees": FakeResponse(PAGE_B),
            "https://example.edu/programs/eligibility": FakeResponse(PAGE_C),
            "https://example.edu/programs/download": FakeResponse("%PDF", content_type="application/pdf"),
            "https://example.edu/programs/missing": FakeResponse("gone", status_code=404),
        }
    )
    return LinkSweeper(BASE, PAGE, session=session, **kw), session


def test_same_origin():
    assert same_origin("https://a.com", "https://a.com:443/x")
    assert not same_origin("http://a.com", "https://a.com")
    assert not same_origin("https://a.com", "https://b.a.com")


def test_candidate_links_filter_fragments_scripts_and_documents():
    sweeper, _ = _sweeper()
    assert sweeper.candidate_links(PAGINATION_TOKEN_RE, 10) == [
        "https://example.edu/programs/?page=2",
        "https://example.edu/programs?page=3",
        "https://other.org/page/4",
    ]


def test_fetch_errors_are_reported_not_raised():
    sweeper, session = _sweeper()

    r = sweeper.fetch_same_origin("https://other.org/page/4")
    assert (r.ok, r.error) == (False, "cross-origin-skip")
    assert "https://other.org/page/4" not in session.calls

    assert sweeper.fetch_same_origin("/programs/missing").error == "http-404"
    assert sweeper.fetch_same_origin("/programs/download").error == "non-html"
    assert sweeper.fetch_same_origin("/programs/unknown").error == "ConnectionError"

    ok = sweeper.fetch_same_origin("/programs/fees")
    assert ok.ok and ok.html == PAGE_B and ok.status == 200


def test_redirect_off_origin_is_skipped():
    session = FakeSession(
        {
            "https://example.edu/fees": FakeResponse("<p>evil.com body</p>", url="https://evil.com/landing"),
            "https://example.edu/hostel": FakeResponse(PAGE_B, url="https://example.edu/hostel/"),
        }
    )
    sweeper = LinkSweeper(BASE, PAGE, session=session)

    r = sweeper.fetch_same_origin("https://example.edu/fees")
    assert (r.ok, r.error, r.html) == (False, "cross-origin-skip", None)

    ok = sweeper.fetch_same_origin("/hostel")
    assert ok.ok and ok.html == PAGE_B


def test_extended_sweep_dedupes_identical_bodies():
    sweeper, _ = _sweeper()
    assert sweeper.sweep_extended() == [PAGE_A, PAGE_B, PAGE_C]


def test_caps_limit_candidates():
    sweeper, session = _sweeper(max_pagination=1, max_tabs=1)
    assert sweeper.sweep_pagination() == [PAGE_A]
    assert sweeper.sweep_tabs() == [PAGE_B]
    assert len(session.calls) == 2


def test_detached_paragraphs_and_merge():
    text = collect_detached_paragraphs(
        "<body><h1>Title</h1><p>One</p><p>One</p><li>Item</li><h4>Skipped</h4></body>"
    )
    assert text == "Title\nOne\n• Item"

    merged = merge_detached_pages([PAGE_A, PAGE_B, PAGE_C])
    assert merged.split("\n") == ["Programmes", "Listing page", "Fees", "Tuition ₹50,000", "Eligibility", "• 60% in Class 12"]
    assert len(merge_detached_pages([f"<p>{'x' * 100}</p>"] * 5, max_chars=150)) == 150
