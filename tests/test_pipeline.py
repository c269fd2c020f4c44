import pytest
from conftest import PROGRAM_URL, FakeResponse, FakeSession

from pagesweep.captures import CaptureStore
from pagesweep.db import MemoryKeyValueStore
from pagesweep.errors import ExtractionError, NotAllowlistedError
from pagesweep.memory import LineMemory
from pagesweep.pipeline import (
    NO_CONTENT,
    VERSION,
    build_structured_candidate,
    capture_page,
    extract_base,
    run_pipeline,
)
from pagesweep.parsers.walker import ExtractResult


def test_response_shape(program_html, allowlist):
    resp = run_pipeline(PROGRAM_URL, program_html, allowlist).to_response()

    assert resp["ok"] is True
    assert resp["version"] == VERSION
    meta = resp["meta"]
    assert meta["url"] == PROGRAM_URL
    assert meta["title"] == "B.Tech Admissions | Example University"
    assert meta["tables"] == 1
    assert meta["feeLines"] == 1
    assert meta["extended"] is False
    assert meta["extraPagesCount"] == 0
    assert meta["length"] == resp["extract"]["base"]["rawLength"]

    assert resp["extract"]["fees"] == ["B.Tech — ₹1,20,000/year"]
    assert resp["extract"]["extraPagesMerged"] == ""
    # boilerplate outside <main> is gone
    assert "H1: Example University" not in resp["extract"]["base"]["headings"]

    candidate = resp["structuredCandidate"]
    assert candidate.startswith("== TITLE ==\nB.Tech Admissions | Example University\n== HEADINGS ==")
    assert "== FEES SYNTHESIS ==\nB.Tech — ₹1,20,000/year" in candidate
    assert "== TABLES (RAW FIRST ROW SAMPLE) ==\nProgramme | Fee" in candidate
    assert "\n\n" not in candidate

    assert len(resp["chunkPromptsPreview"]) == 1
    assert all(len(p) <= 280 for p in resp["chunkPromptsPreview"])
    assert resp["structuredPromptExample"].endswith("CONTENT END")


def test_not_allowlisted_is_refused_before_parsing(allowlist):
    with pytest.raises(NotAllowlistedError) as exc:
        run_pipeline("https://evil.example.com/fees", object(), allowlist)
    assert exc.value.url == "https://evil.example.com/fees"
    assert str(exc.value) == "Domain not allowlisted"


def test_fallback_to_whole_document_walk():
    base, _ = extract_base("<body><nav><ul><li>Home</li></ul></nav></body>")
    assert base.lists == ("• Home",)


def test_fallback_to_plain_text():
    base, root = extract_base("<body><div>Just some text</div><span>and more</span></body>")
    assert base.paragraphs == ("Just some text", "and more")
    assert root.name == "body"


def test_nothing_readable_raises():
    with pytest.raises(ExtractionError, match=NO_CONTENT):
        extract_base("<body><script>var x = 1;</script></body>")


def test_grid_fallback_when_walk_finds_no_fee_lines(allowlist):
    html = """
    <body><main><p>Course list</p></main>
    <footer><table>
      <tr><th>S.No</th><th>Course</th><th>1st Year</th><th>2nd Year</th></tr>
      <tr><td>1</td><td>B.Com</td><td>60000</td><td>65000</td></tr>
    </table></footer></body>
    """
    result = run_pipeline("https://example.edu/fees", html, allowlist)
    assert result.fees.lines == ["B.Com — 1st Year: 60000, 2nd Year: 65000"]


def test_extended_pages_are_merged(program_html, allowlist):
    html = program_html.replace(
        '<div class="links">', '<div class="links"><a href="/programs/btech/hostel">Hostel</a> '
    )
    hostel = (
        "<body><h2>Hostel</h2><p>Twin sharing rooms</p>"
        "<table><tr><th>Room</th><th>Fee</th></tr><tr><td>Twin</td><td>₹80,000/year</td></tr></table></body>"
    )
    session = FakeSession(
        {
            "https://example.edu/programs/btech/hostel": FakeResponse(hostel),
            "https://example.edu/programs/btech/fees": FakeResponse(hostel),
        }
    )
    result = run_pipeline(PROGRAM_URL, html, allowlist, extended=True, session=session)
    assert result.extra_pages_count == 1
    assert "Twin sharing rooms" in result.extra_pages_merged
    assert "Twin — ₹80,000/year" in result.fees.lines
    assert "== EXTENDED PAGES MERGED ==" in result.structured_candidate


def test_revealed_lines_only_add_what_the_page_lacks(program_html, allowlist):
    result = run_pipeline(
        PROGRAM_URL,
        program_html,
        allowlist,
        sweep_lines=["H1: B.Tech Admissions 2024", "Hostel fee ₹80,000", "hostel FEE: ₹80,000"],
    )
    assert result.revealed == ["Hostel fee ₹80,000"]
    assert result.structured_candidate.endswith("== REVEALED CONTENT ==\nHostel fee ₹80,000")


def test_memory_is_fed(program_html, allowlist):
    mem = LineMemory()
    run_pipeline(PROGRAM_URL, program_html, allowlist, memory=mem)
    assert mem.has_line("B.Tech — ₹1,20,000/year")
    assert mem.has_line("Applications are open for the 2024 intake.")


def test_candidate_sections_are_optional():
    assert build_structured_candidate(ExtractResult(title="Only title"), []) == "== TITLE ==\nOnly title"


def test_capture_page_dedup_and_only_new(program_html, allowlist):
    kv = MemoryKeyValueStore()
    mem, store = LineMemory(kv), CaptureStore(kv)

    first = capture_page(PROGRAM_URL, program_html, allowlist, mem, store, label="Fees")
    assert first.capture_id and not first.duplicate
    assert store.pages[first.page_key].captures[0].label == "Fees"

    again = capture_page(PROGRAM_URL, program_html, allowlist, mem, store)
    assert again.duplicate

    other_url = "https://example.edu/programs/btech-lateral"
    html2 = program_html.replace(
        "<p>Applications are open for the 2024 intake.</p>",
        "<p>Applications are open for the 2024 intake.</p><p>Lateral entry seats: 30</p>",
        1,
    )
    fresh = capture_page(other_url, html2, allowlist, mem, store, only_new=True)
    assert fresh.capture_id
    assert "Lateral entry seats: 30" in fresh.text
    assert "Applications are open for the 2024 intake." not in fresh.text
    assert "== PARAGRAPHS ==" in fresh.text

    nothing = capture_page(other_url, html2, allowlist, mem, store, only_new=True)
    assert nothing.capture_id is None
    assert nothing.page_key == "example.edu/programs/btech-lateral"
