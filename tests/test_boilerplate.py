from pagesweep.parsers.boilerplate import (
    SelectorConfig,
    count_boilerplate,
    gather_candidates,
    score_candidate,
    select_main_container,
    visible_text_length,
)
from pagesweep.parsers.nodes import ensure_soup


def test_rich_wrapper_with_small_nav_beats_thin_clean_candidate():
    long_text = "Detailed programme information. " * 20
    html = (
        "<body>"
        "<main><p>Short intro text.</p></main>"
        f'<div class="container"><p>{long_text}</p><aside>Related</aside></div>'
        "</body>"
    )
    soup = ensure_soup(html)
    best = select_main_container(soup)
    assert best.get("class") == ["container"]

    cands = {c.selector: c for c in gather_candidates(soup)}
    assert cands["main"].score == len("Short intro text.")
    assert cands[".container"].boilerplate == 1
    assert cands[".container"].score == cands[".container"].text_length - 200


def test_penalty_can_sink_a_longer_candidate():
    html = (
        "<body>"
        f"<main><p>{'A' * 300}</p></main>"
        f'<div class="container"><p>{"B" * 400}</p><nav>x</nav><nav>y</nav></div>'
        "</body>"
    )
    assert select_main_container(html).name == "main"


def test_count_boilerplate_excludes_the_root_itself():
    soup = ensure_soup('<nav><div class="menu">m</div><p>plain</p></nav>')
    assert count_boilerplate(soup.find("nav")) == 1


def test_ties_keep_priority_order():
    soup = ensure_soup("<body><main>abc</main><article>xyz</article></body>")
    assert select_main_container(soup).name == "main"


def test_empty_candidates_are_ignored_and_body_is_the_fallback():
    soup = ensure_soup('<body><main></main><div class="content"><p>Hi</p></div></body>')
    assert select_main_container(soup).get("class") == ["content"]

    soup = ensure_soup("<body><div><p>No semantic wrapper</p></div></body>")
    assert select_main_container(soup).name == "body"


def test_hidden_text_does_not_count():
    soup = ensure_soup('<div><p>abc</p><p style="display:none">zzz</p><script>var q=1</script></div>')
    assert visible_text_length(soup.find("div")) == 3


def test_custom_penalty():
    soup = ensure_soup('<div class="container"><p>abcdef</p><nav>n</nav></div>')
    cand = score_candidate(soup.find("div"), SelectorConfig(penalty=1))
    assert cand.score == cand.text_length - 1
