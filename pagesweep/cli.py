# pagesweep/cli.py
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from . import config, processing
from .chunking import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE, build_structured_prompt, chunk_text
from .db import get_engine, init_kv_tables
from .errors import PageSweepError
from .log import err
from .pipeline import capture_page, ensure_allowed, run_pipeline
from .services import Services, build_services

app = typer.Typer(help="PageSweep CLI: structured text capture from dynamic pages")

_SERVICES: Optional[Services] = None


# -----------------------
# Helpers
# -----------------------
def get_services() -> Services:
    global _SERVICES
    if _SERVICES is None:
        _SERVICES = build_services()
    return _SERVICES


def _fail(msg: str) -> None:
    err(msg)
    typer.echo(f"Error: {msg}")
    raise typer.Exit(code=1)


def _load_html(svc: Services, url: str, html_file: Optional[Path], render: Optional[bool], sweep: bool):
    if html_file is not None:
        if not html_file.exists():
            _fail(f"HTML file not found: {html_file}")
        return html_file.read_text(encoding="utf-8", errors="ignore"), []
    page = svc.load_page(url, render=render, sweep=sweep or None)
    return page.html, page.sweep_lines


@app.command()
def init() -> None:
    """
    Create data/export directories and the key/value tables (safe to re-run).
    """
    config.ensure_dirs()
    init_kv_tables(get_engine())
    typer.echo(f"Initialized {config.DATA_DIR}")


# -----------------------
# Extraction
# -----------------------
@app.command()
def extract(
    url: str,
    html_file: Optional[Path] = typer.Option(None, "--html", help="Use a saved HTML snapshot instead of fetching"),
    extended: bool = typer.Option(False, "--extended", help="Also fetch same-origin pagination/tab pages (default: site profile)"),
    render: Optional[bool] = typer.Option(None, "--render/--static", help="Force JS render or static fetch"),
    sweep: bool = typer.Option(False, "--sweep", help="Click through tabs/pagination while rendering"),
    as_json: bool = typer.Option(False, "--json", help="Print the full response object"),
    fmt: Optional[str] = typer.Option(None, "--format", help="text | llm | json instead of the structured candidate"),
) -> None:
    """
    Extract one page and print its structured candidate.
    """
    svc = get_services()
    try:
        ensure_allowed(url, svc.allowlist)
        html, sweep_lines = _load_html(svc, url, html_file, render, sweep)
        result = run_pipeline(
            url,
            html,
            svc.allowlist,
            extended=svc.wants_extended(url, extended),
            session=svc.session,
            sweep_lines=sweep_lines,
            memory=svc.memory,
        )
    except PageSweepError as e:
        _fail(str(e))
    svc.memory.flush(force=True)

    if as_json:
        typer.echo(json.dumps(result.to_response(), ensure_ascii=False, indent=2))
        return
    if fmt:
        try:
            layout = processing.format_content_as_text(result.base)
            text = processing.render(layout, fmt, tables=result.base.tables)
        except PageSweepError as e:
            _fail(str(e))
        typer.echo(text)
        return
    typer.echo(result.structured_candidate)


@app.command()
def capture(
    url: str,
    html_file: Optional[Path] = typer.Option(None, "--html", help="Use a saved HTML snapshot instead of fetching"),
    label: str = typer.Option("", "--label", help="Label for this capture"),
    extended: bool = typer.Option(False, "--extended"),
    render: Optional[bool] = typer.Option(None, "--render/--static"),
    sweep: bool = typer.Option(False, "--sweep"),
    only_new: bool = typer.Option(False, "--only-new", help="Keep only lines not seen before"),
    force: bool = typer.Option(False, "--force", help="Store even if the content is a duplicate"),
) -> None:
    """
    Extract a page and store it as a labeled capture.
    """
    svc = get_services()
    try:
        ensure_allowed(url, svc.allowlist)
        html, sweep_lines = _load_html(svc, url, html_file, render, sweep)
        outcome = capture_page(
            url,
            html,
            svc.allowlist,
            svc.memory,
            svc.captures,
            label=label,
            extended=svc.wants_extended(url, extended),
            only_new=only_new,
            force=force,
            session=svc.session,
            sweep_lines=sweep_lines,
        )
    except PageSweepError as e:
        _fail(str(e))
    svc.memory.flush(force=True)

    if outcome.duplicate:
        typer.echo(f"Duplicate (or nothing new) for {outcome.page_key}; not stored.")
        return
    typer.echo(f"Stored capture {outcome.capture_id} on {outcome.page_key} ({len(outcome.text)} chars)")


# -----------------------
# Capture store
# -----------------------
@app.command()
def pages(domain: Optional[str] = typer.Option(None, "--domain", help="Only pages on this domain")) -> None:
    """
    List stored pages, most recent first.
    """
    store = get_services().captures
    keys = store.pages_for_domain(domain) if domain else [k for k, _ in store.list_pages()]
    if not keys:
        typer.echo("(no pages)")
        return
    for k in keys:
        p = store.pages[k]
        selected = sum(1 for c in p.captures if c.selected)
        typer.echo(f"- {k}  [{len(p.captures)} captures, {selected} selected]  {p.title}")


@app.command()
def show(page_key: str) -> None:
    """
    Show the captures of one page.
    """
    store = get_services().captures
    page = store.pages.get(page_key)
    if page is None:
        _fail(f"No such page: {page_key}")
    typer.echo(f"{page.title or page.url}\n{page.url}")
    for c in page.captures:
        mark = "x" if c.selected else " "
        preview = c.preview.replace("\n", " ")
        if len(preview) > 120:
            preview = preview[:120] + "…"
        typer.echo(f" [{mark}] {c.id}  {c.label}  (len={c.len})\n     {preview}")


@app.command()
def select(
    capture_id: str,
    off: bool = typer.Option(False, "--off", help="Deselect instead"),
) -> None:
    """
    Select (or deselect) a capture for export.
    """
    if not get_services().captures.set_selected(capture_id, not off):
        _fail(f"No such capture: {capture_id}")
    typer.echo(f"{'Deselected' if off else 'Selected'} {capture_id}")


@app.command()
def delete(
    target: str,
    page: bool = typer.Option(False, "--page", help="TARGET is a page key"),
) -> None:
    """
    Delete a capture (or a whole page with --page), freeing its signatures.
    """
    store = get_services().captures
    ok = store.delete_page(target) if page else store.delete_capture(target)
    if not ok:
        _fail(f"Nothing to delete for {target}")
    typer.echo(f"Deleted {target}")


@app.command()
def export(
    page_keys: List[str],
    out: Optional[str] = typer.Option(None, "--out", help="Filename to save through the download sink"),
    kind: str = typer.Option("raw", "--kind", help="raw | llm"),
    fmt: str = typer.Option("text", "--format", help="text | llm | json"),
    prompts: bool = typer.Option(False, "--prompts", help="Wrap the combined text into chunked prompts"),
    max_chunk: int = typer.Option(MAX_CHUNK_SIZE, "--max-chunk"),
) -> None:
    """
    Combine the selected captures of one or more pages.
    """
    svc = get_services()
    store = svc.captures
    missing = [k for k in page_keys if k not in store.pages]
    if missing:
        _fail(f"Unknown page(s): {', '.join(missing)}")
    if len(page_keys) == 1:
        text = store.combined_text(page_keys[0], kind)
    else:
        text = store.combine_pages(page_keys, kind)
    if not text:
        _fail("Nothing selected to export")
    try:
        text = processing.render(text, fmt)
    except PageSweepError as e:
        _fail(str(e))

    if prompts:
        first = store.pages[page_keys[0]]
        chunks = chunk_text(text, max_chunk_size=max_chunk)
        text = "\n\n".join(build_structured_prompt(first.title, first.url, c) for c in chunks)

    if out:
        if svc.downloads is None:
            _fail("Downloads are not configured")
        reply = svc.downloads.save(out, text)
        if not reply.ok:
            _fail(reply.error or "download failed")
        typer.echo(f"Saved {out}")
        return
    typer.echo(text)


# -----------------------
# Memory / utilities
# -----------------------
@app.command()
def memory(snapshot: int = typer.Option(0, "--snapshot", help="Also list the N most recent lines")) -> None:
    """
    Line-memory statistics.
    """
    mem = get_services().memory
    mem.load()
    s = mem.stats()
    typer.echo("=== Line memory ===")
    typer.echo(f"lines:      {s['lines']} / {s['maxLines']}")
    typer.echo(f"total chars:{s['totalChars']:>8}")
    typer.echo(f"avg len:    {s['avgLen']}")
    for e in mem.snapshot(snapshot) if snapshot else []:
        typer.echo(f" - {e.line}")


@app.command()
def chunk(
    path: Path,
    max_chunk: int = typer.Option(MAX_CHUNK_SIZE, "--max-chunk"),
    min_chunk: int = typer.Option(MIN_CHUNK_SIZE, "--min-chunk"),
    prompt: bool = typer.Option(False, "--prompt", help="Print the structured prompt for each chunk"),
    title: str = typer.Option("", "--title"),
    url: str = typer.Option("", "--url"),
) -> None:
    """
    Split a text file into line-bounded chunks.
    """
    if not path.exists():
        _fail(f"File not found: {path}")
    chunks = chunk_text(path.read_text(encoding="utf-8", errors="ignore"), max_chunk, min_chunk)
    if prompt:
        for c in chunks:
            typer.echo(build_structured_prompt(title, url, c))
            typer.echo("")
        return
    typer.echo(f"{len(chunks)} chunk(s)")
    for i, c in enumerate(chunks, 1):
        typer.echo(f" - #{i}: {len(c)} chars, {c.count(chr(10)) + 1} lines")


@app.command()
def allowed(url: str) -> None:
    """
    Check a URL against the domain allowlist.
    """
    if get_services().allowlist.is_allowed_url(url):
        typer.echo(f"allowed: {url}")
        return
    typer.echo(f"not allowed: {url}")
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
