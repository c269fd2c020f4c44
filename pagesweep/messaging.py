# pagesweep/messaging.py
"""
Message contract. Every request is a dict with an "action"; every reply is a
dict with "ok". Failures never escape as exceptions: they come back as
{"ok": False, "error": ...}.
"""
from __future__ import annotations

from typing import Callable, Dict

from .errors import NotAllowlistedError, PageSweepError
from .log import err, warn
from .parsers.walker import Table
from .pipeline import VERSION, ensure_allowed, run_pipeline
from .processing import (
    ProcessOptions,
    create_json_format,
    create_llm_format,
    enrich_with_tables,
    process_large_text,
)


def _ping(message: Dict, services) -> Dict:
    return {"ok": True, "version": VERSION}


def _extract(message: Dict, services) -> Dict:
    url = (message.get("url") or "").strip()
    if not url:
        return {"ok": False, "error": "url is required"}
    ensure_allowed(url, services.allowlist)

    html = message.get("html")
    sweep_lines = list(message.get("sweepLines") or [])
    if not html:
        page = services.load_page(url, render=message.get("render"), sweep=message.get("sweep"))
        html = page.html
        sweep_lines += page.sweep_lines

    result = run_pipeline(
        url,
        html,
        services.allowlist,
        extended=services.wants_extended(url, message.get("extended") is True),
        session=services.session,
        sweep_lines=sweep_lines,
        memory=services.memory,
    )
    services.memory.flush()
    return result.to_response()


def _pdf_text(message: Dict, services) -> Dict:
    url = (message.get("url") or "").strip()
    if not url:
        return {"ok": False, "error": "url is required"}
    return services.pdf.extract_text(url).to_dict()


def _download(message: Dict, services) -> Dict:
    if services.downloads is None:
        return {"ok": False, "error": "downloads are not configured"}
    filename = message.get("filename") or ""
    text = message.get("text")
    if not filename or not isinstance(text, str):
        return {"ok": False, "error": "filename and text are required"}
    return services.downloads.save(filename, text).to_dict()


def _process_text(message: Dict, services) -> Dict:
    text = message.get("text")
    if not isinstance(text, str) or not text.strip():
        return {"ok": False, "error": "text is required"}
    fmt = message.get("format") or "llm"
    if fmt not in ("llm", "json"):
        return {"ok": False, "error": f"unknown format: {fmt}"}
    tables = [Table.of(t.get("rows") or [], t.get("caption")) for t in message.get("tables") or []]
    opts = ProcessOptions.from_dict(message.get("options"))
    processed = enrich_with_tables(process_large_text(text, opts), tables)
    output = create_llm_format(processed) if fmt == "llm" else create_json_format(processed)
    return {"ok": True, "format": fmt, "output": output, "processed": processed.to_dict()}


HANDLERS: Dict[str, Callable[[Dict, object], Dict]] = {
    "pipelinePing": _ping,
    "pipelineExtract": _extract,
    "extractPdfText": _pdf_text,
    "download": _download,
    "processText": _process_text,
}


def dispatch(message, services) -> Dict:
    if not isinstance(message, dict):
        return {"ok": False, "error": "message must be an object"}
    action = message.get("action")
    if action is None and "filename" in message and "text" in message:
        action = "download"
    handler = HANDLERS.get(action)
    if handler is None:
        return {"ok": False, "error": f"unknown action: {action}"}
    try:
        return handler(message, services)
    except NotAllowlistedError as e:
        warn(f"message: {action} refused for {e.url}")
        return {"ok": False, "error": str(e), "url": e.url}
    except PageSweepError as e:
        warn(f"message: {action} failed :: {e}")
        return {"ok": False, "error": str(e)}
    except Exception as e:
        err(f"message: {action} crashed :: {e!r}")
        return {"ok": False, "error": str(e) or type(e).__name__}
