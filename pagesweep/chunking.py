# pagesweep/chunking.py
"""
Chunking and prompt shaping for downstream (external) LLM use.
Text in, text out; nothing here talks to a model.
"""
from __future__ import annotations

from typing import List, Sequence

MAX_CHUNK_SIZE = 12000
MIN_CHUNK_SIZE = 2000

PROMPT_SECTIONS = (
    "RANKING",
    "COURSES",
    "FEES",
    "ELIGIBILITY",
    "ADMISSION PROCESS",
    "SCHOLARSHIPS",
    "PAYMENTS",
    "VISA/FRRO",
    "CONTACT",
    "NOTES",
)


def chunk_text(content: str, max_chunk_size: int = MAX_CHUNK_SIZE, min_chunk_size: int = MIN_CHUNK_SIZE) -> List[str]:
    """
    Split on line boundaries. A chunk closes when the next line would push it
    past `max_chunk_size`; a closing chunk smaller than `min_chunk_size` is
    merged into the previous one instead. The final chunk is always emitted.
    """
    if not content:
        return []
    out: List[str] = []
    cur: List[str] = []
    cur_len = 0

    def push(force: bool = False):
        nonlocal cur, cur_len
        if not cur:
            return
        if not force and cur_len < min_chunk_size and out:
            out[-1] = out[-1] + "\n" + "\n".join(cur)
        else:
            out.append("\n".join(cur))
        cur = []
        cur_len = 0

    for line in content.split("\n"):
        projected = cur_len + len(line) + 1
        if projected > max_chunk_size and cur:
            push()
        cur.append(line)
        cur_len += len(line) + 1
    push(force=True)
    return out


def build_structured_prompt(title: str, url: str, content: str) -> str:
    sections = "\n".join(PROMPT_SECTIONS)
    return (
        "Return plain text ONLY. Do not fabricate. Use only facts present.\n"
        "Sections (omit if absent) exactly this order:\n"
        f"{sections}\n"
        "Rules:\n"
        "- Each section header alone on its own line.\n"
        "- Preserve INR symbols, semester/year labels.\n"
        "- Consolidate duplicates; keep concise.\n"
        f"- End output with: Source: {url}\n"
        "\n"
        f"TITLE: {title}\n"
        f"URL: {url}\n"
        "\n"
        "CONTENT START\n"
        f"{content}\n"
        "CONTENT END"
    )


def build_synthesis_prompt(title: str, url: str, segments: Sequence[str]) -> str:
    """Merge prompt for several already-structured chunk outputs."""
    body = "\n".join(f"--- Segment {i} ---\n{s}" for i, s in enumerate(segments, 1))
    return (
        "Merge the following already-structured segments into ONE consolidated output.\n"
        "Do NOT invent data. Remove strict duplicates. Preserve section ordering & headers.\n"
        f"Maintain the exact allowed section list; omit empty ones. End with 'Source: {url}'.\n"
        "\n"
        f"Title: {title}\n"
        f"URL: {url}\n"
        "\n"
        "SEGMENTS:\n"
        f"{body}"
    )


def chunk_prompts(title: str, url: str, content: str, max_chunk_size: int = MAX_CHUNK_SIZE) -> List[str]:
    return [build_structured_prompt(title, url, c) for c in chunk_text(content, max_chunk_size)]
