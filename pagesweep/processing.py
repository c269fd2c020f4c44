# pagesweep/processing.py
"""
Dataset-style post-processing of captured text.

`process_for_llm` runs clean -> line de-dupe -> section split -> tokens ->
stop-word filter -> key phrases -> stats, and `create_llm_format` /
`create_json_format` render the result. `format_content_as_text` is the
plain "readable" layout of a walk (title underline, sections, key points,
tables, links).
"""
from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .clean_text import NEWLINE_RE, WS_RE
from .errors import InvalidInputError
from .log import err, warn

MAX_TEXT_LENGTH = 10_000_000
LARGE_TEXT_CHUNK = 100_000
MAX_KEY_PHRASES = 20
MAX_MERGED_KEY_PHRASES = 50
OVERVIEW_CHARS = 500

MALICIOUS_RES = [
    re.compile(r"<script[^>]*>.*?</script>", re.I | re.S),
    re.compile(r"javascript:", re.I),
    re.compile(r"on\w+\s*=", re.I),
    re.compile(r"<iframe[^>]*>", re.I),
    re.compile(r"<object[^>]*>", re.I),
    re.compile(r"<embed[^>]*>", re.I),
]

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by is are was were be been being have has had
    do does did will would could should may might must this that these those i you he she it we
    they me him her us them my your his its our their
    """.split()
)
WEB_STOP_WORDS = frozenset(
    """
    javascript void http https www com html click link page website web online url menu
    navigation header footer sidebar home contact about login register search view more read
    see show hide toggle button tab window close open new skip content main top bottom
    """.split()
)
ALL_STOP_WORDS = STOP_WORDS | WEB_STOP_WORDS

URL_RE = re.compile(r"https?://\S+")
WWW_RE = re.compile(r"www\.\S+")
EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
PHONE_RE = re.compile(r"[+]?[\d\s\-()]{10,}")
JS_VOID_RE = re.compile(r"javascript:void\(0\)", re.I)
VOID0_RE = re.compile(r"\bvoid\s*0\b", re.I)
LINK_LINE_RE = re.compile(r"\[.*?\]\s*-\s*https?://\S+")
PUNCT_ALL_RE = re.compile(r"[^\w\s]")
PUNCT_SOME_RE = re.compile(r"[^\w\s.,!?;:]")
NUMBER_RE = re.compile(r"\b\d+\b")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
WORD_SPLIT_RE = re.compile(r"(\W+)")
HEADING_PREFIX_RE = re.compile(r"^H[1-6]:\s*")

NOISE_RES = [
    re.compile(p, re.I)
    for p in (
        r"\bapply now\b",
        r"\bimage gallery\b",
        r"\bvideo gallery\b",
        r"\bquick links\b",
        r"\bvirtual tour\b",
        r"\bdisclaimer\b",
        r"\bprivacy policy\b",
        r"\bterms of use\b",
        r"\bwhat'?s new\b",
        r"\bhello\s+how can i help\b",
    )
]

INSTITUTION_WORDS = ("university", "college", "school", "institute")
PROGRAM_WORDS = ("programme", "program", "course", "degree", "mba", "phd", "bachelor", "master")
TESTIMONIAL_WORDS = ("testimonial", "placed in", "experience", "studying", "delighted")
FACULTY_RE = re.compile(r"prof\.?\s+.*?(?=prof\.|\n|$)", re.I)
CONTACT_RE = re.compile(r"(?:contact|phone|email|address).*?(?=\n|$)", re.I)


@dataclass
class ProcessOptions:
    remove_duplicates: bool = True
    remove_urls: bool = True
    remove_emails: bool = True
    remove_phones: bool = True
    remove_numbers: bool = False
    remove_punctuation: bool = False
    lowercase: bool = False
    include_stop_words: bool = False
    extract_sections: bool = True
    extract_key_phrases: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ProcessOptions":
        """camelCase or snake_case keys; unknown keys are ignored."""
        if not data:
            return cls()
        known = set(cls.__dataclass_fields__)
        kwargs = {}
        for k, v in data.items():
            name = re.sub(r"(?<!^)([A-Z])", r"_\1", k).lower()
            if name in known:
                kwargs[name] = bool(v)
        return cls(**kwargs)


@dataclass
class ProcessedText:
    processed_text: str
    sections: Dict[str, str] = field(default_factory=dict)
    key_phrases: List[str] = field(default_factory=list)
    tokens: List[str] = field(default_factory=list)
    stats: Dict[str, float] = field(default_factory=dict)
    sentences: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "processedText": self.processed_text,
            "sections": dict(self.sections),
            "keyPhrases": list(self.key_phrases),
            "stats": dict(self.stats),
        }


# -----------------------
# Cleaning
# -----------------------
def validate_input(text) -> str:
    if not text or not isinstance(text, str):
        raise InvalidInputError("Invalid input: text must be a non-empty string")
    if len(text) > MAX_TEXT_LENGTH:
        raise InvalidInputError(f"Input too large: maximum {MAX_TEXT_LENGTH:,} characters allowed")
    sanitized = text
    found = False
    for pat in MALICIOUS_RES:
        sanitized, n = pat.subn("", sanitized)
        found = found or n > 0
    if found:
        warn("processing: potentially malicious content detected and sanitized")
    return sanitized


def clean_for_llm(text: str, opts: Optional[ProcessOptions] = None) -> str:
    """Validate, strip contact/noise patterns, collapse whitespace per line."""
    opts = opts or ProcessOptions()
    try:
        cleaned = validate_input(text)
    except InvalidInputError as e:
        err(f"processing: {e}")
        return ""

    if opts.lowercase:
        cleaned = cleaned.lower()
    if opts.remove_urls:
        cleaned = WWW_RE.sub("", URL_RE.sub("", cleaned))
    if opts.remove_emails:
        cleaned = EMAIL_RE.sub("", cleaned)
    if opts.remove_phones:
        cleaned = PHONE_RE.sub("", cleaned)

    cleaned = JS_VOID_RE.sub("", cleaned)
    cleaned = VOID0_RE.sub("", cleaned)
    cleaned = LINK_LINE_RE.sub("", cleaned)
    cleaned = (PUNCT_ALL_RE if opts.remove_punctuation else PUNCT_SOME_RE).sub(" ", cleaned)
    if opts.remove_numbers:
        cleaned = NUMBER_RE.sub("", cleaned)

    lines = (WS_RE.sub(" ", ln).strip() for ln in NEWLINE_RE.sub("\n", cleaned).split("\n"))
    cleaned = "\n".join(ln for ln in lines if ln)
    for pat in NOISE_RES:
        cleaned = pat.sub("", cleaned)
    return cleaned


def remove_duplicate_lines(text: str) -> str:
    if not text:
        return ""
    seen = set()
    out = []
    for line in text.split("\n"):
        key = WS_RE.sub(" ", line).strip()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(line)
    return "\n".join(out)


# -----------------------
# Tokens
# -----------------------
def sentence_tokenize(text: str) -> List[str]:
    return [s for s in SENTENCE_SPLIT_RE.split(text or "") if s.strip()]


def word_tokenize(text: str) -> List[str]:
    if not text or not isinstance(text, str):
        return []
    return [w for w in PUNCT_ALL_RE.sub(" ", text.lower()).split() if len(w) < 50]


def remove_stop_words(tokens: Iterable[str], include_web: bool = True) -> List[str]:
    stop = ALL_STOP_WORDS if include_web else STOP_WORDS
    return [t for t in tokens if len(t) > 2 and t.lower() not in stop]


def remove_stop_words_from_text(text: str, include_web: bool = True) -> str:
    """Drop stop words but keep punctuation and line structure."""
    stop = ALL_STOP_WORDS if include_web else STOP_WORDS
    out = []
    for line in text.split("\n"):
        parts = WORD_SPLIT_RE.split(line)
        kept = "".join("" if re.fullmatch(r"\w+", p) and p.lower() in stop else p for p in parts)
        kept = WS_RE.sub(" ", kept).strip()
        if kept:
            out.append(kept)
    return "\n".join(out)


def extract_key_phrases(tokens: List[str], n: int = 2) -> List[str]:
    """Most frequent n-grams seen more than once."""
    if len(tokens) < n:
        return []
    counts = Counter(" ".join(tokens[i : i + n]) for i in range(len(tokens) - n + 1))
    repeated = [(p, c) for p, c in counts.items() if c > 1]
    repeated.sort(key=lambda pc: pc[1], reverse=True)
    return [p for p, _ in repeated[:MAX_KEY_PHRASES]]


# -----------------------
# Sections / stats
# -----------------------
def extract_sections(text: str) -> Dict[str, str]:
    sections = {
        "title": "",
        "main_content": "",
        "navigation": "",
        "contact_info": "",
        "programs": "",
        "faculty": "",
        "testimonials": "",
    }
    lines = [ln.strip() for ln in text.split("\n") if ln.strip()]

    for line in lines[:5]:
        if len(line) < 100 and any(w in line.lower() for w in INSTITUTION_WORDS):
            sections["title"] = line
            break

    sections["faculty"] = " ".join(FACULTY_RE.findall(text)[:10])
    programs = [ln for ln in lines if len(ln) < 200 and any(w in ln.lower() for w in PROGRAM_WORDS)]
    sections["programs"] = " ".join(programs[:20])
    testimonials = [ln for ln in lines if any(w in ln.lower() for w in TESTIMONIAL_WORDS)]
    sections["testimonials"] = " ".join(testimonials[:5])
    sections["contact_info"] = " ".join(CONTACT_RE.findall(text)[:5])

    main = text
    for key in ("faculty", "programs", "testimonials"):
        if sections[key]:
            main = main.replace(sections[key], "", 1)
    sections["main_content"] = main.strip()
    return sections


def calculate_stats(original: str, processed: str, tokens: List[str]) -> Dict[str, float]:
    unique = len(set(tokens))
    return {
        "originalLength": len(original),
        "processedLength": len(processed),
        "compressionRatio": len(processed) / len(original) if original else 0.0,
        "tokenCount": len(tokens),
        "uniqueTokens": unique,
        "vocabularyDiversity": unique / len(tokens) if tokens else 0.0,
        "sentenceCount": len(sentence_tokenize(processed)),
    }


# -----------------------
# Pipeline
# -----------------------
def process_for_llm(raw_text: str, opts: Optional[ProcessOptions] = None) -> ProcessedText:
    opts = opts or ProcessOptions()
    raw_text = raw_text or ""
    cleaned = clean_for_llm(raw_text, opts)
    deduped = remove_duplicate_lines(cleaned) if opts.remove_duplicates else cleaned
    sections = extract_sections(deduped) if opts.extract_sections else {}
    tokens = word_tokenize(deduped)
    if not opts.include_stop_words:
        tokens = remove_stop_words(tokens)
    phrases = extract_key_phrases(tokens) if opts.extract_key_phrases else []
    final = deduped if opts.include_stop_words else remove_stop_words_from_text(deduped)
    return ProcessedText(
        processed_text=final,
        sections=sections,
        key_phrases=phrases,
        tokens=tokens,
        stats=calculate_stats(raw_text, deduped, tokens),
        sentences=sentence_tokenize(deduped),
    )


def process_large_text(
    text: str, opts: Optional[ProcessOptions] = None, chunk_size: int = LARGE_TEXT_CHUNK
) -> ProcessedText:
    """Fixed-size slices processed separately, then merged."""
    if not text or len(text) <= chunk_size:
        return process_for_llm(text or "", opts)

    parts = [process_for_llm(text[i : i + chunk_size], opts) for i in range(0, len(text), chunk_size)]
    merged_text = " ".join(p.processed_text for p in parts)
    sections: Dict[str, str] = {}
    for p in parts:
        for k, v in p.sections.items():
            sections[k] = f"{sections.get(k, '')} {v}".strip()
    phrases = list(dict.fromkeys(ph for p in parts for ph in p.key_phrases))
    tokens = [t for p in parts for t in p.tokens]
    return ProcessedText(
        processed_text=merged_text,
        sections=sections,
        key_phrases=phrases[:MAX_MERGED_KEY_PHRASES],
        tokens=tokens,
        stats=calculate_stats(text, merged_text, tokens),
        sentences=sentence_tokenize(merged_text),
    )


def enrich_with_tables(processed: ProcessedText, tables) -> ProcessedText:
    """Attach walker tables (caption + rows) as a fee_tables section."""
    if not tables:
        return processed
    lines: List[str] = []
    for t in tables:
        if t.caption:
            lines.append(t.caption.upper())
        max_cols = max((len(r) for r in t.rows), default=0)
        for r in t.rows:
            if max_cols == 2 and len(r) == 2:
                lines.append(f"- {r[0]}: {r[1]}")
            else:
                lines.append(f"- {' | '.join(r)}")
        lines.append("")
    return replace(processed, sections={**processed.sections, "fee_tables": "\n".join(lines)})


# -----------------------
# Output formats
# -----------------------
def create_llm_format(processed: ProcessedText) -> str:
    s = processed.sections
    st = processed.stats
    main = s.get("main_content")
    overview = f"{main[:OVERVIEW_CHARS]}..." if main else "No overview available"
    return "\n".join(
        [
            f"INSTITUTION: {s.get('title') or 'Webpage Content'}",
            "",
            "OVERVIEW:",
            overview,
            "",
            "ACADEMIC PROGRAMS:",
            s.get("programs") or "No program information found",
            "",
            "FACULTY HIGHLIGHTS:",
            s.get("faculty") or "No faculty information found",
            "",
            "STUDENT TESTIMONIALS:",
            s.get("testimonials") or "No testimonials found",
            "",
            "CONTACT INFORMATION:",
            s.get("contact_info") or "No contact information found",
            "",
            "HOSTEL/FEES TABLES:",
            s.get("fee_tables") or "No fee tables found",
            "",
            f"KEY TOPICS: {', '.join(processed.key_phrases[:10])}",
            "",
            "CONTENT STATISTICS:",
            f"- Original length: {st.get('originalLength', 0):,} characters",
            f"- Processed length: {st.get('processedLength', 0):,} characters",
            f"- Unique tokens: {st.get('uniqueTokens', 0):,}",
            f"- Compression ratio: {st.get('compressionRatio', 0.0) * 100:.1f}%",
            f"- Vocabulary diversity: {st.get('vocabularyDiversity', 0.0) * 100:.1f}%",
        ]
    )


def create_json_format(processed: ProcessedText, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return json.dumps(
        {
            "metadata": {"processed_at": stamp, "stats": processed.stats},
            "content": {
                "sections": processed.sections,
                "key_phrases": processed.key_phrases,
                "processed_text": processed.processed_text,
            },
        },
        ensure_ascii=False,
        indent=2,
    )


def format_content_as_text(result) -> str:
    """Readable layout of an ExtractResult: underlined title and headings, then body blocks."""
    out: List[str] = []
    if result.title:
        out += [result.title, "=" * len(result.title), ""]

    for h in result.headings:
        text = HEADING_PREFIX_RE.sub("", h)
        out += [text, "-" * min(len(text), 50), ""]

    seen = set()
    for p in result.paragraphs:
        if p not in seen and len(p) > 10:
            seen.add(p)
            out += [p, ""]

    if result.lists:
        out.append("Key Points:")
        out += [f"• {item}" for item in result.lists if len(item) > 5]
        out.append("")

    if result.tables:
        out.append("Tabular Data (Extracted):")
        for t in result.tables:
            if t.caption:
                out += [t.caption, "-" * min(len(t.caption), 50)]
            max_cols = max((len(r) for r in t.rows), default=0)
            for r in t.rows:
                out.append(f"{r[0]}: {r[1]}" if max_cols == 2 and len(r) == 2 else " | ".join(r))
            out.append("")

    if result.links:
        out.append("Links:")
        shown = set()
        for link in result.links:
            entry = f"[{link.text}] - {link.href}"
            if entry not in shown and len(link.text) > 2:
                shown.add(entry)
                out.append(entry)

    return "\n".join(out).strip()


def render(text: str, fmt: str = "text", tables=None, opts: Optional[ProcessOptions] = None) -> str:
    """One entry point for the export formats: text (as-is), llm, json."""
    if fmt == "text":
        return text
    if fmt not in ("llm", "json"):
        raise InvalidInputError(f"unknown format: {fmt}")
    processed = enrich_with_tables(process_large_text(text, opts), tables or [])
    return create_llm_format(processed) if fmt == "llm" else create_json_format(processed)
