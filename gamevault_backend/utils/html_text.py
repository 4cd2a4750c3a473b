from __future__ import annotations

import re

from bs4 import BeautifulSoup

_DECIMAL_ENTITY_RE = re.compile(r"&#(\d+);")
_HEX_ENTITY_RE = re.compile(r"&#[xX]([0-9a-fA-F]+);")

# `&amp;` stays out of this table; it is decoded after everything else.
NAMED_ENTITIES: tuple[tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&ndash;", "–"),
    ("&mdash;", "—"),
    ("&hellip;", "…"),
    ("&rsquo;", "’"),
    ("&lsquo;", "‘"),
    ("&rdquo;", "”"),
    ("&ldquo;", "“"),
)

_BLOCK_TAGS = ("p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "ul", "ol")
_INLINE_WS_RE = re.compile(r"[^\S\n]+")


def _chr_or_original(match: re.Match[str], base: int) -> str:
    try:
        return chr(int(match.group(1), base))
    except (ValueError, OverflowError):
        return match.group(0)


def decode_html_entities(text: str) -> str:
    """
    Decode character entities: numeric first, then named, then `&amp;` last.

    Decoding `&amp;` last keeps "&amp;lt;" as the literal text "&lt;" instead of "<".
    """

    if not text:
        return ""
    result = _DECIMAL_ENTITY_RE.sub(lambda m: _chr_or_original(m, 10), text)
    result = _HEX_ENTITY_RE.sub(lambda m: _chr_or_original(m, 16), result)
    for entity, replacement in NAMED_ENTITIES:
        result = re.sub(re.escape(entity), replacement, result, flags=re.IGNORECASE)
    return re.sub("&amp;", "&", result, flags=re.IGNORECASE)


def _normalize_whitespace(text: str) -> str:
    lines = [_INLINE_WS_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def strip_html(html: str) -> str:
    """
    Convert an HTML fragment to plain text, keeping block boundaries as newlines.
    """

    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["br", "hr"]):
        tag.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append("\n")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    return _normalize_whitespace(soup.get_text())


def truncate_text(text: str, max_length: int) -> str:
    if not text or len(text) <= max_length:
        return text
    return text[: max(0, max_length - 3)] + "..."


def normalize_description(raw: str | None) -> str | None:
    if not raw:
        return None
    cleaned = strip_html(raw)
    return cleaned or None
