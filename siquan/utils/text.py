"""
siquan/utils/text.py — Post text helpers
HTML stripping, previews, word counts, slugs, the lightweight markdown
renderer used for post pages and the allow-list sanitizer applied to
every post body before it reaches a page.
"""
from __future__ import annotations

import html
import re
import time
from typing import Optional

import bleach

_TAG_RE = re.compile(r"<[^>]*>")
_NAMED_ENTITY_RE = re.compile(r"&[a-z]+;", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_LOOKS_LIKE_HTML_RE = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)

_ENTITIES = [
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
]


def strip_html_tags(content: Optional[str]) -> str:
    """Drop tags, decode the common entities, collapse whitespace."""
    if not content:
        return ""
    text = _TAG_RE.sub(" ", content)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    text = _NAMED_ENTITY_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def get_preview_text(content: Optional[str], max_length: int = 150) -> str:
    plain = strip_html_tags(content)
    if len(plain) <= max_length:
        return plain
    return plain[:max_length].strip() + "..."


def calculate_word_count(content: Optional[str]) -> int:
    text = strip_html_tags(content)
    if not text:
        return 0
    return len([w for w in text.split() if w])


def make_excerpt(content: str, length: int = 200) -> str:
    """Newsletter excerpt: first `length` characters plus an ellipsis."""
    return content[:length].strip() + "..."


def slugify(title: str, now_ms: Optional[int] = None) -> str:
    """
    Lower-case ASCII slug with a millisecond suffix so repeated titles
    never collide. Titles with no ASCII letters fall back to 'post'.
    """
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "post"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{base}-{now_ms}"


def looks_like_html(content: str) -> bool:
    return bool(_LOOKS_LIKE_HTML_RE.search(content))


# ──────────────────────────────────────────────────────────────────────────────
# Markdown → HTML
# Rich-text editor output is already HTML and is only sanitized.
# ──────────────────────────────────────────────────────────────────────────────

_MD_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"!\[([^\]]*)\]\(([^)]+)\)"),
     r'<img src="\2" alt="\1" class="w-full rounded-lg my-6" />'),
    (re.compile(r"### ([^\n]+)"), r'<h3 class="text-2xl font-bold mt-8 mb-4">\1</h3>'),
    (re.compile(r"## ([^\n]+)"), r'<h2 class="text-3xl font-bold mt-10 mb-4">\1</h2>'),
    (re.compile(r"# ([^\n]+)"), r'<h1 class="text-4xl font-bold mt-12 mb-6">\1</h1>'),
    (re.compile(r"\*\*([^*]+)\*\*"), r'<strong class="font-bold">\1</strong>'),
    (re.compile(r"\*([^*]+)\*"), r'<em class="italic">\1</em>'),
    (re.compile(r"\[([^\]]+)\]\(([^)]+)\)"),
     r'<a href="\2" class="text-blue-600 hover:underline" target="_blank" '
     r'rel="noopener noreferrer">\1</a>'),
]


def render_markdown(content: Optional[str]) -> str:
    if not content:
        return ""
    if looks_like_html(content):
        return content

    rendered = html.escape(content)
    for pattern, replacement in _MD_RULES:
        rendered = pattern.sub(replacement, rendered)

    rendered = re.sub(r"\n\n+", '</p><p class="mb-4">', rendered)
    rendered = rendered.replace("\n", "<br/>")
    rendered = f'<p class="mb-4">{rendered}</p>'
    return rendered.replace('<p class="mb-4"></p>', "")


# ──────────────────────────────────────────────────────────────────────────────
# Sanitizer — post bodies are user content
# ──────────────────────────────────────────────────────────────────────────────

ALLOWED_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "code", "del", "div", "em",
    "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i",
    "img", "li", "ol", "p", "pre", "s", "span", "strong", "sub", "sup",
    "table", "tbody", "td", "th", "thead", "tr", "u", "ul",
})

ALLOWED_ATTRIBUTES = {
    "*": ["class"],
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan"],
}

ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

_cleaner = bleach.Cleaner(
    tags=ALLOWED_TAGS,
    attributes=ALLOWED_ATTRIBUTES,
    protocols=ALLOWED_PROTOCOLS,
    strip=True,
    strip_comments=True,
)


def sanitize_html(content: Optional[str]) -> str:
    """Drop tags, attributes and URL schemes outside the allow-list."""
    if not content:
        return ""
    return _cleaner.clean(content)


def render_post_body(content: Optional[str]) -> str:
    return sanitize_html(render_markdown(content))
