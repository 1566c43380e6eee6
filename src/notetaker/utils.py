"""Utility functions for the Notetaker core."""
import html
import re

_TAG_RE = re.compile(r"<[^>]*>")
_BLOCK_TAG_RE = re.compile(
    r"</?(p|div|br|li|ul|ol|h[1-6]|blockquote|hr|pre)(\s[^>]*)?/?>",
    re.IGNORECASE,
)
_WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(body: str) -> str:
    """Reduce an editor HTML body to searchable plain text.

    Block-level tags become spaces so words in adjacent paragraphs do not
    run together, every other tag is dropped, entities are unescaped and
    whitespace is collapsed.

    Examples:
        "<p>Hello</p><p>world</p>" -> "Hello world"
        "<p>Fish &amp; chips</p>" -> "Fish & chips"

    Args:
        body: Note body markup. Plain text passes through unchanged.

    Returns:
        Plain text with single spaces between words.
    """
    if not body:
        return ""
    text = _BLOCK_TAG_RE.sub(" ", body)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def make_excerpt(text: str, length: int) -> str:
    """Cut plain text down to a preview of at most ``length`` characters.

    Breaks on the last word boundary that fits and appends an ellipsis
    when anything was cut.
    """
    if len(text) <= length:
        return text
    cut = text[: max(length - 1, 0)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip() + "…"
