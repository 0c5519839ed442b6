"""HTML → plain text extraction.

Walks the parsed element tree in document (pre-order) order:
- subtrees rooted at a skipped tag (``head``, ``script`` by default) are
  dropped together with all their descendants;
- whitespace-only text runs are dropped;
- every other text run is whitespace-collapsed and followed by one space.

Comments, doctypes, CDATA sections and processing instructions are markup,
not text, and never contribute to the output.
"""

from __future__ import annotations

from collections.abc import Iterable

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag
from bs4.element import PreformattedString

DEFAULT_SKIP_TAGS: frozenset[str] = frozenset(["head", "script"])


def parse_html(raw_html: str) -> BeautifulSoup:
    """Parse *raw_html* into a tree. Malformed markup is repaired, never rejected."""
    return BeautifulSoup(raw_html, "html.parser")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines and tabs included) to one space."""
    return " ".join(text.split())


def extract_text(root: Tag, skip_tags: Iterable[str] = DEFAULT_SKIP_TAGS) -> str:
    """Return the normalised plain text under *root*.

    Uses an explicit stack so arbitrarily deep documents cannot hit the
    interpreter's recursion limit. *root* itself is never skipped; only its
    descendants are tested against *skip_tags*.
    """
    skip = frozenset(t.lower() for t in skip_tags)
    parts: list[str] = []
    stack: list[PageElement] = list(reversed(root.contents))

    while stack:
        node = stack.pop()
        if isinstance(node, Tag):
            if node.name.lower() in skip:
                continue
            stack.extend(reversed(node.contents))
        elif _is_text(node):
            text = normalize_whitespace(str(node))
            if text:
                parts.append(text + " ")

    return "".join(parts)


def html_to_text(raw_html: str, skip_tags: Iterable[str] = DEFAULT_SKIP_TAGS) -> str:
    """Parse *raw_html* and extract its plain text."""
    return extract_text(parse_html(raw_html), skip_tags)


def _is_text(node: PageElement) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)
