"""
Sweetlease - Lease Text Search
Case-insensitive search over extracted lease text. Page numbers come from
the blank-line separators the text extractor puts between pages.
"""

import html
import re
from dataclasses import dataclass

from app.services.lease.text_extractor import PAGE_SEPARATOR

CONTEXT_CHARS = 60


@dataclass(frozen=True)
class TextMatch:
    start: int
    end: int
    page: int
    snippet: str

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "page": self.page, "snippet": self.snippet}


def _pattern(term: str) -> re.Pattern:
    return re.compile(re.escape(term.strip()), re.IGNORECASE)


def page_starts(full_text: str) -> list[int]:
    """Offsets where each page begins (first page at 0)."""
    starts = [0]
    position = full_text.find(PAGE_SEPARATOR)
    while position != -1:
        starts.append(position + len(PAGE_SEPARATOR))
        position = full_text.find(PAGE_SEPARATOR, position + len(PAGE_SEPARATOR))
    return starts


def _page_for(offset: int, starts: list[int]) -> int:
    page = 1
    for number, start in enumerate(starts, start=1):
        if start > offset:
            break
        page = number
    return page


def find_matches(full_text: str, term: str, context: int = CONTEXT_CHARS) -> list[TextMatch]:
    """All occurrences of term with 1-based page number and a surrounding snippet."""
    if not full_text or not term or not term.strip():
        return []

    starts = page_starts(full_text)
    matches = []
    for match in _pattern(term).finditer(full_text):
        left = max(0, match.start() - context)
        right = min(len(full_text), match.end() + context)
        snippet = " ".join(full_text[left:right].split())
        if left > 0:
            snippet = "..." + snippet
        if right < len(full_text):
            snippet = snippet + "..."
        matches.append(TextMatch(match.start(), match.end(), _page_for(match.start(), starts), snippet))
    return matches


def highlight(full_text: str, term: str) -> str:
    """HTML-escaped text with every match wrapped in <mark>."""
    if not term or not term.strip():
        return html.escape(full_text or "")

    parts = []
    cursor = 0
    for match in _pattern(term).finditer(full_text or ""):
        parts.append(html.escape(full_text[cursor:match.start()]))
        parts.append(f"<mark>{html.escape(match.group(0))}</mark>")
        cursor = match.end()
    parts.append(html.escape((full_text or "")[cursor:]))
    return "".join(parts)
