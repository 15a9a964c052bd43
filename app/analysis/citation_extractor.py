"""Citation Extractor: pulls claimed sources out of provider answers.

Strategies, in priority order, unioned with URL-normalized de-duplication:
  1. Structured citation arrays returned by the provider API
  2. Inline markdown links: [text](url)
  3. Provider-specific fallbacks:
       - *(source: url)* annotations
       - numbered markers [n], paired with the nth URL in the text
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable
from urllib.parse import urlparse

from app.analysis.types import Citation
from app.gateway.types import ProviderKind

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# URL / link extraction patterns
# ---------------------------------------------------------------------------

# Markdown-style links: [anchor text](url)
_MD_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\((https?://[^\s\)]+)\)")

# Source annotations: *(source: https://...)*
_SOURCE_PATTERN = re.compile(r"\*\(source:\s*([^)]+)\)\*", re.IGNORECASE)

# Numbered markers: [1], [2]
_NUMBERED_PATTERN = re.compile(r"\[(\d+)\]")

# Any URL in the text
_URL_PATTERN = re.compile(r"https?://[^\s\)\]]+")


def normalize_url(url: str) -> str:
    """Origin + path; query string and fragment are dropped."""
    url = url.strip()
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{parsed.path}"


def extract_domain(url: str) -> str:
    """Extract domain from URL, stripping www. prefix."""
    domain = urlparse(url).hostname or ""
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.lower()


class _Collector:
    """Accumulates citations for one extraction, skipping duplicates."""

    def __init__(self, source: str):
        self.source = source
        self.citations: list[Citation] = []
        self._seen: set[str] = set()

    def add(self, url: str, text: str) -> None:
        url = url.strip()
        if not url:
            return
        key = normalize_url(url)
        if key in self._seen:
            return
        self._seen.add(key)
        self.citations.append(Citation(url=url, text=text.strip() or url, source=self.source))


def _from_structured(collector: _Collector, structured: list[Any] | None) -> None:
    for item in structured or []:
        if isinstance(item, str):
            collector.add(item, item)
        elif isinstance(item, dict) and item.get("url"):
            collector.add(item["url"], item.get("title") or item.get("text") or item["url"])


def _from_markdown_links(collector: _Collector, text: str) -> None:
    for match in _MD_LINK_PATTERN.finditer(text):
        collector.add(match.group(2), match.group(1))


def _from_source_annotations(collector: _Collector, text: str) -> None:
    for match in _SOURCE_PATTERN.finditer(text):
        url = match.group(1).strip()
        collector.add(url, url)


def _from_numbered_references(collector: _Collector, text: str) -> None:
    markers = _NUMBERED_PATTERN.findall(text)
    if not markers:
        return
    urls = [u.rstrip(".,;:") for u in _URL_PATTERN.findall(text)]
    for number in markers:
        index = int(number) - 1
        if 0 <= index < len(urls):
            collector.add(urls[index], f"[{number}]")


_FALLBACKS: dict[ProviderKind, tuple[Callable[[_Collector, str], None], ...]] = {
    ProviderKind.CHATGPT: (_from_source_annotations, _from_numbered_references),
    ProviderKind.GEMINI: (),
    ProviderKind.PERPLEXITY: (_from_numbered_references,),
}


def extract_citations(
    provider: ProviderKind,
    text: str,
    structured: list[Any] | None = None,
) -> list[Citation]:
    """Extract citations from one provider answer.

    Args:
        provider: Which provider produced the answer; selects fallbacks.
        text: The answer text.
        structured: Citation array from the provider API, either URL
            strings or ``{"url", "title"}`` dicts.

    Returns:
        Citations in discovery order, one per normalized URL.
    """
    collector = _Collector(source=provider.value)
    if not text and not structured:
        return collector.citations

    _from_structured(collector, structured)
    if text:
        _from_markdown_links(collector, text)
        for strategy in _FALLBACKS.get(provider, ()):
            strategy(collector, text)

    return collector.citations

