"""Page extraction - boilerplate removal, text flattening, stopword filtering and link harvesting."""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Pattern, Tuple
from urllib.parse import urljoin, urldefrag, urlparse

from selectolax.parser import HTMLParser, Node

from .constants import (
    BOILERPLATE_SELECTORS,
    ENGLISH_STOPWORDS,
    EXCLUDED_LINK_EXTENSIONS,
    HEADING_TAGS,
)
from .filters import compile_extension_pattern
from .models import ExtractedPage

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExtractionRules:
    """Immutable configuration for ContentExtractor."""
    boilerplate_selectors: Tuple[str, ...]
    stopwords: FrozenSet[str]
    link_extension_pattern: Pattern[str]

    @classmethod
    def default(cls) -> "ExtractionRules":
        return cls(
            boilerplate_selectors=tuple(BOILERPLATE_SELECTORS),
            stopwords=frozenset(word.lower() for word in ENGLISH_STOPWORDS),
            link_extension_pattern=compile_extension_pattern(EXCLUDED_LINK_EXTENSIONS),
        )


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


class ContentExtractor:
    """Turns raw markup into cleaned text plus same-origin links. No I/O."""

    def __init__(self, rules: ExtractionRules):
        self.rules = rules

    def _safe_node_text(self, node: Optional[Node], strip: bool = True) -> str:
        """Safely extract text from selectolax node."""
        if node is None:
            return ""
        try:
            text = node.text(strip=strip)
        except Exception:
            return ""
        if text is None:
            return ""
        return str(text).strip() if strip else str(text)

    def _safe_attr_text(self, node: Optional[Node], key: str) -> str:
        """Safely extract attribute text and normalize it."""
        if node is None:
            return ""
        raw = node.attributes.get(key, "")
        if raw is None:
            return ""
        return str(raw).strip()

    def extract(self, html: str, url: str) -> ExtractedPage:
        """
        Extract readable text and same-origin links from a page.

        Steps:
        1. Harvest same-origin links and page metadata from the untouched DOM
        2. Remove boilerplate nodes
        3. Replace headings and links with inline textual markers
        4. Flatten to text in reading order, collapse whitespace
        5. Drop stopwords
        """
        if not html or not html.strip():
            return ExtractedPage(url=url, text="")

        tree = HTMLParser(html)

        title = self._safe_node_text(tree.css_first("title"))
        meta_description = self._safe_attr_text(tree.css_first("meta[name='description']"), "content")
        canonical_href = self._safe_attr_text(tree.css_first("link[rel='canonical']"), "href")
        canonical = urljoin(url, canonical_href) if canonical_href else ""
        links = self.extract_links(tree, url)

        self._remove_boilerplate(tree)
        self._mark_links(tree, url)
        self._mark_headings(tree)

        root = tree.body or tree.root
        raw_text = root.text(deep=True, separator=" ") if root is not None else ""

        return ExtractedPage(
            url=url,
            text=self.clean_text(raw_text),
            links=links,
            title=title,
            meta_description=meta_description,
            canonical=canonical,
        )

    def clean_text(self, text: str) -> str:
        """Collapse whitespace and drop stopword tokens."""
        collapsed = _WHITESPACE.sub(" ", text or "").strip()
        if not collapsed:
            return ""
        stopwords = self.rules.stopwords
        return " ".join(token for token in collapsed.split(" ") if token.lower() not in stopwords)

    def extract_links(self, tree: HTMLParser, url: str) -> List[str]:
        """Absolute same-origin links in document order, without fragments or excluded extensions."""
        try:
            base_origin = _origin(url)
        except ValueError:
            return []

        links: List[str] = []
        seen: set[str] = set()
        for anchor in tree.css("a[href]"):
            href = self._safe_attr_text(anchor, "href")
            if not href or href.startswith(("#", "javascript:", "mailto:", "tel:", "data:")):
                continue
            try:
                absolute, _fragment = urldefrag(urljoin(url, href))
                parsed = urlparse(absolute)
            except ValueError:
                continue
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                continue
            if _origin(absolute) != base_origin:
                continue
            if self.rules.link_extension_pattern.search(parsed.path or ""):
                continue
            if absolute in seen:
                continue
            seen.add(absolute)
            links.append(absolute)
        return links

    def _remove_boilerplate(self, tree: HTMLParser) -> None:
        # Collect every match before touching the tree, then decompose only the
        # outermost ones; nested matches go with their ancestor.
        matches: Dict[int, Node] = {}
        for selector in self.rules.boilerplate_selectors:
            for node in tree.css(selector):
                matches.setdefault(node.mem_id, node)

        outermost = [node for node in matches.values() if not _has_ancestor_in(node, matches)]
        for node in outermost:
            node.decompose()

    def _mark_links(self, tree: HTMLParser, url: str) -> None:
        for anchor in reversed(tree.css("a")):
            label = _WHITESPACE.sub(" ", self._safe_node_text(anchor, strip=False)).strip()
            href = self._safe_attr_text(anchor, "href")
            if label and href and not href.startswith(("#", "javascript:")):
                try:
                    href = urljoin(url, href)
                except ValueError:
                    pass
                anchor.replace_with(f" [{label}]({href}) ")
            else:
                anchor.replace_with(f" {label} ")

    def _mark_headings(self, tree: HTMLParser) -> None:
        for heading in reversed(tree.css(", ".join(HEADING_TAGS))):
            level = int(heading.tag[1])
            label = _WHITESPACE.sub(" ", self._safe_node_text(heading, strip=False)).strip()
            heading.replace_with(f" {'#' * level} {label} " if label else " ")


def _has_ancestor_in(node: Node, matches: Dict[int, Node]) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.mem_id in matches:
            return True
        parent = parent.parent
    return False
