"""Candidate URL filtering - rejects non-text and suspected non-content URLs."""

import re
from dataclasses import dataclass
from typing import Iterable, Pattern, Tuple
from urllib.parse import urlparse

from .constants import EXCLUDED_FETCH_EXTENSIONS, EXCLUDED_PATH_PATTERNS


def compile_extension_pattern(extensions: Iterable[str]) -> Pattern[str]:
    """Compile a case-insensitive "path ends with one of these extensions" regex."""
    alternatives = "|".join(sorted({re.escape(ext.lower().lstrip(".")) for ext in extensions}))
    return re.compile(rf"\.(?:{alternatives})$", re.IGNORECASE)


@dataclass(frozen=True)
class FilterRules:
    """Immutable exclusion rules for candidate URLs."""
    extension_pattern: Pattern[str]
    path_patterns: Tuple[Pattern[str], ...]

    @classmethod
    def default(cls) -> "FilterRules":
        return cls(
            extension_pattern=compile_extension_pattern(EXCLUDED_FETCH_EXTENSIONS),
            path_patterns=tuple(re.compile(p, re.IGNORECASE) for p in EXCLUDED_PATH_PATTERNS),
        )


class URLFilter:
    """Pure predicate over candidate URLs."""

    def __init__(self, rules: FilterRules):
        self.rules = rules

    def is_fetchable(self, url: str) -> bool:
        """
        Return True when the URL is worth fetching.

        Extension exclusions are checked first, then path patterns; the first
        match rejects. Malformed URLs are rejected as well.
        """
        try:
            parsed = urlparse(str(url or "").strip())
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False

        path = parsed.path or ""
        if self.rules.extension_pattern.search(path):
            return False

        target = f"{path}?{parsed.query}" if parsed.query else path
        for pattern in self.rules.path_patterns:
            if pattern.search(target):
                return False

        return True

