"""Client/invoice/expense name filters: regex first, literal substring fallback."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

MODE_ANY = "any"
MODE_REGEX = "regex"
MODE_LITERAL = "literal"


@dataclass(frozen=True)
class NameFilter:
    expression: Optional[str]
    mode: str
    pattern: Optional[re.Pattern] = None

    def matches(self, value: str) -> bool:
        if self.mode == MODE_ANY:
            return True
        value = value or ""
        if self.mode == MODE_REGEX and self.pattern is not None:
            return bool(self.pattern.search(value))
        return (self.expression or "").lower() in value.lower()


@lru_cache(maxsize=256)
def compile_filter(expression: Optional[str]) -> NameFilter:
    """Decide once how a filter string is evaluated."""
    if not expression:
        return NameFilter(expression=None, mode=MODE_ANY)
    try:
        pattern = re.compile(expression, re.IGNORECASE)
    except re.error:
        return NameFilter(expression=expression, mode=MODE_LITERAL)
    return NameFilter(expression=expression, mode=MODE_REGEX, pattern=pattern)


def matches(value: str, expression: Optional[str]) -> bool:
    return compile_filter(expression).matches(value)
