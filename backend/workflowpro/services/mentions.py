"""@mention extraction from comment text."""

from __future__ import annotations

import re

# Two words after '@': "@Jane Doe".
MENTION_RE = re.compile(r"@(\w+\s\w+)")


def extract_mentions(content: str | None) -> list[str]:
    """Display names mentioned in `content`, first occurrence order, no duplicates."""
    if not content:
        return []
    seen: set[str] = set()
    names: list[str] = []
    for match in MENTION_RE.finditer(content):
        name = " ".join(match.group(1).split())
        if name not in seen:
            seen.add(name)
            names.append(name)
    return names
