"""
URL alignment for WordPress search-replace.

A host change leaves the old base URL embedded in post content, options
and serialized/JSON blobs in several spellings. URLAlignmentEngine builds the
closed set of spellings a global replace has to cover and keeps an ordered,
de-duplicated list of (old, new) pairs for the run.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


@dataclass(frozen=True)
class SearchReplacePair:
    """An ordered (old, new) replacement."""
    old: str
    new: str

    def __str__(self) -> str:
        return f"{self.old} -> {self.new}"


def trim_trailing_slash(value: str) -> str:
    """Strip a single trailing slash."""
    return value[:-1] if value.endswith("/") else value


def json_escape(value: str) -> str:
    """Escape a URL the way json_encode stores it (backslashes, then slashes)."""
    return value.replace("\\", "\\\\").replace("/", "\\/")


def host_only(url: str) -> str:
    """
    Reduce a URL to its host part.

    ``https://example.com/blog`` and ``//example.com`` both become
    ``example.com``. Ports are kept since they are part of stored URLs.
    """
    value = url.strip()
    value = _SCHEME_RE.sub("", value)
    if value.startswith("//"):
        value = value[2:]
    return value.split("/", 1)[0]


def _is_valid(old: str, new: str) -> bool:
    return bool(old) and bool(new) and old != new


def variants_for(old_url: str, new_url: str, include_host: bool = True) -> List[SearchReplacePair]:
    """
    Return every replacement pair needed to move ``old_url`` to ``new_url``.

    The order is: exact, trimmed, trimmed plus slash, JSON-escaped,
    JSON-escaped trimmed, JSON-escaped trimmed plus escaped slash, host-only
    and protocol-relative host. Pairs with an empty side or with equal sides
    are dropped and duplicates keep their first position.

    Args:
        old_url: URL as stored in the imported or source database
        new_url: URL the destination should end up with
        include_host: Also emit the host-only and ``//host`` pairs

    Returns:
        Ordered list of unique pairs
    """
    candidates: List[SearchReplacePair] = []

    def add(old: str, new: str):
        if _is_valid(old, new):
            candidates.append(SearchReplacePair(old, new))

    add(old_url, new_url)

    old_trim = trim_trailing_slash(old_url)
    new_trim = trim_trailing_slash(new_url)
    if old_trim and new_trim:
        add(old_trim, new_trim)
        add(f"{old_trim}/", f"{new_trim}/")

    add(json_escape(old_url), json_escape(new_url))
    if old_trim and new_trim:
        old_trim_json = json_escape(old_trim)
        new_trim_json = json_escape(new_trim)
        add(old_trim_json, new_trim_json)
        add(f"{old_trim_json}\\/", f"{new_trim_json}\\/")

    if include_host:
        old_host = host_only(old_url)
        new_host = host_only(new_url)
        if old_host and new_host:
            add(old_host, new_host)
            add(f"//{old_host}", f"//{new_host}")

    unique: List[SearchReplacePair] = []
    for pair in candidates:
        if pair not in unique:
            unique.append(pair)
    return unique


class URLAlignmentEngine:
    """Ordered, de-duplicated accumulator of search-replace pairs."""

    def __init__(self, pairs: Optional[List[SearchReplacePair]] = None):
        self._pairs: List[SearchReplacePair] = []
        for pair in pairs or []:
            self.add_pair(pair.old, pair.new)

    def add_pair(self, old: str, new: str) -> bool:
        """
        Append a single pair.

        Returns:
            True if the pair was added, False if it was empty, a no-op or
            already present
        """
        if not _is_valid(old, new):
            return False
        pair = SearchReplacePair(old, new)
        if pair in self._pairs:
            return False
        self._pairs.append(pair)
        return True

    def add_alignment(self, old_url: str, new_url: str, include_host: bool = False) -> int:
        """Add the URL variants for ``old_url -> new_url``; returns how many were new."""
        added = 0
        for pair in variants_for(old_url, new_url, include_host=include_host):
            if self.add_pair(pair.old, pair.new):
                added += 1
        return added

    def add_host_alignment(self, old_url: str, new_url: str) -> int:
        """Add the bare-host and protocol-relative pairs for two URLs."""
        old_host = host_only(old_url)
        new_host = host_only(new_url)
        if not old_host or not new_host:
            return 0
        added = 0
        for old, new in ((old_host, new_host), (f"//{old_host}", f"//{new_host}")):
            if self.add_pair(old, new):
                added += 1
        return added

    @property
    def pairs(self) -> List[SearchReplacePair]:
        return list(self._pairs)

    def clear(self):
        self._pairs.clear()

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[SearchReplacePair]:
        return iter(list(self._pairs))

    def __bool__(self) -> bool:
        return bool(self._pairs)
