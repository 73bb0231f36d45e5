"""Resolve the remaining pages of a listing from its ``Link`` header.

Gitea answers the first page of a listing with a header such as::

    <https://git.example.com/api/v1/user/repos?page=2&limit=50>; rel="next",
    <https://git.example.com/api/v1/user/repos?page=9&limit=50>; rel="last"

Only the ``rel="last"`` entry matters: everything between the current page and
the last one is fetched concurrently afterwards.
"""

import re
from urllib.parse import parse_qs, urlsplit

from contractor.errors import PaginationError

_REL_RE = re.compile(r'rel\s*=\s*"?([^"]*)"?', re.IGNORECASE)


def _split_entry(entry: str) -> tuple[str, list[str]]:
    """Split ``<url>; rel="x"`` into the raw url part and its parameters."""
    target, *params = (part.strip() for part in entry.split(";"))
    return target, params


def _rels(params: list[str]) -> set[str]:
    rels: set[str] = set()
    for param in params:
        match = _REL_RE.fullmatch(param)
        if match:
            rels.update(match.group(1).split())
    return rels


def parse_last_page(link: str) -> int | None:
    """Return the page number the ``rel="last"`` entry points to, if any."""
    for entry in link.split(","):
        if not entry.strip():
            continue
        target, params = _split_entry(entry)
        if "last" not in _rels(params):
            continue

        if not (target.startswith("<") and target.endswith(">")):
            raise PaginationError(f"link target is not enclosed in <>: {target!r}")

        try:
            query = parse_qs(urlsplit(target[1:-1]).query, keep_blank_values=True)
        except ValueError as e:
            raise PaginationError(f"invalid link url {target!r}: {e}") from e

        values = query.get("page")
        if values is None:
            return None
        page = values[0]
        # isdigit() alone also accepts non-ASCII digits int() rejects
        if not (page.isascii() and page.isdigit()):
            raise PaginationError(f"page parameter is not a number: {page!r}")
        return int(page)

    return None


def parse_link(page: int, link: str | None) -> list[int]:
    """Return the page numbers still to fetch after ``page``.

    Pagination metadata is only trusted on the first page; any later page
    yields an empty list. The last page is included.
    """
    if page > 1 or not link:
        return []

    last = parse_last_page(link)
    if last is None:
        return []
    return list(range(page + 1, last + 1))
