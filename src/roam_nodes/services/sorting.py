"""Ordering comparators for candidate lists.

Comparators take two candidates and return a negative number when the first
sorts before the second, zero when they tie and a positive number otherwise.
They plug into ``functools.cmp_to_key``.
"""
import datetime
from enum import Enum
from typing import Callable, Optional

from roam_nodes.models.schema import Candidate

Comparator = Callable[[Candidate, Candidate], int]


class SortKey(str, Enum):
    """Default orderings a candidate list builder can apply."""

    FILE_MTIME = "file-mtime"  # Most recently modified file first
    FILE_ATIME = "file-atime"  # Most recently accessed file first
    TITLE = "title"  # Title variant, A-Z
    NONE = "none"  # Keep retrieval order


def _newest_first(
    a: Optional[datetime.datetime], b: Optional[datetime.datetime]
) -> int:
    # Missing timestamps sort last
    if a == b:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return -1 if a > b else 1


def compare_file_mtime(a: Candidate, b: Candidate) -> int:
    """Order by file modification time, newest first."""
    return _newest_first(a.node.file_mtime, b.node.file_mtime)


def compare_file_atime(a: Candidate, b: Candidate) -> int:
    """Order by file access time, most recent first."""
    return _newest_first(a.node.file_atime, b.node.file_atime)


def compare_title(a: Candidate, b: Candidate) -> int:
    """Order by title variant, case-insensitively."""
    left, right = a.node.title.casefold(), b.node.title.casefold()
    return (left > right) - (left < right)


_COMPARATORS = {
    SortKey.FILE_MTIME: compare_file_mtime,
    SortKey.FILE_ATIME: compare_file_atime,
    SortKey.TITLE: compare_title,
}


def comparator_for(key: SortKey) -> Optional[Comparator]:
    """Get the comparator for a sort key, or None for ``SortKey.NONE``."""
    return _COMPARATORS.get(SortKey(key))
