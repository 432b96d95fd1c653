"""Borrow tag allocation.

Every frame pushed on a borrow stack carries a tag. Tags are opaque,
totally ordered and never reused for the lifetime of an allocator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, order=True)
class BorrowTag:
    value: int

    def __str__(self) -> str:
        return f"<{self.value}>"


UNTAGGED_LABEL = "<untagged>"


def tag_label(tag: Optional[BorrowTag]) -> str:
    return str(tag) if tag is not None else UNTAGGED_LABEL


class TagAllocator:
    """Issues strictly increasing borrow tags."""

    def __init__(self, start: int = 0):
        self._counter = start

    def next(self) -> BorrowTag:
        tag = BorrowTag(self._counter)
        self._counter += 1
        return tag

    def peek(self) -> BorrowTag:
        return BorrowTag(self._counter)

    @property
    def issued(self) -> int:
        return self._counter
