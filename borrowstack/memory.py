"""Memory store for borrowstack traces.

An arena of named allocations. Each allocation owns its current scalar
value and a borrow stack of frames (top = most recently pushed). The store
is a plain container: it never decides whether an access is allowed, that
is the permission engine's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from borrowstack.errors import TraceError, invalid_allocation, duplicate_name
from borrowstack.tags import BorrowTag, TagAllocator, tag_label

logger = logging.getLogger(__name__)

AllocationId = int


class Permission(Enum):
    UNIQUE = "Unique"
    SHARED_READ_WRITE = "SharedReadWrite"
    SHARED_READ_ONLY = "SharedReadOnly"
    DISABLED = "Disabled"


@dataclass
class Frame:
    tag: BorrowTag
    permission: Permission
    parent: Optional[BorrowTag] = None

    def __str__(self) -> str:
        return f"{self.permission.value}{self.tag}"


@dataclass(frozen=True)
class Pointer:
    """A reference or raw pointer value. ``tag`` is None once provenance is erased."""
    target: AllocationId
    tag: Optional[BorrowTag]

    @property
    def untagged(self) -> bool:
        return self.tag is None

    def __str__(self) -> str:
        return f"&alloc{self.target}{tag_label(self.tag)}"


@dataclass
class Allocation:
    id: AllocationId
    name: str
    value: int
    mutable: bool = False
    interior_mutable: bool = False
    stack: list[Frame] = field(default_factory=list)
    # parent of every tag ever pushed here; survives pops
    lineage: dict[BorrowTag, Optional[BorrowTag]] = field(default_factory=dict)

    @property
    def root(self) -> Frame:
        return self.stack[0]

    def find(self, tag: BorrowTag) -> Optional[int]:
        """Depth of the topmost frame carrying ``tag``, or None."""
        for depth in range(len(self.stack) - 1, -1, -1):
            if self.stack[depth].tag == tag:
                return depth
        return None

    def derives_from(self, tag: BorrowTag, ancestor: BorrowTag) -> bool:
        """True when ``tag`` was (transitively) derived from ``ancestor``."""
        current = self.lineage.get(tag)
        while current is not None:
            if current == ancestor:
                return True
            current = self.lineage.get(current)
        return False

    def describe_stack(self) -> list[str]:
        return [str(f) for f in self.stack]


class MemoryStore:
    """Owns every allocation of one trace evaluation."""

    def __init__(self, tags: Optional[TagAllocator] = None):
        self.tags = tags or TagAllocator()
        self._allocations: list[Allocation] = []
        self._by_name: dict[str, AllocationId] = {}

    def declare(self, name: str, value: int, mutable: bool = False,
                interior_mutable: bool = False) -> AllocationId:
        if name in self._by_name:
            raise TraceError(duplicate_name(name, index=len(self._allocations)))
        alloc_id = len(self._allocations)
        alloc = Allocation(
            id=alloc_id, name=name, value=value,
            mutable=mutable, interior_mutable=interior_mutable,
        )
        root_permission = Permission.SHARED_READ_WRITE if interior_mutable else Permission.UNIQUE
        self._allocations.append(alloc)
        self._by_name[name] = alloc_id
        self.push_frame(alloc_id, self.tags.next(), root_permission)
        return alloc_id

    def get(self, alloc_id: AllocationId) -> Allocation:
        if not 0 <= alloc_id < len(self._allocations):
            raise TraceError(invalid_allocation(f"#{alloc_id}"))
        return self._allocations[alloc_id]

    # Allocations are mutable dataclasses, so the same object serves both.
    get_mut = get

    def lookup(self, name: str) -> AllocationId:
        if name not in self._by_name:
            raise TraceError(invalid_allocation(name))
        return self._by_name[name]

    def has(self, name: str) -> bool:
        return name in self._by_name

    def push_frame(self, alloc_id: AllocationId, tag: BorrowTag, permission: Permission,
                   parent: Optional[BorrowTag] = None) -> Frame:
        alloc = self.get(alloc_id)
        frame = Frame(tag=tag, permission=permission, parent=parent)
        alloc.stack.append(frame)
        alloc.lineage[tag] = parent
        logger.debug("push %s onto '%s' (parent %s)", frame, alloc.name, tag_label(parent))
        return frame

    def root_pointer(self, alloc_id: AllocationId) -> Pointer:
        return Pointer(target=alloc_id, tag=self.get(alloc_id).root.tag)

    def value_read(self, alloc_id: AllocationId) -> int:
        return self.get(alloc_id).value

    def value_write(self, alloc_id: AllocationId, value: int) -> None:
        self.get(alloc_id).value = value

    def names(self) -> list[str]:
        return [a.name for a in self._allocations]

    def allocations(self) -> list[Allocation]:
        return list(self._allocations)

    def snapshot(self) -> dict[str, int]:
        return {a.name: a.value for a in self._allocations}

    def stacks(self) -> dict[str, list[str]]:
        return {a.name: a.describe_stack() for a in self._allocations}

    def all_tags(self) -> list[BorrowTag]:
        """Every tag ever pushed, across all allocations."""
        tags: list[BorrowTag] = []
        for alloc in self._allocations:
            tags.extend(alloc.lineage.keys())
        return tags
