"""Permission engine: the borrow-stack rules.

Pure functions over the store's data shapes. Nothing here mutates an
allocation except ``apply_grant``, which commits the effects that a
successful ``validate`` computed.

Permission lattice:

    Unique            -- exclusive read/write, the only live writer
    SharedReadWrite   -- shared, writable (interior-mutable targets only)
    SharedReadOnly    -- shared, read-only
    Disabled          -- was Unique, lost exclusivity to a parent read

Borrow creation:

    kind     parent           interior-mutable   new frame
    -------  ---------------  -----------------  ----------------
    Unique   SharedReadOnly   any                SharedReadOnly
    Unique   other            any                Unique
    Shared   any              no                 SharedReadOnly
    Shared   any              yes                SharedReadWrite

Access through tag t found at depth d:

    * any live Unique frame above d not derived from t  -> Disabled
    * t's own frame Disabled                            -> Disabled
    * Write through SharedReadOnly, not interior-mut.   -> ReadOnlyViolation
    * Write pops SharedReadOnly frames and t's descendants above d
    * Read disables Unique descendants of t above d
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from borrowstack.errors import Rule
from borrowstack.memory import Allocation, Permission, Pointer
from borrowstack.tags import BorrowTag, tag_label

logger = logging.getLogger(__name__)


class BorrowKind(Enum):
    SHARED = "shared"
    UNIQUE = "unique"


class Access(Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class AccessFault:
    rule: Rule
    allocation: str
    tag: Optional[BorrowTag]
    access: Access
    message: str
    stack: tuple[str, ...] = ()

    @property
    def tag_label(self) -> str:
        return tag_label(self.tag)


@dataclass(frozen=True)
class Grant:
    """A successful access: where the tag matched and what it invalidates."""
    depth: int
    popped: tuple[BorrowTag, ...] = ()
    disabled: tuple[BorrowTag, ...] = ()


AccessOutcome = Union[AccessFault, Grant]


# ---------------------------------------------------------------------------
# Borrow creation
# ---------------------------------------------------------------------------

def derive(parent_permission: Permission, kind: BorrowKind,
           target_interior_mutable: bool) -> Permission:
    """Permission of a frame derived from a parent frame."""
    if kind is BorrowKind.UNIQUE:
        if parent_permission is Permission.SHARED_READ_ONLY:
            # a mutable cast cannot win back what a const cast gave up
            return Permission.SHARED_READ_ONLY
        if parent_permission in (Permission.UNIQUE, Permission.SHARED_READ_WRITE,
                                 Permission.DISABLED):
            return Permission.UNIQUE
    elif kind is BorrowKind.SHARED:
        if target_interior_mutable:
            return Permission.SHARED_READ_WRITE
        return Permission.SHARED_READ_ONLY
    raise ValueError(f"no derivation rule for {kind} from {parent_permission}")


def check_parent(alloc: Allocation, ptr: Pointer,
                 access: Access = Access.READ) -> Optional[AccessFault]:
    """Authenticate the parent of a new borrow.

    Deriving does not access memory, so only the parent's own frame is
    checked: it must still be on the stack and not disabled. Untagged
    parents are not checked at all; their children stay untagged.
    """
    if ptr.tag is None:
        return None
    depth = alloc.find(ptr.tag)
    if depth is None:
        return _fault(Rule.TAG_NOT_FOUND, alloc, ptr, access,
                      f"no item for tag {ptr.tag} in the borrow stack of '{alloc.name}'; "
                      f"it was invalidated by an earlier access")
    if alloc.stack[depth].permission is Permission.DISABLED:
        return _fault(Rule.DISABLED, alloc, ptr, access,
                      f"tag {ptr.tag} on '{alloc.name}' is disabled")
    return None


# ---------------------------------------------------------------------------
# Access validation
# ---------------------------------------------------------------------------

def validate(alloc: Allocation, ptr: Pointer, access: Access) -> AccessOutcome:
    """Decide whether ``access`` through ``ptr`` is allowed.

    Returns an AccessFault on a violation, otherwise a Grant describing the
    frames the access invalidates. The allocation is left untouched.
    """
    if ptr.tag is None:
        return _fault(Rule.UNTAGGED_ACCESS, alloc, ptr, access,
                      f"no item granting {access.value} access for tag <untagged> "
                      f"in the borrow stack of '{alloc.name}'")

    depth = alloc.find(ptr.tag)
    if depth is None:
        return _fault(Rule.TAG_NOT_FOUND, alloc, ptr, access,
                      f"no item granting {access.value} access for tag {ptr.tag} "
                      f"in the borrow stack of '{alloc.name}'; it was invalidated "
                      f"by an earlier access")

    popped: list[BorrowTag] = []
    disabled: list[BorrowTag] = []
    for frame in alloc.stack[depth + 1:]:
        own = alloc.derives_from(frame.tag, ptr.tag)
        if frame.permission is Permission.UNIQUE and not own:
            return _fault(Rule.DISABLED, alloc, ptr, access,
                          f"{access.value} through {ptr.tag} conflicts with live "
                          f"unique borrow {frame.tag} of '{alloc.name}'")
        if access is Access.WRITE:
            if own or frame.permission is Permission.SHARED_READ_ONLY:
                popped.append(frame.tag)
        elif own and frame.permission is Permission.UNIQUE:
            disabled.append(frame.tag)

    matched = alloc.stack[depth]
    if matched.permission is Permission.DISABLED:
        return _fault(Rule.DISABLED, alloc, ptr, access,
                      f"tag {ptr.tag} on '{alloc.name}' was disabled by a read "
                      f"through its parent")

    if (access is Access.WRITE
            and matched.permission is Permission.SHARED_READ_ONLY
            and not alloc.interior_mutable):
        return _fault(Rule.READ_ONLY_VIOLATION, alloc, ptr, access,
                      f"write through {ptr.tag} on '{alloc.name}', which only "
                      f"grants SharedReadOnly")

    return Grant(depth=depth, popped=tuple(popped), disabled=tuple(disabled))


def apply_grant(alloc: Allocation, grant: Grant) -> None:
    """Commit the invalidations of a successful access."""
    if grant.popped:
        gone = set(grant.popped)
        alloc.stack[:] = [f for f in alloc.stack if f.tag not in gone]
        logger.debug("popped %s from '%s'",
                     ", ".join(str(t) for t in grant.popped), alloc.name)
    if grant.disabled:
        off = set(grant.disabled)
        for frame in alloc.stack:
            if frame.tag in off:
                frame.permission = Permission.DISABLED
        logger.debug("disabled %s on '%s'",
                     ", ".join(str(t) for t in grant.disabled), alloc.name)


def _fault(rule: Rule, alloc: Allocation, ptr: Pointer, access: Access,
           message: str) -> AccessFault:
    return AccessFault(
        rule=rule,
        allocation=alloc.name,
        tag=ptr.tag,
        access=access,
        message=message,
        stack=tuple(alloc.describe_stack()),
    )
