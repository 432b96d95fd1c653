"""Permission engine tests: derivation table and access validation."""

import pytest

from borrowstack.errors import Rule
from borrowstack.memory import MemoryStore, Permission, Pointer
from borrowstack.permissions import (
    Access, AccessFault, BorrowKind, Grant,
    derive, check_parent, validate, apply_grant,
)


def _store_with(interior_mutable=False):
    store = MemoryStore()
    x = store.declare("x", 0, mutable=True, interior_mutable=interior_mutable)
    return store, x


def _push(store, alloc_id, permission, parent):
    tag = store.tags.next()
    store.push_frame(alloc_id, tag, permission, parent=parent)
    return Pointer(alloc_id, tag)


# ===========================================================================
# derive
# ===========================================================================

class TestDerive:

    @pytest.mark.parametrize("parent", [Permission.UNIQUE, Permission.SHARED_READ_WRITE])
    def test_unique_kind_gives_unique(self, parent):
        assert derive(parent, BorrowKind.UNIQUE, False) is Permission.UNIQUE
        assert derive(parent, BorrowKind.UNIQUE, True) is Permission.UNIQUE

    def test_unique_from_read_only_stays_read_only(self):
        assert derive(Permission.SHARED_READ_ONLY, BorrowKind.UNIQUE, False) is Permission.SHARED_READ_ONLY

    @pytest.mark.parametrize("parent", list(Permission))
    def test_shared_kind_gives_read_only(self, parent):
        assert derive(parent, BorrowKind.SHARED, False) is Permission.SHARED_READ_ONLY

    @pytest.mark.parametrize("parent", list(Permission))
    def test_shared_of_interior_mutable_gives_read_write(self, parent):
        assert derive(parent, BorrowKind.SHARED, True) is Permission.SHARED_READ_WRITE


# ===========================================================================
# check_parent
# ===========================================================================

class TestCheckParent:

    def test_live_parent_passes(self):
        store, x = _store_with()
        assert check_parent(store.get(x), store.root_pointer(x)) is None

    def test_untagged_parent_passes(self):
        store, x = _store_with()
        assert check_parent(store.get(x), Pointer(x, None)) is None

    def test_popped_parent_is_tag_not_found(self):
        store, x = _store_with()
        alloc = store.get(x)
        r = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        apply_grant(alloc, validate(alloc, store.root_pointer(x), Access.WRITE))
        fault = check_parent(alloc, r)
        assert isinstance(fault, AccessFault)
        assert fault.rule is Rule.TAG_NOT_FOUND

    def test_disabled_parent_is_disabled(self):
        store, x = _store_with()
        alloc = store.get(x)
        m = _push(store, x, Permission.UNIQUE, alloc.root.tag)
        apply_grant(alloc, validate(alloc, store.root_pointer(x), Access.READ))
        assert check_parent(alloc, m).rule is Rule.DISABLED


# ===========================================================================
# validate
# ===========================================================================

class TestValidate:

    def test_untagged_always_fails(self):
        store, x = _store_with(interior_mutable=True)
        for access in Access:
            fault = validate(store.get(x), Pointer(x, None), access)
            assert fault.rule is Rule.UNTAGGED_ACCESS
            assert "<untagged>" in fault.message

    def test_root_access_is_granted(self):
        store, x = _store_with()
        outcome = validate(store.get(x), store.root_pointer(x), Access.WRITE)
        assert outcome == Grant(depth=0)

    def test_unknown_tag_is_tag_not_found(self):
        store, x = _store_with()
        ptr = Pointer(x, store.tags.next())
        assert validate(store.get(x), ptr, Access.READ).rule is Rule.TAG_NOT_FOUND

    def test_write_through_read_only(self):
        store, x = _store_with()
        alloc = store.get(x)
        r = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        assert isinstance(validate(alloc, r, Access.READ), Grant)
        assert validate(alloc, r, Access.WRITE).rule is Rule.READ_ONLY_VIOLATION

    def test_write_through_read_write_on_cell(self):
        store, x = _store_with(interior_mutable=True)
        alloc = store.get(x)
        r = _push(store, x, Permission.SHARED_READ_WRITE, alloc.root.tag)
        assert isinstance(validate(alloc, r, Access.WRITE), Grant)

    def test_sibling_unique_conflicts(self):
        store, x = _store_with()
        alloc = store.get(x)
        a = _push(store, x, Permission.UNIQUE, alloc.root.tag)
        _push(store, x, Permission.UNIQUE, alloc.root.tag)
        for access in Access:
            fault = validate(alloc, a, access)
            assert fault.rule is Rule.DISABLED

    def test_descendant_unique_does_not_conflict(self):
        store, x = _store_with()
        alloc = store.get(x)
        m = _push(store, x, Permission.UNIQUE, alloc.root.tag)
        p = _push(store, x, Permission.UNIQUE, m.tag)
        outcome = validate(alloc, m, Access.WRITE)
        assert isinstance(outcome, Grant)
        assert outcome.popped == (p.tag,)

    def test_write_pops_read_only_frames_above(self):
        store, x = _store_with()
        alloc = store.get(x)
        r1 = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        r2 = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        outcome = validate(alloc, store.root_pointer(x), Access.WRITE)
        apply_grant(alloc, outcome)
        assert alloc.find(r1.tag) is None
        assert alloc.find(r2.tag) is None
        assert len(alloc.stack) == 1

    def test_write_keeps_unrelated_read_write_frames(self):
        store, x = _store_with(interior_mutable=True)
        alloc = store.get(x)
        s1 = _push(store, x, Permission.SHARED_READ_WRITE, alloc.root.tag)
        s2 = _push(store, x, Permission.SHARED_READ_WRITE, alloc.root.tag)
        apply_grant(alloc, validate(alloc, s1, Access.WRITE))
        assert alloc.find(s2.tag) is not None

    def test_read_disables_unique_descendants(self):
        store, x = _store_with()
        alloc = store.get(x)
        m = _push(store, x, Permission.UNIQUE, alloc.root.tag)
        outcome = validate(alloc, store.root_pointer(x), Access.READ)
        assert outcome.disabled == (m.tag,)
        apply_grant(alloc, outcome)
        assert alloc.stack[alloc.find(m.tag)].permission is Permission.DISABLED
        assert validate(alloc, m, Access.READ).rule is Rule.DISABLED

    def test_read_keeps_shared_frames(self):
        store, x = _store_with()
        alloc = store.get(x)
        r = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        apply_grant(alloc, validate(alloc, store.root_pointer(x), Access.READ))
        assert isinstance(validate(alloc, r, Access.READ), Grant)

    def test_validate_does_not_mutate(self):
        store, x = _store_with()
        alloc = store.get(x)
        _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        before = alloc.describe_stack()
        validate(alloc, store.root_pointer(x), Access.WRITE)
        assert alloc.describe_stack() == before

    def test_fault_carries_stack(self):
        store, x = _store_with()
        alloc = store.get(x)
        r = _push(store, x, Permission.SHARED_READ_ONLY, alloc.root.tag)
        fault = validate(alloc, r, Access.WRITE)
        assert fault.allocation == "x"
        assert fault.stack == ("Unique<0>", "SharedReadOnly<1>")
        assert fault.tag_label == "<1>"
