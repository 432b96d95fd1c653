"""Trace operations and the Program container.

A Program is an ordered list of operations. Pointer-producing operations
name their result; later operations refer to a pointer by that name. A bare
allocation name used as an operand means the allocation's root pointer,
i.e. direct use of the variable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from borrowstack.errors import (
    SourceLocation, TraceError, TraceIssue,
    invalid_allocation, unknown_pointer, duplicate_name, immutable_binding,
)
from borrowstack.permissions import BorrowKind


@dataclass
class Declare:
    name: str
    value: int
    mutable: bool = False
    interior_mutable: bool = False
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        mut = "mut " if self.mutable else ""
        cell = ": Cell" if self.interior_mutable else ""
        return f"let {mut}{self.name}{cell} = {self.value}"


@dataclass
class Borrow:
    target: str
    kind: BorrowKind
    result: str
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        amp = "&mut " if self.kind is BorrowKind.UNIQUE else "&"
        return f"let {self.result} = {amp}{self.target}"


@dataclass
class Reborrow:
    source: str
    kind: BorrowKind
    result: str
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        flavor = "*mut" if self.kind is BorrowKind.UNIQUE else "*const"
        return f"let {self.result} = {self.source} as {flavor}"


@dataclass
class CastToInteger:
    source: str
    result: str
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        return f"let {self.result} = {self.source} as usize"


@dataclass
class Read:
    source: str
    binding: Optional[str] = None
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        if self.binding:
            return f"let {self.binding} = *{self.source}"
        return f"*{self.source}"


@dataclass
class Write:
    source: str
    value: int
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        return f"*{self.source} = {self.value}"


@dataclass
class ExternalCall:
    source: str
    function: str = "opaque"
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        return f"{self.function}({self.source})"


Operation = Union[Declare, Borrow, Reborrow, CastToInteger, Read, Write, ExternalCall]

POINTER_PRODUCERS = (Borrow, Reborrow, CastToInteger)


def operand_of(op: Operation) -> Optional[str]:
    """The pointer operand an operation reads from, if any."""
    if isinstance(op, (Reborrow, CastToInteger, Read, Write, ExternalCall)):
        return op.source
    return None


def result_of(op: Operation) -> Optional[str]:
    if isinstance(op, POINTER_PRODUCERS):
        return op.result
    if isinstance(op, Declare):
        return op.name
    return None


@dataclass
class Program:
    """An ordered trace plus an optional name and the text it came from."""
    ops: list[Operation] = field(default_factory=list)
    name: str = "<trace>"
    source: Optional[str] = None
    _temps: int = field(default=0, repr=False)

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self):
        return iter(self.ops)

    def __getitem__(self, index: int) -> Operation:
        return self.ops[index]

    def add(self, op: Operation) -> Operation:
        self.ops.append(op)
        return op

    def fresh(self) -> str:
        """A temporary result name no trace identifier can collide with."""
        self._temps += 1
        return f"%{self._temps}"

    # -------------------------------------------------------------------
    # Builder helpers -- each returns the name later operations use
    # -------------------------------------------------------------------

    def declare(self, name: str, value: int, mutable: bool = False,
                interior_mutable: bool = False) -> str:
        self.add(Declare(name, value, mutable, interior_mutable))
        return name

    def borrow(self, target: str, kind: BorrowKind = BorrowKind.SHARED,
               result: Optional[str] = None) -> str:
        result = result or self.fresh()
        self.add(Borrow(target, kind, result))
        return result

    def borrow_mut(self, target: str, result: Optional[str] = None) -> str:
        return self.borrow(target, BorrowKind.UNIQUE, result)

    def reborrow(self, source: str, kind: BorrowKind = BorrowKind.SHARED,
                 result: Optional[str] = None) -> str:
        result = result or self.fresh()
        self.add(Reborrow(source, kind, result))
        return result

    def as_const(self, source: str, result: Optional[str] = None) -> str:
        return self.reborrow(source, BorrowKind.SHARED, result)

    def as_mut(self, source: str, result: Optional[str] = None) -> str:
        return self.reborrow(source, BorrowKind.UNIQUE, result)

    def to_int(self, source: str, result: Optional[str] = None) -> str:
        result = result or self.fresh()
        self.add(CastToInteger(source, result))
        return result

    def read(self, source: str, binding: Optional[str] = None) -> int:
        self.add(Read(source, binding))
        return len(self.ops) - 1

    def write(self, source: str, value: int) -> int:
        self.add(Write(source, value))
        return len(self.ops) - 1

    def call(self, source: str, function: str = "opaque") -> int:
        self.add(ExternalCall(source, function))
        return len(self.ops) - 1

    # -------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------

    def to_records(self) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for op in self.ops:
            if isinstance(op, Declare):
                records.append({"op": "declare", "name": op.name, "value": op.value,
                                "mutable": op.mutable,
                                "interior_mutable": op.interior_mutable})
            elif isinstance(op, Borrow):
                records.append({"op": "borrow", "target": op.target,
                                "kind": op.kind.value, "result": op.result})
            elif isinstance(op, Reborrow):
                records.append({"op": "reborrow", "source": op.source,
                                "kind": op.kind.value, "result": op.result})
            elif isinstance(op, CastToInteger):
                records.append({"op": "to_int", "source": op.source, "result": op.result})
            elif isinstance(op, Read):
                record: dict[str, Any] = {"op": "read", "source": op.source}
                if op.binding:
                    record["binding"] = op.binding
                records.append(record)
            elif isinstance(op, Write):
                records.append({"op": "write", "source": op.source, "value": op.value})
            elif isinstance(op, ExternalCall):
                records.append({"op": "call", "source": op.source,
                                "function": op.function})
        return records

    def line_of(self, index: int) -> Optional[str]:
        """Source text line of an operation, when the program was parsed."""
        if self.source is None or not 0 <= index < len(self.ops):
            return None
        loc = self.ops[index].location
        if loc is None:
            return None
        lines = self.source.splitlines()
        if 1 <= loc.line <= len(lines):
            return lines[loc.line - 1]
        return None


# ---------------------------------------------------------------------------
# Well-formedness
# ---------------------------------------------------------------------------

def collect_issues(program: Program, check_bindings: bool = False) -> list[TraceIssue]:
    """Name-resolution problems of a program, in instruction order."""
    issues: list[TraceIssue] = []
    allocations: dict[str, Declare] = {}
    pointers: set[str] = set()

    for index, op in enumerate(program.ops):
        loc = op.location

        if isinstance(op, Borrow):
            decl = allocations.get(op.target)
            if decl is None:
                issues.append(invalid_allocation(op.target, index, loc))
            elif (check_bindings and op.kind is BorrowKind.UNIQUE
                  and not (decl.mutable or decl.interior_mutable)):
                issues.append(immutable_binding(op.target, "borrow as mutable", index, loc))

        operand = operand_of(op)
        if operand is not None:
            if operand not in pointers and operand not in allocations:
                issues.append(unknown_pointer(operand, index, loc))
            elif check_bindings and isinstance(op, (Write, ExternalCall)):
                decl = allocations.get(operand)
                if decl is not None and not (decl.mutable or decl.interior_mutable):
                    action = "assign to" if isinstance(op, Write) else "pass as mutable"
                    issues.append(immutable_binding(operand, action, index, loc))

        bound = result_of(op)
        if bound is not None:
            if bound in allocations or bound in pointers:
                issues.append(duplicate_name(bound, index, loc))
            elif isinstance(op, Declare):
                allocations[bound] = op
            else:
                pointers.add(bound)

    return issues


def ensure_well_formed(program: Program, check_bindings: bool = False) -> None:
    issues = collect_issues(program, check_bindings)
    if issues:
        raise TraceError(issues)
