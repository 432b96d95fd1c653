"""Structured error objects for borrowstack.

Two families live here:

  * ``Rule`` -- the aliasing rules a trace can break at run time. These are
    reported as a ``Violation`` result, never raised.
  * ``TraceIssue`` / ``TraceError`` -- malformed-trace problems (unknown
    names, duplicate declarations, syntax errors). These are raised before
    any permission reasoning happens, because the trace itself is broken.

Every issue is machine-readable and serializes to JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Rule(Enum):
    UNTAGGED_ACCESS = "UntaggedAccess"
    TAG_NOT_FOUND = "TagNotFound"
    DISABLED = "Disabled"
    READ_ONLY_VIOLATION = "ReadOnlyViolation"


class IssueKind(Enum):
    INVALID_ALLOCATION = "invalid_allocation"
    UNKNOWN_POINTER = "unknown_pointer"
    DUPLICATE_NAME = "duplicate_name"
    IMMUTABLE_BINDING = "immutable_binding"
    SYNTAX_ERROR = "syntax_error"


@dataclass
class SourceLocation:
    line: int
    column: int
    file: str = "<trace>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "line": self.line, "column": self.column}


@dataclass
class TraceIssue:
    kind: IssueKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = self.location.to_dict()
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


def invalid_allocation(
    name: str,
    index: Optional[int] = None,
    location: Optional[SourceLocation] = None,
) -> TraceIssue:
    details: dict[str, Any] = {"allocation": name}
    if index is not None:
        details["instruction_index"] = index
    return TraceIssue(
        kind=IssueKind.INVALID_ALLOCATION,
        message=f"Unknown allocation '{name}'",
        location=location,
        details=details,
    )


def unknown_pointer(
    name: str,
    index: int,
    location: Optional[SourceLocation] = None,
) -> TraceIssue:
    return TraceIssue(
        kind=IssueKind.UNKNOWN_POINTER,
        message=f"'{name}' is neither an earlier pointer result nor a declared allocation",
        location=location,
        details={"operand": name, "instruction_index": index},
    )


def duplicate_name(
    name: str,
    index: int,
    location: Optional[SourceLocation] = None,
) -> TraceIssue:
    return TraceIssue(
        kind=IssueKind.DUPLICATE_NAME,
        message=f"Name '{name}' is already bound",
        location=location,
        details={"name": name, "instruction_index": index},
    )


def immutable_binding(
    name: str,
    action: str,
    index: int,
    location: Optional[SourceLocation] = None,
) -> TraceIssue:
    return TraceIssue(
        kind=IssueKind.IMMUTABLE_BINDING,
        message=f"Cannot {action} immutable binding '{name}'",
        location=location,
        details={"allocation": name, "action": action, "instruction_index": index},
    )


def syntax_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> TraceIssue:
    return TraceIssue(
        kind=IssueKind.SYNTAX_ERROR,
        message=message,
        location=location,
    )


class TraceError(Exception):
    """Exception wrapping one or more TraceIssues."""

    def __init__(self, issues: list[TraceIssue] | TraceIssue):
        if isinstance(issues, TraceIssue):
            issues = [issues]
        self.issues = issues
        super().__init__(self._format())

    def _format(self) -> str:
        return "\n".join(str(i) for i in self.issues)

    @property
    def kinds(self) -> list[IssueKind]:
        return [i.kind for i in self.issues]

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([i.to_dict() for i in self.issues], indent=indent)
