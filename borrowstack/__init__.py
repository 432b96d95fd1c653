"""borrowstack -- borrow-stack aliasing checker for pointer traces."""

__version__ = "0.1.0"

from borrowstack.errors import Rule, TraceError, TraceIssue, IssueKind
from borrowstack.memory import Permission
from borrowstack.ops import Program
from borrowstack.permissions import BorrowKind
from borrowstack.reporter import Sound, Violation, Result
from borrowstack.verify import check, check_source, check_file
