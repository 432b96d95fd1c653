"""Built-in scenario catalogue.

Each scenario is a short trace with the verdict it must produce. The CLI
``scenarios`` command runs them; the test suite asserts on them too.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from borrowstack.config import BorrowstackConfig
from borrowstack.errors import Rule
from borrowstack.parser import parse
from borrowstack.reporter import Result, Violation
from borrowstack.verify import check


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    source: str
    sound: bool
    rule: Optional[Rule] = None
    index: Optional[int] = None
    final_values: Optional[dict[str, int]] = None

    def run(self, config: Optional[BorrowstackConfig] = None) -> Result:
        return check(parse(self.source, filename=f"<{self.name}>", name=self.name), config)

    def matches(self, result: Result) -> bool:
        if result.verified != self.sound:
            return False
        if isinstance(result, Violation):
            if self.rule is not None and result.rule is not self.rule:
                return False
            if self.index is not None and result.instruction_index != self.index:
                return False
            return True
        if self.final_values is not None:
            return all(result.final_values.get(k) == v for k, v in self.final_values.items())
        return True

    @property
    def expectation(self) -> str:
        if self.sound:
            return "sound"
        return f"violation {self.rule.value}" if self.rule else "violation"


SCENARIOS: list[Scenario] = [
    Scenario(
        name="shared-const-write",
        description="write through a const pointer cast from a shared borrow of an immutable value",
        source="""
let x = 2;
let r = &x;
let p = r as *const i32;
opaque(p);
""",
        sound=False, rule=Rule.READ_ONLY_VIOLATION, index=3,
    ),
    Scenario(
        name="mut-binding-shared-roundtrip",
        description="binding mutability does not legalize a write through a shared borrow",
        source="""
let mut x = 2;
let r = &x;
let p = r as *const i32;
let i = p as usize;
let q = i as *mut i32;
opaque(q);
""",
        sound=False, rule=Rule.UNTAGGED_ACCESS, index=5,
    ),
    Scenario(
        name="unique-const-cast",
        description="a const cast of a mutable borrow demotes it, so casting back to *mut cannot write",
        source="""
let mut x = 2;
let m = &mut x;
let p = m as *const i32;
let q = p as *mut i32;
opaque(q);
""",
        sound=False, rule=Rule.READ_ONLY_VIOLATION, index=4,
    ),
    Scenario(
        name="unique-const-int-roundtrip",
        description="const cast then integer round-trip: the write goes through an untagged pointer",
        source="""
let mut x = 2;
let m = &mut x;
let p = m as *const i32;
let i = p as usize;
let q = i as *mut i32;
opaque(q);
""",
        sound=False, rule=Rule.UNTAGGED_ACCESS, index=5,
    ),
    Scenario(
        name="unique-mut-cast",
        description="a mutable borrow cast straight to *mut may be written by an opaque call",
        source="""
let mut x = 2;
let m = &mut x;
let p = m as *mut i32;
opaque(p);
let v = x;
""",
        sound=True, final_values={"x": 1},
    ),
    Scenario(
        name="cell-shared-write",
        description="a shared borrow of an interior-mutable value grants SharedReadWrite",
        source="""
let x = Cell::new(2);
let r = &x;
let p = r as *const i32;
opaque(p);
""",
        sound=True, final_values={"x": 1},
    ),
    Scenario(
        name="cell-two-unique",
        description="two unique pointers derived from one shared access of a Cell",
        source="""
let x: Cell = 2;
let r = &x;
let a = r as *mut i32;
let b = r as *mut i32;
*b = 3;
let v = *a;
""",
        sound=False, rule=Rule.DISABLED, index=5,
    ),
    Scenario(
        name="two-mutable-borrows",
        description="using the first of two overlapping mutable borrows",
        source="""
let mut x = 0;
let a = &mut x;
let b = &mut x;
*b = 1;
*a = 2;
""",
        sound=False, rule=Rule.DISABLED, index=4,
    ),
    Scenario(
        name="shared-invalidated-by-write",
        description="a shared borrow is popped when the owner writes",
        source="""
let mut x = 0;
let r = &x;
x = 5;
let v = *r;
""",
        sound=False, rule=Rule.TAG_NOT_FOUND, index=3,
    ),
    Scenario(
        name="reborrow-popped-by-parent-write",
        description="writing through a parent pops pointers derived from it",
        source="""
let mut x = 0;
let m = &mut x;
let p = m as *mut i32;
*m = 1;
*p = 2;
""",
        sound=False, rule=Rule.TAG_NOT_FOUND, index=4,
    ),
    Scenario(
        name="parent-read-disables-child",
        description="reading the owner while a mutable borrow is live disables the borrow",
        source="""
let mut x = 0;
let m = &mut x;
let v = x;
*m = 1;
""",
        sound=False, rule=Rule.DISABLED, index=3,
    ),
    Scenario(
        name="nested-reborrows",
        description="well-nested reborrows used in stack order",
        source="""
let mut x = 0;
let m = &mut x;
let p = m as *mut i32;
*p = 1;
*m = 2;
let v = x;
""",
        sound=True, final_values={"x": 2},
    ),
]


def get_scenario(name: str) -> Scenario:
    for scenario in SCENARIOS:
        if scenario.name == name:
            return scenario
    raise KeyError(name)
