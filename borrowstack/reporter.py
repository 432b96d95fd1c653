"""Diagnostic reporter.

Turns an interpreter's final state into a fully resolved result:
``Sound`` or ``Violation``. There is no third outcome.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from borrowstack.errors import Rule, SourceLocation
from borrowstack.interpreter import FinalState, MachineState, Observation


@dataclass(frozen=True)
class Sound:
    final_values: dict[str, int] = field(default_factory=dict)
    reads: tuple[Observation, ...] = ()
    steps: int = 0
    program: str = "<trace>"

    verified = True

    @property
    def summary(self) -> str:
        return f"✅ SOUND: {self.steps} operation(s), no aliasing violations"

    def read_values(self) -> list[int]:
        return [r.value for r in self.reads]

    def to_dict(self) -> dict[str, Any]:
        return {
            "program": self.program,
            "verified": True,
            "result": "sound",
            "steps": self.steps,
            "final_values": dict(self.final_values),
            "reads": [
                {"instruction_index": r.index, "source": r.source,
                 "allocation": r.allocation, "value": r.value}
                for r in self.reads
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


@dataclass(frozen=True)
class Violation:
    instruction_index: int
    allocation_name: str
    rule: Rule
    message: str = ""
    tag: str = ""
    operation: str = ""
    stack: tuple[str, ...] = ()
    location: Optional[SourceLocation] = None
    program: str = "<trace>"

    verified = False

    @property
    def summary(self) -> str:
        return (f"❌ UNDEFINED BEHAVIOR: {self.rule.value} on '{self.allocation_name}' "
                f"at instruction {self.instruction_index}")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "program": self.program,
            "verified": False,
            "result": "violation",
            "instruction_index": self.instruction_index,
            "allocation_name": self.allocation_name,
            "rule": self.rule.value,
            "message": self.message,
            "tag": self.tag,
            "operation": self.operation,
            "borrow_stack": list(self.stack),
        }
        if self.location:
            d["location"] = self.location.to_dict()
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


Result = Union[Sound, Violation]


def report(final: FinalState) -> Result:
    if final.state is MachineState.HALTED_OK:
        return Sound(
            final_values=final.store.snapshot(),
            reads=tuple(final.reads),
            steps=final.steps_executed,
            program=final.program.name,
        )
    if final.state is MachineState.HALTED_UB and final.fault is not None:
        fault = final.fault
        return Violation(
            instruction_index=fault.index,
            allocation_name=fault.access.allocation,
            rule=fault.access.rule,
            message=fault.access.message,
            tag=fault.access.tag_label,
            operation=str(fault.operation),
            stack=fault.access.stack,
            location=fault.operation.location,
            program=final.program.name,
        )
    raise ValueError(f"cannot report on a trace that has not halted ({final.state.name})")
