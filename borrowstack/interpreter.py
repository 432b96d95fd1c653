"""Trace interpreter.

Runs a Program against a fresh MemoryStore, one instruction per step:

    RUNNING --step ok--> RUNNING --end of program--> HALTED_OK
       |
       +--permission fault--> HALTED_UB   (nothing after it executes)

``step`` returns the fault instead of raising it, so the first fault is a
plain early return out of ``run``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from borrowstack.memory import MemoryStore, Pointer
from borrowstack.ops import (
    Program, Operation, Declare, Borrow, Reborrow, CastToInteger,
    Read, Write, ExternalCall, ensure_well_formed,
)
from borrowstack.permissions import (
    Access, AccessFault, BorrowKind,
    derive, check_parent, validate, apply_grant,
)
from borrowstack.tags import TagAllocator

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_WRITE_VALUE = 1


class MachineState(Enum):
    RUNNING = auto()
    HALTED_OK = auto()
    HALTED_UB = auto()


@dataclass(frozen=True)
class Fault:
    index: int
    operation: Operation
    access: AccessFault


@dataclass(frozen=True)
class Observation:
    """Value seen by a Read."""
    index: int
    source: str
    allocation: str
    value: int


@dataclass(frozen=True)
class StepRecord:
    index: int
    operation: Operation
    stacks: dict[str, list[str]]
    values: dict[str, int]


@dataclass
class FinalState:
    state: MachineState
    program: Program
    store: MemoryStore
    fault: Optional[Fault] = None
    reads: list[Observation] = field(default_factory=list)
    steps_executed: int = 0
    trail: list[StepRecord] = field(default_factory=list)


class Interpreter:
    """Executes one program. Build a new Interpreter per evaluation."""

    def __init__(self, program: Program,
                 external_write_value: int = DEFAULT_EXTERNAL_WRITE_VALUE,
                 check_bindings: bool = False,
                 record: bool = False):
        ensure_well_formed(program, check_bindings)
        self.program = program
        self.external_write_value = external_write_value
        self.record = record
        self.store = MemoryStore(TagAllocator())
        self.pointers: dict[str, Pointer] = {}
        self.pc = 0
        self.state = MachineState.RUNNING
        self.fault: Optional[Fault] = None
        self.reads: list[Observation] = []
        self.trail: list[StepRecord] = []

    # -------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------

    def run(self) -> FinalState:
        while self.state is MachineState.RUNNING:
            if self.pc >= len(self.program):
                self.state = MachineState.HALTED_OK
                break
            fault = self.step()
            if fault is not None:
                break
        logger.debug("'%s' halted: %s after %d step(s)",
                     self.program.name, self.state.name, self.pc)
        return self.final_state()

    def step(self) -> Optional[Fault]:
        """Execute the instruction at ``pc``. Returns the fault, if any."""
        if self.state is not MachineState.RUNNING:
            raise RuntimeError(f"interpreter is halted ({self.state.name})")
        index = self.pc
        op = self.program[index]
        logger.debug("[%d] %s", index, op)

        failure = self._execute(op)
        if failure is not None:
            self.fault = Fault(index=index, operation=op, access=failure)
            self.state = MachineState.HALTED_UB
            logger.debug("[%d] %s: %s", index, failure.rule.value, failure.message)
            return self.fault

        if self.record:
            self.trail.append(StepRecord(
                index=index, operation=op,
                stacks=self.store.stacks(), values=self.store.snapshot(),
            ))
        self.pc += 1
        return None

    def final_state(self) -> FinalState:
        return FinalState(
            state=self.state,
            program=self.program,
            store=self.store,
            fault=self.fault,
            reads=list(self.reads),
            steps_executed=self.pc,
            trail=list(self.trail),
        )

    # -------------------------------------------------------------------
    # Instructions
    # -------------------------------------------------------------------

    def _execute(self, op: Operation) -> Optional[AccessFault]:
        if isinstance(op, Declare):
            self.store.declare(op.name, op.value, op.mutable, op.interior_mutable)
            return None
        if isinstance(op, Borrow):
            parent = self.store.root_pointer(self.store.lookup(op.target))
            return self._derive(parent, op.kind, op.result)
        if isinstance(op, Reborrow):
            return self._derive(self._resolve(op.source), op.kind, op.result)
        if isinstance(op, CastToInteger):
            ptr = self._resolve(op.source)
            self.pointers[op.result] = Pointer(target=ptr.target, tag=None)
            return None
        if isinstance(op, Read):
            return self._read(op, self._resolve(op.source))
        if isinstance(op, Write):
            return self._write(self._resolve(op.source), op.value)
        if isinstance(op, ExternalCall):
            return self._write(self._resolve(op.source), self.external_write_value)
        raise TypeError(f"unknown operation {op!r}")

    def _resolve(self, name: str) -> Pointer:
        ptr = self.pointers.get(name)
        if ptr is not None:
            return ptr
        return self.store.root_pointer(self.store.lookup(name))

    def _derive(self, parent: Pointer, kind: BorrowKind, result: str) -> Optional[AccessFault]:
        alloc = self.store.get(parent.target)
        failure = check_parent(alloc, parent)
        if failure is not None:
            return failure
        if parent.tag is None:
            self.pointers[result] = Pointer(target=parent.target, tag=None)
            return None
        depth = alloc.find(parent.tag)
        permission = derive(alloc.stack[depth].permission, kind, alloc.interior_mutable)
        tag = self.store.tags.next()
        self.store.push_frame(alloc.id, tag, permission, parent=parent.tag)
        self.pointers[result] = Pointer(target=alloc.id, tag=tag)
        return None

    def _access(self, ptr: Pointer, access: Access) -> Optional[AccessFault]:
        alloc = self.store.get_mut(ptr.target)
        outcome = validate(alloc, ptr, access)
        if isinstance(outcome, AccessFault):
            return outcome
        apply_grant(alloc, outcome)
        return None

    def _read(self, op: Read, ptr: Pointer) -> Optional[AccessFault]:
        failure = self._access(ptr, Access.READ)
        if failure is not None:
            return failure
        alloc = self.store.get(ptr.target)
        self.reads.append(Observation(
            index=self.pc, source=op.source, allocation=alloc.name,
            value=self.store.value_read(ptr.target),
        ))
        return None

    def _write(self, ptr: Pointer, value: int) -> Optional[AccessFault]:
        failure = self._access(ptr, Access.WRITE)
        if failure is not None:
            return failure
        self.store.value_write(ptr.target, value)
        return None


def execute(program: Program, **options) -> FinalState:
    """Run ``program`` on a fresh store and return its final state."""
    return Interpreter(program, **options).run()
