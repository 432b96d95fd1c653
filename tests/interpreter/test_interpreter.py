"""Trace interpreter and reporter tests."""

import pytest

from borrowstack.errors import Rule, TraceError, IssueKind
from borrowstack.interpreter import Interpreter, MachineState, execute
from borrowstack.ops import Program, Read
from borrowstack.permissions import BorrowKind
from borrowstack.reporter import Sound, Violation, report
from borrowstack.verify import check


class TestStateMachine:

    def test_empty_program_is_sound(self):
        final = execute(Program())
        assert final.state is MachineState.HALTED_OK
        assert isinstance(report(final), Sound)

    def test_starts_running_at_zero(self):
        prog = Program()
        prog.declare("x", 1)
        interp = Interpreter(prog)
        assert interp.state is MachineState.RUNNING
        assert interp.pc == 0

    def test_step_advances(self):
        prog = Program()
        prog.declare("x", 1)
        prog.read("x")
        interp = Interpreter(prog)
        assert interp.step() is None
        assert interp.pc == 1
        assert interp.step() is None
        assert interp.pc == 2
        final = interp.run()
        assert final.state is MachineState.HALTED_OK

    def test_step_after_halt_raises(self):
        prog = Program()
        prog.declare("x", 1)
        interp = Interpreter(prog)
        interp.run()
        with pytest.raises(RuntimeError):
            interp.step()

    def test_fault_halts_with_ub(self):
        prog = Program()
        prog.declare("x", 1, mutable=True)
        i = prog.to_int("x")
        prog.read(i)
        final = execute(prog)
        assert final.state is MachineState.HALTED_UB
        assert final.fault.index == 2
        assert final.steps_executed == 2


class TestFirstFault:

    def test_nothing_after_fault_runs(self):
        prog = Program()
        prog.declare("x", 2)
        r = prog.borrow("x")
        prog.write(r, 5)              # ReadOnlyViolation
        i = prog.to_int(r)
        prog.read(i)                  # would be UntaggedAccess
        final = execute(prog)
        result = report(final)
        assert isinstance(result, Violation)
        assert result.instruction_index == 2
        assert result.rule is Rule.READ_ONLY_VIOLATION
        assert final.store.snapshot() == {"x": 2}
        assert final.reads == []

    def test_later_declaration_never_happens(self):
        prog = Program()
        prog.declare("x", 0)
        prog.call(prog.to_int("x"))
        prog.declare("y", 0)
        final = execute(prog)
        assert final.store.names() == ["x"]


class TestOperations:

    def test_read_records_observation(self):
        prog = Program()
        prog.declare("x", 7)
        r = prog.borrow("x", result="r")
        prog.read(r)
        result = check(prog)
        assert isinstance(result, Sound)
        assert result.read_values() == [7]
        assert result.reads[0].source == "r"
        assert result.reads[0].allocation == "x"

    def test_external_call_writes_configured_value(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        prog.call(prog.borrow_mut("x"))
        final = execute(prog, external_write_value=42)
        assert final.store.snapshot() == {"x": 42}

    def test_external_call_matches_write(self):
        def build(use_call):
            prog = Program()
            prog.declare("x", 2)
            p = prog.as_const(prog.borrow("x"))
            if use_call:
                prog.call(p)
            else:
                prog.write(p, 1)
            return check(prog)
        via_call, via_write = build(True), build(False)
        assert via_call.rule is via_write.rule
        assert via_call.instruction_index == via_write.instruction_index

    def test_cast_to_integer_is_not_an_access(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        r = prog.borrow("x")
        prog.write("x", 1)            # pops r
        prog.to_int(r)                # still fine, only exposes an address
        assert isinstance(check(prog), Sound)

    def test_untagged_reborrow_stays_untagged(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        i = prog.to_int(prog.borrow_mut("x"))
        q = prog.as_mut(i)
        prog.write(q, 3)
        result = check(prog)
        assert result.rule is Rule.UNTAGGED_ACCESS
        assert result.instruction_index == 4

    def test_reborrow_of_popped_pointer(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        r = prog.borrow("x")
        prog.write("x", 1)
        prog.as_const(r)
        result = check(prog)
        assert result.rule is Rule.TAG_NOT_FOUND
        assert result.instruction_index == 3

    def test_two_allocations_are_independent(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        prog.declare("y", 0, mutable=True)
        rx = prog.borrow("x")
        prog.write("y", 9)
        prog.read(rx)
        result = check(prog)
        assert isinstance(result, Sound)
        assert result.final_values == {"x": 0, "y": 9}

    def test_record_trail(self):
        prog = Program()
        prog.declare("x", 0, mutable=True)
        prog.borrow_mut("x")
        final = execute(prog, record=True)
        assert [r.index for r in final.trail] == [0, 1]
        assert final.trail[1].stacks == {"x": ["Unique<0>", "Unique<1>"]}


class TestMalformedTraces:

    def test_borrow_of_unknown_allocation(self):
        prog = Program()
        prog.borrow("ghost")
        with pytest.raises(TraceError) as exc:
            Interpreter(prog)
        assert exc.value.kinds == [IssueKind.INVALID_ALLOCATION]

    def test_unknown_pointer(self):
        prog = Program()
        prog.declare("x", 0)
        prog.add(Read("p"))
        with pytest.raises(TraceError) as exc:
            check(prog)
        assert exc.value.kinds == [IssueKind.UNKNOWN_POINTER]

    def test_use_before_definition(self):
        prog = Program()
        prog.declare("x", 0)
        prog.add(Read("r"))
        prog.borrow("x", result="r")
        with pytest.raises(TraceError) as exc:
            check(prog)
        assert IssueKind.UNKNOWN_POINTER in exc.value.kinds

    def test_duplicate_names(self):
        prog = Program()
        prog.declare("x", 0)
        prog.borrow("x", result="x")
        with pytest.raises(TraceError) as exc:
            check(prog)
        assert exc.value.kinds == [IssueKind.DUPLICATE_NAME]

    def test_mutable_borrow_of_immutable_binding(self):
        prog = Program()
        prog.declare("x", 0)
        prog.borrow("x", BorrowKind.UNIQUE)
        with pytest.raises(TraceError) as exc:
            execute(prog, check_bindings=True)
        assert exc.value.kinds == [IssueKind.IMMUTABLE_BINDING]

    def test_assignment_to_immutable_binding(self):
        prog = Program()
        prog.declare("x", 0)
        prog.write("x", 1)
        with pytest.raises(TraceError) as exc:
            execute(prog, check_bindings=True)
        assert exc.value.kinds == [IssueKind.IMMUTABLE_BINDING]

    def test_binding_check_is_off_by_default(self):
        prog = Program()
        prog.declare("x", 2)
        prog.write(prog.borrow_mut("x"), 5)
        result = check(prog)
        assert isinstance(result, Sound)
        assert result.final_values == {"x": 5}

    def test_all_issues_reported_together(self):
        prog = Program()
        prog.borrow("a")
        prog.add(Read("b"))
        with pytest.raises(TraceError) as exc:
            check(prog)
        assert len(exc.value.issues) == 2
        assert '"kind": "invalid_allocation"' in exc.value.to_json()


class TestReporter:

    def test_violation_fields(self):
        prog = Program(name="demo")
        prog.declare("x", 2)
        prog.call(prog.borrow("x", result="r"))
        result = check(prog)
        assert isinstance(result, Violation)
        assert result.verified is False
        assert result.allocation_name == "x"
        assert result.tag == "<1>"
        assert result.operation == "opaque(r)"
        d = result.to_dict()
        assert d["rule"] == "ReadOnlyViolation"
        assert d["instruction_index"] == 2
        assert d["program"] == "demo"
        assert d["borrow_stack"] == ["Unique<0>", "SharedReadOnly<1>"]

    def test_sound_fields(self):
        prog = Program()
        prog.declare("x", 2)
        result = check(prog)
        assert result.verified is True
        assert result.to_dict()["final_values"] == {"x": 2}
        assert "SOUND" in result.summary

    def test_report_requires_halted_state(self):
        prog = Program()
        prog.declare("x", 2)
        interp = Interpreter(prog)
        with pytest.raises(ValueError):
            report(interp.final_state())
