"""Record document loader tests (YAML and JSON)."""

import json

import pytest

from borrowstack.errors import TraceError, IssueKind
from borrowstack.loader import load_records, from_records, dump_records
from borrowstack.ops import Declare, Borrow, ExternalCall
from borrowstack.parser import parse
from borrowstack.permissions import BorrowKind
from borrowstack.reporter import Sound, Violation
from borrowstack.verify import check


YAML_DOC = """
name: cell-write
ops:
  - {op: declare, name: x, value: 2, interior_mutable: true}
  - {op: borrow, target: x, kind: shared, result: r}
  - {op: reborrow, source: r, kind: const, result: p}
  - {op: call, source: p}
"""


class TestLoadRecords:

    def test_yaml_mapping(self):
        prog = load_records(YAML_DOC)
        assert prog.name == "cell-write"
        assert isinstance(prog[0], Declare) and prog[0].interior_mutable
        assert prog[1] == Borrow("x", BorrowKind.SHARED, "r")
        assert isinstance(prog[3], ExternalCall)
        result = check(prog)
        assert isinstance(result, Sound)
        assert result.final_values == {"x": 1}

    def test_json_list(self):
        doc = json.dumps([
            {"op": "declare", "name": "x", "value": 2, "mutable": True},
            {"op": "borrow", "target": "x", "kind": "unique", "result": "m"},
            {"op": "to_int", "source": "m", "result": "i"},
            {"op": "write", "source": "i", "value": 3},
        ])
        result = check(load_records(doc, name="roundtrip"))
        assert isinstance(result, Violation)
        assert result.program == "roundtrip"
        assert result.instruction_index == 3

    def test_program_round_trips_through_records(self):
        prog = parse("let mut x = 0;\nlet m = &mut x;\nlet p = m as *const i32;\n*p = 1;\n")
        again = from_records(prog.to_records())
        assert again.to_records() == prog.to_records()
        assert check(again).to_dict()["rule"] == check(prog).to_dict()["rule"]

    def test_dump_is_loadable(self):
        prog = load_records(YAML_DOC)
        assert load_records(dump_records(prog)).to_records() == prog.to_records()

    @pytest.mark.parametrize("doc", [
        "just a string",
        "{name: x}",
        "- {op: declare}",
        "- {op: borrow, target: x, kind: weird, result: r}",
        "- {op: teleport, source: x}",
        "- {op: write, source: x, value: many}",
        "- {op: write, source: x, value: 2.7}",
        "- {op: write, source: x, value: true}",
        "- {op: declare, name: x, value: 2, mutable: \"false\"}",
        "- {op: declare, name: x, value: \"2\"}",
        "- {op: declare, name: x, interior_mutable: 1}",
        "- [not, a, mapping]",
        "ops: [",
    ])
    def test_bad_documents(self, doc):
        with pytest.raises(TraceError) as exc:
            load_records(doc)
        assert exc.value.kinds == [IssueKind.SYNTAX_ERROR]
