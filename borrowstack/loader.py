"""Load traces from list-of-records documents (YAML or JSON).

    name: shared-write
    ops:
      - {op: declare, name: x, value: 2}
      - {op: borrow, target: x, kind: shared, result: r}
      - {op: reborrow, source: r, kind: shared, result: p}
      - {op: call, source: p}

A bare list of records is accepted too. JSON documents go through the same
path since JSON is a subset of YAML.
"""

from __future__ import annotations

from typing import Any, Optional

import yaml

from borrowstack.errors import TraceError, syntax_error
from borrowstack.ops import (
    Program, Operation, Declare, Borrow, Reborrow, CastToInteger, Read, Write, ExternalCall,
)
from borrowstack.permissions import BorrowKind

_KINDS = {
    "shared": BorrowKind.SHARED,
    "const": BorrowKind.SHARED,
    "unique": BorrowKind.UNIQUE,
    "mut": BorrowKind.UNIQUE,
}


def load_records(text: str, name: str = "<records>") -> Program:
    """Parse a YAML/JSON document into a Program."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TraceError(syntax_error(f"Malformed record document: {e}")) from e

    if isinstance(data, dict):
        name = str(data.get("name", name))
        records = data.get("ops")
    else:
        records = data
    if not isinstance(records, list):
        raise TraceError(syntax_error("Record document must be a list of operations "
                                      "or a mapping with an 'ops' list"))
    return from_records(records, name=name)


def from_records(records: list[Any], name: str = "<records>") -> Program:
    program = Program(name=name)
    for index, record in enumerate(records):
        program.add(_record_to_op(record, index))
    return program


def _record_to_op(record: Any, index: int) -> Operation:
    if not isinstance(record, dict) or "op" not in record:
        raise TraceError(syntax_error(f"Record {index} is not a mapping with an 'op' key"))
    op = str(record["op"]).lower()
    try:
        if op == "declare":
            return Declare(
                name=str(record["name"]),
                value=_int(record.get("value", 0), "value"),
                mutable=_bool(record.get("mutable", False), "mutable"),
                interior_mutable=_bool(record.get("interior_mutable", False), "interior_mutable"),
            )
        if op == "borrow":
            return Borrow(str(record["target"]), _kind(record, index), str(record["result"]))
        if op == "reborrow":
            return Reborrow(str(record["source"]), _kind(record, index), str(record["result"]))
        if op == "to_int":
            return CastToInteger(str(record["source"]), str(record["result"]))
        if op == "read":
            return Read(str(record["source"]), _optional_str(record.get("binding")))
        if op == "write":
            return Write(str(record["source"]), _int(record["value"], "value"))
        if op == "call":
            return ExternalCall(str(record["source"]), str(record.get("function", "opaque")))
    except KeyError as e:
        raise TraceError(syntax_error(f"Record {index} ({op}) is missing field {e}")) from e
    except (TypeError, ValueError) as e:
        raise TraceError(syntax_error(f"Record {index} ({op}) has a bad value: {e}")) from e
    raise TraceError(syntax_error(f"Record {index} has unknown op '{op}'"))


def _kind(record: dict[str, Any], index: int) -> BorrowKind:
    raw = str(record.get("kind", "shared")).lower()
    if raw not in _KINDS:
        raise TraceError(syntax_error(f"Record {index} has unknown borrow kind '{raw}'"))
    return _KINDS[raw]


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _int(value: Any, field: str) -> int:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"'{field}' must be an integer, got {value!r}")
    return value


def _bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"'{field}' must be true or false, got {value!r}")
    return value


def dump_records(program: Program) -> str:
    return yaml.safe_dump({"name": program.name, "ops": program.to_records()},
                          sort_keys=False)
