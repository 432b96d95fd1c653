"""Checker entry points: program in, Sound/Violation out."""

from __future__ import annotations

import os
from typing import Optional

from borrowstack.config import BorrowstackConfig
from borrowstack.errors import SourceLocation, TraceError, syntax_error
from borrowstack.interpreter import Interpreter, FinalState
from borrowstack.loader import load_records
from borrowstack.ops import Program
from borrowstack.parser import parse
from borrowstack.reporter import Result, report

RECORD_EXTENSIONS = (".yml", ".yaml", ".json")


def _options(config: Optional[BorrowstackConfig]) -> dict:
    config = config or BorrowstackConfig()
    return {
        "external_write_value": config.external_write_value,
        "check_bindings": config.check_bindings,
    }


def run(program: Program, config: Optional[BorrowstackConfig] = None,
        record: bool = False) -> FinalState:
    return Interpreter(program, record=record, **_options(config)).run()


def check(program: Program, config: Optional[BorrowstackConfig] = None) -> Result:
    """Run a program on a fresh store and report the outcome.

    Raises TraceError when the program is malformed.
    """
    return report(run(program, config))


def check_source(source: str, filename: str = "<trace>",
                 config: Optional[BorrowstackConfig] = None) -> Result:
    return check(parse(source, filename), config)


def load_program(path: str) -> Program:
    """Read a trace file: records for .yml/.yaml/.json, trace language otherwise."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise TraceError(syntax_error(
            f"Trace file is not valid UTF-8: {e.reason} at byte {e.start}",
            SourceLocation(1, 1, path),
        )) from e
    name = os.path.basename(path)
    if path.lower().endswith(RECORD_EXTENSIONS):
        return load_records(text, name=name)
    return parse(text, filename=path, name=name)


def check_file(path: str, config: Optional[BorrowstackConfig] = None) -> Result:
    return check(load_program(path), config)
