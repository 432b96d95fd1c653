"""borrowstack output formatters -- human-friendly terminal output.

Output modes:
    pretty   -- colored, with the offending source line and borrow stack
    text     -- one plain line per result
    markdown -- for pasting into PRs / docs
    json     -- machine-readable
    sarif    -- GitHub Code Scanning (see borrowstack.sarif)
"""

from __future__ import annotations

import json
import os
import sys
from typing import Optional

from borrowstack.interpreter import FinalState
from borrowstack.ops import Program
from borrowstack.reporter import Result, Sound, Violation


# ── ANSI color helpers ───────────────────────────────────────────────────

def _no_color() -> bool:
    return os.environ.get("NO_COLOR") is not None or not sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if _no_color():
        return text
    return f"\033[{code}m{text}\033[0m"


def red(t: str) -> str:
    return _c("31", t)


def green(t: str) -> str:
    return _c("32", t)


def yellow(t: str) -> str:
    return _c("33", t)


def cyan(t: str) -> str:
    return _c("36", t)


def bold(t: str) -> str:
    return _c("1", t)


def dim(t: str) -> str:
    return _c("2", t)


# ── Rule explanations ───────────────────────────────────────────────────

RULE_HINTS = {
    "UntaggedAccess": "the pointer went through an integer cast, which erased its "
                      "provenance; keep it a pointer instead of round-tripping through usize",
    "TagNotFound": "an access through another pointer invalidated this one; use it "
                   "before the conflicting access or re-derive it afterwards",
    "Disabled": "another unique borrow of the same location is still live; only one "
                "mutable path may be used at a time",
    "ReadOnlyViolation": "the pointer was derived from a shared reference; derive it "
                         "from a mutable reference or wrap the value in a Cell",
}


# ── Pretty formatter (default) ──────────────────────────────────────────

def format_pretty(result: Result, program: Optional[Program] = None) -> str:
    lines: list[str] = []
    title = program.name if program is not None else result.program

    if isinstance(result, Sound):
        lines.append(f"\n {green('✔')}  {bold(title)}")
        for r in result.reads:
            lines.append(f"   {dim(f'[{r.index}]')} read {r.source} -> {r.value}")
        values = ", ".join(f"{k} = {v}" for k, v in result.final_values.items())
        if values:
            lines.append(f"   {dim('final:')} {values}")
        lines.append(f"\n   {green('No aliasing violations.')}\n")
        return "\n".join(lines)

    lines.append(f"\n {red('✖')}  {bold(title)}")
    loc = _format_location(result)
    lines.append(f"   {red('✖')}  {loc}{red(result.rule.value)}: {result.message}")
    src = program.line_of(result.instruction_index) if program is not None else None
    if src is not None:
        lines.append(f"      {dim('│')} {src.strip()}")
    else:
        lines.append(f"      {dim('│')} {result.operation}")
    if result.stack:
        lines.append(f"      {dim('stack:')} {cyan(' '.join(result.stack))}")
    hint = RULE_HINTS.get(result.rule.value)
    if hint:
        lines.append(f"      {yellow('⚡')}  {dim('Fix:')} {hint}")
    lines.append(f"\n   {red('undefined behavior at instruction ' + str(result.instruction_index))}\n")
    return "\n".join(lines)


# ── Plain text formatter ────────────────────────────────────────────────

def format_text(result: Result) -> str:
    if isinstance(result, Sound):
        return f"{result.program}: sound ({result.steps} operations)"
    return (f"{result.program}: violation {result.rule.value} on '{result.allocation_name}' "
            f"at instruction {result.instruction_index}: {result.message}")


# ── Markdown formatter ──────────────────────────────────────────────────

def format_markdown(result: Result) -> str:
    lines: list[str] = []
    if isinstance(result, Sound):
        lines.append(f"## borrowstack: ✅ SOUND — `{result.program}`")
        lines.append("")
        lines.append("| Allocation | Final value |")
        lines.append("|------------|-------------|")
        for name, value in result.final_values.items():
            lines.append(f"| `{name}` | {value} |")
        return "\n".join(lines)

    lines.append(f"## borrowstack: ❌ VIOLATION — `{result.program}`")
    lines.append("")
    lines.append("| Instruction | Allocation | Rule | Message |")
    lines.append("|-------------|------------|------|---------|")
    msg = result.message.replace("|", "\\|")
    lines.append(f"| {result.instruction_index} | `{result.allocation_name}` | "
                 f"{result.rule.value} | {msg} |")
    if result.stack:
        lines.append("")
        lines.append(f"> Borrow stack at the fault: `{' '.join(result.stack)}`")
    return "\n".join(lines)


# ── Dispatch ────────────────────────────────────────────────────────────

def format_result(result: Result, fmt: str = "pretty",
                  program: Optional[Program] = None) -> str:
    if fmt == "json":
        return result.to_json()
    if fmt == "text":
        return format_text(result)
    if fmt == "markdown":
        return format_markdown(result)
    if fmt == "sarif":
        from borrowstack.sarif import to_sarif
        return to_sarif([result])
    return format_pretty(result, program)


# ── Step-by-step listing ────────────────────────────────────────────────

def format_explain(final: FinalState, result: Result) -> str:
    """Borrow stacks after every executed instruction, then the verdict."""
    lines: list[str] = [bold(f"Trace {final.program.name}"), ""]
    for rec in final.trail:
        lines.append(f"{dim(f'{rec.index:4d} │')} {rec.operation}")
        for name, stack in rec.stacks.items():
            lines.append(f"     {dim('│')}   {name} = {rec.values[name]}  "
                         f"{cyan(' '.join(stack))}")
    if isinstance(result, Violation):
        lines.append(f"{dim(f'{result.instruction_index:4d} │')} {result.operation}")
        lines.append(f"     {dim('│')}   {red('✖ ' + result.rule.value)}: {result.message}")
    else:
        lines.append("")
        lines.append(green("✔ sound"))
    return "\n".join(lines)


def format_json_list(results: list[Result]) -> str:
    return json.dumps([r.to_dict() for r in results], indent=2)


def _format_location(result: Violation) -> str:
    if result.location is not None:
        return dim(f"L{result.location.line}:{result.location.column}  ")
    return dim(f"#{result.instruction_index}  ")
