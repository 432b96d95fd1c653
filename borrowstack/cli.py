"""borrowstack CLI -- command-line interface for the aliasing checker.

Commands:
  borrowstack check <file>          -- Run a trace file and report Sound/Violation
  borrowstack explain <file>        -- Step-by-step borrow stacks of a trace
  borrowstack scenarios             -- Run the built-in scenario catalogue
  borrowstack init [dir]            -- Write a default .borrowstackrc.yml

Exit codes: 0 sound, 1 violation, 2 malformed trace or usage error.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Optional

from borrowstack import __version__
from borrowstack.config import (
    BorrowstackConfig, FORMATS, CONFIG_FILES, load_config, dump_config,
)
from borrowstack.errors import TraceError
from borrowstack.formatters import (
    format_result, format_explain, format_json_list, green, red, bold,
)
from borrowstack.reporter import report
from borrowstack.sarif import to_sarif
from borrowstack.scenarios import SCENARIOS, get_scenario
from borrowstack.verify import check, load_program, run

logger = logging.getLogger("borrowstack")

EXIT_SOUND = 0
EXIT_VIOLATION = 1
EXIT_MALFORMED = 2


def _config(args: argparse.Namespace) -> BorrowstackConfig:
    config = load_config(getattr(args, "config", None))
    if getattr(args, "format", None):
        config.format = args.format
    if getattr(args, "external_value", None) is not None:
        config.external_write_value = args.external_value
    return config


def _setup_logging(args: argparse.Namespace, config: BorrowstackConfig) -> None:
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper())
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def cmd_check(args: argparse.Namespace, config: BorrowstackConfig) -> int:
    """Run a trace file through the checker."""
    if not os.path.exists(args.file):
        print(json.dumps({"error": f"File not found: {args.file}"}))
        return EXIT_MALFORMED

    try:
        program = load_program(args.file)
        result = check(program, config)
    except TraceError as e:
        print(e.to_json())
        return EXIT_MALFORMED
    except OSError as e:
        print(json.dumps({"error": f"Cannot read {args.file}: {e.strerror or e}"}))
        return EXIT_MALFORMED

    print(format_result(result, fmt=config.format, program=program))
    return EXIT_SOUND if result.verified else EXIT_VIOLATION


def cmd_explain(args: argparse.Namespace, config: BorrowstackConfig) -> int:
    """Print the borrow stacks after every instruction."""
    if not os.path.exists(args.file):
        print(json.dumps({"error": f"File not found: {args.file}"}))
        return EXIT_MALFORMED

    try:
        program = load_program(args.file)
        final = run(program, config, record=True)
    except TraceError as e:
        print(e.to_json())
        return EXIT_MALFORMED
    except OSError as e:
        print(json.dumps({"error": f"Cannot read {args.file}: {e.strerror or e}"}))
        return EXIT_MALFORMED

    result = report(final)
    print(format_explain(final, result))
    return EXIT_SOUND if result.verified else EXIT_VIOLATION


def cmd_scenarios(args: argparse.Namespace, config: BorrowstackConfig) -> int:
    """Run the scenario catalogue and compare against expectations."""
    if args.name:
        try:
            selected = [get_scenario(n) for n in args.name]
        except KeyError as e:
            print(json.dumps({"error": f"Unknown scenario: {e.args[0]}"}))
            return EXIT_MALFORMED
    else:
        selected = SCENARIOS

    results = [(s, s.run(config)) for s in selected]
    failures = [s.name for s, r in results if not s.matches(r)]

    if config.format == "json":
        print(format_json_list([r for _, r in results]))
    elif config.format == "sarif":
        print(to_sarif([r for _, r in results]))
    else:
        for scenario, result in results:
            ok = scenario.matches(result)
            mark = green("✔") if ok else red("✖")
            got = "sound" if result.verified else f"violation {result.rule.value}"
            print(f" {mark}  {bold(scenario.name):<40} expected {scenario.expectation}, got {got}")
        print()
        print(f" {len(results) - len(failures)}/{len(results)} scenarios behaved as expected")

    return EXIT_SOUND if not failures else EXIT_VIOLATION


def cmd_init(args: argparse.Namespace, config: BorrowstackConfig) -> int:
    """Write a default configuration file."""
    path = os.path.join(args.directory, CONFIG_FILES[0])
    if os.path.exists(path) and not args.force:
        print(json.dumps({"error": f"{path} already exists (use --force to overwrite)"}))
        return EXIT_MALFORMED
    os.makedirs(args.directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_config(BorrowstackConfig()))
    print(json.dumps({"status": "created", "path": path}))
    return EXIT_SOUND


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="borrowstack",
        description="borrowstack -- borrow-stack aliasing checker for pointer traces",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every interpreter step")
    parser.add_argument("--config", default=None, help="Configuration file (default: nearest .borrowstackrc.yml)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check
    p_check = subparsers.add_parser("check", help="Check a trace file (.bs text, or .yml/.yaml/.json records)")
    p_check.add_argument("file", help="Trace file")
    p_check.add_argument("--format", choices=FORMATS, default=None, help="Output format (default: from config, else pretty)")
    p_check.add_argument("--external-value", type=int, default=None, dest="external_value",
                         help="Value opaque calls write through their argument")
    p_check.set_defaults(func=cmd_check)

    # explain
    p_explain = subparsers.add_parser("explain", help="Show the borrow stacks after every instruction")
    p_explain.add_argument("file", help="Trace file")
    p_explain.add_argument("--external-value", type=int, default=None, dest="external_value",
                           help="Value opaque calls write through their argument")
    p_explain.set_defaults(func=cmd_explain)

    # scenarios
    p_scen = subparsers.add_parser("scenarios", help="Run the built-in scenario catalogue")
    p_scen.add_argument("--name", nargs="+", default=None, help="Only run these scenarios")
    p_scen.add_argument("--format", choices=("pretty", "json", "sarif"), default=None, help="Output format")
    p_scen.set_defaults(func=cmd_scenarios)

    # init
    p_init = subparsers.add_parser("init", help="Create a .borrowstackrc.yml with default settings")
    p_init.add_argument("directory", nargs="?", default=".", help="Project directory (default: current)")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_init.set_defaults(func=cmd_init)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_MALFORMED)

    try:
        config = _config(args)
    except (OSError, ValueError) as e:
        print(json.dumps({"error": f"Bad configuration: {e}"}))
        sys.exit(EXIT_MALFORMED)

    _setup_logging(args, config)
    logger.debug("configuration: %s", config.to_dict())
    sys.exit(args.func(args, config))


if __name__ == "__main__":
    main()
