"""borrowstack SARIF output -- Static Analysis Results Interchange Format.

Produces SARIF 2.1.0 JSON, one run per invocation, one result per
violation. Sound traces contribute no results.

SARIF spec: https://docs.oasis-open.org/sarif/sarif/v2.1.0/sarif-v2.1.0.html
"""

from __future__ import annotations

import json
from typing import Any

from borrowstack import __version__
from borrowstack.errors import Rule
from borrowstack.reporter import Result, Violation


SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/main/sarif-2.1/schema/sarif-schema-2.1.0.json"

# Map violation rules to SARIF rule IDs
RULE_MAP: dict[Rule, tuple[str, str]] = {
    Rule.UNTAGGED_ACCESS: ("BS001", "Access Through Untagged Pointer"),
    Rule.TAG_NOT_FOUND: ("BS002", "Access Through Invalidated Borrow"),
    Rule.DISABLED: ("BS003", "Conflicting Unique Borrow"),
    Rule.READ_ONLY_VIOLATION: ("BS004", "Write Through Shared Read-Only Borrow"),
}


def _result_object(v: Violation) -> dict[str, Any]:
    rule_id, _ = RULE_MAP[v.rule]
    uri = (v.location.file if v.location else v.program).replace("\\", "/")
    region: dict[str, Any] = {"startLine": 1, "startColumn": 1}
    if v.location:
        region = {"startLine": max(1, v.location.line),
                  "startColumn": max(1, v.location.column)}
    return {
        "ruleId": rule_id,
        "level": "error",
        "message": {"text": v.message},
        "locations": [{
            "physicalLocation": {
                "artifactLocation": {"uri": uri},
                "region": region,
            }
        }],
        "properties": {
            "instructionIndex": v.instruction_index,
            "allocation": v.allocation_name,
            "tag": v.tag,
            "borrowStack": list(v.stack),
        },
    }


def to_sarif(results: list[Result], tool_version: str = __version__) -> str:
    """Convert checker results to a SARIF 2.1.0 JSON string."""
    sarif_results: list[dict[str, Any]] = []
    rules_seen: dict[str, dict[str, Any]] = {}

    for result in results:
        if not isinstance(result, Violation):
            continue
        sarif_results.append(_result_object(result))
        rule_id, rule_name = RULE_MAP[result.rule]
        if rule_id not in rules_seen:
            rules_seen[rule_id] = {
                "id": rule_id,
                "name": result.rule.value,
                "shortDescription": {"text": rule_name},
                "defaultConfiguration": {"level": "error"},
            }

    sarif = {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [{
            "tool": {
                "driver": {
                    "name": "borrowstack",
                    "version": tool_version,
                    "rules": list(rules_seen.values()),
                }
            },
            "results": sarif_results,
            "invocations": [{
                "executionSuccessful": True,
                "properties": {
                    "tracesChecked": len(results),
                    "violations": len(sarif_results),
                },
            }],
        }],
    }
    return json.dumps(sarif, indent=2)
