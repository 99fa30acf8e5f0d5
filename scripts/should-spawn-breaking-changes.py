#!/usr/bin/env python3
"""
should-spawn-breaking-changes.py — Decide whether the breaking-changes agent runs.

Looks at the PR's file paths, file statuses, patch content and labels for
anything that could change a public contract: action manifests, workflows,
package manifests, type definitions, API routes, schemas, deleted files, and
contract-shaped keywords in the patch.

Prints JSON to stdout: {"spawn": bool, "reason": str}
"""

import os
import re
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from github_utils import emit_json, env_flag, fetch_pr_files, fetch_pr_labels, load_github_context, log
from review_models import SpawnDecision, coerce_changed_files
from signal_patterns import SignalPattern, check_gates, decide_from_signals, keyword_regex, scan_signals

OVERRIDE_LABELS = ("breaking", "breaking-change")

PATTERNS = (
    SignalPattern("action.yml files", re.compile(r"action\.ya?ml$", re.IGNORECASE)),
    SignalPattern("workflow files", re.compile(r"\.github/workflows/.*\.ya?ml$")),
    SignalPattern(
        "package manifests",
        re.compile(r"package\.json$|go\.mod$|setup\.py$|pyproject\.toml$|Cargo\.toml$"),
    ),
    SignalPattern(
        "type definitions",
        re.compile(r"\.d\.ts$|types?\.(ts|js)$|interfaces?\.(ts|js)$", re.IGNORECASE),
    ),
    SignalPattern(
        "API routes",
        re.compile(r"routes?\.[jt]sx?$|controllers?\.[jt]sx?$|handlers?\.[jt]sx?$|api/", re.IGNORECASE),
    ),
    SignalPattern("schema/migration files", re.compile(r"schema|migration|\.sql$", re.IGNORECASE)),
)

KEYWORDS = keyword_regex([
    r"inputs:",
    r"outputs:",
    r"required:",
    r"default:",
    r"deprecated",
    r"export\s+(?:default\s+)?(?:function|class|const|interface|type|enum)",
    r"module\.exports",
    r'"main"',
    r'"exports"',
    r'"bin"',
    r'"engines"',
    r'"peerDependencies"',
])


def should_spawn_breaking_changes(files, labels=None, force: bool = False) -> SpawnDecision:
    """Analyze PR files and labels to decide if the breaking-changes agent should spawn."""
    files = coerce_changed_files(files)
    gated = check_gates(files, labels, force, OVERRIDE_LABELS, "breaking label")
    if gated is not None:
        return gated

    reasons = scan_signals(
        files, PATTERNS, KEYWORDS,
        keyword_reason="breaking change keywords in patch",
        status_reasons={"removed": "removed files"},
    )
    return decide_from_signals(reasons, "No breaking change signals detected")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    context = load_github_context()
    if not context.pr_number:
        emit_json(SpawnDecision(spawn=False, reason="Not a pull request event").to_dict())
        return

    force = env_flag(os.environ, "FORCE_BREAKING_CHANGES_AGENT")
    files = fetch_pr_files(context)
    labels = fetch_pr_labels(context)

    result = should_spawn_breaking_changes(files, labels, force)
    log(f'Decision: spawn={result.spawn}, reason="{result.reason}"')
    emit_json(result.to_dict())


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        log(f"ERROR: {e}")
        emit_json({"spawn": False, "reason": f"Error: {e}"})
        sys.exit(0)
