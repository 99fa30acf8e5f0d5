#!/usr/bin/env python3
"""
should-spawn-license-compliance.py — Decide whether the license-compliance agent runs.

Spawns when the PR touches a dependency manifest or lockfile of any
supported ecosystem. Matching is on the exact basename, plus
requirements*.txt for Python.

Prints JSON to stdout: {"spawn": bool, "reason": str}
"""

import os
import sys
from pathlib import Path, PurePosixPath

sys.path.insert(0, str(Path(__file__).resolve().parent))
from github_utils import emit_json, env_flag, fetch_pr_files, fetch_pr_labels, load_github_context, log
from review_models import ChangedFile, SpawnDecision, coerce_changed_files
from signal_patterns import SKIP_LABEL, normalize_labels

# Basename -> ecosystem label used in the reason string
MANIFEST_FILES = {
    "package.json": "npm",
    "pnpm-lock.yaml": "npm (lockfile)",
    "yarn.lock": "npm (lockfile)",
    "package-lock.json": "npm (lockfile)",
    "go.mod": "Go",
    "go.sum": "Go (lockfile)",
    "Cargo.toml": "Rust",
    "Cargo.lock": "Rust (lockfile)",
    "pyproject.toml": "Python",
    "setup.py": "Python",
    "setup.cfg": "Python",
    "Gemfile": "Ruby",
    "Gemfile.lock": "Ruby (lockfile)",
    "composer.json": "PHP",
    "build.gradle": "Java/Kotlin",
    "pom.xml": "Java/Kotlin",
}


def manifest_ecosystem(path: str) -> str | None:
    """Ecosystem label for a dependency manifest path, or None."""
    basename = PurePosixPath(path).name
    if basename in MANIFEST_FILES:
        return MANIFEST_FILES[basename]
    if basename.startswith("requirements") and basename.endswith(".txt"):
        return "Python"
    return None


def _paths(files) -> list[str]:
    if not files:
        return []
    if all(isinstance(f, str) for f in files):
        return list(files)
    return [f.filename for f in coerce_changed_files(files)]


def should_spawn_license_compliance(files, labels=None, force: bool = False) -> SpawnDecision:
    """Accepts changed-file records or plain path strings."""
    if force:
        return SpawnDecision(spawn=True, reason="Force flag set")

    if SKIP_LABEL in normalize_labels(labels):
        return SpawnDecision(spawn=False, reason="skip-review label present")

    paths = _paths(files)
    if not paths:
        return SpawnDecision(spawn=False, reason="No changed files")

    matched = []
    for path in paths:
        ecosystem = manifest_ecosystem(path)
        if ecosystem:
            matched.append(f"{PurePosixPath(path).name} ({ecosystem})")

    if not matched:
        return SpawnDecision(spawn=False, reason="No dependency manifest files changed")
    return SpawnDecision(spawn=True, reason=f"Dependency files changed: {', '.join(matched)}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    context = load_github_context()
    if not context.pr_number:
        emit_json(SpawnDecision(spawn=False, reason="Not a pull request event").to_dict())
        return

    force = env_flag(os.environ, "FORCE_LICENSE_COMPLIANCE_AGENT")
    files: list[ChangedFile] = fetch_pr_files(context)
    labels = fetch_pr_labels(context)

    result = should_spawn_license_compliance(files, labels, force)
    log(f'spawn={result.spawn} reason="{result.reason}"')
    emit_json(result.to_dict())


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        log(f"ERROR: {e}")
        emit_json({"spawn": False, "reason": f"Error: {e}"})
        sys.exit(0)
