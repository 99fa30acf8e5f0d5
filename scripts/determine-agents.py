#!/usr/bin/env python3
"""
determine-agents.py — Decide which review agents (bug, security, patterns) to run.

Conservative heuristic: when in doubt, spawn. Only clearly trivial PRs
(empty, docs-only, rename-only) skip review entirely; lockfile-only and
test-only PRs get a single targeted agent; large PRs get everything.

Prints JSON to stdout: {"agents": [...], "reason": str, "skipped": [...]}
On any fatal error, prints the full agent set (fail-open).
"""

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from config_loader import load_config
from github_utils import (
    GitHubApiError, MalformedResponseError, emit_json, env_flag, fetch_pr_files, fetch_pr_labels,
    load_github_context, log,
)
from review_models import AgentSelection, ChangedFile, coerce_changed_files
from signal_patterns import normalize_labels

ALL_AGENTS = ["bug", "security", "patterns"]

FALLBACK_RESULT = {"agents": list(ALL_AGENTS), "reason": "Error fallback", "skipped": []}
NO_CONTEXT_RESULT = {"agents": list(ALL_AGENTS), "reason": "No PR context", "skipped": []}

# Overridable via the `agents` config section
DEFAULT_THRESHOLDS = {
    "large_pr_lines": 500,
    "large_pr_files": 15,
    "large_single_file_lines": 300,
    "patterns_code_files": 5,
}

FILE_PATTERNS = {
    "docs": re.compile(r"\.(md|txt|rst|mdx)$", re.IGNORECASE),
    "tests": re.compile(r"\.(test|spec)\.[jt]sx?$|__tests__/", re.IGNORECASE),
    "workflows": re.compile(r"\.github/workflows/.*\.ya?ml$"),
    "auth": re.compile(r"auth|login|session", re.IGNORECASE),
    "sql": re.compile(r"\.sql$|/migrations/", re.IGNORECASE),
    "secrets": re.compile(r"\.env|secrets?|config/", re.IGNORECASE),
    "infra": re.compile(r"Dockerfile|\.tf$|\.tfvars$"),
    "lockfiles": re.compile(r"\.lock$|package-lock\.json$|yarn\.lock$|pnpm-lock\.yaml$|go\.sum$"),
    "deps": re.compile(r"package\.json$|go\.mod$|requirements\.txt$|Gemfile$"),
}

SECURITY_KEYWORDS = [
    "password", "secret", "token", "api_key", "apikey", "credential", "jwt", "bearer",
    "crypto", "hash", "encrypt", "decrypt", "md5", "sha1",
    "exec", "spawn", "shell", "eval",
    "query", "sql",
    "fetch", "axios", "http", "redirect", "cors",
    "readFile", "writeFile", r"fs\.", r"path\.join",
]

# Brand domains and React hook names that the patterns agent knows about
PATTERNS_KEYWORDS = [
    r"walletconnect\.com",
    r"reown\.com",
    "Cache-Control",
    "max-age",
    "useEffect",
    "useMemo",
    "useCallback",
]


def matches_pattern(filename: str, category: str) -> bool:
    pattern = FILE_PATTERNS.get(category)
    return bool(pattern and pattern.search(filename))


def find_keywords(text: str, keywords: list[str]) -> list[str]:
    """Return the keyword regex sources that occur in text, in list order."""
    if not text:
        return []
    return [kw for kw in keywords if re.search(kw, text, re.IGNORECASE)]


@dataclass
class FileStats:
    total_files: int = 0
    code_files: int = 0
    total_lines: int = 0
    max_single_file_lines: int = 0

    is_empty: bool = True
    docs_only: bool = False
    test_only: bool = False
    rename_only: bool = False
    lockfile_only: bool = False

    has_workflow_files: bool = False
    has_auth_files: bool = False
    has_sql_files: bool = False
    has_secret_files: bool = False
    has_infra_files: bool = False
    has_dep_files: bool = False

    security_keywords: list[str] = field(default_factory=list)
    patterns_keywords: list[str] = field(default_factory=list)


def categorize_files(files) -> FileStats:
    """Aggregate counts, edge-case flags, and signal flags for a PR."""
    files: list[ChangedFile] = coerce_changed_files(files)
    code_files = [f for f in files if not matches_pattern(f.filename, "docs") and f.status != "removed"]

    def every(category):
        return bool(files) and all(matches_pattern(f.filename, category) for f in files)

    def some(category):
        return any(matches_pattern(f.filename, category) for f in files)

    all_patches = "\n".join(f.patch for f in files if f.patch)

    return FileStats(
        total_files=len(files),
        code_files=len(code_files),
        total_lines=sum(f.lines_changed for f in files),
        max_single_file_lines=max((f.lines_changed for f in files), default=0),
        is_empty=not files,
        docs_only=every("docs"),
        test_only=bool(code_files) and all(matches_pattern(f.filename, "tests") for f in code_files),
        rename_only=bool(files) and all(f.status == "renamed" and f.changes == 0 for f in files),
        lockfile_only=every("lockfiles"),
        has_workflow_files=some("workflows"),
        has_auth_files=some("auth"),
        has_sql_files=some("sql"),
        has_secret_files=some("secrets"),
        has_infra_files=some("infra"),
        has_dep_files=some("deps"),
        security_keywords=find_keywords(all_patches, SECURITY_KEYWORDS),
        patterns_keywords=find_keywords(all_patches, PATTERNS_KEYWORDS),
    )


def _skip_all(reason: str) -> AgentSelection:
    return AgentSelection(agents=[], reason=reason, skipped=list(ALL_AGENTS))


def determine_agents(
    files,
    labels=None,
    force_all_agents: bool = False,
    thresholds: dict | None = None,
) -> AgentSelection:
    """Determine which agents to spawn based on PR characteristics."""
    limits = {**DEFAULT_THRESHOLDS, **(thresholds or {})}

    if force_all_agents:
        return AgentSelection(agents=list(ALL_AGENTS), reason="Force all agents flag set")

    label_set = normalize_labels(labels)
    if "full-review" in label_set:
        return AgentSelection(agents=list(ALL_AGENTS), reason="full-review label override")
    if "skip-review" in label_set:
        return _skip_all("skip-review label present")

    stats = categorize_files(files)

    log(f"Analyzing PR ({stats.total_files} files, {stats.total_lines} lines changed)")
    log(f"  File signals: workflows={stats.has_workflow_files}, auth={stats.has_auth_files}, "
        f"infra={stats.has_infra_files}")
    more = "..." if len(stats.security_keywords) > 5 else ""
    log(f"  Content signals: security keywords=[{', '.join(stats.security_keywords[:5])}{more}]")

    # Nothing to review
    if stats.is_empty:
        return _skip_all("Empty PR (no files)")
    if stats.docs_only:
        return _skip_all("Docs-only change")
    if stats.rename_only:
        return _skip_all("Rename-only change (no content modifications)")

    # Limited review
    if stats.lockfile_only:
        return AgentSelection(
            agents=["security"],
            reason="Lockfile-only change (supply chain review)",
            skipped=["bug", "patterns"],
        )
    if stats.test_only:
        return AgentSelection(agents=["bug"], reason="Test-only change", skipped=["security", "patterns"])

    if stats.total_lines > limits["large_pr_lines"] or stats.total_files > limits["large_pr_files"]:
        return AgentSelection(
            agents=list(ALL_AGENTS),
            reason=f"Large PR ({stats.total_files} files, {stats.total_lines} lines)",
        )

    agents = ["bug"]
    reasons = ["Code changes present"]
    skipped = []

    security_reasons = [
        label for flag, label in [
            (stats.has_workflow_files, "workflow files"),
            (stats.has_auth_files, "auth files"),
            (stats.has_sql_files, "SQL/migration files"),
            (stats.has_secret_files, "config/secret files"),
            (stats.has_infra_files, "infrastructure files"),
            (stats.has_dep_files, "dependency files"),
            (bool(stats.security_keywords), "security keywords"),
        ] if flag
    ]
    if security_reasons:
        agents.append("security")
        reasons.append(f"Security: {', '.join(security_reasons)}")
    else:
        skipped.append("security")

    large_file = stats.max_single_file_lines > limits["large_single_file_lines"]
    many_files = stats.code_files > limits["patterns_code_files"]
    patterns_reasons = [
        label for flag, label in [
            (stats.has_workflow_files, "workflow files"),
            (large_file, f"large file ({stats.max_single_file_lines} lines)"),
            (many_files, f"{stats.code_files} code files"),
            (bool(stats.patterns_keywords), "patterns keywords"),
        ] if flag
    ]
    if patterns_reasons:
        agents.append("patterns")
        reasons.append(f"Patterns: {', '.join(patterns_reasons)}")
    else:
        skipped.append("patterns")

    result = AgentSelection(agents=agents, reason="; ".join(reasons), skipped=skipped)
    log(f"Decision: spawning [{', '.join(agents)}]")
    log(f"  Reason: {result.reason}")
    if skipped:
        log(f"  Skipped: [{', '.join(skipped)}]")
    return result


# ---------------------------------------------------------------------------
# GitHub fetchers
# A failed gh call yields an empty list; a malformed response propagates so the
# top-level handler falls back to every agent.
# ---------------------------------------------------------------------------

def load_pr_files(context) -> list[ChangedFile]:
    try:
        return fetch_pr_files(context)
    except MalformedResponseError:
        raise
    except GitHubApiError as e:
        log(f"  Warning: Failed to fetch PR files: {e}")
        return []


def load_pr_labels(context) -> list[str]:
    try:
        return fetch_pr_labels(context)
    except MalformedResponseError:
        raise
    except GitHubApiError as e:
        log(f"  Warning: Failed to fetch PR labels: {e}")
        return []


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    context = load_github_context()
    if not context.pr_number:
        log("ERROR: No PR number found in context")
        emit_json(NO_CONTEXT_RESULT)
        return

    config = load_config()
    force_all_agents = env_flag(os.environ, "FORCE_ALL_AGENTS")
    files = load_pr_files(context)
    labels = load_pr_labels(context)

    result = determine_agents(
        files, labels, force_all_agents, thresholds=config.get("agents", {}),
    )
    emit_json(result.to_dict())


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        log(f"ERROR: Fatal error: {e}")
        emit_json(FALLBACK_RESULT)
        sys.exit(0)
