#!/usr/bin/env python3
"""
comment-pr-findings.py — Decide where each extracted finding can be posted.

GitHub rejects review comments on lines outside the PR's diff hunks, so each
finding is checked against the new-side line ranges of its file's patch:
- inside a hunk  → inline review comment
- anything else  → general (summary) comment

Reads findings.json and writes review-comments.json for the posting step:
    {"inline": [...], "general": [...]}
Each entry is the finding plus a stable `hash` used to avoid reposting.
"""

import hashlib
import json
import re
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from config_loader import load_config
from github_utils import fetch_pr_files, load_github_context, log
from review_models import DiffRange, coerce_changed_files

DEFAULT_FINDINGS_PATH = "findings.json"
DEFAULT_OUTPUT_PATH = "review-comments.json"

HUNK_HEADER = re.compile(r"@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


# ---------------------------------------------------------------------------
# Diff ranges
# ---------------------------------------------------------------------------

def parse_diff_hunks(patch: str | None) -> list[DiffRange]:
    """New-side line range of every hunk header in a unified diff, in order."""
    if not patch:
        return []
    ranges = []
    for match in HUNK_HEADER.finditer(patch):
        start = int(match.group(3))
        count = int(match.group(4)) if match.group(4) is not None else 1
        ranges.append(DiffRange(start=start, end=start + count - 1))
    return ranges


def is_line_in_diff(line: int, ranges: list[DiffRange]) -> bool:
    return any(line in r for r in ranges)


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------

def generate_finding_hash(file: str | None, description: str, finding_id: str | None = None) -> str:
    """Stable key for a finding: its own ID when it has one, else a content hash."""
    if finding_id:
        return finding_id
    digest = hashlib.sha256(f"{file or ''}:{description}".encode("utf-8")).hexdigest()
    return digest[:16]


def read_json_file(path: Path):
    """Parsed JSON, or None when the file does not exist. Other errors propagate."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(text)


def plan_review_comments(findings: list[dict], files) -> dict:
    """Split findings into inline-postable and general comments."""
    ranges_by_file = {f.filename: parse_diff_hunks(f.patch) for f in coerce_changed_files(files)}

    inline, general = [], []
    for finding in findings:
        entry = dict(finding)
        entry["hash"] = generate_finding_hash(
            finding.get("file"), finding.get("description", ""), finding.get("id"),
        )
        file_path = finding.get("file")
        line = finding.get("line")
        if file_path and isinstance(line, int) and is_line_in_diff(line, ranges_by_file.get(file_path, [])):
            inline.append(entry)
        else:
            general.append(entry)
    return {"inline": inline, "general": general}


def write_plan(path: Path, plan: dict):
    path.write_text(json.dumps(plan, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def output_path_for(config: dict) -> Path:
    return Path(config.get("comments", {}).get("output_path", DEFAULT_OUTPUT_PATH))


def main(config: dict | None = None):
    log("=== Planning Review Comments ===")
    config = load_config() if config is None else config
    findings_path = Path(config.get("findings", {}).get("output_path", DEFAULT_FINDINGS_PATH))
    output_path = output_path_for(config)

    findings = read_json_file(findings_path)
    if not findings:
        log(f"No findings in {findings_path}. Nothing to post.")
        write_plan(output_path, {"inline": [], "general": []})
        return
    if not isinstance(findings, list):
        raise ValueError(f"{findings_path} must contain a JSON list")

    context = load_github_context()
    if not context.pr_number:
        log("Not a pull request event, skipping.")
        write_plan(output_path, {"inline": [], "general": []})
        return

    files = fetch_pr_files(context)
    plan = plan_review_comments(findings, files)

    log(f"Findings: {len(findings)}")
    log(f"  Inline: {len(plan['inline'])}")
    log(f"  General: {len(plan['general'])}")
    for entry in plan["general"]:
        if entry.get("file") and entry.get("line"):
            log(f"  Outside diff: {entry['file']}:{entry['line']}")

    write_plan(output_path, plan)
    log(f"Comment plan written to {output_path}")


if __name__ == "__main__":
    fallback_path = Path(DEFAULT_OUTPUT_PATH)
    try:
        config = load_config()
        fallback_path = output_path_for(config)
        main(config)
    except Exception as e:
        log(f"ERROR: Planning review comments failed: {e}")
        write_plan(fallback_path, {"inline": [], "general": []})
        sys.exit(0)
