#!/usr/bin/env python3
"""
extract-findings-from-comment.py — Turn the review bot's markdown comment into findings.json.

Fetches the latest review comment posted by the bot on the PR, splits it on
"#### Issue N: Title" headers, and pulls the labelled fields out of each
issue block. Parsing is lenient: missing fields are simply absent.

Expected issue format:
    #### Issue 1: Title
    **ID:** sec-users-sql-injection-f3a2
    **File:** path/to/file.ts:123
    **Severity:** HIGH
    **Category:** security
    **Context:** ...
    **Exploit Scenario:** ...
    **Recommendation:** ...

Writes a JSON list of findings. On any fatal error, writes [] (fail-closed).
"""

import json
import os
import re
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from config_loader import load_config
from github_utils import GitHubContext, fetch_issue_comments, load_github_context, log
from review_models import SEVERITIES, Finding

DEFAULT_BOT_LOGIN = "claude[bot]"
DEFAULT_OUTPUT_PATH = "findings.json"

# ID prefix -> review agent that produced the finding
AGENT_PREFIXES = {
    "bug": "review-bugs",
    "sec": "review-security",
    "pat": "review-patterns",
    "brk": "review-breaking-changes",
    "lic": "review-license-compliance",
    "dcl": "review-data-classification",
}

ISSUE_HEADER = re.compile(r"####\s+Issue\s+\d+[:.\-\s]+([^\n]+)", re.IGNORECASE)
DIVIDER = re.compile(r"\n---\s*\n")

ID_FIELD = re.compile(r"\*\*ID:\*\*\s+([a-z0-9\-]+)", re.IGNORECASE)
FILE_FIELD = re.compile(r"\*\*File:\*\*\s+([^:\n]+):(\d+)", re.IGNORECASE)
BARE_FILE_LINE = re.compile(r"([a-zA-Z0-9_\-/.]+\.[a-z]+):(\d+)")
BARE_FILE = re.compile(r"([a-zA-Z0-9_\-/.]+\.[a-z]+)")
SEVERITY_FIELD = re.compile(r"\*\*Severity:\*\*\s+(" + "|".join(SEVERITIES) + r")\b", re.IGNORECASE)
CATEGORY_FIELD = re.compile(r"\*\*Category:\*\*\s+([^\n]+)", re.IGNORECASE)
CONTEXT_FIELD = re.compile(r"\*\*Context:\*\*\s+(.*?)(?=\n\*\*|\n####|\Z)", re.IGNORECASE | re.DOTALL)


def _block_field(labels: str) -> re.Pattern:
    """Multi-line field: runs until a blank line followed by another field or header.

    Code fences and blank lines inside the block are kept; a `**` inside the
    block ends it.
    """
    return re.compile(
        r"\*\*(?:" + labels + r"):\*\*\s+((?:(?!\*\*|####).)*?)(?=\n\n(?:\*\*|####)|\Z)",
        re.IGNORECASE | re.DOTALL,
    )


RECOMMENDATION_FIELD = _block_field("Recommendation|Fix")
EXPLOIT_FIELD = _block_field("Exploit Scenario")


def agent_for_id(finding_id: str) -> str | None:
    prefix, sep, _ = finding_id.partition("-")
    return AGENT_PREFIXES.get(prefix) if sep else None


def _search(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def parse_issue(title: str, body: str) -> Finding:
    """Parse one issue block (the text after its header) into a Finding."""
    divider = DIVIDER.search(body)
    if divider:
        body = body[:divider.start()]

    fields = {"description": title.strip()}

    finding_id = _search(ID_FIELD, body)
    if finding_id:
        fields["id"] = finding_id.lower()
        fields["agent"] = agent_for_id(fields["id"])

    match = FILE_FIELD.search(body) or BARE_FILE_LINE.search(body)
    if match:
        fields["file"] = match.group(1).strip()
        fields["line"] = int(match.group(2))
    else:
        # Last resort: a bare filename on the header's own line
        bare = BARE_FILE.search(body.split("\n", 1)[0])
        if bare:
            fields["file"] = bare.group(1).strip()
            fields["line"] = 1

    severity = _search(SEVERITY_FIELD, body)
    if severity:
        fields["severity"] = severity.upper()

    category = _search(CATEGORY_FIELD, body)
    if category:
        fields["category"] = category

    fields["context"] = _search(CONTEXT_FIELD, body)
    fields["recommendation"] = _search(RECOMMENDATION_FIELD, body)
    fields["exploit_scenario"] = _search(EXPLOIT_FIELD, body)

    return Finding(**fields)


def parse_review_comment(comment_body: str | None) -> list[Finding]:
    """Extract every "#### Issue N:" block from a review comment."""
    if not comment_body:
        return []
    parts = ISSUE_HEADER.split(comment_body)
    # parts = [preamble, title1, body1, title2, body2, ...]
    return [parse_issue(parts[i], parts[i + 1]) for i in range(1, len(parts) - 1, 2)]


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------

def get_latest_review_comment(
    context: GitHubContext, bot_login: str = DEFAULT_BOT_LOGIN, comments: list[dict] | None = None,
) -> dict | None:
    """Most recent bot comment that looks like a findings report."""
    if comments is None:
        comments = fetch_issue_comments(context)

    candidates = [
        c for c in comments
        if (c.get("user") or {}).get("login") == bot_login
        and c.get("body")
        and ("Issue" in c["body"] or "Finding" in c["body"])
    ]
    if not candidates:
        log("  No review comments from the bot found.")
        return None
    return candidates[-1]


def write_findings(path: Path, findings: list[Finding]):
    path.write_text(json.dumps([f.to_dict() for f in findings], indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def output_path_for(config: dict) -> Path:
    return Path(config.get("findings", {}).get("output_path", DEFAULT_OUTPUT_PATH))


def main(config: dict | None = None):
    log("=== Extracting Findings ===")
    config = load_config() if config is None else config
    output_path = output_path_for(config)
    bot_login = config.get("findings", {}).get("bot_login", DEFAULT_BOT_LOGIN)

    context = load_github_context()
    if not context.pr_number:
        log("Not a pull request event, skipping findings extraction.")
        write_findings(output_path, [])
        return

    comment = get_latest_review_comment(context, bot_login)
    if comment is None:
        log(f"No review comment found. Writing empty {output_path}.")
        write_findings(output_path, [])
        return

    log(f"Found review comment from {comment.get('created_at', 'unknown time')}")
    findings = parse_review_comment(comment["body"])
    log(f"Extracted {len(findings)} findings.")
    if findings:
        log(f"  Sample: {json.dumps(findings[0].to_dict())[:300]}")

    write_findings(output_path, findings)
    log(f"Findings written to {output_path}")


if __name__ == "__main__":
    fallback_path = Path(os.environ.get("AUTO_REVIEW_FINDINGS_PATH") or DEFAULT_OUTPUT_PATH)
    try:
        config = load_config()
        fallback_path = output_path_for(config)
        main(config)
    except Exception as e:
        log(f"ERROR: Extracting findings failed: {e}")
        write_findings(fallback_path, [])
        sys.exit(0)
