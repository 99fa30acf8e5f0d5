"""
github_utils.py — GitHub plumbing shared by the auto-review scripts.

- `gh_api`: thin wrapper around the `gh api` CLI
- `load_github_context`: build an immutable view of the Actions event
- PR file / label fetchers
- stdout/stderr helpers (stdout is reserved for the JSON result)
"""

import json
import os
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from review_models import ChangedFile, coerce_changed_files


class GitHubApiError(RuntimeError):
    """The gh CLI failed or returned something we could not parse."""


class MalformedResponseError(GitHubApiError):
    """gh succeeded but its output is not the JSON shape we expect."""


class EventPayloadError(RuntimeError):
    """GITHUB_EVENT_PATH points at a file that is not valid JSON."""


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def log(message: str):
    """Diagnostics go to stderr; stdout carries the step's JSON output."""
    print(message, file=sys.stderr)


def emit_json(result: dict):
    print(json.dumps(result))


def env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() == "true"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GitHubContext:
    owner: str
    repo: str
    pr_number: int
    payload: dict = field(default_factory=dict, compare=False)

    @property
    def repo_path(self) -> str:
        return f"repos/{self.owner}/{self.repo}"


def load_github_context(environ: Mapping[str, str] | None = None) -> GitHubContext:
    """Read GITHUB_REPOSITORY and the event payload into a GitHubContext.

    Handles both pull_request events and issue_comment events on PRs.
    Anything else yields pr_number=0.
    """
    environ = os.environ if environ is None else environ
    owner, _, repo = environ.get("GITHUB_REPOSITORY", "").partition("/")

    payload = {}
    event_path = environ.get("GITHUB_EVENT_PATH")
    if event_path and Path(event_path).exists():
        try:
            payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise EventPayloadError(f"Unable to parse GitHub event payload: {e}") from e
        if not isinstance(payload, dict):
            raise EventPayloadError("GitHub event payload is not a JSON object")

    pr_number = (payload.get("pull_request") or {}).get("number") or 0

    # issue_comment events carry issue.pull_request when the issue is a PR
    issue = payload.get("issue") or {}
    if not pr_number and issue.get("pull_request"):
        pr_number = issue.get("number") or 0

    return GitHubContext(owner=owner, repo=repo, pr_number=int(pr_number), payload=payload)


# ---------------------------------------------------------------------------
# gh CLI
# ---------------------------------------------------------------------------

def gh_api(endpoint: str, method: str = "GET", data: dict | None = None, timeout: int = 30):
    """Call `gh api` and return the decoded JSON body (None when empty)."""
    args = ["gh", "api", endpoint, "--method", method]
    if data is not None:
        args += ["--input", "-"]

    try:
        result = subprocess.run(
            args,
            input=json.dumps(data) if data is not None else None,
            capture_output=True, text=True, timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise GitHubApiError(f"Failed to invoke gh CLI: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.strip()
        detail = f": {stderr[:200]}" if stderr else ""
        raise GitHubApiError(f"gh CLI exited with code {result.returncode}{detail}")

    output = result.stdout.strip()
    if not output:
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Failed to parse gh CLI response: {e}") from e


def fetch_pr_files(context: GitHubContext) -> list[ChangedFile]:
    files = gh_api(f"{context.repo_path}/pulls/{context.pr_number}/files?per_page=100")
    if files is not None and not isinstance(files, list):
        raise MalformedResponseError("Expected a list of PR files")
    try:
        return coerce_changed_files(files)
    except ValueError as e:
        raise MalformedResponseError(f"Malformed PR file entry: {e}") from e


def fetch_pr_labels(context: GitHubContext) -> list[str]:
    labels = gh_api(f"{context.repo_path}/issues/{context.pr_number}/labels") or []
    if not isinstance(labels, list):
        raise MalformedResponseError("Expected a list of labels")
    return [label["name"] for label in labels if isinstance(label, dict) and label.get("name")]


def fetch_issue_comments(context: GitHubContext) -> list[dict]:
    comments = gh_api(f"{context.repo_path}/issues/{context.pr_number}/comments?per_page=100") or []
    if not isinstance(comments, list):
        raise MalformedResponseError("Expected a list of issue comments")
    return comments
