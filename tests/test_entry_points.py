"""Tests for each script's top-level handler: fallback output and exit status 0."""

import json
import runpy
from pathlib import Path

import pytest
from unittest.mock import MagicMock, patch

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"

ALL_AGENTS = ["bug", "security", "patterns"]

EXTRACTOR_SCRIPTS = [
    "should-spawn-breaking-changes",
    "should-spawn-data-classification",
    "should-spawn-license-compliance",
    "should-spawn-deduplication",
]


def run_script(name: str) -> int:
    """Run a script as __main__ and return its exit status."""
    try:
        runpy.run_path(str(SCRIPTS_DIR / f"{name}.py"), run_name="__main__")
    except SystemExit as e:
        return e.code or 0
    return 0


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated Actions environment rooted at tmp_path."""
    for name in (
        "FORCE_ALL_AGENTS", "FORCE_BREAKING_CHANGES_AGENT", "FORCE_DATA_CLASSIFICATION_AGENT",
        "FORCE_LICENSE_COMPLIANCE_AGENT", "FORCE_DEDUPLICATION_AGENT",
        "AUTO_REVIEW_CONFIG", "AUTO_REVIEW_ACTION_PATH", "AUTO_REVIEW_FINDINGS_PATH",
        "AUTO_REVIEW_BOT_LOGIN", "AUTO_REVIEW_SIMILARITY_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITHUB_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("GITHUB_REPOSITORY", "acme/widgets")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_event(workspace: Path, monkeypatch, payload) -> Path:
    event = workspace / "event.json"
    event.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    monkeypatch.setenv("GITHUB_EVENT_PATH", str(event))
    return event


def write_project_config(workspace: Path, config: dict):
    config_dir = workspace / ".github" / "auto-review"
    config_dir.mkdir(parents=True)
    # JSON is valid YAML
    (config_dir / "config.yaml").write_text(json.dumps(config))


# ---------------------------------------------------------------------------
# determine-agents (fail-open)
# ---------------------------------------------------------------------------

class TestDetermineAgentsEntryPoint:
    def test_malformed_event_selects_all_agents(self, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, "{not json")
        assert run_script("determine-agents") == 0
        assert json.loads(capsys.readouterr().out) == {
            "agents": ALL_AGENTS, "reason": "Error fallback", "skipped": [],
        }

    def test_unparsable_api_response_selects_all_agents(self, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, {"pull_request": {"number": 5}})
        proc = MagicMock(returncode=0, stdout="<html>502 Bad Gateway</html>", stderr="")
        with patch("subprocess.run", return_value=proc):
            assert run_script("determine-agents") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["agents"] == ALL_AGENTS
        assert result["reason"] == "Error fallback"

    def test_no_pr_context(self, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, {"issue": {"number": 3}})
        assert run_script("determine-agents") == 0
        assert json.loads(capsys.readouterr().out) == {
            "agents": ALL_AGENTS, "reason": "No PR context", "skipped": [],
        }


# ---------------------------------------------------------------------------
# Single-agent extractors (fail-closed)
# ---------------------------------------------------------------------------

class TestExtractorEntryPoints:
    @pytest.mark.parametrize("script", EXTRACTOR_SCRIPTS)
    def test_malformed_event_does_not_spawn(self, script, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, "{not json")
        assert run_script(script) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["spawn"] is False
        assert result["reason"].startswith("Error:")

    def test_deduplication_fallback_has_empty_pairs(self, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, "[1, 2]")
        assert run_script("should-spawn-deduplication") == 0
        assert json.loads(capsys.readouterr().out)["similarPairs"] == []

    @pytest.mark.parametrize("script", EXTRACTOR_SCRIPTS)
    def test_no_pr_context(self, script, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, {"issue": {"number": 3}})
        assert run_script(script) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["spawn"] is False
        assert result["reason"] == "Not a pull request event"

    def test_gh_failure_does_not_spawn(self, workspace, monkeypatch, capsys):
        write_event(workspace, monkeypatch, {"pull_request": {"number": 5}})
        proc = MagicMock(returncode=1, stdout="", stderr="HTTP 401: Bad credentials")
        with patch("subprocess.run", return_value=proc):
            assert run_script("should-spawn-license-compliance") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["spawn"] is False
        assert "401" in result["reason"]


# ---------------------------------------------------------------------------
# extract-findings-from-comment (fail-closed)
# ---------------------------------------------------------------------------

class TestExtractFindingsEntryPoint:
    def test_error_writes_empty_list_to_configured_path(self, workspace, monkeypatch):
        output = workspace / "custom-findings.json"
        write_project_config(workspace, {"findings": {"output_path": str(output)}})
        write_event(workspace, monkeypatch, "{not json")

        assert run_script("extract-findings-from-comment") == 0
        assert json.loads(output.read_text()) == []
        assert not (workspace / "findings.json").exists()

    def test_config_error_uses_env_path(self, workspace, monkeypatch):
        (workspace / ".github" / "auto-review").mkdir(parents=True)
        (workspace / ".github" / "auto-review" / "config.yaml").write_text("- not\n- a mapping\n")
        output = workspace / "env-findings.json"
        monkeypatch.setenv("AUTO_REVIEW_FINDINGS_PATH", str(output))
        write_event(workspace, monkeypatch, {"pull_request": {"number": 5}})

        assert run_script("extract-findings-from-comment") == 0
        assert json.loads(output.read_text()) == []

    def test_no_pr_context_writes_empty_list(self, workspace, monkeypatch):
        write_event(workspace, monkeypatch, {})
        assert run_script("extract-findings-from-comment") == 0
        assert json.loads((workspace / "findings.json").read_text()) == []


# ---------------------------------------------------------------------------
# comment-pr-findings (fail-closed)
# ---------------------------------------------------------------------------

class TestCommentPrFindingsEntryPoint:
    def test_invalid_findings_file_writes_empty_plan(self, workspace, monkeypatch):
        findings = workspace / "findings.json"
        findings.write_text("{broken")
        plan = workspace / "plan.json"
        write_project_config(workspace, {
            "findings": {"output_path": str(findings)},
            "comments": {"output_path": str(plan)},
        })
        write_event(workspace, monkeypatch, {"pull_request": {"number": 5}})

        assert run_script("comment-pr-findings") == 0
        assert json.loads(plan.read_text()) == {"inline": [], "general": []}
        assert not (workspace / "review-comments.json").exists()

    def test_missing_findings_writes_empty_plan(self, workspace, monkeypatch):
        write_event(workspace, monkeypatch, {"pull_request": {"number": 5}})
        assert run_script("comment-pr-findings") == 0
        assert json.loads((workspace / "review-comments.json").read_text()) == {"inline": [], "general": []}
