"""
config_loader.py — Load and merge auto-review configuration.

Configuration is resolved in this order (later overrides earlier):
1. Built-in defaults (defaults/config.yaml in the action repo)
2. Project config (.github/auto-review/config.yaml in the consuming repo)
3. Environment variable overrides

This module is imported by every script.
"""

import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

import yaml


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base. Override wins for leaf values."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(environ: Mapping[str, str] | None = None) -> dict:
    """Load configuration from defaults + project config + env overrides.

    Environment variables:
        AUTO_REVIEW_CONFIG: Path to project config (relative to repo root)
        AUTO_REVIEW_ACTION_PATH: Path to the action's own directory
        AUTO_REVIEW_FINDINGS_PATH: Where extracted findings are written
        AUTO_REVIEW_BOT_LOGIN: Login of the bot whose comments are parsed
    """
    environ = os.environ if environ is None else environ

    # 1. Load built-in defaults from the action repo
    action_path = Path(environ.get("AUTO_REVIEW_ACTION_PATH", Path(__file__).resolve().parent.parent))
    defaults_path = action_path / "defaults" / "config.yaml"

    config = {}
    if defaults_path.exists():
        config = _read_yaml(defaults_path)

    # 2. Load project-specific config from the consuming repo
    repo_root = _find_repo_root(environ)
    config_rel_path = environ.get("AUTO_REVIEW_CONFIG", ".github/auto-review/config.yaml")
    project_config_path = repo_root / config_rel_path

    if project_config_path.exists():
        config = _deep_merge(config, _read_yaml(project_config_path))

    # 3. Apply environment variable overrides
    if environ.get("AUTO_REVIEW_FINDINGS_PATH"):
        config.setdefault("findings", {})["output_path"] = environ["AUTO_REVIEW_FINDINGS_PATH"]
    if environ.get("AUTO_REVIEW_BOT_LOGIN"):
        config.setdefault("findings", {})["bot_login"] = environ["AUTO_REVIEW_BOT_LOGIN"]
    if environ.get("AUTO_REVIEW_SIMILARITY_THRESHOLD"):
        config.setdefault("deduplication", {})["similarity_threshold"] = float(
            environ["AUTO_REVIEW_SIMILARITY_THRESHOLD"]
        )

    return config


def _find_repo_root(environ: Mapping[str, str]) -> Path:
    """Find the Git repository root."""
    # In GitHub Actions, GITHUB_WORKSPACE is the repo root
    workspace = environ.get("GITHUB_WORKSPACE")
    if workspace:
        return Path(workspace)

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True, text=True, timeout=5,
        )
        if result.returncode == 0:
            return Path(result.stdout.strip())
    except (OSError, subprocess.SubprocessError):
        pass

    # Last resort: current directory
    return Path.cwd()


def get_repo_root(environ: Mapping[str, str] | None = None) -> Path:
    """Public accessor for repo root."""
    return _find_repo_root(os.environ if environ is None else environ)
