#!/usr/bin/env python3
"""
should-spawn-deduplication.py — Decide whether the deduplication agent runs.

Compares every newly added file against existing repository files with the
same extension (and against the other added files) using character n-gram
Jaccard similarity. Near-duplicates above the threshold trigger the agent.

Prints JSON to stdout: {"spawn": bool, "reason": str, "similarPairs": [...]}
"""

import os
import re
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))
from config_loader import get_repo_root, load_config
from github_utils import emit_json, env_flag, fetch_pr_files, fetch_pr_labels, load_github_context, log
from review_models import SimilarPair, SpawnDecision, coerce_changed_files
from signal_patterns import SKIP_LABEL, check_content_skips, normalize_labels

SIMILARITY_THRESHOLD = 0.7
MAX_SIMILAR_PAIRS = 20
MAX_REPO_FILES_PER_EXT = 500
MIN_FILE_LINES = 5
MAX_FILE_LINES = 10000
NGRAM_SIZE = 5

BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".svg",
    ".woff", ".woff2", ".ttf", ".eot",
    ".pdf", ".zip", ".tar", ".gz", ".lock",
}

EXCLUDED_DIRS = [
    "node_modules", "vendor", "dist", "build", ".git",
    "__pycache__", ".terraform", ".next", "coverage", ".cache",
]

_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------

def compute_ngrams(text: str, n: int = NGRAM_SIZE) -> set[str]:
    """Character n-gram shingles of whitespace-normalized text."""
    normalized = _WHITESPACE.sub(" ", text).strip()
    if len(normalized) < n:
        return set()
    return {normalized[i:i + n] for i in range(len(normalized) - n + 1)}


def jaccard_similarity(set_a: set, set_b: set) -> float:
    """|A ∩ B| / |A ∪ B|, 0 when either side is empty."""
    if not set_a or not set_b:
        return 0.0
    smaller, larger = (set_a, set_b) if len(set_a) <= len(set_b) else (set_b, set_a)
    intersection = sum(1 for item in smaller if item in larger)
    union = len(set_a) + len(set_b) - intersection
    return intersection / union


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------

def extension_of(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def list_repo_files_by_extension(
    extension: str,
    root: Path | None = None,
    limit: int = MAX_REPO_FILES_PER_EXT,
    excluded_dirs: list[str] | None = None,
) -> list[str]:
    """List repo files ending in `extension`, pruning vendored/build dirs."""
    excluded_dirs = EXCLUDED_DIRS if excluded_dirs is None else excluded_dirs
    prune: list[str] = []
    for d in excluded_dirs:
        prune += ["-path", f"*/{d}/*", "-o"]
    prune = prune[:-1]

    args = ["find", "."]
    if prune:
        args += ["("] + prune + [")", "-prune", "-o"]
    args += ["-type", "f", "-name", f"*{extension}", "-print"]

    try:
        result = subprocess.run(
            args, capture_output=True, text=True, timeout=30,
            cwd=str(root or get_repo_root()),
        )
    except (OSError, subprocess.SubprocessError) as e:
        log(f"  Warning: file listing for {extension} failed: {e}")
        return []
    if result.returncode != 0:
        return []

    paths = []
    for line in result.stdout.split("\n"):
        line = line.strip()
        if not line:
            continue
        paths.append(line[2:] if line.startswith("./") else line)
        if len(paths) >= limit:
            break
    return paths


def _read_text(root: Path, path: str) -> str | None:
    try:
        return (root / path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------

def should_spawn_deduplication(
    files,
    labels=None,
    force: bool = False,
    added_contents: dict[str, str] | None = None,
    repo_contents: dict[str, str] | None = None,
    list_repo_files: Callable[[str], list[str]] | None = None,
    root: Path | None = None,
    settings: dict | None = None,
) -> SpawnDecision:
    """Decide whether the deduplication agent should be spawned.

    `added_contents` / `repo_contents` pre-seed file contents by path (the
    repo is read from `root` for anything missing); `list_repo_files` maps
    an extension to candidate repo paths. `settings` overrides the
    module-level thresholds using the keys of the `deduplication` config
    section.
    """
    settings = settings or {}
    threshold = settings.get("similarity_threshold", SIMILARITY_THRESHOLD)
    max_pairs = settings.get("max_similar_pairs", MAX_SIMILAR_PAIRS)
    min_lines = settings.get("min_file_lines", MIN_FILE_LINES)
    max_lines = settings.get("max_file_lines", MAX_FILE_LINES)
    ngram_size = settings.get("ngram_size", NGRAM_SIZE)

    files = coerce_changed_files(files)
    label_set = normalize_labels(labels)

    if force:
        return SpawnDecision(spawn=True, reason="forced via input", similar_pairs=())
    if SKIP_LABEL in label_set:
        return SpawnDecision(spawn=False, reason="skip-review label present", similar_pairs=())
    if not files:
        return SpawnDecision(spawn=False, reason="No files in PR", similar_pairs=())

    # The agent does its own analysis when asked for explicitly
    if "deduplication" in label_set:
        return SpawnDecision(spawn=True, reason="deduplication label", similar_pairs=())

    added_files = [f for f in files if f.status == "added"]
    if not added_files:
        return SpawnDecision(spawn=False, reason="No added files in PR", similar_pairs=())

    # Docs/test-only is judged across all PR files, not just the added ones
    skipped = check_content_skips(files)
    if skipped is not None:
        return SpawnDecision(spawn=skipped.spawn, reason=skipped.reason, similar_pairs=())

    root = root or get_repo_root()
    added_contents = added_contents or {}
    repo_contents = dict(repo_contents or {})
    if list_repo_files is None:
        limit = settings.get("max_repo_files_per_extension", MAX_REPO_FILES_PER_EXT)
        excluded = settings.get("excluded_dirs", EXCLUDED_DIRS)

        def list_repo_files(ext):
            return list_repo_files_by_extension(ext, root, limit, excluded)

    added_ngrams: dict[str, set[str]] = {}
    for f in added_files:
        if extension_of(f.filename) in BINARY_EXTENSIONS:
            continue
        content = added_contents.get(f.filename)
        if content is None:
            content = _read_text(root, f.filename)
            if content is None:
                continue
        line_count = len(content.split("\n"))
        if line_count < min_lines or line_count > max_lines:
            continue
        added_ngrams[f.filename] = compute_ngrams(content, ngram_size)

    if not added_ngrams:
        return SpawnDecision(
            spawn=False, reason="No eligible added files for similarity check", similar_pairs=(),
        )

    pairs: list[SimilarPair] = []
    repo_ngrams: dict[str, set[str]] = {}
    listed_extensions: set[str] = set()

    # Added files vs existing repo files of the same extension
    for added_path, grams in added_ngrams.items():
        ext = extension_of(added_path)
        if ext and ext not in listed_extensions:
            listed_extensions.add(ext)
            for repo_path in list_repo_files(ext):
                if repo_path in added_ngrams or repo_path in repo_contents:
                    continue
                content = _read_text(root, repo_path)
                if content is not None:
                    repo_contents[repo_path] = content

        for repo_path, content in repo_contents.items():
            if repo_path in added_ngrams or extension_of(repo_path) != ext:
                continue
            if repo_path not in repo_ngrams:
                repo_ngrams[repo_path] = compute_ngrams(content, ngram_size)
            sim = jaccard_similarity(grams, repo_ngrams[repo_path])
            if sim >= threshold:
                pairs.append(SimilarPair(added_path, repo_path, round(sim, 3)))

    # Added files vs each other
    added_paths = list(added_ngrams)
    for i, path_a in enumerate(added_paths):
        for path_b in added_paths[i + 1:]:
            sim = jaccard_similarity(added_ngrams[path_a], added_ngrams[path_b])
            if sim >= threshold:
                pairs.append(SimilarPair(path_a, path_b, round(sim, 3)))

    pairs.sort(key=lambda p: p.similarity, reverse=True)
    capped = tuple(pairs[:max_pairs])

    if not capped:
        return SpawnDecision(spawn=False, reason="No similar file pairs above threshold", similar_pairs=())

    return SpawnDecision(
        spawn=True,
        reason=f"{len(capped)} similar pair(s) found (top similarity: {capped[0].similarity})",
        similar_pairs=capped,
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    context = load_github_context()
    if not context.pr_number:
        emit_json(SpawnDecision(spawn=False, reason="Not a pull request event", similar_pairs=()).to_dict())
        return

    config = load_config()
    force = env_flag(os.environ, "FORCE_DEDUPLICATION_AGENT")
    files = fetch_pr_files(context)
    labels = fetch_pr_labels(context)

    result = should_spawn_deduplication(
        files, labels, force, settings=config.get("deduplication", {}),
    )
    log(f'Decision: spawn={result.spawn}, reason="{result.reason}", pairs={len(result.similar_pairs or ())}')
    emit_json(result.to_dict())


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        log(f"ERROR: {e}")
        emit_json({"spawn": False, "reason": f"Error: {e}", "similarPairs": []})
        sys.exit(0)
