"""
signal_patterns.py — Shared machinery for the should-spawn-* scripts.

Each extractor is a table of SignalPattern rows plus a keyword regex. The
gate sequence (force, skip-review, empty PR, override labels, docs-only,
test-only) is identical across extractors and lives in `check_gates`.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from review_models import ChangedFile, SpawnDecision

SKIP_LABEL = "skip-review"

DOCS_ONLY_REGEX = re.compile(r"\.(md|txt|rst|adoc)$", re.IGNORECASE)
TEST_ONLY_REGEX = re.compile(r"(/__tests__/|\.test\.|\.spec\.|test/|tests/|__mocks__/)", re.IGNORECASE)


@dataclass(frozen=True)
class SignalPattern:
    """A named path matcher. `context`, when set, must also match the path."""

    name: str
    matcher: re.Pattern
    context: re.Pattern | None = None

    def matches(self, path: str) -> bool:
        if not self.matcher.search(path):
            return False
        return self.context is None or bool(self.context.search(path))


def keyword_regex(keywords: Iterable[str]) -> re.Pattern:
    """Compile a list of regex fragments into one case-insensitive alternation."""
    return re.compile("|".join(keywords), re.IGNORECASE)


def normalize_labels(labels: Iterable[str] | None) -> set[str]:
    return {label.lower() for label in labels or []}


def all_files_match(files: list[ChangedFile], pattern: re.Pattern) -> bool:
    return bool(files) and all(pattern.search(f.filename) for f in files)


def check_gates(
    files: list[ChangedFile],
    labels: Iterable[str] | None,
    force: bool,
    override_labels: Iterable[str] = (),
    override_reason: str = "",
) -> SpawnDecision | None:
    """Apply the common skip/force rules. Returns None when the PR needs a full scan."""
    if force:
        return SpawnDecision(spawn=True, reason="forced via input")

    label_set = normalize_labels(labels)
    if SKIP_LABEL in label_set:
        return SpawnDecision(spawn=False, reason="skip-review label present")

    if not files:
        return SpawnDecision(spawn=False, reason="No files in PR")

    # An explicit label beats the content-based docs/test skips below
    if label_set & set(override_labels):
        return SpawnDecision(spawn=True, reason=override_reason)

    return check_content_skips(files)


def check_content_skips(files: list[ChangedFile]) -> SpawnDecision | None:
    if all_files_match(files, DOCS_ONLY_REGEX):
        return SpawnDecision(spawn=False, reason="All files are documentation-only")
    if all_files_match(files, TEST_ONLY_REGEX):
        return SpawnDecision(spawn=False, reason="All files are test-only")
    return None


def scan_signals(
    files: list[ChangedFile],
    patterns: Iterable[SignalPattern],
    keywords: re.Pattern,
    keyword_reason: str,
    status_reasons: dict[str, str] | None = None,
) -> list[str]:
    """Collect every triggered signal name, deduplicated, in first-seen order.

    Path pattern hits come first, then file-status hits, then the keyword
    hit if any patch matched.
    """
    patterns = list(patterns)
    status_reasons = status_reasons or {}
    pattern_hits: dict[str, None] = {}
    status_hits: dict[str, None] = {}
    keyword_hit = False

    for f in files:
        for pattern in patterns:
            if pattern.matches(f.filename):
                pattern_hits.setdefault(pattern.name)
        if f.status in status_reasons:
            status_hits.setdefault(status_reasons[f.status])
        if f.patch and keywords.search(f.patch):
            keyword_hit = True

    reasons = list(pattern_hits) + list(status_hits)
    if keyword_hit:
        reasons.append(keyword_reason)
    return reasons


def decide_from_signals(reasons: list[str], no_signal_reason: str) -> SpawnDecision:
    if reasons:
        return SpawnDecision(spawn=True, reason=", ".join(reasons))
    return SpawnDecision(spawn=False, reason=no_signal_reason)
