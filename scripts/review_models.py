"""
review_models.py — Record types shared by the auto-review scripts.

GitHub hands us loosely shaped JSON. Everything crossing that boundary is
coerced once into the dataclasses below so the decision logic can rely on
field names and types.
"""

from dataclasses import asdict, dataclass, field

FILE_STATUSES = {"added", "modified", "removed", "renamed", "copied", "changed", "unchanged"}
SEVERITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


@dataclass(frozen=True)
class ChangedFile:
    """One file touched by a pull request (an entry of `pulls/{n}/files`)."""

    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions

    @classmethod
    def from_api(cls, raw: dict) -> "ChangedFile":
        """Validate one GitHub API file entry."""
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a file object, got {type(raw).__name__}")
        filename = raw.get("filename")
        if not isinstance(filename, str) or not filename:
            raise ValueError(f"File entry without a filename: {raw!r:.120}")
        status = raw.get("status") or "modified"
        if status not in FILE_STATUSES:
            raise ValueError(f"Unknown file status '{status}' for {filename}")
        patch = raw.get("patch")
        return cls(
            filename=filename,
            status=status,
            additions=_non_negative(raw.get("additions"), "additions", filename),
            deletions=_non_negative(raw.get("deletions"), "deletions", filename),
            changes=_non_negative(raw.get("changes"), "changes", filename),
            patch=patch if isinstance(patch, str) else None,
        )


def _non_negative(value, name: str, filename: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Invalid {name}={value!r} for {filename}")
    return value


def coerce_changed_files(files) -> list[ChangedFile]:
    """Turn API dicts (or already-typed records) into a list of ChangedFile."""
    if not files:
        return []
    return [f if isinstance(f, ChangedFile) else ChangedFile.from_api(f) for f in files]


@dataclass(frozen=True)
class SimilarPair:
    new_file: str
    existing_file: str
    similarity: float

    def to_dict(self) -> dict:
        return {"newFile": self.new_file, "existingFile": self.existing_file, "similarity": self.similarity}


@dataclass(frozen=True)
class SpawnDecision:
    """Outcome of a single-agent signal extractor."""

    spawn: bool
    reason: str
    similar_pairs: tuple[SimilarPair, ...] | None = None

    def to_dict(self) -> dict:
        result = {"spawn": self.spawn, "reason": self.reason}
        if self.similar_pairs is not None:
            result["similarPairs"] = [p.to_dict() for p in self.similar_pairs]
        return result


@dataclass(frozen=True)
class AgentSelection:
    """Which review agents to run for a PR, and why."""

    agents: list[str]
    reason: str
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"agents": list(self.agents), "reason": self.reason, "skipped": list(self.skipped)}


@dataclass(frozen=True)
class DiffRange:
    """Inclusive new-side line interval covered by one diff hunk."""

    start: int
    end: int

    def __contains__(self, line: int) -> bool:
        return self.start <= line <= self.end


@dataclass(frozen=True)
class Finding:
    """One issue extracted from a review comment."""

    description: str
    id: str | None = None
    agent: str | None = None
    severity: str = "MEDIUM"
    category: str = "code_issue"
    file: str | None = None
    line: int | None = None
    context: str | None = None
    recommendation: str | None = None
    exploit_scenario: str | None = None

    def to_dict(self) -> dict:
        """Flat JSON shape; optional fields are omitted when absent, `id` is always present."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None or k == "id"}
