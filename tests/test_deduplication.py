"""Tests for should-spawn-deduplication.py — n-gram similarity and the spawn decision."""

import pytest
from unittest.mock import MagicMock, patch


def _file(filename, status="added"):
    return {"filename": filename, "status": status, "additions": 20, "deletions": 0, "changes": 20}


def _module_source(count=10):
    return "".join(
        f"def function_{i}(value):\n    return value * {i} + {i * 7}\n" for i in range(count)
    )


def _no_repo_files(ext):
    return []


# ---------------------------------------------------------------------------
# Similarity primitives
# ---------------------------------------------------------------------------

class TestSimilarity:
    @pytest.fixture(autouse=True)
    def _import(self):
        import importlib
        self.mod = importlib.import_module("should-spawn-deduplication")

    def test_ngrams_of_plain_text(self):
        assert self.mod.compute_ngrams("abcdef") == {"abcde", "bcdef"}

    def test_ngrams_normalize_whitespace(self):
        assert self.mod.compute_ngrams("ab   c\n\td  ") == self.mod.compute_ngrams("ab c d")

    def test_ngrams_short_text_is_empty(self):
        assert self.mod.compute_ngrams("abcd") == set()
        assert self.mod.compute_ngrams("   ") == set()

    def test_ngrams_custom_size(self):
        assert self.mod.compute_ngrams("abcd", n=3) == {"abc", "bcd"}

    def test_jaccard_identity(self):
        grams = self.mod.compute_ngrams(_module_source())
        assert self.mod.jaccard_similarity(grams, grams) == 1.0

    def test_jaccard_partial_overlap(self):
        assert self.mod.jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_jaccard_symmetric(self):
        a, b = {"a", "b", "c", "d"}, {"c", "d", "e"}
        assert self.mod.jaccard_similarity(a, b) == self.mod.jaccard_similarity(b, a)

    def test_jaccard_empty(self):
        assert self.mod.jaccard_similarity(set(), set()) == 0.0
        assert self.mod.jaccard_similarity({"a"}, set()) == 0.0

    def test_extension_of(self):
        assert self.mod.extension_of("src/App.TSX") == ".tsx"
        assert self.mod.extension_of("Makefile") == ""


# ---------------------------------------------------------------------------
# Repository file listing
# ---------------------------------------------------------------------------

class TestListRepoFiles:
    @pytest.fixture(autouse=True)
    def _import(self):
        import importlib
        self.mod = importlib.import_module("should-spawn-deduplication")

    def test_strips_prefix_and_blank_lines(self, tmp_path):
        proc = MagicMock(returncode=0, stdout="./src/a.py\n./src/b.py\n\n")
        with patch.object(self.mod.subprocess, "run", return_value=proc) as run:
            paths = self.mod.list_repo_files_by_extension(".py", root=tmp_path)
        assert paths == ["src/a.py", "src/b.py"]
        args = run.call_args[0][0]
        assert args[:2] == ["find", "."]
        assert "-prune" in args
        assert "*/node_modules/*" in args
        assert args[-3:] == ["-name", "*.py", "-print"]
        assert run.call_args[1]["cwd"] == str(tmp_path)

    def test_limit(self, tmp_path):
        proc = MagicMock(returncode=0, stdout="./a.py\n./b.py\n./c.py\n")
        with patch.object(self.mod.subprocess, "run", return_value=proc):
            assert self.mod.list_repo_files_by_extension(".py", root=tmp_path, limit=2) == ["a.py", "b.py"]

    def test_no_excluded_dirs_skips_prune(self, tmp_path):
        proc = MagicMock(returncode=0, stdout="")
        with patch.object(self.mod.subprocess, "run", return_value=proc) as run:
            self.mod.list_repo_files_by_extension(".go", root=tmp_path, excluded_dirs=[])
        assert "-prune" not in run.call_args[0][0]

    def test_nonzero_exit_returns_empty(self, tmp_path):
        proc = MagicMock(returncode=1, stdout="./a.py\n")
        with patch.object(self.mod.subprocess, "run", return_value=proc):
            assert self.mod.list_repo_files_by_extension(".py", root=tmp_path) == []

    def test_os_error_returns_empty(self, tmp_path):
        with patch.object(self.mod.subprocess, "run", side_effect=OSError("no find")):
            assert self.mod.list_repo_files_by_extension(".py", root=tmp_path) == []


# ---------------------------------------------------------------------------
# should_spawn_deduplication
# ---------------------------------------------------------------------------

class TestShouldSpawnDeduplication:
    @pytest.fixture(autouse=True)
    def _import(self, tmp_path):
        import importlib
        self.mod = importlib.import_module("should-spawn-deduplication")
        self.root = tmp_path

    def check(self, files, **kwargs):
        kwargs.setdefault("root", self.root)
        kwargs.setdefault("list_repo_files", _no_repo_files)
        return self.mod.should_spawn_deduplication(files, **kwargs)

    def test_force(self):
        result = self.check([], force=True)
        assert result.spawn is True
        assert result.to_dict()["similarPairs"] == []

    def test_skip_review(self):
        result = self.check([_file("src/a.py")], labels=["skip-review"])
        assert result.spawn is False
        assert result.reason == "skip-review label present"

    def test_empty(self):
        assert self.check([]).reason == "No files in PR"

    def test_deduplication_label(self):
        result = self.check([_file("src/a.py", status="modified")], labels=["Deduplication"])
        assert result.spawn is True
        assert result.reason == "deduplication label"

    def test_no_added_files(self):
        result = self.check([_file("src/a.py", status="modified")])
        assert result.spawn is False
        assert result.reason == "No added files in PR"

    def test_docs_only(self):
        result = self.check([_file("docs/new.md")])
        assert result.spawn is False
        assert result.reason == "All files are documentation-only"

    def test_binary_and_short_files_ineligible(self):
        result = self.check(
            [_file("assets/logo.png"), _file("src/tiny.py")],
            added_contents={"assets/logo.png": _module_source(), "src/tiny.py": "a = 1\nb = 2\n"},
        )
        assert result.spawn is False
        assert result.reason == "No eligible added files for similarity check"

    def test_identical_to_existing_file(self):
        source = _module_source()
        result = self.check(
            [_file("src/new_helpers.py")],
            added_contents={"src/new_helpers.py": source},
            repo_contents={"src/helpers.py": source},
        )
        assert result.spawn is True
        assert result.reason == "1 similar pair(s) found (top similarity: 1.0)"
        assert result.to_dict()["similarPairs"] == [
            {"newFile": "src/new_helpers.py", "existingFile": "src/helpers.py", "similarity": 1.0},
        ]

    def test_different_extension_not_compared(self):
        source = _module_source()
        result = self.check(
            [_file("src/new_helpers.py")],
            added_contents={"src/new_helpers.py": source},
            repo_contents={"src/helpers.rb": source},
        )
        assert result.spawn is False
        assert result.reason == "No similar file pairs above threshold"

    def test_added_files_compared_with_each_other(self):
        source = _module_source()
        result = self.check(
            [_file("a/one.py"), _file("b/two.py")],
            added_contents={"a/one.py": source, "b/two.py": source},
        )
        assert [(p.new_file, p.existing_file) for p in result.similar_pairs] == [("a/one.py", "b/two.py")]

    def test_pairs_sorted_by_similarity(self):
        source = _module_source()
        variant = source + "# trailing marker qwxz 98765\n"
        result = self.check(
            [_file("src/new.py")],
            added_contents={"src/new.py": source},
            repo_contents={"lib/variant.py": variant, "lib/copy.py": source},
        )
        sims = [p.similarity for p in result.similar_pairs]
        assert len(sims) == 2
        assert sims == sorted(sims, reverse=True)
        assert result.similar_pairs[0].existing_file == "lib/copy.py"
        assert 0.7 <= sims[1] < 1.0

    def test_pairs_capped(self):
        source = _module_source()
        names = [f"pkg/m{i}.py" for i in range(8)]
        result = self.check(
            [_file(n) for n in names],
            added_contents={n: source for n in names},
        )
        # 8 identical files -> 28 pairs, capped at 20
        assert len(result.similar_pairs) == 20
        assert result.reason.startswith("20 similar pair(s) found")

    def test_threshold_from_settings(self):
        source = _module_source()
        variant = source + "# trailing marker qwxz 98765\n"
        result = self.check(
            [_file("src/new.py")],
            added_contents={"src/new.py": source},
            repo_contents={"lib/variant.py": variant},
            settings={"similarity_threshold": 1.0},
        )
        assert result.spawn is False

    def test_reads_contents_from_disk(self):
        source = _module_source()
        (self.root / "src").mkdir()
        (self.root / "lib").mkdir()
        (self.root / "src" / "new.py").write_text(source)
        (self.root / "lib" / "old.py").write_text(source)

        listed = []

        def list_repo_files(ext):
            listed.append(ext)
            return ["lib/old.py", "lib/missing.py"]

        result = self.check([_file("src/new.py")], list_repo_files=list_repo_files)
        assert listed == [".py"]
        assert result.spawn is True
        assert result.similar_pairs[0].existing_file == "lib/old.py"
