"""
Tests for DiffApplier: resolution, composition, partial success and writing.
"""

import threading
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from splice.core.applier import DiffApplier, reindent, split_fragment
from splice.core.base import (
    ApplyState,
    ChangesRejected,
    ConflictError,
    EditBatch,
    EditRequest,
    FileNotFoundForEdit,
    MatchNotFound,
    MatchStrategy,
    PathSecurityError,
    ValidationFailure,
)
from splice.core.file_cache import FileCache
from splice.core.locks import FileLockRegistry
from splice.core.storage import LocalFileStore


FUNCTION_SOURCE = "function t(){\n  return 42;\n}\n"


@pytest.fixture
def workspace(tmp_path):
    return tmp_path


@pytest.fixture
def applier(workspace):
    return DiffApplier(LocalFileStore(workspace))


def make_file(workspace, name, text):
    path = workspace / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode('utf-8'))
    return path


def edit(start, end, search, replace):
    return EditRequest(start, end, search, replace)


class TestBasicApply:

    def test_exact_replacement(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)

        outcome = applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 43;")]))

        assert path.read_text() == "function t(){\n  return 43;\n}\n"
        assert outcome.success
        assert outcome.state == ApplyState.DONE
        assert outcome.applied_count == 1
        assert outcome.written
        assert outcome.matches[0].method == "exact-at-hint"
        assert outcome.warnings == []

    def test_hint_drift(self, workspace, applier):
        path = make_file(workspace, "t.js", "// a\n// b\n// c\n" + FUNCTION_SOURCE)

        outcome = applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 0;")]))

        assert outcome.matches[0].start_line == 4
        assert outcome.matches[0].method == "exact-near-hint"
        assert "  return 0;" in path.read_text()

    def test_empty_replacement_deletes_lines(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "")]))
        assert path.read_text() == "function t(){\n}\n"

    def test_multi_line_replacement_grows_file(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  const x = 42;\n  return x;")]))
        assert path.read_text() == "function t(){\n  const x = 42;\n  return x;\n}\n"

    def test_unchanged_content_is_not_written(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        outcome = applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 42;")]))
        assert outcome.success
        assert not outcome.written

    def test_crlf_preserved(self, workspace, applier):
        path = workspace / "w.txt"
        path.write_bytes(b"a\r\nb\r\nc\r\n")
        applier.apply(EditBatch("w.txt", [edit(1, 1, "b", "B")]))
        assert path.read_bytes() == b"a\r\nB\r\nc\r\n"

    def test_missing_trailing_newline_preserved(self, workspace, applier):
        path = make_file(workspace, "n.txt", "a\nb")
        applier.apply(EditBatch("n.txt", [edit(1, 1, "b", "B")]))
        assert path.read_text() == "a\nB"


class TestNormalizedMatches:

    def test_replacement_reindented_to_file(self, workspace, applier):
        path = make_file(workspace, "f.py", "def f():\n    return 1\n")

        outcome = applier.apply(EditBatch("f.py", [edit(1, 1, "\treturn 1", "\treturn 2")]))

        assert path.read_text() == "def f():\n    return 2\n"
        assert outcome.matches[0].strategy == MatchStrategy.NORMALIZED
        assert any("90% confidence" in w for w in outcome.warnings)

    def test_reindent_leaves_foreign_lines(self):
        out = reindent(["\tx", "y", "\t\tz"], ["\ta"], ["    a"])
        assert out == ["    x", "y", "    \tz"]

    def test_reindent_noop_when_same_indent(self):
        assert reindent(["  x"], ["  a"], ["  a"]) == ["  x"]

    def test_split_fragment(self):
        assert split_fragment("") == []
        assert split_fragment("a\nb") == ["a", "b"]


class TestComposition:

    def test_edits_independent_of_batch_order(self, workspace):
        text = "\n".join(f"line{i}" for i in range(10)) + "\n"
        edits = [
            edit(1, 1, "line1", "ONE\nONE-B"),
            edit(5, 5, "line5", ""),
            edit(8, 8, "line8", "EIGHT"),
        ]
        results = []
        for ordered in (edits, list(reversed(edits))):
            make_file(workspace, "f.txt", text)
            DiffApplier(LocalFileStore(workspace)).apply(EditBatch("f.txt", ordered))
            results.append((workspace / "f.txt").read_text())

        assert results[0] == results[1]
        assert results[0].splitlines() == [
            "line0", "ONE", "ONE-B", "line2", "line3", "line4",
            "line6", "line7", "EIGHT", "line9",
        ]

    def test_single_and_multi_line_edits_in_either_order(self, workspace):
        text = "\n".join(f"line{i}" for i in range(12))
        first = edit(1, 1, "line1", "A")
        second = edit(8, 10, "line8\nline9\nline10", "B")
        results = []
        for ordered in ([first, second], [second, first]):
            make_file(workspace, "g.txt", text)
            DiffApplier(LocalFileStore(workspace)).apply(EditBatch("g.txt", ordered))
            results.append((workspace / "g.txt").read_text())

        assert results[0] == results[1]
        assert results[0].split("\n") == [
            "line0", "A", "line2", "line3", "line4", "line5", "line6", "line7", "B", "line11",
        ]

    def test_insertion_and_replacement_at_same_line(self, workspace, applier):
        path = make_file(workspace, "f.txt", "a\nb\nc")
        applier.apply(EditBatch("f.txt", [edit(1, 1, "b", "B"), edit(1, 1, "", "new")]))
        assert path.read_text() == "a\nnew\nB\nc"

    def test_insertion_past_end_appends(self, workspace, applier):
        path = make_file(workspace, "f.txt", "a\nb\n")
        applier.apply(EditBatch("f.txt", [edit(99, 99, "", "c")]))
        assert path.read_text() == "a\nb\nc\n"

    def test_end_of_file_replacement(self, workspace, applier):
        path = make_file(workspace, "f.txt", "a\nb\nc\nd\n")
        applier.apply(EditBatch("f.txt", [edit(2, -1, "", "X\nY")]))
        assert path.read_text() == "a\nb\nX\nY\n"

    def test_end_of_file_requires_matching_tail(self, workspace, applier):
        path = make_file(workspace, "f.txt", "a\nb\nc\nd\n")
        with pytest.raises(MatchNotFound, match="does not match"):
            applier.apply(EditBatch("f.txt", [edit(2, -1, "zzz", "X")]))
        assert path.read_text() == "a\nb\nc\nd\n"

    def test_end_of_file_with_matching_tail(self, workspace, applier):
        path = make_file(workspace, "f.txt", "a\nb\nc\nd\n")
        outcome = applier.apply(EditBatch("f.txt", [edit(2, -1, "c\nd", "X")]))
        assert path.read_text() == "a\nb\nX\n"
        assert outcome.matches[0].method == "end-of-file"


class TestFileCreation:

    def test_create_new_file(self, workspace, applier):
        outcome = applier.apply(EditBatch("new/mod.py", [edit(0, 0, "", "print('hi')\n")]))
        assert outcome.created
        assert (workspace / "new" / "mod.py").read_text() == "print('hi')\n"

    def test_sequential_insertions_into_new_file(self, workspace, applier):
        applier.apply(EditBatch("n.txt", [edit(0, 0, "", "first"), edit(0, 0, "", "second")]))
        assert (workspace / "n.txt").read_text() == "first\nsecond"

    def test_missing_file_with_search_text(self, workspace, applier):
        with pytest.raises(FileNotFoundForEdit):
            applier.apply(EditBatch("absent.txt", [edit(0, 0, "x", "y")]))
        assert not (workspace / "absent.txt").exists()


class TestFailures:

    def test_not_found_leaves_file_untouched(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        batch = EditBatch("t.js", [
            edit(0, 0, "function t(){", "function u(){"),
            edit(1, 1, "nothing like this at all", "x"),
        ])

        with pytest.raises(MatchNotFound) as exc_info:
            applier.apply(batch)

        assert exc_info.value.index == 1
        assert path.read_text() == FUNCTION_SOURCE

    def test_overlapping_hints_rejected_before_reading(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(ConflictError):
            applier.apply(EditBatch("t.js", [edit(0, 1, "x", "y"), edit(1, 2, "z", "w")]))
        assert path.read_text() == FUNCTION_SOURCE

    def test_path_escape_refused(self, applier):
        with pytest.raises(PathSecurityError):
            applier.apply(EditBatch("../escape.txt", [edit(0, 0, "", "x")]))

    def test_not_idempotent(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        batch = EditBatch("t.js", [edit(1, 1, "  return 42;", "  throw new Error('gone');")])
        applier.apply(batch)
        with pytest.raises(MatchNotFound):
            applier.apply(batch)

    def test_error_levels(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(MatchNotFound) as exc_info:
            applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42; // the answer", "x")]))
        error = exc_info.value

        simple = error.format(MatchNotFound.SIMPLE)
        assert "Suggestion" in simple
        assert "Expected" not in simple

        detailed = error.format(MatchNotFound.DETAILED)
        assert "Expected (search content):" in detailed
        assert "Best match found at line 1" in detailed

        full = error.format(MatchNotFound.FULL)
        assert "Content at line 1:" in full
        assert "NO MATCH" in full

    def test_locks_released_after_failure(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(MatchNotFound):
            applier.apply(EditBatch("t.js", [edit(1, 1, "nothing like this at all", "x")]))
        assert len(applier.locks) == 0


class TestResolvedOverlap:

    LETTERS = "\n".join("abcdefghij") + "\n"

    def batch(self, partial=False):
        return EditBatch(
            "l.txt",
            [edit(0, 0, "b\nc", "B"), edit(6, 6, "c", "C")],
            partial_success_allowed=partial,
        )

    def test_overlap_rejected(self, workspace, applier):
        path = make_file(workspace, "l.txt", self.LETTERS)
        with pytest.raises(ConflictError) as exc_info:
            applier.apply(self.batch())
        assert exc_info.value.pairs == [(0, 1)]
        assert "resolved match locations" in str(exc_info.value)
        assert path.read_text() == self.LETTERS

    def test_partial_keeps_first_resolved(self, workspace, applier):
        path = make_file(workspace, "l.txt", self.LETTERS)
        outcome = applier.apply(self.batch(partial=True))

        assert outcome.applied_count == 1
        assert [f.index for f in outcome.failed_edits] == [0]
        assert "overlaps already resolved" in outcome.failed_edits[0].reason
        assert path.read_text().splitlines()[:4] == ["a", "b", "C", "d"]


class TestPartialSuccess:

    TEXT = "\n".join(f"line{i}" for i in range(10)) + "\n"

    def test_applies_what_it_can(self, workspace, applier):
        path = make_file(workspace, "p.txt", self.TEXT)
        batch = EditBatch("p.txt", [
            edit(1, 1, "line1", "ONE"),
            edit(5, 5, "nonexistent fragment xyz", "X"),
            edit(8, 8, "line8", "EIGHT"),
        ], partial_success_allowed=True)

        outcome = applier.apply(batch)

        assert outcome.partial
        assert not outcome.success
        assert outcome.applied_count == 2
        assert [f.index for f in outcome.failed_edits] == [1]
        assert "Content not found" in outcome.failed_edits[0].reason
        assert outcome.matches[1] is None
        lines = path.read_text().splitlines()
        assert lines[1] == "ONE"
        assert lines[5] == "line5"
        assert lines[8] == "EIGHT"

    def test_all_failures_raise(self, workspace, applier):
        path = make_file(workspace, "p.txt", self.TEXT)
        batch = EditBatch("p.txt", [
            edit(1, 1, "nonexistent fragment xyz", "X"),
            edit(5, 5, "another missing fragment", "Y"),
        ], partial_success_allowed=True)

        with pytest.raises(MatchNotFound):
            applier.apply(batch)
        assert path.read_text() == self.TEXT


class TestStructuralWarnings:

    def test_warning_does_not_block(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        outcome = applier.apply(EditBatch("t.js", [edit(2, 2, "}", "")]))

        assert path.read_text() == "function t(){\n  return 42;\n"
        assert [w.kind for w in outcome.structural] == ['unbalanced_braces']
        assert any("Unbalanced braces" in w for w in outcome.warnings)


class TestDryRunAndApproval:

    def test_dry_run_writes_nothing(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        outcome = applier.apply(
            EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 43;")]), dry_run=True)

        assert path.read_text() == FUNCTION_SOURCE
        assert not outcome.written
        assert "  return 43;" in outcome.result_text
        assert outcome.state == ApplyState.DONE

    def test_rejected_changes(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(ChangesRejected):
            applier.apply(
                EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 43;")]),
                approval=lambda preview: False,
            )
        assert path.read_text() == FUNCTION_SOURCE
        assert len(applier.locks) == 0

    def test_gate_sees_preview(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        seen = []

        def gate(preview):
            seen.append(preview)
            return True

        applier.apply(EditBatch("t.js", [edit(1, 1, "\treturn 42;", "\treturn 43;")]), approval=gate)

        preview = seen[0]
        assert "-  return 42;" in preview.diff
        assert "+  return 43;" in preview.diff
        assert preview.needs_confirmation == [0]
        assert preview.requires_confirmation

    def test_default_gate_from_constructor(self, workspace):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        applier = DiffApplier(LocalFileStore(workspace), approval=lambda preview: False)
        with pytest.raises(ChangesRejected):
            applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 43;")]))


class TestCacheAndConcurrency:

    def test_back_to_back_batches_see_fresh_content(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        applier.apply(EditBatch("t.js", [edit(1, 1, "  return 42;", "  return 43;")]))
        applier.apply(EditBatch("t.js", [edit(1, 1, "  return 43;", "  return 44;")]))
        assert "  return 44;" in path.read_text()

    def test_concurrent_batches_on_one_file(self, workspace, applier):
        text = "\n".join(f"line{i}" for i in range(20)) + "\n"
        path = make_file(workspace, "c.txt", text)
        errors = []

        def worker(i):
            try:
                applier.apply(EditBatch("c.txt", [edit(i, i, f"line{i}", f"LINE{i}")]))
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(0, 20, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        lines = path.read_text().splitlines()
        assert lines[0::2] == [f"LINE{i}" for i in range(0, 20, 2)]
        assert lines[1::2] == [f"line{i}" for i in range(1, 20, 2)]
        assert len(applier.locks) == 0

    def test_empty_collaborators_are_kept(self, workspace):
        store = LocalFileStore(workspace)
        cache = FileCache(store, max_size=4)
        shared = FileLockRegistry()

        a = DiffApplier(store, cache=cache, locks=shared)
        b = DiffApplier(locks=shared, cache=cache)

        assert a.locks is shared
        assert b.locks is shared
        assert a.cache is cache
        assert b.store is store

    def test_shared_registry_serializes_appliers(self, workspace):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        store = LocalFileStore(workspace)
        cache = FileCache(store)
        shared = FileLockRegistry()
        first = DiffApplier(store, cache=cache, locks=shared)
        second = DiffApplier(store, cache=cache, locks=shared)
        done = threading.Event()

        def worker():
            second.apply(EditBatch("t.js", [edit(1, 1, "  return 43;", "  return 44;")]))
            done.set()

        with shared.hold(store.identity("t.js")):
            thread = threading.Thread(target=worker)
            thread.start()
            # second is blocked on the lock held here
            assert not done.wait(0.2)
            assert path.read_text() == FUNCTION_SOURCE
            path.write_text("function t(){\n  return 43;\n}\n")
            cache.invalidate("t.js")

        thread.join(5)
        assert done.is_set()
        assert path.read_text() == "function t(){\n  return 44;\n}\n"
        assert len(shared) == 0

    def test_two_appliers_one_file_concurrently(self, workspace):
        text = "\n".join(f"line{i}" for i in range(20)) + "\n"
        path = make_file(workspace, "c.txt", text)
        store = LocalFileStore(workspace)
        cache = FileCache(store)
        shared = FileLockRegistry()
        appliers = [DiffApplier(store, cache=cache, locks=shared) for _ in range(2)]
        errors = []

        def worker(i):
            try:
                appliers[(i // 2) % 2].apply(EditBatch("c.txt", [edit(i, i, f"line{i}", f"LINE{i}")]))
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(0, 20, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        lines = path.read_text().splitlines()
        assert lines[0::2] == [f"LINE{i}" for i in range(0, 20, 2)]
        assert lines[1::2] == [f"line{i}" for i in range(1, 20, 2)]


class TestReplaceRange:

    def test_replaces_verified_lines(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        outcome = applier.replace_range("t.js", 1, 1, "  return 7;", "  return 42;")
        assert path.read_text() == "function t(){\n  return 7;\n}\n"
        assert outcome.matches[0].method == "line-range"

    def test_content_mismatch(self, workspace, applier):
        path = make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(ValidationFailure, match="Original code validation failed"):
            applier.replace_range("t.js", 1, 1, "  return 7;", "  return 41;")
        assert path.read_text() == FUNCTION_SOURCE

    def test_out_of_range(self, workspace, applier):
        make_file(workspace, "t.js", FUNCTION_SOURCE)
        with pytest.raises(ValidationFailure, match="out of range"):
            applier.replace_range("t.js", 5, 6, "x", "y")

    def test_missing_file(self, applier):
        with pytest.raises(FileNotFoundForEdit):
            applier.replace_range("nope.js", 0, 0, "x", "y")
