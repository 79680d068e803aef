"""
Tests for diff section normalization.
"""

import logging
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from splice.core.base import MissingParametersError, ValidationFailure
from splice.core.normalize import (
    edit_to_section,
    normalize_diff_section,
    normalize_diff_sections,
)


class TestNormalizeSection:

    def test_current_names(self):
        edit = normalize_diff_section(
            {'startLine': 3, 'endLine': 4, 'search': 'a\nb', 'replace': 'c', 'description': 'x'}, 0)
        assert edit.start_line_hint == 3
        assert edit.end_line_hint == 4
        assert edit.original_fragment == 'a\nb'
        assert edit.replacement_fragment == 'c'
        assert edit.description == 'x'

    def test_legacy_names_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="splice.core.normalize"):
            edit = normalize_diff_section({'originalContent': 'a', 'newContent': 'b'}, 2)
        assert edit.original_fragment == 'a'
        assert edit.replacement_fragment == 'b'
        messages = [r.getMessage() for r in caplog.records]
        assert "Deprecation warning: 'originalContent' parameter in diff[2] is deprecated. Use 'search' instead." in messages
        assert any("'newContent'" in m for m in messages)

    def test_current_name_wins(self, caplog):
        with caplog.at_level(logging.WARNING, logger="splice.core.normalize"):
            edit = normalize_diff_section({'search': 'new', 'originalContent': 'old', 'replace': 'r'}, 0)
        assert edit.original_fragment == 'new'
        assert caplog.records == []

    def test_missing_parameters(self):
        with pytest.raises(MissingParametersError) as exc_info:
            normalize_diff_section({'startLine': 0}, 1)
        message = str(exc_info.value)
        assert message.startswith("Diff section 1 missing required parameters")
        assert "'search' (or 'originalContent')" in message
        assert "'replace' (or 'newContent')" in message

    def test_line_hints_default_to_fragment_span(self):
        edit = normalize_diff_section({'search': 'a\nb\nc', 'replace': ''}, 0)
        assert (edit.start_line_hint, edit.end_line_hint) == (0, 2)

        edit = normalize_diff_section({'startLine': 5, 'search': 'a', 'replace': 'b'}, 0)
        assert edit.end_line_hint == 5

    def test_crlf_normalized(self):
        edit = normalize_diff_section({'search': 'a\r\nb', 'replace': 'c\r\nd'}, 0)
        assert edit.original_fragment == 'a\nb'
        assert edit.replacement_fragment == 'c\nd'

    def test_trailing_newline_dropped(self):
        edit = normalize_diff_section({'startLine': 1, 'search': '  return 42;\n', 'replace': '  return 1;\n'}, 0)
        assert edit.original_fragment == '  return 42;'
        assert edit.replacement_fragment == '  return 1;'
        assert edit.end_line_hint == 1

    def test_trailing_newline_only_one_dropped(self):
        edit = normalize_diff_section({'search': 'a\n\n', 'replace': 'b'}, 0)
        assert edit.original_fragment == 'a\n'
        assert edit.replacement_fragment == 'b'

    def test_replace_newline_kept_without_search_newline(self):
        edit = normalize_diff_section({'search': 'a', 'replace': 'b\n'}, 0)
        assert edit.replacement_fragment == 'b\n'

    def test_both_empty_rejected(self):
        with pytest.raises(ValidationFailure, match="both empty"):
            normalize_diff_section({'startLine': 0, 'endLine': 0, 'search': '', 'replace': ''}, 0)

    def test_both_empty_allowed_to_end_of_file(self):
        edit = normalize_diff_section({'startLine': 4, 'endLine': -1, 'search': '', 'replace': ''}, 0)
        assert edit.to_end_of_file

    def test_non_integer_line(self):
        with pytest.raises(ValidationFailure, match="must be an integer"):
            normalize_diff_section({'startLine': '3', 'search': 'a', 'replace': 'b'}, 0)
        with pytest.raises(ValidationFailure, match="must be an integer"):
            normalize_diff_section({'startLine': True, 'search': 'a', 'replace': 'b'}, 0)

    def test_non_string_fragment(self):
        with pytest.raises(ValidationFailure, match="must be a string"):
            normalize_diff_section({'search': 42, 'replace': 'b'}, 0)

    def test_non_mapping_section(self):
        with pytest.raises(ValidationFailure, match="must be a mapping"):
            normalize_diff_section(['search', 'replace'], 0)


class TestNormalizeSections:

    def test_list(self):
        edits = normalize_diff_sections([
            {'search': 'a', 'replace': 'b'},
            {'startLine': 4, 'search': '', 'replace': 'c'},
        ])
        assert len(edits) == 2
        assert edits[1].is_insertion

    def test_not_a_list(self):
        with pytest.raises(ValidationFailure, match="must be a list"):
            normalize_diff_sections("search")
        with pytest.raises(ValidationFailure, match="must be a list"):
            normalize_diff_sections({'search': 'a', 'replace': 'b'})

    def test_edit_to_section(self):
        edit = normalize_diff_section({'startLine': 1, 'search': 'a', 'replace': 'b', 'description': 'd'}, 0)
        assert edit_to_section(edit) == {
            'startLine': 1, 'endLine': 1, 'search': 'a', 'replace': 'b', 'description': 'd',
        }
