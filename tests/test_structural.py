"""
Tests for structural integrity checks.
"""

from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from splice.core.structural import StructuralValidator, count_elements, line_comment_marker


def kinds(warnings):
    return [w.kind for w in warnings]


class TestCountElements:

    def test_counts_delimiters(self):
        e = count_elements("f(a[0]) { g(); }")
        assert e.balance('braces') == 0
        assert e.opens['parentheses'] == 2
        assert e.opens['brackets'] == 1

    def test_delimiters_inside_strings_ignored(self):
        e = count_elements('x = "{ ( [";')
        assert e.opens['braces'] == 0
        assert e.opens['parentheses'] == 0
        assert e.double_quotes == 2

    def test_escaped_quote_does_not_close_string(self):
        e = count_elements(r'"a \" {"')
        assert e.opens['braces'] == 0
        assert not e.unterminated_string

    def test_other_quote_kind_inside_string(self):
        e = count_elements('"it\'s"')
        assert e.double_quotes == 2
        assert e.single_quotes == 0

    def test_line_comment_skipped(self):
        e = count_elements("a(); // }\nb();")
        assert e.closes['braces'] == 0
        assert e.opens['parentheses'] == 2

    def test_block_comment_counted_and_skipped(self):
        e = count_elements("/* { */ x")
        assert e.comment_opens == 1
        assert e.comment_closes == 1
        assert e.opens['braces'] == 0

    def test_unterminated_string(self):
        assert count_elements("'abc").unterminated_string
        assert not count_elements("'abc'\n").unterminated_string

    def test_plain_string_ends_at_newline(self):
        e = count_elements("'abc\n{")
        assert e.opens['braces'] == 1

    def test_opening_and_closing_quotes_counted(self):
        assert count_elements('a = "x"\nb = "y"\nc = "z"\n').double_quotes == 6
        assert count_elements("x = 'a;").single_quotes == 1
        assert count_elements(r'"a \" b"').double_quotes == 2

    def test_hash_comments(self):
        e = count_elements("x = 1  # don't (\n", line_comment='#')
        assert e.single_quotes == 0
        assert e.opens['parentheses'] == 0

    def test_hash_inside_string_is_not_a_comment(self):
        e = count_elements("s = '#' + f(1)", line_comment='#')
        assert e.single_quotes == 2
        assert e.opens['parentheses'] == 1

    def test_floor_division_not_a_comment_with_hash_marker(self):
        e = count_elements("x = a // b + (c\n", line_comment='#')
        assert e.opens['parentheses'] == 1


class TestLineCommentMarker:

    def test_hash_languages(self):
        for name in ("m.py", "run.sh", "ci.yml", "pyproject.toml", "Makefile"):
            assert line_comment_marker(name) == '#'

    def test_slash_languages(self):
        for name in ("app.ts", "main.c", "notes.txt", ""):
            assert line_comment_marker(name) == '//'


class TestStructuralValidator:

    def test_no_change_no_warning(self):
        v = StructuralValidator()
        assert v.check("f() { a; }", "f() { b; }") == []

    def test_removed_brace(self):
        warnings = StructuralValidator().check("f() {\n  a;\n}\n", "f() {\n  a;\n")
        assert kinds(warnings) == ['unbalanced_braces']
        assert warnings[0].severity == 'high'
        assert "1 more '{' than '}'" in warnings[0].details

    def test_extra_closing_paren(self):
        warnings = StructuralValidator().check("g(1)", "g(1))")
        assert kinds(warnings) == ['unbalanced_parentheses']
        assert "more ')' than '('" in warnings[0].details

    def test_existing_imbalance_not_reported(self):
        v = StructuralValidator()
        assert v.check("{ a", "{ b") == []

    def test_unclosed_string(self):
        warnings = StructuralValidator().check("x = 'a';", "x = 'a;")
        assert 'unbalanced_quotes' in kinds(warnings)
        assert 'unclosed_string' in kinds(warnings)

    def test_added_balanced_string_no_warning(self):
        before = 'a = "x"\nb = "y"\n'
        after = 'a = "x"\nb = "y"\nc = "z"\n'
        assert StructuralValidator().check(before, after, "m.py") == []

    def test_unclosed_quote_with_same_literal_count(self):
        warnings = StructuralValidator().check('s = "a"\n', 's = "a\n', "m.py")
        assert kinds(warnings) == ['unbalanced_quotes']
        assert warnings[0].message == "Odd number of double quotes: 1"

    def test_apostrophe_in_hash_comment(self):
        v = StructuralValidator()
        assert v.check("x = 1\n", "x = 1\n# don't do this\n", "m.py") == []
        assert v.check("a: 1\n", "a: 1\n# it's fine\n", "c.yaml") == []

    def test_apostrophe_in_slash_comment(self):
        assert StructuralValidator().check("a();\n", "a(); // don't\n", "app.ts") == []

    def test_unclosed_comment(self):
        warnings = StructuralValidator().check("a();", "/* a();")
        assert kinds(warnings) == ['unclosed_comment']
        assert warnings[0].severity == 'high'

    def test_warning_str(self):
        warnings = StructuralValidator().check("{}", "{")
        assert str(warnings[0]).startswith("[HIGH] Unbalanced braces")


class TestStructuredData:

    def test_invalid_json(self):
        warnings = StructuralValidator().check('{"a": 1}', '{"a": 1,}', "config.json")
        assert 'json_invalid' in kinds(warnings)

    def test_valid_json(self):
        assert StructuralValidator().check('{"a": 1}', '{"a": 2}', "config.json") == []

    def test_invalid_yaml(self):
        warnings = StructuralValidator().check("a: b\n", "a: b: c\n", "settings.yml")
        assert kinds(warnings) == ['yaml_invalid']

    def test_invalid_toml(self):
        warnings = StructuralValidator().check('name = "x"\n', "name = \n", "pyproject.toml")
        assert kinds(warnings) == ['toml_invalid']

    def test_other_extensions_not_parsed(self):
        assert StructuralValidator().check("a: b\n", "a: b: c\n", "notes.txt") == []

    def test_empty_structured_file_skipped(self):
        assert StructuralValidator().check("{}", "", "data.json") == []


class TestAnalyze:

    def test_no_changes(self):
        assert StructuralValidator().analyze("a", "b") == 'No structural changes detected'

    def test_reports_deltas(self):
        summary = StructuralValidator().analyze("f() {}", "f() {")
        assert summary == 'Structural changes: Brace balance changed by +1'
