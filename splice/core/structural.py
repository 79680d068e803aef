"""
Structural integrity checks for composed edits.

Counts delimiters before and after an edit and reports changes in balance.
The checks are advisory: an edit is always applied, because damage across
a hunk boundary is often a false positive (the rest of the file may supply
the matching brace).

Counted elements:
- braces {}, parentheses (), brackets []
- single quotes, double quotes, backticks: every quote character, opening
  and closing, outside comments (escape-aware)
- block comments /* */

Line comments are skipped: '#' for Python, shell, YAML, TOML and the like,
'//' everywhere else.

Structured-data files are also parsed as a whole:
- .json: json.loads
- .yaml/.yml: yaml.safe_load (PyYAML)
- .toml: tomllib.loads
"""

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, List

import yaml

from .base import StructuralWarning

logger = logging.getLogger(__name__)

PAIRS = {
    'braces': ('{', '}'),
    'parentheses': ('(', ')'),
    'brackets': ('[', ']'),
}

QUOTES = {
    "'": 'single_quotes',
    '"': 'double_quotes',
    '`': 'backticks',
}

STRUCTURED_FORMATS = {
    '.json': 'json',
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.toml': 'toml',
}

HASH_COMMENT_EXTENSIONS = {
    '.py', '.pyi', '.sh', '.bash', '.zsh', '.rb', '.pl', '.r',
    '.yaml', '.yml', '.toml', '.cfg', '.ini', '.conf', '.mk',
}
HASH_COMMENT_NAMES = {'makefile', 'dockerfile'}


def line_comment_marker(file_path: str) -> str:
    """Line comment prefix for a file: '#' or '//'."""
    path = PurePath(file_path)
    if path.suffix.lower() in HASH_COMMENT_EXTENSIONS or path.name.lower() in HASH_COMMENT_NAMES:
        return '#'
    return '//'


@dataclass
class StructuralElements:
    """Delimiter counts for a piece of text."""
    opens: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in PAIRS})
    closes: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in PAIRS})
    single_quotes: int = 0
    double_quotes: int = 0
    backticks: int = 0
    comment_opens: int = 0
    comment_closes: int = 0
    unterminated_string: bool = False

    def balance(self, kind: str) -> int:
        """Open minus close count for a delimiter kind."""
        return self.opens[kind] - self.closes[kind]


def count_elements(content: str, line_comment: str = '//') -> StructuralElements:
    """
    Count structural delimiters, skipping string and comment bodies.

    Both the opening and the closing quote of a literal are counted, so a
    balanced literal adds two. A quote inside an open string of another
    kind does not toggle state, and a backslash escapes the next character.

    Args:
        content: Text to scan
        line_comment: Prefix that starts a line comment ('//' or '#')

    Returns:
        StructuralElements with the counts
    """
    elements = StructuralElements()
    closers = {close: kind for kind, (_, close) in PAIRS.items()}
    openers = {open_: kind for kind, (open_, _) in PAIRS.items()}

    in_string = None
    in_block_comment = False
    in_line_comment = False
    i = 0
    n = len(content)

    while i < n:
        char = content[i]
        nxt = content[i + 1] if i + 1 < n else ''

        if in_block_comment:
            if char == '*' and nxt == '/':
                elements.comment_closes += 1
                in_block_comment = False
                i += 2
                continue
            i += 1
            continue

        if in_line_comment:
            if char == '\n':
                in_line_comment = False
            i += 1
            continue

        if char == '\\':
            i += 2
            continue

        if in_string is not None:
            if char == in_string:
                attr = QUOTES[char]
                setattr(elements, attr, getattr(elements, attr) + 1)
                in_string = None
            elif char == '\n' and in_string != '`':
                # ordinary string literals do not span lines
                in_string = None
            i += 1
            continue

        if char == '/' and nxt == '*':
            elements.comment_opens += 1
            in_block_comment = True
            i += 2
            continue
        if content.startswith(line_comment, i):
            in_line_comment = True
            i += len(line_comment)
            continue

        if char in QUOTES:
            attr = QUOTES[char]
            setattr(elements, attr, getattr(elements, attr) + 1)
            in_string = char
        elif char in openers:
            elements.opens[openers[char]] += 1
        elif char in closers:
            elements.closes[closers[char]] += 1

        i += 1

    elements.unterminated_string = in_string is not None
    return elements


class StructuralValidator:
    """
    Compares delimiter balance before and after an edit.

    Usage:
        warnings = StructuralValidator().check(old_text, new_text, "app.ts")
        for w in warnings:
            print(w)
    """

    def check(self, before: str, after: str, file_path: str = "") -> List[StructuralWarning]:
        """
        Inspect an edit for structural damage.

        Only changes are reported: imbalance already present in `before`
        is not repeated.

        Args:
            before: Text before the edit (fragment or whole file)
            after: Text after the edit
            file_path: Used to pick a structured-data parser by extension

        Returns:
            List of StructuralWarning (never raises)
        """
        marker = line_comment_marker(file_path)
        elements_before = count_elements(before, marker)
        elements_after = count_elements(after, marker)
        warnings: List[StructuralWarning] = []

        self._check_delimiters(elements_before, elements_after, warnings)
        self._check_quotes(elements_before, elements_after, warnings)
        self._check_comments(elements_before, elements_after, warnings)

        if file_path:
            self._check_structured_data(after, file_path, warnings)

        if warnings:
            logger.debug("Structural analysis: %s", self.analyze(before, after, file_path))
        return warnings

    def _check_delimiters(
        self,
        before: StructuralElements,
        after: StructuralElements,
        warnings: List[StructuralWarning]
    ) -> None:
        for kind, (open_, close) in PAIRS.items():
            delta = after.balance(kind) - before.balance(kind)
            if delta == 0:
                continue
            if delta > 0:
                detail = f"{delta} more '{open_}' than '{close}' introduced by the edit"
            else:
                detail = f"{-delta} more '{close}' than '{open_}' introduced by the edit"
            warnings.append(StructuralWarning(
                kind=f'unbalanced_{kind}',
                severity='high',
                message=(
                    f"Unbalanced {kind}: {after.opens[kind]} open, "
                    f"{after.closes[kind]} close"
                ),
                details=f"{detail} (balance {before.balance(kind)} → {after.balance(kind)})",
            ))

    def _check_quotes(
        self,
        before: StructuralElements,
        after: StructuralElements,
        warnings: List[StructuralWarning]
    ) -> None:
        for attr, label in (
            ('single_quotes', 'single quotes'),
            ('double_quotes', 'double quotes'),
            ('backticks', 'backticks'),
        ):
            count_before = getattr(before, attr)
            count_after = getattr(after, attr)
            if count_after % 2 != 0 and count_before % 2 == 0:
                warnings.append(StructuralWarning(
                    kind='unbalanced_quotes',
                    severity='medium',
                    message=f"Odd number of {label}: {count_after}",
                    details='May indicate an unclosed string literal',
                ))

        if after.unterminated_string and not before.unterminated_string:
            warnings.append(StructuralWarning(
                kind='unclosed_string',
                severity='medium',
                message='String literal left open at end of content',
            ))

    def _check_comments(
        self,
        before: StructuralElements,
        after: StructuralElements,
        warnings: List[StructuralWarning]
    ) -> None:
        open_before = before.comment_opens - before.comment_closes
        open_after = after.comment_opens - after.comment_closes
        if open_after > open_before:
            warnings.append(StructuralWarning(
                kind='unclosed_comment',
                severity='high',
                message='Unclosed block comment detected',
                details=(
                    f"{after.comment_opens} '/*' found but only "
                    f"{after.comment_closes} '*/'"
                ),
            ))

    def _check_structured_data(
        self,
        content: str,
        file_path: str,
        warnings: List[StructuralWarning]
    ) -> None:
        fmt = STRUCTURED_FORMATS.get(PurePath(file_path).suffix.lower())
        if fmt is None or not content.strip():
            return

        try:
            if fmt == 'json':
                json.loads(content)
            elif fmt == 'yaml':
                yaml.safe_load(content)
            else:
                tomllib.loads(content)
        except json.JSONDecodeError as e:
            warnings.append(StructuralWarning(
                kind='json_invalid',
                severity='high',
                message='Invalid JSON structure',
                details=f"line {e.lineno}: {e.msg}",
            ))
        except yaml.YAMLError as e:
            warnings.append(StructuralWarning(
                kind='yaml_invalid',
                severity='high',
                message='Invalid YAML structure',
                details=str(e).splitlines()[0] if str(e) else None,
            ))
        except tomllib.TOMLDecodeError as e:
            warnings.append(StructuralWarning(
                kind='toml_invalid',
                severity='high',
                message='Invalid TOML structure',
                details=str(e),
            ))

    def analyze(self, before: str, after: str, file_path: str = "") -> str:
        """
        One-line summary of how delimiter balance and quote counts changed.

        Returns:
            'No structural changes detected' or
            'Structural changes: Brace balance changed by -1, ...'
        """
        marker = line_comment_marker(file_path)
        b = count_elements(before, marker)
        a = count_elements(after, marker)
        changes = []

        for kind, label in (('braces', 'Brace'), ('parentheses', 'Parenthesis'), ('brackets', 'Bracket')):
            delta = a.balance(kind) - b.balance(kind)
            if delta:
                changes.append(f"{label} balance changed by {delta:+d}")

        for attr, label in (('single_quotes', 'Single quotes'),
                            ('double_quotes', 'Double quotes'),
                            ('backticks', 'Backticks')):
            delta = getattr(a, attr) - getattr(b, attr)
            if delta:
                changes.append(f"{label} changed by {delta:+d}")

        if not changes:
            return 'No structural changes detected'
        return 'Structural changes: ' + ', '.join(changes)
