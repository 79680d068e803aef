"""
Boundary normalization of raw diff sections into EditRequests.

Callers (tool clients, edits files for the CLI) describe each edit as a
mapping. Two spellings of the fragment fields are accepted:
- search / replace (current)
- originalContent / newContent (legacy, logged as deprecated)

Everything past this module works on EditRequest only.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .base import EditRequest, MissingParametersError, ValidationFailure

logger = logging.getLogger(__name__)

SEARCH_KEYS = ('search', 'originalContent')
REPLACE_KEYS = ('replace', 'newContent')

DEPRECATED_KEYS = {
    'originalContent': 'search',
    'newContent': 'replace',
}


def _pick(section: Mapping[str, Any], keys: Sequence[str], index: int) -> Optional[Any]:
    """First present key wins; a legacy key used alone is reported."""
    current, legacy = keys
    if section.get(current) is not None:
        return section[current]
    if section.get(legacy) is not None:
        logger.warning(
            "Deprecation warning: '%s' parameter in diff[%d] is deprecated. Use '%s' instead.",
            legacy, index, DEPRECATED_KEYS[legacy],
            extra={'edit_index': index},
        )
        return section[legacy]
    return None


def _line_number(section: Mapping[str, Any], key: str, index: int, default: int) -> int:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailure(
            f"Diff section {index}: '{key}' must be an integer, got {value!r}"
        )
    return value


def normalize_diff_section(section: Mapping[str, Any], index: int) -> EditRequest:
    """
    Turn one raw diff mapping into an EditRequest.

    Missing line numbers default to a hint at the top of the file spanning
    the fragment's line count.

    Args:
        section: Raw mapping (search/replace or legacy names, startLine,
            endLine, description)
        index: Position in the batch, used in messages

    Returns:
        EditRequest with CRLF normalized to LF in both fragments

    Raises:
        MissingParametersError: search or replace absent under both names
        ValidationFailure: Wrong types, or both fragments empty on a
            regular (non end-of-file) diff
    """
    if not isinstance(section, Mapping):
        raise ValidationFailure(f"Diff section {index} must be a mapping, got {type(section).__name__}")

    search = _pick(section, SEARCH_KEYS, index)
    replace = _pick(section, REPLACE_KEYS, index)

    missing = []
    if search is None:
        missing.append("'search' (or 'originalContent')")
    if replace is None:
        missing.append("'replace' (or 'newContent')")
    if missing:
        raise MissingParametersError(
            f"Diff section {index} missing required parameters: {', '.join(missing)}"
        )

    for name, value in (('search', search), ('replace', replace)):
        if not isinstance(value, str):
            raise ValidationFailure(
                f"Diff section {index}: '{name}' must be a string, got {type(value).__name__}"
            )

    search = search.replace('\r\n', '\n')
    replace = replace.replace('\r\n', '\n')

    # A fragment copied with its line terminator ends in "\n"; that is not an
    # extra empty line to match
    if search.endswith('\n') and search != '\n':
        search = search[:-1]
        if replace.endswith('\n'):
            replace = replace[:-1]

    start = _line_number(section, 'startLine', index, 0)
    default_end = start + max(search.count('\n'), 0)
    end = _line_number(section, 'endLine', index, default_end)

    if end != -1 and search == '' and replace == '':
        raise ValidationFailure(
            f"Diff section {index} cannot have both empty 'search' and 'replace' "
            f"parameters for regular diffs"
        )

    if end == -1:
        logger.debug("Diff %d: end-of-file replacement from line %d", index, start)

    description = section.get('description')
    return EditRequest(
        start_line_hint=start,
        end_line_hint=end,
        original_fragment=search,
        replacement_fragment=replace,
        description=str(description) if description is not None else None,
    )


def normalize_diff_sections(sections: Sequence[Mapping[str, Any]]) -> List[EditRequest]:
    """
    Normalize a list of raw diff mappings.

    Raises:
        ValidationFailure: sections is not a list, or any entry is invalid
    """
    if isinstance(sections, (str, bytes)) or not isinstance(sections, Sequence):
        raise ValidationFailure(f"diffs must be a list, got {type(sections).__name__}")
    return [normalize_diff_section(section, i) for i, section in enumerate(sections)]


def edit_to_section(edit: EditRequest) -> Dict[str, Any]:
    """Inverse mapping, used when writing edits back out (reports, JSON)."""
    section = {
        'startLine': edit.start_line_hint,
        'endLine': edit.end_line_hint,
        'search': edit.original_fragment,
        'replace': edit.replacement_fragment,
    }
    if edit.description:
        section['description'] = edit.description
    return section
