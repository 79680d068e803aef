"""
Tool-level entry points: apply_diff and replace_lines.

These are the operations a tool host (an editor integration, an agent
runtime) calls. They accept loosely-typed input, normalize it into an
EditBatch, run the DiffApplier and turn both results and errors into a
ToolResponse, so a host never has to catch engine exceptions.

Usage:
    from splice.tool import apply_diff

    response = apply_diff(
        "src/app.ts",
        [{"startLine": 1, "endLine": 1, "search": "  return 42;", "replace": "  return 100;"}],
        root=project_dir,
    )
    print(response.text)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from .core.applier import ApprovalGate, DiffApplier
from .core.base import (
    ApplyError, ApplyOutcome, ChangesRejected, ConflictError, EditBatch,
    FileNotFoundForEdit, MatchNotFound, MissingParametersError,
)
from .core.normalize import normalize_diff_sections
from .core.reporting import format_tool_response
from .core.storage import LocalFileStore

logger = logging.getLogger(__name__)

# Error kinds surfaced to tool callers
ERROR_KINDS = {
    MissingParametersError: 'missing_parameters',
    ConflictError: 'overlapping_diffs',
    FileNotFoundForEdit: 'file_not_found',
    MatchNotFound: 'content_not_found',
    ChangesRejected: 'rejected',
}


@dataclass
class ToolResponse:
    """
    Result handed back to a tool caller.

    Attributes:
        text: Human-readable summary or error message
        is_error: True if nothing was applied
        outcome: Engine result when the batch ran (None on early errors)
        error_kind: Short machine-readable category for errors
    """
    text: str
    is_error: bool = False
    outcome: Optional[ApplyOutcome] = None
    error_kind: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Content-block shape used by tool protocols."""
        data = {'content': [{'type': 'text', 'text': self.text}]}
        if self.is_error:
            data['isError'] = True
        return data


def _error_kind(exc: Exception) -> str:
    for cls in type(exc).__mro__:
        if cls in ERROR_KINDS:
            return ERROR_KINDS[cls]
    return 'validation_error' if isinstance(exc, ApplyError) else 'io_error'


def _error_response(exc: Exception, applier: DiffApplier) -> ToolResponse:
    if isinstance(exc, MatchNotFound):
        text = exc.format(applier.error_level)
    else:
        text = f"Error: {exc}"
    return ToolResponse(text=text, is_error=True, error_kind=_error_kind(exc))


def _applier_for(root: Optional[Any], applier: Optional[DiffApplier]) -> DiffApplier:
    if applier is not None:
        return applier
    return DiffApplier(LocalFileStore(root))


def apply_diff(
    file_path: str,
    diffs: Sequence[Mapping[str, Any]],
    description: Optional[str] = None,
    partial_success: bool = False,
    root: Optional[Any] = None,
    applier: Optional[DiffApplier] = None,
    approval: Optional[ApprovalGate] = None
) -> ToolResponse:
    """
    Apply diff sections to a file (or create it).

    Args:
        file_path: Target path, relative to the workspace root
        diffs: Mappings with search/replace (or legacy
            originalContent/newContent), startLine, endLine, description
        description: Overall description, echoed in the summary
        partial_success: Apply the edits that resolve even if others fail
        root: Workspace root for the default LocalFileStore
        applier: Pre-built applier (shares its cache and file locks)
        approval: Optional gate called with an ApplyPreview before writing

    Returns:
        ToolResponse; errors are reported in it, never raised. OSErrors
        other than the engine's own propagate unchanged.
    """
    applier = _applier_for(root, applier)
    logger.info(
        "apply_diff called with file_path=%s, %d diff section(s), partial_success=%s",
        file_path, len(diffs) if hasattr(diffs, '__len__') else -1, partial_success,
    )

    try:
        edits = normalize_diff_sections(diffs)
        batch = EditBatch(
            file_path=file_path,
            edits=edits,
            partial_success_allowed=partial_success,
            description=description,
        )
        outcome = applier.apply(batch, approval=approval)
    except ApplyError as e:
        logger.info("apply_diff failed: %s", str(e).splitlines()[0])
        return _error_response(e, applier)

    return ToolResponse(
        text=format_tool_response(outcome, description),
        outcome=outcome,
        warnings=list(outcome.warnings),
    )


def replace_lines(
    file_path: str,
    start_line: int,
    end_line: int,
    content: str,
    original_code: str,
    root: Optional[Any] = None,
    applier: Optional[DiffApplier] = None
) -> ToolResponse:
    """
    Replace lines start_line..end_line (0-based, inclusive) after checking
    that they currently hold original_code exactly.
    """
    applier = _applier_for(root, applier)
    try:
        outcome = applier.replace_range(file_path, start_line, end_line, content, original_code)
    except ApplyError as e:
        return _error_response(e, applier)

    text = f"Lines {start_line}-{end_line} in file {file_path} replaced successfully"
    if outcome.warnings:
        text += "\n\nWarnings:\n" + "\n".join(f"- {w}" for w in outcome.warnings)
    return ToolResponse(text=text, outcome=outcome, warnings=list(outcome.warnings))
