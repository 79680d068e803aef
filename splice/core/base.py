"""
Core data model for the Splice diff-application engine.

This module provides the value types that flow between the engine's
components and the error taxonomy raised by them:
- EditRequest / EditBatch: what the caller asks for
- MatchCandidate: where the matcher found a fragment, and how sure it is
- LineBuffer: the in-memory line representation of one file
- ApplyOutcome: the terminal result of one apply operation

Error taxonomy:
- ValidationFailure (and subclasses): bad parameters, absent file,
  overlapping ranges. Always fatal, raised before any mutation.
- MatchNotFound: fatal unless partial-success mode is enabled.
- ChangesRejected: the approval gate refused the composed result.
- IO failures (AtomicWriteError, OSError) propagate unchanged.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

# Longest fragment excerpt quoted verbatim in error messages
FRAGMENT_EXCERPT_CHARS = 200


def excerpt(fragment: str, limit: int = FRAGMENT_EXCERPT_CHARS) -> str:
    """Shorten a fragment for inclusion in a message."""
    if len(fragment) <= limit:
        return fragment
    return fragment[:limit] + f"... ({len(fragment) - limit} more chars)"


class MatchStrategy(Enum):
    """Family of the strategy that located a fragment."""
    EXACT = "exact"
    NORMALIZED = "normalized"
    SIMILARITY = "similarity"


class ApplyState(Enum):
    """Lifecycle of one apply operation."""
    VALIDATING = "validating"
    RESOLVING = "resolving"
    COMPOSING = "composing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class EditRequest:
    """
    A single logical edit.

    Attributes:
        start_line_hint: Approximate 0-based first line of the fragment
        end_line_hint: Approximate 0-based last line (inclusive), or -1 for
            "through the end of the file"
        original_fragment: Text expected in the file. Empty means insertion
            at start_line_hint (or creation of a missing file).
        replacement_fragment: Text that replaces the fragment
        description: Optional human-readable note
    """
    start_line_hint: int
    end_line_hint: int
    original_fragment: str
    replacement_fragment: str
    description: Optional[str] = None

    @property
    def is_insertion(self) -> bool:
        return self.original_fragment == "" and self.end_line_hint != -1

    @property
    def to_end_of_file(self) -> bool:
        return self.end_line_hint == -1

    def label(self, index: int) -> str:
        """Short identifier used in messages: 'edit 2 (lines 4-6)'."""
        end = "EOF" if self.to_end_of_file else str(self.end_line_hint)
        text = f"edit {index} (lines {self.start_line_hint}-{end})"
        if self.description:
            text += f" '{self.description}'"
        return text


@dataclass
class EditBatch:
    """Ordered edits for exactly one file."""
    file_path: str
    edits: List[EditRequest]
    partial_success_allowed: bool = False
    description: Optional[str] = None


@dataclass
class MatchCandidate:
    """
    A located fragment.

    Attributes:
        start_line: First matched line (0-based)
        end_line: Last matched line (inclusive)
        confidence: 0.0-1.0
        strategy: Strategy family that produced the match
        actual_content: The text that is really in the file
        issues: Diagnostic notes (whitespace differences, duplicates...)
        method: Concrete hierarchy step, e.g. 'exact-near-hint'
    """
    start_line: int
    end_line: int
    confidence: float
    strategy: MatchStrategy
    actual_content: str
    issues: List[str] = field(default_factory=list)
    method: str = ""

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass
class LineBuffer:
    """
    Authoritative in-memory content of one file.

    Lines never carry their terminators; the original terminator style and
    whether the file ended with one are recorded so the file can be
    rebuilt byte-for-byte when nothing changed.
    """
    lines: List[str]
    line_ending: str = "\n"
    trailing_newline: bool = False

    @classmethod
    def from_text(cls, text: str) -> "LineBuffer":
        if text == "":
            return cls(lines=[])

        crlf = text.count("\r\n")
        lf = text.count("\n") - crlf
        line_ending = "\r\n" if crlf > lf else "\n"

        normalized = text.replace("\r\n", "\n")
        trailing = normalized.endswith("\n")
        if trailing:
            normalized = normalized[:-1]
        return cls(
            lines=normalized.split("\n"),
            line_ending=line_ending,
            trailing_newline=trailing,
        )

    def to_text(self) -> str:
        text = self.line_ending.join(self.lines)
        if self.trailing_newline and self.lines:
            text += self.line_ending
        return text

    def copy(self) -> "LineBuffer":
        return LineBuffer(list(self.lines), self.line_ending, self.trailing_newline)

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class FailedEdit:
    """An edit that could not be applied, with the reason."""
    index: int
    edit: EditRequest
    reason: str


@dataclass
class ApplyOutcome:
    """
    Result of one apply operation.

    Attributes:
        file_path: Target file as given by the caller
        applied_count: Number of edits composed into the result
        failed_edits: Edits skipped in partial-success mode
        warnings: Low-confidence and structural warnings (advisory)
        matches: Per-edit resolved candidate, None for failures/insertions
        state: Final ApplyState
        created: True if the file did not exist before
        written: True if the result was persisted
        execution_time: Seconds spent in the operation
        structural: Structural warnings (also rendered into `warnings`)
    """
    file_path: str
    applied_count: int = 0
    failed_edits: List[FailedEdit] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    matches: List[Optional[MatchCandidate]] = field(default_factory=list)
    structural: List["StructuralWarning"] = field(default_factory=list)
    state: ApplyState = ApplyState.VALIDATING
    created: bool = False
    written: bool = False
    execution_time: float = 0.0
    original_text: str = ""
    result_text: str = ""

    @property
    def success(self) -> bool:
        return self.state == ApplyState.DONE and not self.failed_edits

    @property
    def partial(self) -> bool:
        return self.state == ApplyState.DONE and bool(self.failed_edits)

    @property
    def average_confidence(self) -> float:
        found = [m.confidence for m in self.matches if m is not None]
        if not found:
            return 1.0
        return sum(found) / len(found)


# =============================================================================
# Errors
# =============================================================================

class ApplyError(Exception):
    """Base class for errors raised by the engine."""
    error_code = "APPLY-00"


class ValidationFailure(ApplyError):
    """Bad parameters or a self-contradictory batch. Nothing was written."""
    error_code = "VAL-00"


class MissingParametersError(ValidationFailure):
    """A diff entry lacks its search or replace text under any accepted name."""
    error_code = "VAL-02"


class FileNotFoundForEdit(ValidationFailure):
    """The target file is absent and the batch does not create it."""
    error_code = "VAL-03"

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(
            f"File not found: {file_path}. "
            f"Use an empty search fragment to create a new file."
        )


class PathSecurityError(ValidationFailure):
    """Target path escapes the workspace root."""
    error_code = "VAL-04"


class ConflictError(ValidationFailure):
    """
    Two or more edits claim overlapping line ranges.

    Attributes:
        pairs: Every conflicting (index_a, index_b) pair, index_a < index_b
    """
    error_code = "VAL-01"

    def __init__(self, pairs: List[Tuple[int, int]], edits: List[EditRequest], resolved: bool = False):
        self.pairs = pairs
        self.edits = edits
        kind = "resolved match locations" if resolved else "line ranges"
        lines = [f"Overlapping diffs: {len(pairs)} conflicting pair(s) of {kind}:"]
        for a, b in pairs:
            lines.append(f"  - {edits[a].label(a)} overlaps {edits[b].label(b)}")
        lines.append("Merge overlapping sections or adjust their line ranges.")
        super().__init__("\n".join(lines))


class MatchNotFound(ApplyError):
    """
    A fragment could not be located with sufficient confidence.

    Attributes:
        index: Position of the edit in the batch
        edit: The EditRequest that failed
        diagnostics: Optional LocateReport from the matcher
        hint_content: What the file holds at the hinted lines
    """
    error_code = "MAT-01"

    SIMPLE = 1
    DETAILED = 2
    FULL = 3

    def __init__(self, index: int, edit: EditRequest, file_path: str,
                 diagnostics=None, hint_content: Optional[str] = None,
                 reason: Optional[str] = None):
        self.index = index
        self.edit = edit
        self.file_path = file_path
        self.diagnostics = diagnostics
        self.hint_content = hint_content
        self.reason = reason or "Content not found"
        super().__init__(
            f"{self.reason} in {file_path} for {edit.label(index)}:\n"
            f"{excerpt(edit.original_fragment)}"
        )

    def format(self, level: int = DETAILED) -> str:
        """
        Render the error with progressive detail.

        Args:
            level: SIMPLE (message and advice), DETAILED (expected fragment
                and best partial match) or FULL (every attempted strategy and
                the content at the hinted lines)

        Returns:
            Multi-line string
        """
        out = [f"Error: {self.reason} in {self.file_path} for {self.edit.label(self.index)}"]
        out.append("=" * 60)

        if level <= self.SIMPLE:
            out.append("\nCould not find the search content in the file.")
            out.append("Suggestion: check if the code has been modified or update line numbers.")
            return "\n".join(out)

        out.append("\nExpected (search content):")
        out.append("```")
        out.append(self.edit.original_fragment)
        out.append("```")

        best = self.diagnostics.best_partial if self.diagnostics is not None else None
        if best is not None:
            out.append(
                f"\nBest match found at line {best.start_line} "
                f"(confidence: {best.confidence * 100:.1f}%, method: {best.method}):"
            )
            out.append("```")
            out.append(best.actual_content)
            out.append("```")

        if level >= self.FULL:
            if self.diagnostics is not None:
                out.append("")
                out.append(self.diagnostics.report())
            if self.hint_content is not None:
                out.append(f"\nContent at line {self.edit.start_line_hint}:")
                out.append("```")
                out.append(self.hint_content)
                out.append("```")
        else:
            out.append("\nSuggestions:")
            out.append("- Check if the code has been modified")
            out.append("- Try using a smaller search pattern")
            out.append("- Verify the line numbers are correct")

        return "\n".join(out)


class ChangesRejected(ApplyError):
    """The approval gate refused to commit the composed result."""
    error_code = "APR-01"


@dataclass
class StructuralWarning:
    """
    Advisory note about delimiter balance or structured-data validity.

    Attributes:
        kind: e.g. 'unbalanced_braces', 'unclosed_comment', 'json_invalid'
        severity: 'low', 'medium' or 'high'
        message: One-line description
        details: Optional extra context
    """
    kind: str
    severity: str
    message: str
    details: Optional[str] = None

    def __str__(self) -> str:
        text = f"[{self.severity.upper()}] {self.message}"
        if self.details:
            text += f": {self.details}"
        return text
