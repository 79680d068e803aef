"""
DiffApplier - applies a batch of edits to one file.

Lifecycle of one apply:

    VALIDATING -> RESOLVING -> COMPOSING -> WRITING -> DONE
         \\___________\\____________\\___________\\____> FAILED

1. Validating: the DiffValidator rejects malformed or overlapping hints
   before anything is read.
2. Resolving: every edit is located against the unmodified content, in
   descending hint order. Insertions (empty search) need no lookup.
3. Composing: resolved edits are spliced in from the highest line down, so
   no splice shifts the line numbers of one still to be applied.
4. Writing: the optional approval gate sees a preview, then the full
   content is written atomically and the cache entry is invalidated.

Only one apply runs per file at a time (FileLockRegistry); different files
proceed concurrently.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .base import (
    ApplyError, ApplyOutcome, ApplyState, ChangesRejected, ConflictError, EditBatch,
    EditRequest, FailedEdit, FileNotFoundForEdit, LineBuffer, MatchCandidate,
    MatchNotFound, MatchStrategy, ValidationFailure,
)
from .confidence import EXACT_CONFIDENCE, MatchThresholds, get_action_threshold
from .diff_validator import DiffValidator
from .file_cache import FileCache
from .locks import FileLockRegistry
from .logger import EngineLogger
from .matcher import ContentMatcher, MatchingOptions, WHITESPACE_ISSUE, normalize_content
from .reporting import render_unified_diff
from .storage import FileStore, LocalFileStore, PathLike
from .structural import StructuralValidator

logger = logging.getLogger(__name__)

Interval = Tuple[int, int]


def split_fragment(fragment: str) -> List[str]:
    """Lines of a replacement fragment; the empty fragment is zero lines."""
    if fragment == "":
        return []
    return fragment.split("\n")


def leading_whitespace(line: str) -> str:
    return line[:len(line) - len(line.lstrip(" \t"))]


def first_indent(lines: List[str]) -> Optional[str]:
    """Indentation of the first non-blank line, or None if all are blank."""
    for line in lines:
        if line.strip():
            return leading_whitespace(line)
    return None


def reindent(replacement: List[str], target: List[str], actual: List[str]) -> List[str]:
    """
    Carry the file's real indentation over to a replacement.

    When a fragment matched only after whitespace normalization, its
    indentation differs from the file's. Lines of the replacement that start
    with the fragment's base indent get that prefix swapped for the file's
    base indent; other lines are left alone.
    """
    target_indent = first_indent(target)
    actual_indent = first_indent(actual)
    if target_indent is None or actual_indent is None or target_indent == actual_indent:
        return replacement

    out = []
    for line in replacement:
        if line.strip() and line.startswith(target_indent):
            out.append(actual_indent + line[len(target_indent):])
        else:
            out.append(line)
    return out


@dataclass
class ResolvedEdit:
    """An edit pinned to concrete lines of the unmodified buffer."""
    index: int
    edit: EditRequest
    start: int
    end: int  # inclusive; start - 1 for a pure insertion
    replacement: List[str]
    match: Optional[MatchCandidate] = None

    @property
    def interval(self) -> Interval:
        return self.start, self.end

    @property
    def is_insertion(self) -> bool:
        return self.end < self.start

    def sort_key(self) -> Tuple[int, int, int]:
        # At one position a replacement goes before insertions; insertions keep batch order
        return self.start, 0 if self.is_insertion else 1, self.index


@dataclass
class ApplyPreview:
    """
    What is about to be written, handed to the approval gate.

    Attributes:
        file_path: Target as given by the caller
        original_text: Current content ('' for a new file)
        new_text: Composed content
        outcome: Outcome so far (matches, failures, warnings)
        needs_confirmation: Indices of edits whose match should be surfaced
    """
    file_path: str
    original_text: str
    new_text: str
    outcome: ApplyOutcome
    needs_confirmation: List[int] = field(default_factory=list)

    @property
    def diff(self) -> str:
        return render_unified_diff(self.file_path, self.original_text, self.new_text)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.needs_confirmation)


ApprovalGate = Callable[[ApplyPreview], bool]


class DiffApplier:
    """
    Orchestrates validation, matching, composition and writing for a batch.

    Usage:
        applier = DiffApplier(LocalFileStore(root))
        outcome = applier.apply(EditBatch("src/app.ts", edits))
        print(outcome.applied_count, outcome.warnings)
    """

    def __init__(
        self,
        store: Optional[FileStore] = None,
        cache: Optional[FileCache] = None,
        matcher: Optional[ContentMatcher] = None,
        validator: Optional[DiffValidator] = None,
        structural: Optional[StructuralValidator] = None,
        locks: Optional[FileLockRegistry] = None,
        approval: Optional[ApprovalGate] = None,
        error_level: int = MatchNotFound.DETAILED
    ):
        """
        Args:
            store: File storage (default: LocalFileStore at cwd)
            cache: Read cache (default: a new FileCache over store)
            matcher: Fragment locator (default thresholds if omitted)
            validator: Batch validator
            structural: Structural checker
            locks: Per-file lock registry; share one between appliers that
                must serialize against each other
            approval: Default approval gate, consulted before writing
            error_level: Detail level of MatchNotFound reasons in partial mode
        """
        # FileCache and FileLockRegistry define __len__, so an empty one is falsy
        if store is None:
            store = cache.store if cache is not None else LocalFileStore()
        self.store = store
        self.cache = cache if cache is not None else FileCache(self.store)
        self.matcher = matcher if matcher is not None else ContentMatcher()
        self.validator = validator if validator is not None else DiffValidator()
        self.structural = structural if structural is not None else StructuralValidator()
        self.locks = locks if locks is not None else FileLockRegistry()
        self.approval = approval
        self.error_level = error_level
        self.log = EngineLogger("applier")

    @classmethod
    def from_config(cls, config, store: Optional[FileStore] = None,
                    approval: Optional[ApprovalGate] = None) -> 'DiffApplier':
        """Build an applier from an EngineConfig."""
        if store is None:
            store = LocalFileStore(
                max_file_size=config.max_file_size,
                backup_dir=(config.backup_dir or '.splice/backups') if config.backup else None,
            )
        return cls(
            store=store,
            cache=FileCache(store, max_size=config.cache_max_size, ttl_seconds=config.cache_ttl_seconds),
            matcher=ContentMatcher(config.thresholds),
            approval=approval,
            error_level=config.error_level,
        )

    @property
    def thresholds(self) -> MatchThresholds:
        return self.matcher.thresholds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(
        self,
        batch: EditBatch,
        dry_run: bool = False,
        approval: Optional[ApprovalGate] = None
    ) -> ApplyOutcome:
        """
        Apply a batch of edits to its file.

        Args:
            batch: Edits for one file
            dry_run: Stop after composing; nothing is written
            approval: Gate overriding the applier's default for this call

        Returns:
            ApplyOutcome in state DONE (success or partial success)

        Raises:
            ValidationFailure: Bad hints, overlaps, missing file, unsafe path
            MatchNotFound: A fragment was not found (non-partial mode), or
                no edit at all succeeded (partial mode)
            ChangesRejected: The approval gate refused
            AtomicWriteError: The write failed; the file is unchanged
        """
        started = time.time()
        outcome = ApplyOutcome(file_path=batch.file_path)
        identity = self.store.identity(batch.file_path)

        with self.locks.hold(identity):
            self.log.operation_start("apply", file_path=batch.file_path)
            try:
                self._apply_locked(batch, outcome, dry_run, approval or self.approval)
            except Exception as e:
                outcome.state = ApplyState.FAILED
                self.log.warning(
                    f"Apply failed: {str(e).splitlines()[0] if str(e) else type(e).__name__}",
                    file_path=batch.file_path,
                    error_code=getattr(e, 'error_code', None),
                )
                raise
            finally:
                outcome.execution_time = time.time() - started

        self.log.track_operation(
            "apply",
            success=outcome.success,
            duration=outcome.execution_time,
            file_path=batch.file_path,
            applied=outcome.applied_count,
            failed=len(outcome.failed_edits),
            warnings=len(outcome.warnings),
            dry_run=dry_run,
        )
        return outcome

    def replace_range(
        self,
        file_path: PathLike,
        start_line: int,
        end_line: int,
        content: str,
        original_code: str
    ) -> ApplyOutcome:
        """
        Replace an exact line range after verifying its current content.

        No fuzzy matching: the lines must hold `original_code` byte for byte
        (modulo CRLF).

        Raises:
            FileNotFoundForEdit: File absent
            ValidationFailure: Range out of bounds or content mismatch
        """
        file_path = str(file_path)
        started = time.time()
        identity = self.store.identity(file_path)

        with self.locks.hold(identity):
            if not self.store.exists(file_path):
                raise FileNotFoundForEdit(file_path)
            buffer = self.cache.get(file_path)
            count = len(buffer)

            if start_line < 0 or start_line >= count:
                raise ValidationFailure(
                    f"Start line {start_line} is out of range (0-{count - 1})")
            if end_line < start_line or end_line >= count:
                raise ValidationFailure(
                    f"End line {end_line} is out of range ({start_line}-{count - 1})")

            current = "\n".join(buffer.lines[start_line:end_line + 1])
            if current != original_code.replace("\r\n", "\n"):
                raise ValidationFailure(
                    "Original code validation failed. The current content of lines "
                    f"{start_line}-{end_line} does not match the provided original code.\n"
                    f"Current:\n{current}"
                )

            original_text = buffer.to_text()
            buffer.lines[start_line:end_line + 1] = split_fragment(content.replace("\r\n", "\n"))
            new_text = buffer.to_text()

            self.store.write_text(file_path, new_text)
            self.cache.invalidate(file_path)

        edit = EditRequest(start_line, end_line, original_code, content)
        outcome = ApplyOutcome(
            file_path=file_path,
            applied_count=1,
            matches=[MatchCandidate(start_line, end_line, EXACT_CONFIDENCE, MatchStrategy.EXACT,
                                    current, [], "line-range")],
            state=ApplyState.DONE,
            written=True,
            execution_time=time.time() - started,
            original_text=original_text,
            result_text=new_text,
        )
        outcome.structural = self.structural.check(original_text, new_text, file_path)
        outcome.warnings.extend(str(w) for w in outcome.structural)
        logger.debug("Replaced lines %d-%d of %s (%s)", start_line, end_line, file_path, edit.label(0))
        return outcome

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _apply_locked(
        self,
        batch: EditBatch,
        outcome: ApplyOutcome,
        dry_run: bool,
        approval: Optional[ApprovalGate]
    ) -> None:
        path = batch.file_path

        outcome.state = ApplyState.VALIDATING
        self.validator.validate(batch)
        buffer, created = self._load(batch)
        outcome.created = created
        outcome.original_text = buffer.to_text()
        outcome.matches = [None] * len(batch.edits)

        outcome.state = ApplyState.RESOLVING
        resolved, first_error = self._resolve_all(batch, buffer, outcome)

        if not resolved:
            if first_error is not None:
                raise first_error
            raise ValidationFailure(f"No edits could be resolved for {path}")

        outcome.state = ApplyState.COMPOSING
        composed = self._compose(buffer, resolved)
        outcome.applied_count = len(resolved)
        outcome.result_text = composed.to_text()

        outcome.structural = self.structural.check(outcome.original_text, outcome.result_text, path)
        for warning in outcome.structural:
            outcome.warnings.append(str(warning))
            self.log.warning(str(warning), file_path=path, error_code='STR-01')

        if dry_run:
            outcome.state = ApplyState.DONE
            return

        outcome.state = ApplyState.WRITING
        if approval is not None:
            preview = ApplyPreview(
                file_path=path,
                original_text=outcome.original_text,
                new_text=outcome.result_text,
                outcome=outcome,
                needs_confirmation=[
                    r.index for r in resolved
                    if r.match is not None and self.matcher.requires_confirmation(r.match)
                ],
            )
            if not approval(preview):
                raise ChangesRejected(f"Changes to {path} were rejected; the file was not modified")

        if created or outcome.result_text != outcome.original_text:
            self.store.write_text(path, outcome.result_text)
            self.cache.invalidate(path)
            outcome.written = True
        else:
            logger.debug("Content of %s unchanged; skipping write", path)

        outcome.state = ApplyState.DONE

    def _load(self, batch: EditBatch) -> Tuple[LineBuffer, bool]:
        """Current buffer, or an empty one when the batch creates the file."""
        if self.store.exists(batch.file_path):
            return self.cache.get(batch.file_path), False

        if all(edit.original_fragment == "" for edit in batch.edits):
            self.log.info("Target does not exist; creating it", file_path=batch.file_path)
            return LineBuffer(lines=[]), True

        raise FileNotFoundForEdit(batch.file_path)

    def _resolve_all(
        self,
        batch: EditBatch,
        buffer: LineBuffer,
        outcome: ApplyOutcome
    ) -> Tuple[List[ResolvedEdit], Optional[ApplyError]]:
        """
        Locate every edit, highest hint first.

        In partial mode failures become FailedEdits; otherwise the first
        failure is raised.
        """
        edits = batch.edits
        order = sorted(range(len(edits)), key=lambda i: (-edits[i].start_line_hint, i))
        ranges: List[Optional[Interval]] = [None] * len(edits)
        resolved: List[ResolvedEdit] = []
        first_error: Optional[ApplyError] = None

        for index in order:
            edit = edits[index]
            try:
                item = self._resolve(index, edit, buffer.lines, batch.file_path)

                clashes = self.validator.check_resolved(ranges, item.interval)
                if clashes:
                    pairs = sorted((min(index, j), max(index, j)) for j in clashes)
                    raise ConflictError(pairs, edits, resolved=True)
            except (MatchNotFound, ConflictError) as e:
                if not batch.partial_success_allowed:
                    raise
                first_error = first_error or e
                if isinstance(e, MatchNotFound):
                    reason = e.format(self.error_level)
                else:
                    others = ", ".join(edits[j].label(j) for j in clashes)
                    reason = (
                        f"Resolved location (lines {item.start}-{item.end}) overlaps "
                        f"already resolved {others}"
                    )
                outcome.failed_edits.append(FailedEdit(index=index, edit=edit, reason=reason))
                self.log.edit_error(
                    f"Skipping {edit.label(index)}: {reason.splitlines()[0]}",
                    file_path=batch.file_path,
                    edit_index=index,
                    line_number=edit.start_line_hint,
                    error_code=e.error_code,
                )
                continue

            ranges[index] = item.interval
            resolved.append(item)
            outcome.matches[index] = item.match

            if item.match is not None:
                self._note_confidence(item, outcome)

        outcome.failed_edits.sort(key=lambda f: f.index)
        return resolved, first_error

    def _note_confidence(self, item: ResolvedEdit, outcome: ApplyOutcome) -> None:
        match = item.match
        action = get_action_threshold(match, self.thresholds)
        if action == "auto_apply":
            return
        text = (
            f"{item.edit.label(item.index)} matched lines {match.start_line}-{match.end_line} "
            f"with {match.confidence * 100:.0f}% confidence ({match.method or match.strategy.value})"
        )
        if match.issues:
            text += ": " + "; ".join(match.issues)
        outcome.warnings.append(text)
        self.log.info(text, file_path=outcome.file_path, edit_index=item.index, error_code='MAT-02')

    def _resolve(self, index: int, edit: EditRequest, lines: List[str], path: str) -> ResolvedEdit:
        replacement = split_fragment(edit.replacement_fragment)

        if edit.is_insertion:
            position = min(edit.start_line_hint, len(lines))
            return ResolvedEdit(index, edit, position, position - 1, replacement)

        if edit.to_end_of_file:
            return self._resolve_tail(index, edit, lines, path, replacement)

        report = self.matcher.resolve(lines, edit.original_fragment, hint=edit.start_line_hint, diagnose=True)
        match = report.match
        if match is None:
            hint_end = min(edit.end_line_hint, edit.start_line_hint + 50)
            hint_lines = lines[edit.start_line_hint:hint_end + 1]
            raise MatchNotFound(
                index, edit, path,
                diagnostics=report,
                hint_content="\n".join(hint_lines) if hint_lines else None,
            )

        if match.strategy == MatchStrategy.NORMALIZED:
            replacement = reindent(
                replacement,
                edit.original_fragment.split("\n"),
                match.actual_content.split("\n"),
            )

        return ResolvedEdit(index, edit, match.start_line, match.end_line, replacement, match)

    def _resolve_tail(
        self,
        index: int,
        edit: EditRequest,
        lines: List[str],
        path: str,
        replacement: List[str]
    ) -> ResolvedEdit:
        """Resolve an end-of-file replacement (end hint -1)."""
        start = min(edit.start_line_hint, len(lines))
        tail = "\n".join(lines[start:])

        if edit.original_fragment == "" or tail == edit.original_fragment:
            confidence, strategy, issues = EXACT_CONFIDENCE, MatchStrategy.EXACT, []
        else:
            opts = MatchingOptions()
            if normalize_content(tail, opts) != normalize_content(edit.original_fragment, opts):
                raise MatchNotFound(
                    index, edit, path,
                    hint_content=tail or None,
                    reason=f"Content from line {start} to end of file does not match",
                )
            confidence = self.thresholds.normalized_confidence
            strategy, issues = MatchStrategy.NORMALIZED, [WHITESPACE_ISSUE]

        match = MatchCandidate(
            start_line=start,
            end_line=len(lines) - 1,
            confidence=confidence,
            strategy=strategy,
            actual_content=tail,
            issues=issues,
            method="end-of-file",
        )
        return ResolvedEdit(index, edit, start, len(lines) - 1, replacement, match)

    def _compose(self, buffer: LineBuffer, resolved: List[ResolvedEdit]) -> LineBuffer:
        """Splice resolved edits into a copy of the buffer, bottom-up."""
        result = buffer.copy()
        for item in sorted(resolved, key=ResolvedEdit.sort_key, reverse=True):
            result.lines[item.start:item.end + 1] = item.replacement
            logger.debug(
                "Spliced %s at lines %d-%d (%d -> %d lines)",
                item.edit.label(item.index), item.start, item.end,
                max(item.end - item.start + 1, 0), len(item.replacement),
            )
        return result
