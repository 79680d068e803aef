"""
Batch validation - reject self-contradictory edit batches up front.

Runs before any matching so that a batch whose line hints overlap never
touches the file. Every conflicting pair is reported in one error, so the
caller can fix the whole batch at once.

Also provides the same overlap check for resolved match locations, which
catches edits whose hints are disjoint but whose fragments were found in
overlapping places.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .base import ConflictError, EditBatch, EditRequest, ValidationFailure, excerpt

logger = logging.getLogger(__name__)

# Stand-in for "end of file" when comparing -1 end hints
_EOF = float('inf')

Interval = Tuple[int, float]


def hint_interval(edit: EditRequest) -> Interval:
    """
    Closed [start, end] interval claimed by an edit's hints.

    Insertions claim the empty interval (start, start - 1), the gap before
    their line, so several insertions at one point do not conflict.
    """
    if edit.is_insertion:
        return edit.start_line_hint, edit.start_line_hint - 1
    end = _EOF if edit.to_end_of_file else edit.end_line_hint
    return edit.start_line_hint, end


def find_overlaps(intervals: Sequence[Optional[Interval]]) -> List[Tuple[int, int]]:
    """
    Find every pair of intersecting closed intervals.

    Intervals are sorted by start, then each one is compared against the
    following intervals until one starts past its end. This reports all
    pairs (including non-adjacent ones) and does not depend on the order
    the intervals were given in.

    Args:
        intervals: One (start, end) per item, or None to skip an item

    Returns:
        Sorted list of (i, j) index pairs with i < j
    """
    order = sorted(
        (i for i, iv in enumerate(intervals) if iv is not None),
        key=lambda i: (intervals[i][0], intervals[i][1], i),
    )

    pairs = set()
    for pos, i in enumerate(order):
        start_i, end_i = intervals[i]
        for j in order[pos + 1:]:
            start_j, end_j = intervals[j]
            if start_j > end_i:
                break
            pairs.add((min(i, j), max(i, j)))

    return sorted(pairs)


class DiffValidator:
    """
    Screens an EditBatch for malformed hints and overlapping ranges.

    Usage:
        DiffValidator().validate(batch)   # raises on problems
    """

    def check_hints(self, batch: EditBatch) -> List[str]:
        """
        Collect problems with individual hint ranges.

        Returns:
            List of error messages (empty if all hints are well-formed)
        """
        errors = []
        for index, edit in enumerate(batch.edits):
            if edit.start_line_hint < 0:
                errors.append(
                    f"{edit.label(index)}: start line must be >= 0, got {edit.start_line_hint}"
                )
            if not edit.to_end_of_file and edit.end_line_hint < edit.start_line_hint:
                errors.append(
                    f"{edit.label(index)}: end line {edit.end_line_hint} is before "
                    f"start line {edit.start_line_hint} (use -1 for end of file). "
                    f"Search: {excerpt(edit.original_fragment, 60)!r}"
                )
        return errors

    def validate(self, batch: EditBatch) -> None:
        """
        Validate a batch before any matching.

        Args:
            batch: Edits for one file

        Raises:
            ValidationFailure: Empty batch or malformed hints
            ConflictError: Any two hint ranges intersect
        """
        if not batch.edits:
            raise ValidationFailure(f"No diffs to apply for {batch.file_path}")

        errors = self.check_hints(batch)
        if errors:
            raise ValidationFailure(
                f"Invalid line hints for {batch.file_path}:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

        pairs = find_overlaps([hint_interval(e) for e in batch.edits])
        if pairs:
            logger.warning(
                "Rejecting batch for %s: %d overlapping pair(s)",
                batch.file_path, len(pairs),
                extra={'file_path': batch.file_path, 'error_code': 'VAL-01'},
            )
            raise ConflictError(pairs, batch.edits)

    def check_resolved(
        self,
        ranges: Sequence[Optional[Interval]],
        candidate: Interval
    ) -> List[int]:
        """
        Indices of already-resolved ranges that a new resolved range overlaps.

        Insertions are expressed as the empty interval (p, p - 1): they only
        conflict when they fall strictly inside a replaced range.

        Args:
            ranges: Previously resolved ranges (None for unresolved edits)
            candidate: Newly resolved range

        Returns:
            Indices into `ranges` that conflict with `candidate`
        """
        start, end = candidate
        hits = []
        for index, other in enumerate(ranges):
            if other is None:
                continue
            o_start, o_end = other
            if end < start:
                # insertion before line `start`
                if o_start < start <= o_end:
                    hits.append(index)
            elif o_end < o_start:
                if start < o_start <= end:
                    hits.append(index)
            elif start <= o_end and o_start <= end:
                hits.append(index)
        return hits
