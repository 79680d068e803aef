"""
Content matcher - locate a fragment inside a file's lines.

Strategies are tried in a fixed hierarchy and the first one that finds the
fragment wins:

Level 1 (exact, confidence 1.0):
- exact-at-hint: the window that starts exactly at the line hint
- exact-near-hint: expanding search within a small radius of the hint
- exact: every occurrence in the file, the one closest to the hint wins

Level 2 (normalized, fixed confidence below 1.0):
- normalized-whitespace: per-line strip and canonical indentation
- case-insensitive: as above plus case folding

Level 3 (similarity, computed ratio):
- similarity: difflib.SequenceMatcher ratio over every window with the
  same line count as the fragment, at or above similarity_threshold
- similarity-low: the same scan down to min_confidence; such a match
  always carries an issue and needs confirmation

Exact matching is the fast path and terminates early. Similarity is the
deliberate slow path (every window, quadratic per window) and is only
reached when the first two levels fail.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from difflib import SequenceMatcher
from typing import Callable, List, Optional, Tuple

from .base import MatchCandidate, MatchStrategy
from .confidence import EXACT_CONFIDENCE, MatchThresholds

logger = logging.getLogger(__name__)

# Candidates above this ratio are kept for "best partial match" diagnostics
DIAGNOSTIC_SIMILARITY_FLOOR = 0.5

WHITESPACE_ISSUE = "Content differs in whitespace or formatting"
CASE_ISSUE = "Content differs in letter case"
SIMILARITY_ISSUE = "Content has significant differences"


@dataclass
class MatchingOptions:
    """
    Normalization applied by the normalized strategies.

    Attributes:
        ignore_leading_whitespace: Strip whitespace at the start of each line
        ignore_trailing_whitespace: Strip whitespace at the end of each line
        normalize_indentation: Tabs count as four spaces and any run of
            leading spaces collapses to one (only matters when leading
            whitespace is kept)
        ignore_empty_lines: Whitespace-only lines compare equal to empty ones
        case_sensitive: If False, compare case-folded text
    """
    ignore_leading_whitespace: bool = True
    ignore_trailing_whitespace: bool = True
    normalize_indentation: bool = True
    ignore_empty_lines: bool = False
    case_sensitive: bool = True


def normalize_line(line: str, options: MatchingOptions) -> str:
    """Normalize one line according to options."""
    if options.normalize_indentation:
        stripped = line.lstrip(" \t")
        indent = line[:len(line) - len(stripped)]
        if indent:
            width = indent.count("\t") * 4 + indent.count(" ")
            line = (" " if width else "") + stripped

    if options.ignore_leading_whitespace:
        line = line.lstrip()
    if options.ignore_trailing_whitespace:
        line = line.rstrip()
    if options.ignore_empty_lines and not line.strip():
        line = ""
    if not options.case_sensitive:
        line = line.casefold()
    return line


def normalize_content(content: str, options: MatchingOptions) -> str:
    """Normalize multi-line content line by line."""
    return "\n".join(normalize_line(line, options) for line in content.split("\n"))


@dataclass
class MatchAttempt:
    """One step of the strategy hierarchy and what it produced."""
    method: str
    level: int
    description: str
    result: Optional[MatchCandidate]
    duration: float
    error: Optional[str] = None


@dataclass
class LocateReport:
    """
    Everything the matcher tried for one fragment.

    Attributes:
        target: Fragment that was searched for
        hint: Line hint used, if any
        match: Winning candidate, or None
        attempts: Every strategy step that ran, in order
        best_partial: Closest window below the acceptance threshold (only
            filled when no match was found and diagnostics were requested)
    """
    target: str
    hint: Optional[int]
    match: Optional[MatchCandidate] = None
    attempts: List[MatchAttempt] = field(default_factory=list)
    best_partial: Optional[MatchCandidate] = None

    def report(self) -> str:
        """Multi-line summary of every attempted strategy."""
        lines = ["Match strategy report:", "=" * 50]
        for attempt in self.attempts:
            lines.append(f"\nStrategy: {attempt.method} (level {attempt.level})")
            lines.append(f"Description: {attempt.description}")
            lines.append(f"Duration: {attempt.duration * 1000:.1f}ms")
            if attempt.result is not None:
                r = attempt.result
                lines.append("Result: MATCH FOUND")
                lines.append(f"  - Confidence: {r.confidence * 100:.1f}%")
                lines.append(f"  - Lines: {r.start_line}-{r.end_line}")
                if r.issues:
                    lines.append(f"  - Issues: {', '.join(r.issues)}")
            elif attempt.error:
                lines.append(f"Result: ERROR - {attempt.error}")
            else:
                lines.append("Result: NO MATCH")
        return "\n".join(lines)


class ContentMatcher:
    """
    Locate fragments using exact, normalized and similarity strategies.

    Usage:
        matcher = ContentMatcher()
        match = matcher.locate(lines, "  return 42;", hint=1)
        if match and matcher.requires_confirmation(match):
            ...
    """

    def __init__(
        self,
        thresholds: Optional[MatchThresholds] = None,
        options: Optional[MatchingOptions] = None
    ):
        self.thresholds = thresholds or MatchThresholds()
        self.options = options or MatchingOptions()

    # ------------------------------------------------------------------
    # Level 1: exact
    # ------------------------------------------------------------------

    @staticmethod
    def _window_equals(lines: List[str], start: int, target_lines: List[str]) -> bool:
        if start < 0 or start + len(target_lines) > len(lines):
            return False
        for offset, expected in enumerate(target_lines):
            if lines[start + offset] != expected:
                return False
        return True

    @staticmethod
    def _exact_candidate(lines: List[str], start: int, count: int, method: str) -> MatchCandidate:
        return MatchCandidate(
            start_line=start,
            end_line=start + count - 1,
            confidence=EXACT_CONFIDENCE,
            strategy=MatchStrategy.EXACT,
            actual_content="\n".join(lines[start:start + count]),
            issues=[],
            method=method,
        )

    def find_exact(self, lines: List[str], target: str, start: int = 0) -> Optional[MatchCandidate]:
        """
        Scan top-down from `start` for a byte-for-byte match.

        First match wins; the scan stops there.

        Args:
            lines: File lines without terminators
            target: Fragment (may span several lines)
            start: First line to consider

        Returns:
            MatchCandidate with confidence 1.0, or None
        """
        target_lines = target.split("\n")
        last = len(lines) - len(target_lines)
        for i in range(max(start, 0), last + 1):
            if self._window_equals(lines, i, target_lines):
                return self._exact_candidate(lines, i, len(target_lines), "exact")
        return None

    def find_exact_at_hint(self, lines: List[str], target: str, hint: int) -> Optional[MatchCandidate]:
        """Match only the window starting exactly at `hint`."""
        target_lines = target.split("\n")
        if self._window_equals(lines, hint, target_lines):
            return self._exact_candidate(lines, hint, len(target_lines), "exact-at-hint")
        return None

    def find_exact_near_hint(
        self,
        lines: List[str],
        target: str,
        hint: int,
        radius: Optional[int] = None
    ) -> Optional[MatchCandidate]:
        """
        Search outward from `hint`, one line above then one below, up to `radius`.

        Args:
            lines: File lines
            target: Fragment
            hint: Center line
            radius: Max distance from hint (default: thresholds.near_hint_radius)

        Returns:
            Closest exact match within the radius, or None
        """
        target_lines = target.split("\n")
        radius = self.thresholds.near_hint_radius if radius is None else radius
        for distance in range(0, radius + 1):
            for start in ((hint,) if distance == 0 else (hint - distance, hint + distance)):
                if self._window_equals(lines, start, target_lines):
                    return self._exact_candidate(lines, start, len(target_lines), "exact-near-hint")
        return None

    def find_all_exact(self, lines: List[str], target: str) -> List[MatchCandidate]:
        """Every non-overlapping exact occurrence, top to bottom."""
        target_lines = target.split("\n")
        matches = []
        i = 0
        last = len(lines) - len(target_lines)
        while i <= last:
            if self._window_equals(lines, i, target_lines):
                matches.append(self._exact_candidate(lines, i, len(target_lines), "exact"))
                i += len(target_lines)
            else:
                i += 1
        return matches

    def find_best_exact_with_hint(
        self,
        lines: List[str],
        target: str,
        hint: Optional[int]
    ) -> Optional[MatchCandidate]:
        """
        Pick the exact occurrence closest to `hint`.

        When several identical occurrences exist an issue is recorded, which
        makes the match require confirmation.
        """
        if hint is None:
            return self.find_exact(lines, target)

        matches = self.find_all_exact(lines, target)
        if not matches:
            return None

        best = _closest_to_hint(matches, hint)
        if len(matches) > 1:
            best.issues.append(
                f"Found {len(matches)} identical matches. Using closest to line {hint}."
            )
        return best

    # ------------------------------------------------------------------
    # Level 2: normalized
    # ------------------------------------------------------------------

    def find_normalized(
        self,
        lines: List[str],
        target: str,
        options: Optional[MatchingOptions] = None,
        hint: Optional[int] = None,
        confidence: Optional[float] = None
    ) -> Optional[MatchCandidate]:
        """
        Compare normalized windows for equality.

        Args:
            lines: File lines
            target: Fragment
            options: Normalization options (default: matcher options)
            hint: Optional line hint; the closest equal window wins
            confidence: Confidence to report (default: normalized_confidence)

        Returns:
            MatchCandidate with a fixed confidence below 1.0, or None
        """
        opts = options or self.options
        if confidence is None:
            confidence = self.thresholds.normalized_confidence

        target_norm = [normalize_line(line, opts) for line in target.split("\n")]
        lines_norm = [normalize_line(line, opts) for line in lines]
        count = len(target_norm)

        found = []
        for i in range(0, len(lines) - count + 1):
            if lines_norm[i:i + count] == target_norm:
                found.append(i)
                if hint is None:
                    break

        if not found:
            return None

        start = found[0] if hint is None else min(found, key=lambda s: (abs(s - hint), s))
        actual = "\n".join(lines[start:start + count])

        issues = []
        if actual != target:
            if opts.case_sensitive or actual.casefold() != target.casefold():
                issues.append(WHITESPACE_ISSUE)
            if not opts.case_sensitive:
                case_kept = replace(opts, case_sensitive=True)
                if normalize_content(actual, case_kept) != normalize_content(target, case_kept):
                    issues.append(CASE_ISSUE)
        if len(found) > 1:
            issues.append(f"Found {len(found)} equivalent matches. Using closest to line {hint}.")

        return MatchCandidate(
            start_line=start,
            end_line=start + count - 1,
            confidence=confidence,
            strategy=MatchStrategy.NORMALIZED,
            actual_content=actual,
            issues=issues,
            method="normalized-whitespace" if opts.case_sensitive else "case-insensitive",
        )

    # ------------------------------------------------------------------
    # Level 3: similarity
    # ------------------------------------------------------------------

    @staticmethod
    def similarity(a: str, b: str) -> float:
        """
        Character similarity ratio in [0, 1].

        Uses difflib's SequenceMatcher (2 * matches / total length).
        Returns 1.0 only for identical strings.
        """
        if not a and not b:
            return 1.0
        return SequenceMatcher(None, a, b, autojunk=False).ratio()

    def find_similarity(
        self,
        lines: List[str],
        target: str,
        threshold: Optional[float] = None
    ) -> List[MatchCandidate]:
        """
        Score every window with the fragment's line count.

        Args:
            lines: File lines
            target: Fragment
            threshold: Minimum ratio (default: thresholds.similarity_threshold)

        Returns:
            Candidates with ratio >= threshold, best first (ties: earliest line)
        """
        if threshold is None:
            threshold = self.thresholds.similarity_threshold

        count = len(target.split("\n"))
        sm = SequenceMatcher(None, autojunk=False)
        sm.set_seq2(target)

        results = []
        for i in range(0, len(lines) - count + 1):
            window = "\n".join(lines[i:i + count])
            sm.set_seq1(window)
            # Cheap upper bounds first
            if sm.real_quick_ratio() < threshold or sm.quick_ratio() < threshold:
                continue
            ratio = sm.ratio()
            if ratio < threshold:
                continue
            issues = [] if ratio >= self.thresholds.similarity_issue_threshold else [SIMILARITY_ISSUE]
            results.append(MatchCandidate(
                start_line=i,
                end_line=i + count - 1,
                confidence=ratio,
                strategy=MatchStrategy.SIMILARITY,
                actual_content=window,
                issues=issues,
                method="similarity",
            ))

        results.sort(key=lambda c: (-c.confidence, c.start_line))
        return results

    def select_best_match(
        self,
        candidates: List[MatchCandidate],
        min_confidence: Optional[float] = None
    ) -> Optional[MatchCandidate]:
        """
        Highest-confidence candidate at or above the floor.

        Ties are broken by the earliest line.
        """
        if min_confidence is None:
            min_confidence = self.thresholds.min_confidence
        valid = [c for c in candidates if c.confidence >= min_confidence]
        if not valid:
            return None
        return min(valid, key=lambda c: (-c.confidence, c.start_line))

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def _strategies(self, hint: Optional[int]) -> List[Tuple[str, int, str, Callable]]:
        steps = []
        if hint is not None:
            steps.append((
                "exact-at-hint", 1, "Exact match at hinted line",
                lambda lines, target: self.find_exact_at_hint(lines, target, hint),
            ))
            steps.append((
                "exact-near-hint", 1,
                f"Exact match near hinted line (±{self.thresholds.near_hint_radius} lines)",
                lambda lines, target: self.find_exact_near_hint(lines, target, hint),
            ))
        steps.append((
            "exact", 1, "Character-for-character exact match anywhere in the file",
            lambda lines, target: self.find_best_exact_with_hint(lines, target, hint),
        ))
        steps.append((
            "normalized-whitespace", 2, "Whitespace-normalized match",
            lambda lines, target: self.find_normalized(lines, target, hint=hint),
        ))
        if self.thresholds.case_insensitive:
            case_folded = replace(self.options, case_sensitive=False)
            steps.append((
                "case-insensitive", 2, "Whitespace-normalized, case-insensitive match",
                lambda lines, target: self.find_normalized(
                    lines, target, options=case_folded, hint=hint,
                    confidence=self.thresholds.case_insensitive_confidence),
            ))
        steps.append((
            "similarity", 3,
            f"Similarity match ({self.thresholds.similarity_threshold:.0%}+)",
            lambda lines, target: self.select_best_match(self.find_similarity(lines, target)),
        ))
        if self.thresholds.min_confidence < self.thresholds.similarity_threshold:
            steps.append((
                "similarity-low", 3,
                f"Low-confidence similarity match ({self.thresholds.min_confidence:.0%}+)",
                self._find_low_similarity,
            ))
        return steps

    def _find_low_similarity(self, lines: List[str], target: str) -> Optional[MatchCandidate]:
        floor = self.thresholds.min_confidence
        best = self.select_best_match(self.find_similarity(lines, target, threshold=floor), floor)
        if best is None:
            return None
        issues = best.issues if SIMILARITY_ISSUE in best.issues else best.issues + [SIMILARITY_ISSUE]
        return replace(best, issues=issues, method="similarity-low")

    def resolve(
        self,
        lines: List[str],
        target: str,
        hint: Optional[int] = None,
        diagnose: bool = False
    ) -> LocateReport:
        """
        Run the strategy hierarchy and record every attempt.

        Args:
            lines: File lines
            target: Non-empty fragment
            hint: Optional 0-based line hint
            diagnose: If no match is found, also compute the best partial
                window for error reporting

        Returns:
            LocateReport (report.match is None when nothing qualified)
        """
        report = LocateReport(target=target, hint=hint)
        if not target or not lines:
            return report

        for method, level, description, run in self._strategies(hint):
            started = time.time()
            result = run(lines, target)
            report.attempts.append(MatchAttempt(
                method=method,
                level=level,
                description=description,
                result=result,
                duration=time.time() - started,
            ))
            if result is not None:
                logger.debug(
                    "Fragment located by %s at lines %d-%d (confidence %.2f)",
                    method, result.start_line, result.end_line, result.confidence,
                )
                report.match = result
                return report

        if diagnose:
            partial = self.find_similarity(lines, target, threshold=DIAGNOSTIC_SIMILARITY_FLOOR)
            if partial:
                report.best_partial = partial[0]

        logger.debug("Fragment not located after %d strategies", len(report.attempts))
        return report

    def locate(
        self,
        lines: List[str],
        target: str,
        hint: Optional[int] = None
    ) -> Optional[MatchCandidate]:
        """
        Locate a fragment.

        Returns:
            Best MatchCandidate, or None when no strategy qualified
        """
        return self.resolve(lines, target, hint).match

    def requires_confirmation(self, match: MatchCandidate) -> bool:
        """True when confidence < confirmation threshold or issues exist."""
        return (
            match.confidence < self.thresholds.confirmation_threshold
            or len(match.issues) > 0
        )


def _closest_to_hint(candidates: List[MatchCandidate], hint: int) -> MatchCandidate:
    return min(candidates, key=lambda c: (abs(c.start_line - hint), c.start_line))
