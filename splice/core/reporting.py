"""
Report generation for apply operations.

Provides utilities to render an ApplyOutcome as:
- Console output (terminal-friendly)
- Markdown (human-readable)
- JSON (machine-readable)
- Tool response text (the summary returned to tool callers)

plus a unified diff of before/after content for previews.
"""

import difflib
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .base import ApplyOutcome, EditRequest, excerpt
from .confidence import describe_confidence


def render_unified_diff(file_path: str, before: str, after: str, context: int = 3) -> str:
    """
    Unified diff between two versions of a file.

    Returns:
        Diff text, empty string when the versions are identical
    """
    diff = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile=f"a/{file_path}",
        tofile=f"b/{file_path}",
        n=context,
    )
    lines = []
    for line in diff:
        lines.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
    return "".join(lines)


def _edit_summary(index: int, edit: EditRequest) -> str:
    return edit.label(index)


def format_tool_response(outcome: ApplyOutcome, description: Optional[str] = None) -> str:
    """
    Human-readable summary returned to tool callers.

    Full success:
        Successfully applied 2 diff sections to src/app.ts - rename helper
    Partial success lists every failed edit with its reason.
    Warnings (low confidence, structure) are appended.
    """
    suffix = f" - {description}" if description else ""
    total = outcome.applied_count + len(outcome.failed_edits)
    noun = "section" if outcome.applied_count == 1 else "sections"

    if outcome.created:
        lines = [f"Created {outcome.file_path}{suffix}"]
    elif outcome.failed_edits:
        lines = [
            f"Partially applied {outcome.applied_count} of {total} diff {noun} "
            f"to {outcome.file_path}{suffix}",
            "",
            f"Failed edits ({len(outcome.failed_edits)}):",
        ]
        for failed in outcome.failed_edits:
            lines.append(f"- {_edit_summary(failed.index, failed.edit)}: {failed.reason}")
    else:
        lines = [f"Successfully applied {outcome.applied_count} diff {noun} to {outcome.file_path}{suffix}"]

    if not outcome.written and outcome.applied_count and outcome.result_text == outcome.original_text:
        lines.append("")
        lines.append("Note: the file content was already up to date; nothing was written.")

    if outcome.warnings:
        lines.append("")
        lines.append("Warnings:")
        for warning in outcome.warnings:
            lines.append(f"- {warning}")

    return "\n".join(lines)


def generate_console_output(outcome: ApplyOutcome, verbose: bool = False) -> str:
    """
    Console-friendly output with symbols.

    Args:
        outcome: Result of an apply operation
        verbose: If True, list every match with its strategy and confidence

    Returns:
        Formatted string for terminal output
    """
    lines = []
    lines.append("=" * 70)
    lines.append(f"Apply Report: {outcome.file_path}")
    lines.append("=" * 70)

    lines.append(f"\nState: {outcome.state.value}")
    lines.append(f"Execution time: {outcome.execution_time:.2f}s")
    lines.append("\n📊 Summary:")
    lines.append(f"   Edits applied: {outcome.applied_count}")
    lines.append(f"   Edits failed: {len(outcome.failed_edits)}")
    lines.append(f"   Average confidence: {outcome.average_confidence * 100:.1f}%")

    if outcome.success:
        lines.append("\n✅ All edits applied" + (" (file created)" if outcome.created else ""))
    elif outcome.partial:
        lines.append(f"\n⚠️  {len(outcome.failed_edits)} edit(s) failed")

    if verbose:
        located = [(i, m) for i, m in enumerate(outcome.matches) if m is not None]
        if located:
            lines.append(f"\n🔎 Matches ({len(located)}):")
            for i, match in located:
                level = describe_confidence(match.confidence)
                marker = "🟢" if level == "high" else "🟡" if level == "medium" else "🔴"
                lines.append(
                    f"\n{i}. {marker} lines {match.start_line}-{match.end_line} "
                    f"via {match.method or match.strategy.value}"
                )
                lines.append(f"   Confidence: {match.confidence * 100:.0f}%")
                for issue in match.issues:
                    lines.append(f"   Issue: {issue}")

    if outcome.failed_edits:
        lines.append(f"\n❌ Failed ({len(outcome.failed_edits)}):")
        for failed in outcome.failed_edits:
            lines.append(f"   - {_edit_summary(failed.index, failed.edit)}: {failed.reason}")

    if outcome.warnings:
        lines.append(f"\n⚠️  Warnings ({len(outcome.warnings)}):")
        for warning in outcome.warnings[:10]:
            lines.append(f"   - {warning}")
        if len(outcome.warnings) > 10:
            lines.append(f"   ... and {len(outcome.warnings) - 10} more")

    lines.append("\n" + "=" * 70)
    return "\n".join(lines)


def generate_markdown_report(outcome: ApplyOutcome) -> str:
    """
    Markdown report of one apply operation.

    Format:
    # Apply Report: {file}
    **State**, **Execution Time**
    ## Summary
    ## Matches (per edit: lines, strategy, confidence, issues)
    ## Failed Edits
    ## Warnings
    ## Diff
    """
    lines = []
    lines.append(f"# Apply Report: {outcome.file_path}\n")
    lines.append(f"**State**: {outcome.state.value}\n")
    lines.append(f"**Execution Time**: {outcome.execution_time:.2f} seconds\n")

    lines.append("\n## Summary\n")
    lines.append(f"- **Edits applied**: {outcome.applied_count}\n")
    lines.append(f"- **Edits failed**: {len(outcome.failed_edits)}\n")
    lines.append(f"- **Average confidence**: {outcome.average_confidence * 100:.1f}%\n")
    if outcome.created:
        lines.append("- **File created**\n")

    located = [(i, m) for i, m in enumerate(outcome.matches) if m is not None]
    if located:
        lines.append("\n## Matches\n")
        for i, match in located:
            lines.append(f"\n### Edit {i}\n")
            lines.append(f"- **Lines**: {match.start_line}-{match.end_line}\n")
            lines.append(f"- **Strategy**: {match.method or match.strategy.value}\n")
            lines.append(f"- **Confidence**: {match.confidence * 100:.0f}%\n")
            for issue in match.issues:
                lines.append(f"- **Issue**: {issue}\n")

    if outcome.failed_edits:
        lines.append("\n## Failed Edits\n")
        for failed in outcome.failed_edits:
            lines.append(f"\n### {_edit_summary(failed.index, failed.edit)}\n")
            lines.append(f"{failed.reason}\n")
            lines.append("\n**Search**:\n```\n")
            lines.append(excerpt(failed.edit.original_fragment))
            lines.append("\n```\n")

    if outcome.warnings:
        lines.append("\n## Warnings\n")
        for warning in outcome.warnings:
            lines.append(f"- {warning}\n")

    diff = render_unified_diff(outcome.file_path, outcome.original_text, outcome.result_text)
    if diff:
        lines.append("\n## Diff\n")
        lines.append("\n```diff\n")
        lines.append(diff)
        lines.append("```\n")

    return "".join(lines)


def generate_json_report(outcome: ApplyOutcome) -> Dict[str, Any]:
    """
    Dict suitable for JSON serialization.

    Structure:
    {
        "file_path": str, "state": str, "created": bool, "written": bool,
        "execution_time": float,
        "summary": {"applied": int, "failed": int, "average_confidence": float},
        "matches": [{"index", "start_line", "end_line", "confidence", "strategy", "method", "issues"}],
        "failed_edits": [{"index", "start_line", "end_line", "search", "reason"}],
        "warnings": [str],
        "structural": [{"kind", "severity", "message", "details"}]
    }
    """
    return {
        "file_path": outcome.file_path,
        "state": outcome.state.value,
        "created": outcome.created,
        "written": outcome.written,
        "execution_time": outcome.execution_time,
        "summary": {
            "applied": outcome.applied_count,
            "failed": len(outcome.failed_edits),
            "average_confidence": outcome.average_confidence,
        },
        "matches": [
            {
                "index": i,
                "start_line": m.start_line,
                "end_line": m.end_line,
                "confidence": m.confidence,
                "strategy": m.strategy.value,
                "method": m.method,
                "issues": list(m.issues),
            }
            for i, m in enumerate(outcome.matches) if m is not None
        ],
        "failed_edits": [
            {
                "index": f.index,
                "start_line": f.edit.start_line_hint,
                "end_line": f.edit.end_line_hint,
                "search": excerpt(f.edit.original_fragment),
                "reason": f.reason,
            }
            for f in outcome.failed_edits
        ],
        "warnings": list(outcome.warnings),
        "structural": [
            {"kind": w.kind, "severity": w.severity, "message": w.message, "details": w.details}
            for w in outcome.structural
        ],
    }


def save_report(outcome: ApplyOutcome, output_path: Path, format: str = 'markdown') -> Path:
    """
    Save a report to disk.

    Args:
        outcome: Result to report
        output_path: Destination file
        format: "markdown" or "json"

    Returns:
        The written path
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if format == 'json':
        output_path.write_text(json.dumps(generate_json_report(outcome), indent=2), encoding='utf-8')
    elif format == 'markdown':
        output_path.write_text(generate_markdown_report(outcome), encoding='utf-8')
    else:
        raise ValueError(f"Unknown report format: {format}. Use 'markdown' or 'json'")
    return output_path
