#!/usr/bin/env python3
"""
Splice command line interface.

Applies a batch of edits, described in a YAML or JSON file, to one target
file.

Edits file formats:

    # a bare list of diff sections
    - startLine: 1
      endLine: 1
      search: "  return 42;"
      replace: "  return 100;"

    # or a mapping with batch options
    file: src/app.ts
    description: bump answer
    partialSuccess: true
    diffs:
      - {startLine: 1, endLine: 1, search: "  return 42;", replace: "  return 100;"}

Usage:
    splice --file src/app.ts --edits edits.yaml
    splice --file src/app.ts --edits edits.yaml --check
    splice --edits edits.yaml --partial --yes --json

Exit codes:
    0  all edits applied
    1  failure (validation, not found, I/O, config)
    2  partial success (some edits failed, file written)
    3  changes rejected at the confirmation prompt
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .core.applier import ApplyPreview, DiffApplier
from .core.base import ApplyError, ChangesRejected, EditBatch, MatchNotFound
from .core.colors import colorize_diff, error, success, warning
from .core.config_validator import ConfigValidationError, load_config
from .core.logger import setup_logger
from .core.normalize import normalize_diff_sections
from .core.reporting import generate_console_output, generate_json_report, render_unified_diff
from .core.storage import LocalFileStore

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2
EXIT_REJECTED = 3


def load_edits_file(path: Path) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Read an edits file.

    Returns:
        (diff_sections, options) where options may hold 'file',
        'description' and 'partialSuccess'

    Raises:
        ValueError: Unsupported format or unexpected structure
    """
    suffix = path.suffix.lower()
    with open(path, 'r', encoding='utf-8') as f:
        if suffix in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        elif suffix == '.json':
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported edits format: {suffix}. Use .yaml, .yml or .json")

    if isinstance(data, list):
        return data, {}
    if isinstance(data, dict) and isinstance(data.get('diffs'), list):
        options = {k: v for k, v in data.items() if k != 'diffs'}
        return data['diffs'], options
    raise ValueError(
        f"Edits file {path} must contain a list of diff sections "
        f"or a mapping with a 'diffs' list"
    )


def prompt_approval(preview: ApplyPreview) -> bool:
    """Show the preview and ask the user to confirm."""
    print(colorize_diff(preview.diff))
    for index in preview.needs_confirmation:
        match = preview.outcome.matches[index]
        print(warning(
            f"Edit {index}: {match.confidence * 100:.0f}% confidence via {match.method}"
            + (f" ({'; '.join(match.issues)})" if match.issues else "")
        ))
    try:
        answer = input("Apply these changes? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog='splice',
        description="Apply search/replace edit batches to a file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --file src/app.ts --edits edits.yaml
  %(prog)s --file src/app.ts --edits edits.yaml --check
  %(prog)s --edits edits.json --partial --yes --json
        """
    )
    parser.add_argument('--file', help='Target file (overrides "file" in the edits file)')
    parser.add_argument('--edits', type=Path, required=True,
                        help='YAML or JSON file with the diff sections')
    parser.add_argument('--config', type=Path, help='Engine config (YAML, TOML or JSON)')
    parser.add_argument('--root', type=Path, default=None,
                        help='Workspace root; the target must live inside it (default: cwd)')
    parser.add_argument('--partial', action='store_true',
                        help='Apply the edits that resolve even if others fail')
    parser.add_argument('--check', action='store_true',
                        help='Preview the result as a unified diff without writing')
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Do not ask before applying low-confidence matches')
    parser.add_argument('--json', action='store_true', help='Print a JSON report')
    parser.add_argument('--verbose', '-v', action='store_true', help='Show per-edit match details')
    parser.add_argument('--log-file', type=Path, help='Write JSON-lines logs to this file')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    setup_logger(
        "splice",
        log_file=args.log_file,
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    try:
        config = load_config(args.config)
    except ConfigValidationError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_FAILURE
    except (FileNotFoundError, ValueError) as e:
        print(error(f"ERROR: Failed to load config: {e}"), file=sys.stderr)
        return EXIT_FAILURE

    try:
        sections, options = load_edits_file(args.edits)
    except FileNotFoundError:
        print(error(f"ERROR: Edits file not found: {args.edits}"), file=sys.stderr)
        return EXIT_FAILURE
    except (ValueError, yaml.YAMLError) as e:
        print(error(f"ERROR: Failed to read edits: {e}"), file=sys.stderr)
        return EXIT_FAILURE

    file_path = args.file or options.get('file')
    if not file_path:
        print(error("ERROR: No target file: pass --file or set 'file' in the edits file"),
              file=sys.stderr)
        return EXIT_FAILURE

    store = LocalFileStore(
        args.root,
        max_file_size=config.max_file_size,
        backup_dir=(config.backup_dir or '.splice/backups') if config.backup else None,
    )
    applier = DiffApplier.from_config(config, store=store)

    def gate(preview: ApplyPreview) -> bool:
        if args.yes or not preview.requires_confirmation:
            return True
        return prompt_approval(preview)

    try:
        batch = EditBatch(
            file_path=file_path,
            edits=normalize_diff_sections(sections),
            partial_success_allowed=args.partial or bool(options.get('partialSuccess')),
            description=options.get('description'),
        )
        outcome = applier.apply(batch, dry_run=args.check, approval=gate)
    except ChangesRejected as e:
        print(warning(str(e)), file=sys.stderr)
        return EXIT_REJECTED
    except MatchNotFound as e:
        print(error(e.format(config.error_level)), file=sys.stderr)
        return EXIT_FAILURE
    except ApplyError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_FAILURE
    except OSError as e:
        print(error(f"ERROR: {e}"), file=sys.stderr)
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(generate_json_report(outcome), indent=2))
    else:
        if args.check:
            diff = render_unified_diff(file_path, outcome.original_text, outcome.result_text)
            print(colorize_diff(diff) if diff else "No changes")
        print(generate_console_output(outcome, verbose=args.verbose))
        if outcome.success and not args.check:
            print(success(f"\n✨ Applied {outcome.applied_count} edit(s) to {file_path}"))

    if outcome.partial:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
