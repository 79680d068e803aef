"""
Terminal color helpers for Splice output.

ANSI codes are only emitted when stdout is a TTY, so piped output and
saved reports stay plain.
"""

import sys


class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    CYAN = '\033[96m'

    BOLD = '\033[1m'

    RESET = '\033[0m'


def colorize(text: str, color: str) -> str:
    """Add color to text if stdout is a TTY."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def success(text: str) -> str:
    return colorize(text, Colors.GREEN)


def error(text: str) -> str:
    return colorize(text, Colors.RED)


def warning(text: str) -> str:
    return colorize(text, Colors.YELLOW)


def bold(text: str) -> str:
    return colorize(text, Colors.BOLD)


def colorize_diff(diff: str) -> str:
    """
    Color a unified diff line by line.

    Headers bold, hunk markers cyan, additions green, removals red.
    """
    out = []
    for line in diff.splitlines():
        if line.startswith(('+++', '---')):
            out.append(bold(line))
        elif line.startswith('@@'):
            out.append(colorize(line, Colors.CYAN))
        elif line.startswith('+'):
            out.append(success(line))
        elif line.startswith('-'):
            out.append(error(line))
        else:
            out.append(line)
    return '\n'.join(out)
