"""
Splice - apply search/replace edit batches to source files.

Edits carry approximate line hints; fragments are located by exact,
whitespace-normalized or similarity matching with a confidence score,
and a batch is applied all-or-nothing (or partially, on request).
"""

from splice.core import (
    EditRequest,
    EditBatch,
    ApplyOutcome,
    DiffApplier,
    ContentMatcher,
    MatchThresholds,
)
from splice.tool import apply_diff, replace_lines, ToolResponse

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "EditRequest",
    "EditBatch",
    "ApplyOutcome",
    "DiffApplier",
    "ContentMatcher",
    "MatchThresholds",
    "apply_diff",
    "replace_lines",
    "ToolResponse",
    "__version__",
    "__license__",
]
