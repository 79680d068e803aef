"""
Splice Core - the diff-application engine.

Locates search fragments in a file (exact, whitespace-normalized or
similarity matching), rejects self-contradictory batches, composes edits
bottom-up and writes the result atomically with advisory structural checks.
"""

from .base import (
    EditRequest,
    EditBatch,
    MatchCandidate,
    MatchStrategy,
    LineBuffer,
    ApplyOutcome,
    ApplyState,
    FailedEdit,
    StructuralWarning,
    ApplyError,
    ValidationFailure,
    MissingParametersError,
    FileNotFoundForEdit,
    PathSecurityError,
    ConflictError,
    MatchNotFound,
    ChangesRejected,
)
from .confidence import (
    MatchThresholds,
    requires_confirmation,
    get_action_threshold,
    describe_confidence,
)
from .matcher import ContentMatcher, MatchingOptions, LocateReport
from .diff_validator import DiffValidator, find_overlaps
from .structural import StructuralValidator, count_elements
from .file_cache import FileCache
from .storage import FileStore, LocalFileStore, FileTooLargeError
from .atomic_write import atomic_write, AtomicWriteError
from .locks import FileLockRegistry
from .normalize import normalize_diff_sections
from .applier import DiffApplier, ApplyPreview
from .reporting import (
    generate_console_output,
    generate_markdown_report,
    generate_json_report,
    render_unified_diff,
    format_tool_response,
    save_report,
)
from .config_validator import (
    EngineConfig,
    ConfigError,
    ConfigValidationError,
    ValidationResult,
    validate_threshold,
    validate_config_schema,
    load_config,
)

__all__ = [
    # Data model
    'EditRequest',
    'EditBatch',
    'MatchCandidate',
    'MatchStrategy',
    'LineBuffer',
    'ApplyOutcome',
    'ApplyState',
    'FailedEdit',
    'StructuralWarning',
    # Errors
    'ApplyError',
    'ValidationFailure',
    'MissingParametersError',
    'FileNotFoundForEdit',
    'PathSecurityError',
    'ConflictError',
    'MatchNotFound',
    'ChangesRejected',
    'AtomicWriteError',
    'FileTooLargeError',
    # Confidence
    'MatchThresholds',
    'requires_confirmation',
    'get_action_threshold',
    'describe_confidence',
    # Components
    'ContentMatcher',
    'MatchingOptions',
    'LocateReport',
    'DiffValidator',
    'find_overlaps',
    'StructuralValidator',
    'count_elements',
    'FileCache',
    'FileStore',
    'LocalFileStore',
    'atomic_write',
    'FileLockRegistry',
    'normalize_diff_sections',
    'DiffApplier',
    'ApplyPreview',
    # Reporting
    'generate_console_output',
    'generate_markdown_report',
    'generate_json_report',
    'render_unified_diff',
    'format_tool_response',
    'save_report',
    # Configuration
    'EngineConfig',
    'ConfigError',
    'ConfigValidationError',
    'ValidationResult',
    'validate_threshold',
    'validate_config_schema',
    'load_config',
]
