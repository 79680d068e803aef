"""
Configuration loading and validation for Splice.

Config files may be YAML, TOML or JSON. Every value is type- and
range-checked at load time so a bad threshold fails before any file is
touched, and all problems are reported together.

Sections:
    matching:  thresholds for the content matcher
    cache:     file cache TTL and size
    files:     size limit and backups for written files
    errors:    diagnostic detail level for not-found errors

Usage:
    config = load_config(Path(".splice.yaml"))
    applier = DiffApplier.from_config(config, store)
"""

import json
import logging
import math
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .base import MatchNotFound
from .confidence import MatchThresholds
from .file_cache import DEFAULT_MAX_SIZE, DEFAULT_TTL_SECONDS
from .storage import MAX_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)

MAX_CONFIG_FILE_SIZE = 10 * 1024 * 1024

THRESHOLD_KEYS = (
    'similarity_threshold',
    'min_confidence',
    'confirmation_threshold',
    'normalized_confidence',
    'case_insensitive_confidence',
    'similarity_issue_threshold',
)

KNOWN_KEYS = {
    'matching': set(THRESHOLD_KEYS) | {'near_hint_radius', 'case_insensitive'},
    'cache': {'ttl_seconds', 'max_size'},
    'files': {'max_file_size', 'backup', 'backup_dir'},
    'errors': {'level'},
}

ERROR_LEVELS = {
    'simple': MatchNotFound.SIMPLE,
    'detailed': MatchNotFound.DETAILED,
    'full': MatchNotFound.FULL,
}


class ConfigError(Exception):
    """Configuration validation error with context."""

    def __init__(self, key: str, message: str, value: Any = None, suggestion: Optional[str] = None):
        self.key = key
        self.value = value
        self.suggestion = suggestion
        full_message = f"Config error at '{key}': {message}"
        if value is not None:
            full_message += f" (got: {value!r})"
        if suggestion:
            full_message += f". Suggestion: {suggestion}"
        super().__init__(full_message)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails with one or more errors."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = errors
        self.warnings = warnings or []
        message = f"Configuration validation failed with {len(errors)} error(s):\n"
        message += "\n".join(f"  - {err}" for err in errors[:20])
        if len(errors) > 20:
            message += f"\n  ... and {len(errors) - 20} more errors"
        super().__init__(message)


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    validated_config: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.is_valid

    def raise_if_invalid(self) -> 'ValidationResult':
        """Raise ConfigValidationError if validation failed."""
        if not self.is_valid:
            raise ConfigValidationError(self.errors, self.warnings)
        return self

    def log_warnings(self) -> 'ValidationResult':
        for warning in self.warnings:
            logger.warning("Config warning: %s", warning)
        return self


def validate_threshold(value: Any, key_name: str, min_val: float = 0.0, max_val: float = 1.0) -> float:
    """
    Validate a numeric threshold is within range.

    Raises:
        ConfigError: None, string, non-numeric, NaN, infinite or out of range
    """
    if value is None:
        raise ConfigError(key_name, "Value is null/None", None,
                          f"Set to a number between {min_val} and {max_val}")

    # Quoted numbers are a common YAML/TOML mistake
    if isinstance(value, str):
        raise ConfigError(key_name, "Must be a number, got string", value,
                          f"Remove quotes: use {key_name.split('.')[-1]}: 0.9 instead of \"{value}\"")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(key_name, f"Must be numeric, got {type(value).__name__}", value,
                          "Use a number like 0.9")

    if isinstance(value, float):
        if math.isnan(value):
            raise ConfigError(key_name, "Value is NaN (Not a Number)", "NaN",
                              f"Use a valid number between {min_val} and {max_val}")
        if math.isinf(value):
            raise ConfigError(key_name, "Value is infinite", "Infinity",
                              f"Use a finite number between {min_val} and {max_val}")

    if value < min_val:
        raise ConfigError(key_name, f"Value too low (minimum is {min_val})", value,
                          f"Increase to at least {min_val}")
    if value > max_val:
        raise ConfigError(key_name, f"Value too high (maximum is {max_val})", value,
                          f"Decrease to at most {max_val}")

    return float(value)


def validate_positive_int(value: Any, key_name: str, allow_zero: bool = True) -> int:
    """
    Validate a non-negative (or strictly positive) integer.

    Raises:
        ConfigError: Not an int (bools rejected) or out of range
    """
    if value is None:
        raise ConfigError(key_name, "Value cannot be None")
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(key_name, f"Must be an integer, got {type(value).__name__}", value)
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(key_name, "Must be positive" if not allow_zero else "Must be non-negative", value)
    return value


def validate_bool(value: Any, key_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(key_name, f"Must be true or false, got {type(value).__name__}", value)
    return value


@dataclass
class EngineConfig:
    """Validated engine settings."""
    thresholds: MatchThresholds = field(default_factory=MatchThresholds)
    cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    cache_max_size: int = DEFAULT_MAX_SIZE
    max_file_size: int = MAX_FILE_SIZE_BYTES
    backup: bool = False
    backup_dir: Optional[str] = None
    error_level: int = MatchNotFound.DETAILED


def validate_config_schema(config: Any) -> ValidationResult:
    """
    Validate a raw config mapping.

    Collects every error instead of stopping at the first one. Unknown
    sections and keys are warnings.

    Args:
        config: Parsed config (dict expected)

    Returns:
        ValidationResult; validated_config holds {'engine': EngineConfig}
        when valid
    """
    errors: List[str] = []
    warnings: List[str] = []

    def add_error(e: ConfigError):
        errors.append(str(e))

    if config is None:
        config = {}
    if not isinstance(config, dict):
        return ValidationResult(
            is_valid=False,
            errors=[f"[config] Configuration must be a mapping, got {type(config).__name__}"],
        )

    for section, value in config.items():
        if section not in KNOWN_KEYS:
            warnings.append(f"[{section}] Unknown section (ignored)")
            continue
        if value is None:
            continue
        if not isinstance(value, dict):
            errors.append(f"[{section}] Must be a section/mapping, got {type(value).__name__}")
            continue
        for key in value:
            if key not in KNOWN_KEYS[section]:
                warnings.append(f"[{section}.{key}] Unknown key (ignored)")

    def section(name: str) -> Dict[str, Any]:
        value = config.get(name)
        return value if isinstance(value, dict) else {}

    engine = EngineConfig()

    # matching
    matching = section('matching')
    threshold_values: Dict[str, Any] = {}
    for key in THRESHOLD_KEYS:
        if key in matching:
            try:
                threshold_values[key] = validate_threshold(matching[key], f"matching.{key}")
            except ConfigError as e:
                add_error(e)
    if 'near_hint_radius' in matching:
        try:
            threshold_values['near_hint_radius'] = validate_positive_int(
                matching['near_hint_radius'], 'matching.near_hint_radius')
        except ConfigError as e:
            add_error(e)
    if 'case_insensitive' in matching:
        try:
            threshold_values['case_insensitive'] = validate_bool(
                matching['case_insensitive'], 'matching.case_insensitive')
        except ConfigError as e:
            add_error(e)

    min_conf = threshold_values.get('min_confidence', MatchThresholds.min_confidence)
    sim = threshold_values.get('similarity_threshold', MatchThresholds.similarity_threshold)
    if min_conf > sim:
        errors.append(
            f"[matching] min_confidence ({min_conf}) must not exceed "
            f"similarity_threshold ({sim}) | Suggestion: lower min_confidence"
        )

    try:
        engine.thresholds = MatchThresholds(**threshold_values)
    except ValueError as e:
        errors.append(f"[matching] {e}")

    # cache
    cache = section('cache')
    if 'ttl_seconds' in cache:
        try:
            engine.cache_ttl_seconds = validate_threshold(
                cache['ttl_seconds'], 'cache.ttl_seconds', 0.0, 3600.0)
        except ConfigError as e:
            add_error(e)
    if 'max_size' in cache:
        try:
            engine.cache_max_size = validate_positive_int(cache['max_size'], 'cache.max_size', allow_zero=False)
        except ConfigError as e:
            add_error(e)

    # files
    files = section('files')
    if 'max_file_size' in files:
        try:
            engine.max_file_size = validate_positive_int(
                files['max_file_size'], 'files.max_file_size', allow_zero=False)
        except ConfigError as e:
            add_error(e)
    if 'backup' in files:
        try:
            engine.backup = validate_bool(files['backup'], 'files.backup')
        except ConfigError as e:
            add_error(e)
    if files.get('backup_dir') is not None:
        if not isinstance(files['backup_dir'], str):
            add_error(ConfigError('files.backup_dir', 'Must be a path string', files['backup_dir']))
        else:
            engine.backup_dir = files['backup_dir']

    # errors
    level = section('errors').get('level')
    if level is not None:
        if isinstance(level, str) and level.lower() in ERROR_LEVELS:
            engine.error_level = ERROR_LEVELS[level.lower()]
        else:
            add_error(ConfigError('errors.level', 'Unknown level', level,
                                  f"Use one of: {', '.join(ERROR_LEVELS)}"))

    if errors:
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)
    return ValidationResult(
        is_valid=True,
        warnings=warnings,
        validated_config={'engine': engine, 'raw': config},
    )


def parse_config_file(config_path: Path) -> Tuple[Any, Optional[str]]:
    """
    Parse a YAML, TOML or JSON config file.

    Returns:
        (parsed_value, parse_error_or_None)

    Raises:
        FileNotFoundError: Missing file
        ValueError: Unsupported extension or oversized file
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    file_size = config_path.stat().st_size
    if file_size > MAX_CONFIG_FILE_SIZE:
        raise ValueError(
            f"Config file too large: {config_path} ({file_size:,} bytes). Maximum is 10MB."
        )

    suffix = config_path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f), None
        except yaml.YAMLError as e:
            return None, f"YAML parse error: {e}"
    if suffix == '.toml':
        try:
            with open(config_path, 'rb') as f:
                return tomllib.load(f), None
        except tomllib.TOMLDecodeError as e:
            return None, f"TOML parse error: {e}"
    if suffix == '.json':
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f), None
        except json.JSONDecodeError as e:
            return None, f"JSON parse error at line {e.lineno}: {e.msg}"

    raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, .toml, or .json")


def validate_and_load_config(config_path: Path) -> Tuple[Dict[str, Any], ValidationResult]:
    """
    Load and validate a configuration file.

    Returns:
        (raw_config, validation_result)
    """
    config, parse_error = parse_config_file(config_path)
    if parse_error:
        return {}, ValidationResult(is_valid=False, errors=[f"[config_file] {parse_error}"])
    result = validate_config_schema(config)
    return (config or {}) if isinstance(config, dict) else {}, result


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load config and raise immediately if validation fails.

    Args:
        config_path: Config file, or None for defaults

    Returns:
        EngineConfig

    Raises:
        ConfigValidationError: If any validation errors occur
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is unsupported
    """
    if config_path is None:
        return EngineConfig()
    _, result = validate_and_load_config(Path(config_path))
    result.raise_if_invalid().log_warnings()
    return result.validated_config['engine']
