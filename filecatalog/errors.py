"""
Error Handling - Centralized error policies and custom exceptions.

Per-entry filesystem failures are handled here by policy (logged, then
skipped) so a walk or a content scan never aborts on one bad file.
Integrity and query-syntax failures are raised as exceptions so callers
can tell them apart from an empty result.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()           # Skip this entry, continue processing


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{file}: {error}"


# Error type to policy mapping (checked in order, subclasses first)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    PermissionError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Permission denied: {file}"
    ),
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Vanished before it could be read: {file}"
    ),
    NotADirectoryError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Expected directory, got file: {file}"
    ),
    IsADirectoryError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Expected file, got directory: {file}"
    ),
    UnicodeDecodeError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Cannot decode file (binary?): {file}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="OS error: {file} - {error}"
    ),
}


class CatalogError(Exception):
    """Base exception for catalog errors."""
    pass


class CorruptDataError(CatalogError):
    """A persisted catalog stream failed validation."""
    pass


class InvalidPatternError(CatalogError):
    """A search pattern is not a valid regular expression."""

    def __init__(self, pattern: str, error: re.error):
        self.pattern = pattern
        self.error = error
        super().__init__(f"Invalid pattern {pattern!r}: {error}")


class IndexBusyError(CatalogError):
    """An index job is already running."""
    pass


def handle_error(
    error: Exception,
    file_path: Optional[Path] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        file_path: Path being processed (if applicable)
        context: Additional context for logging

    Returns:
        The action to take
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Default policy for unknown errors
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.SKIP,
            log_level=logging.ERROR,
            message_template="Unexpected error: {file} - {error}"
        )

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action
