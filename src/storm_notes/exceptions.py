"""Exceptions raised by Storm Notes.

Ranking functions never raise on odd input; these cover the edit paths
(unknown notes, blank tags, empty shares), database start-up and
configuration. Each carries an ErrorCode and a small details dict that the
MCP layer logs next to the user-facing message.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Machine-readable error codes, grouped by the thing that failed."""

    # Notes (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_ALREADY_EXISTS = 1003
    NOTE_EMPTY = 1004

    # Tags (3xxx)
    TAG_INVALID = 3002

    # Storage (4xxx)
    STORAGE_CONNECTION_FAILED = 4004

    # Configuration (6xxx)
    CONFIG_INVALID = 6001


class StormError(Exception):
    """Base class for Storm Notes errors.

    Attributes:
        message: Text safe to show to the user.
        code: What went wrong, as an ErrorCode.
        details: Extra context for the logs (note ids, keys, ...).
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code.name}] {self.message}"
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"[{self.code.name}] {self.message} ({context})"


class NoteNotFoundError(StormError):
    """No note has the requested ID."""

    def __init__(self, note_id: str):
        super().__init__(
            f"Note with ID '{note_id}' not found",
            ErrorCode.NOTE_NOT_FOUND,
            {"note_id": note_id},
        )
        self.note_id = note_id


class NoteValidationError(StormError):
    """A note edit was rejected."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED,
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            # Bodies and data URLs can be huge
            details["value"] = str(value)[:100]
        super().__init__(message, code, details)
        self.field = field


class TagError(StormError):
    """A tag is unusable, e.g. blank after normalization."""

    def __init__(self, message: str, tag_name: Optional[str] = None):
        details = {"tag_name": tag_name} if tag_name is not None else {}
        super().__init__(message, ErrorCode.TAG_INVALID, details)
        self.tag_name = tag_name


class StorageError(StormError):
    """The database could not be opened or prepared.

    Reads and writes of the key-value stores never raise this; they log and
    carry on with the in-memory state.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if original_error is not None:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, ErrorCode.STORAGE_CONNECTION_FAILED, details)
        self.original_error = original_error


class ConfigurationError(StormError):
    """Settings from the environment or command line are invalid."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_INVALID)
