"""Shared utilities for Video Script Monitor."""
from .errors import sanitize_error_message
from .log import connection_id_var, get_logger, log_structured, log_success
from .result import Result
from .time import iso_utc, ms, now
from .types import EXTENSIONS, ErrorCode, FileType, TaskStatus, classify_file

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "connection_id_var",
    "now",
    "ms",
    "iso_utc",
    "FileType",
    "TaskStatus",
    "ErrorCode",
    "EXTENSIONS",
    "classify_file",
    "sanitize_error_message",
]
