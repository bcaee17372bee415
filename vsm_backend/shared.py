"""Backend-facing alias for shared utilities."""

from __future__ import annotations

import vsm_shared as _root_shared
from vsm_shared.types import EXTENSIONS

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
FileType = _root_shared.FileType
TaskStatus = _root_shared.TaskStatus
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
connection_id_var = _root_shared.connection_id_var
classify_file = _root_shared.classify_file
sanitize_error_message = _root_shared.sanitize_error_message
iso_utc = _root_shared.iso_utc
ms = _root_shared.ms
now = _root_shared.now

__all__ = [
    "Result",
    "ErrorCode",
    "FileType",
    "TaskStatus",
    "get_logger",
    "log_success",
    "log_structured",
    "connection_id_var",
    "classify_file",
    "sanitize_error_message",
    "iso_utc",
    "ms",
    "now",
    "EXTENSIONS",
]
