"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Literal, Optional

# Asset file classifications
FileType = Literal["image", "audio", "video", "prompt"]

# Task lifecycle status
TaskStatus = Literal["processing", "completed"]


class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_PATH = "INVALID_PATH"
    NOT_FOUND = "NOT_FOUND"
    UNRESOLVED_TASK_ID = "UNRESOLVED_TASK_ID"

    # Filesystem timing
    NOT_READY = "NOT_READY"
    DISCOVERY_TIMEOUT = "DISCOVERY_TIMEOUT"

    # Parsing
    PARSE_ERROR = "PARSE_ERROR"

    # Service availability
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# File extensions by type
EXTENSIONS: Final[dict[FileType, set[str]]] = {
    "image": {".jpg", ".jpeg", ".png", ".gif", ".bmp"},
    "audio": {".mp3", ".wav", ".ogg", ".aac"},
    "video": {".mp4", ".avi", ".mov", ".mkv"},
    "prompt": {".prompt"},
}


def classify_file(filename: str) -> Optional[FileType]:
    """
    Classify file by extension (case-insensitive).

    Args:
        filename: File name or path

    Returns:
        File type, or None when the extension is not tracked
    """
    ext = os.path.splitext(filename)[1].lower()

    for kind, exts in EXTENSIONS.items():
        if ext in exts:
            return kind

    return None
