"""
Outcome of a registry command or filesystem probe.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """
    Success carries `data`; failure carries an ErrorCode value and a message.
    Extra keyword arguments land in `meta` (e.g. `created=True`, `ignored=True`).

        res = registry.stop_monitoring("vid_1")
        if res.is_code(ErrorCode.NOT_FOUND):
            ...
    """
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: str = "OK"
    meta: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def Ok(data: T, **meta: Any) -> "Result[T]":
        return Result(ok=True, data=data, meta=meta)

    @staticmethod
    def Err(code: Enum | str, error: str, **meta: Any) -> "Result[T]":
        return Result(ok=False, error=error, code=str(code.value if isinstance(code, Enum) else code), meta=meta)

    def is_code(self, code: Enum | str) -> bool:
        """True when this result failed with `code`."""
        wanted = code.value if isinstance(code, Enum) else str(code)
        return not self.ok and self.code == wanted
