"""
Per-path debounce table.

Each raw notification for a path cancels that path's pending timer and schedules
a new one; when the quiet window elapses the latest notification kind is
propagated once ("add"/"change" collapse to "upsert").

Every notification also bumps a per-path sequence number. Consumers that do
async work after a timer fires (readiness probing) check `is_current()` before
delivering, so an older event never overtakes a newer one for the same path.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from ...path_utils import normalize_path
from ...shared import get_logger
from .events import RawKind

logger = get_logger(__name__)

CoalescedKind = Literal["upsert", "remove"]


@dataclass
class _Pending:
    path: str
    kind: RawKind
    seq: int
    handle: Any


class DebounceCoalescer:
    """
    Coalesces bursts of notifications per path. Must be driven from the loop thread.

    Args:
        loop: event loop (anything exposing `call_later(delay, fn)`)
        on_fire: callback(path, kind, seq) run on the loop when a window closes
        window_ms: quiet period
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_fire: Callable[[str, CoalescedKind, int], None],
        window_ms: int,
        label: str = "file",
    ):
        self._loop = loop
        self._on_fire = on_fire
        self._window_s = max(0, int(window_ms)) / 1000.0
        self._label = label
        self._pending: dict[str, _Pending] = {}
        self._latest_seq: dict[str, int] = {}
        self._seq = 0

    @property
    def window_ms(self) -> int:
        return int(self._window_s * 1000)

    def push(self, path: str, kind: RawKind) -> int:
        """Record a raw notification and (re)arm the path's timer. Returns its sequence number."""
        key = normalize_path(path)
        self._seq += 1
        seq = self._seq

        existing = self._pending.get(key)
        if existing is not None:
            existing.handle.cancel()

        handle = self._loop.call_later(self._window_s, lambda: self._fire(key, seq))
        self._pending[key] = _Pending(path=path, kind=kind, seq=seq, handle=handle)
        self._latest_seq[key] = seq
        return seq

    def _fire(self, key: str, seq: int) -> None:
        pending = self._pending.get(key)
        if pending is None or pending.seq != seq:
            return
        del self._pending[key]
        kind: CoalescedKind = "remove" if pending.kind == "remove" else "upsert"
        try:
            self._on_fire(pending.path, kind, seq)
        except Exception as exc:
            logger.debug("Debounce (%s) callback error for %s: %s", self._label, pending.path, exc)
            self.release(pending.path, seq)

    def is_current(self, path: str, seq: int) -> bool:
        """True when no newer notification arrived for `path` since `seq`."""
        return self._latest_seq.get(normalize_path(path)) == seq

    def release(self, path: str, seq: int) -> None:
        """Forget the sequence bookkeeping once an event for `seq` has been settled."""
        key = normalize_path(path)
        if key in self._pending:
            return
        if self._latest_seq.get(key) == seq:
            self._latest_seq.pop(key, None)

    def cancel(self, path: str) -> bool:
        key = normalize_path(path)
        pending = self._pending.pop(key, None)
        self._latest_seq.pop(key, None)
        if pending is None:
            return False
        pending.handle.cancel()
        return True

    def cancel_all(self) -> int:
        count = len(self._pending)
        for pending in self._pending.values():
            pending.handle.cancel()
        self._pending.clear()
        self._latest_seq.clear()
        return count

    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, path: str) -> bool:
        return normalize_path(path) in self._pending
