"""
Debounced persistence scheduler.

Every edit enqueues a PendingWrite stamped with a monotonically increasing
sequence number. Arming a new timer cancels the previous one, so a burst of
edits inside the delay window produces a single write carrying the last
value. A timer that fires for a sequence number that is no longer the latest
does nothing.

Timers come from ``timer_factory(seconds, callback)``; the default is
``threading.Timer``. Tests pass a manual factory and fire timers themselves.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 500


@dataclass(frozen=True)
class PendingWrite:
    seq: int
    value: Any


def thread_timer(seconds: float, callback: Callable[[], None]):
    timer = threading.Timer(seconds, callback)
    timer.daemon = True
    return timer


class DebouncedWriter:
    """Coalesces rapid ``schedule`` calls into one ``write`` per quiet period.

    Args:
        write:         Callable persisting a value. A False return or an
                       exception (logged) means nothing was persisted.
        delay_ms:      Quiet period before the pending value is written.
        timer_factory: ``(seconds, callback) -> timer`` with ``start()`` and
                       ``cancel()``.
    """

    def __init__(
        self,
        write: Callable[[Any], Any],
        delay_ms: int = DEFAULT_DELAY_MS,
        timer_factory: Callable[[float, Callable[[], None]], Any] = thread_timer,
    ):
        self._write = write
        self.delay_ms = delay_ms
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._seq = 0
        self._pending: PendingWrite | None = None
        self._timer = None
        self._closed = False
        self.write_count = 0

    @property
    def pending(self) -> PendingWrite | None:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, value) -> PendingWrite:
        """Replace the pending value and restart the quiet period."""
        with self._lock:
            if self._closed:
                raise RuntimeError("DebouncedWriter is closed")
            self._seq += 1
            pending = PendingWrite(self._seq, value)
            self._pending = pending
            self._disarm()
            self._timer = self._timer_factory(
                self.delay_ms / 1000.0, lambda: self._on_timer(pending.seq),
            )
            self._timer.start()
            return pending

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, seq: int) -> None:
        with self._lock:
            if self._closed or self._pending is None or self._pending.seq != seq:
                logger.debug("Ignoring stale debounce timer seq=%d", seq)
                return
            self._timer = None
            self._write_pending()

    def _write_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        try:
            written = self._write(pending.value)
        except Exception:
            logger.exception("Debounced write seq=%d failed", pending.seq)
            return
        if written is not False:
            self.write_count += 1

    def flush(self) -> bool:
        """Write the pending value now. Returns True if something was written."""
        with self._lock:
            self._disarm()
            if self._pending is None:
                return False
            before = self.write_count
            self._write_pending()
            return self.write_count > before

    def cancel(self) -> None:
        """Drop the pending value without writing it."""
        with self._lock:
            self._disarm()
            self._pending = None

    def close(self) -> None:
        """Cancel and refuse further scheduling."""
        with self._lock:
            self.cancel()
            self._closed = True
