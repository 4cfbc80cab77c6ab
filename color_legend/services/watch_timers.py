from __future__ import annotations

from typing import Callable, Optional

from color_legend.config import DEBOUNCE_MIN_MS, WATCHDOG_MIN_MS

AfterFn = Callable[[int, Callable[[], None]], object]
AfterCancelFn = Callable[[object], None]
LoggerFn = Callable[[str, object], None] | Callable[[str], None]

REWRITE_KEY = "rewrite"
WATCHDOG_KEY = "watchdog"


def _noop_log(message: str, *args: object) -> None:
    return None


class WatchTimers:
    """Owns the keyed, resettable timers behind the rewrite debounce and the panel watchdog.

    Scheduling under a key that already has a pending firing cancels that
    firing first, so at most one callback per key is ever outstanding.
    """

    def __init__(
        self,
        *,
        after: AfterFn,
        after_cancel: AfterCancelFn,
        debounce_ms: int = 100,
        watchdog_ms: int = 1000,
        logger: Optional[LoggerFn] = None,
    ) -> None:
        self._after = after
        self._after_cancel = after_cancel
        self._logger = logger or _noop_log
        self.debounce_ms = self._clamp_debounce(debounce_ms)
        self.watchdog_ms = self._clamp_watchdog(watchdog_ms)
        self._handles: dict[str, object] = {}

    def schedule_debounce(self, key: str, callback: Callable[[], None], *, delay_ms: int | None = None) -> object:
        self.cancel_debounce(key)
        delay = self.debounce_ms if delay_ms is None else delay_ms

        def _fire() -> None:
            if self._handles.get(key) is handle:
                del self._handles[key]
            callback()

        handle = self._after(delay, _fire)
        self._handles[key] = handle
        return handle

    def cancel_debounce(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is None:
            return
        try:
            self._after_cancel(handle)
        except Exception as exc:
            self._log("Failed to cancel %s timer: %s", key, exc)

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def schedule_rewrite(self, callback: Callable[[], None]) -> object:
        return self.schedule_debounce(REWRITE_KEY, callback, delay_ms=self.debounce_ms)

    def schedule_watchdog(self, callback: Callable[[], None]) -> object:
        return self.schedule_debounce(WATCHDOG_KEY, callback, delay_ms=self.watchdog_ms)

    @staticmethod
    def _clamp_debounce(value: int) -> int:
        return max(DEBOUNCE_MIN_MS, int(value))

    @staticmethod
    def _clamp_watchdog(value: int) -> int:
        return max(WATCHDOG_MIN_MS, int(value))

    def _log(self, message: str, *args: object) -> None:
        try:
            self._logger(message, *args)
        except TypeError:
            try:
                self._logger(message % args if args else message)
            except Exception:
                pass
        except Exception:
            pass
