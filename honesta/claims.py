import time
from typing import Callable, MutableMapping, NamedTuple, Optional


class AttemptStatus(NamedTuple):
    locked: bool
    remaining: int
    retry_after: int  # seconds, 0 when not locked


class AttemptTracker:
    """
    Limits how often someone may guess the answers for one item.

    ``logs`` maps a key to ``{"count": int, "lastAttemptTime": ms}``. The web
    app keys it by account and item and keeps it in the shared document, so
    the limit follows the account across browsers and logins.
    After ``max_attempts`` failures the item is locked until
    ``lockout_seconds`` have passed since the last failure; then the count
    starts over.
    """

    def __init__(self, logs: MutableMapping, max_attempts: int = 3, lockout_seconds: int = 1800,
                 clock: Optional[Callable[[], float]] = None):
        self.logs = logs
        self.max_attempts = max_attempts
        self.lockout_ms = lockout_seconds * 1000
        self.clock = clock or time.time

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _expired(self, log, now) -> bool:
        return now - log.get('lastAttemptTime', 0) >= self.lockout_ms

    def status(self, key: str) -> AttemptStatus:
        log = self.logs.get(key)
        if not log:
            return AttemptStatus(False, self.max_attempts, 0)

        now = self._now_ms()
        if self._expired(log, now):
            self.reset(key)
            return AttemptStatus(False, self.max_attempts, 0)

        count = log.get('count', 0)
        if count >= self.max_attempts:
            wait_ms = self.lockout_ms - (now - log['lastAttemptTime'])
            return AttemptStatus(True, 0, max(1, -(-wait_ms // 1000)))
        return AttemptStatus(False, self.max_attempts - count, 0)

    def record_failure(self, key: str) -> AttemptStatus:
        now = self._now_ms()
        log = self.logs.get(key)
        count = 0 if not log or self._expired(log, now) else log.get('count', 0)
        self.logs[key] = {'count': count + 1, 'lastAttemptTime': now}
        return self.status(key)

    def reset(self, key: str):
        self.logs.pop(key, None)
