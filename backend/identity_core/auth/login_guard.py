import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta

from identity_core.core.config import settings


class LoginGuard:
    """Per-key failed-login counter with a temporary lock.

    Keys are ``tenant:email:ip`` strings; the same key is used whether or not
    the email exists, so a lock never hints at account existence.
    """

    def __init__(
        self,
        *,
        max_failures: int = settings.LOGIN_MAX_FAILURES,
        window_seconds: int = settings.LOGIN_WINDOW_SECONDS,
        lock_seconds: int = settings.LOGIN_LOCK_SECONDS,
    ):
        self.max_failures = max_failures
        self.window = timedelta(seconds=window_seconds)
        self.lock_for = timedelta(seconds=lock_seconds)
        self._failures: dict[str, deque] = defaultdict(deque)
        self._locked_until: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._next_sweep: datetime | None = None

    @staticmethod
    def key_for(tenant_id: str, email: str, client_ip: str | None) -> str:
        return f"{tenant_id}:{email.strip().lower()}:{client_ip or 'unknown'}"

    def _prune(self, key: str, now: datetime) -> None:
        q = self._failures.get(key)
        if q is None:
            return
        cutoff = now - self.window
        while q and q[0] < cutoff:
            q.popleft()
        if not q:
            self._failures.pop(key, None)

    def _sweep(self, now: datetime) -> None:
        # Drop keys that were never retried after their window or lock ran out.
        if self._next_sweep is not None and now < self._next_sweep:
            return
        for key in list(self._failures):
            self._prune(key, now)
        for key, locked_until in list(self._locked_until.items()):
            if locked_until <= now:
                del self._locked_until[key]
        self._next_sweep = now + self.window

    def is_locked(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._lock:
            locked_until = self._locked_until.get(key)
            if locked_until and locked_until > now:
                return locked_until
            self._locked_until.pop(key, None)
            self._prune(key, now)
            return None

    def register_failure(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._lock:
            self._sweep(now)
            self._prune(key, now)

            q = self._failures[key]
            q.append(now)

            if len(q) >= self.max_failures:
                locked_until = now + self.lock_for
                self._locked_until[key] = locked_until
                self._failures.pop(key, None)
                return locked_until

        return None

    def clear_failures(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
            self._locked_until.pop(key, None)


login_guard = LoginGuard()
