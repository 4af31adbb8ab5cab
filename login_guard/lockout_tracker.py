import logging
import time
from typing import Callable, Tuple

from login_guard.models import AuthResultKind, Decision, RejectReason
from login_guard.store import AttemptStore, MemoryAttemptStore

logger = logging.getLogger(__name__)


class LockoutTracker:
    """Per-account failure counter with a time-bounded lock. Decisions are returned, never raised."""

    def __init__(
        self,
        store: AttemptStore | None = None,
        max_failures: int = 3,
        lockout_duration_s: int = 300,
        clock: Callable[[], float] | None = None,
    ):
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        if lockout_duration_s <= 0:
            raise ValueError("lockout_duration_s must be positive")
        self.store = store if store is not None else MemoryAttemptStore()
        self.max_failures = max_failures
        self.lockout_duration_s = lockout_duration_s
        self.clock = clock

    def _now(self) -> float:
        return self.clock() if self.clock is not None else time.time()

    def evaluate_attempt(self, account_key: str, kind: AuthResultKind) -> Decision:
        kind = AuthResultKind(kind)
        now = self._now()
        with self.store.transaction(account_key, now) as record:
            if record.is_locked(now):
                return Decision.reject(RejectReason.TOO_MANY_ATTEMPTS, retry_after=record.remaining(now))

            if kind is AuthResultKind.SUCCESS:
                record.clear()
                return Decision.allow()

            if kind is AuthResultKind.LOCKED_OUT:
                return Decision.allow()

            record.failure_count += 1
            if record.failure_count >= self.max_failures:
                record.locked_until = now + self.lockout_duration_s
                record.failure_count = 0
                logger.warning(
                    "locked %s for %ss after %d failed attempts",
                    account_key, self.lockout_duration_s, self.max_failures,
                )
                return Decision.reject(RejectReason.TOO_MANY_ATTEMPTS, retry_after=self.lockout_duration_s)
            return Decision.reject(RejectReason.INVALID_CREDENTIAL)

    def check(self, account_key: str) -> Decision:
        return self.evaluate_attempt(account_key, AuthResultKind.LOCKED_OUT)

    def record_failure(self, account_key: str) -> Decision:
        return self.evaluate_attempt(account_key, AuthResultKind.FAILURE)

    def record_success(self, account_key: str) -> Decision:
        return self.evaluate_attempt(account_key, AuthResultKind.SUCCESS)

    def is_locked(self, account_key: str) -> Tuple[bool, int]:
        now = self._now()
        record = self.store.peek(account_key, now)
        if record is None or not record.is_locked(now):
            return False, 0
        return True, record.remaining(now)

    def failure_count(self, account_key: str) -> int:
        record = self.store.peek(account_key, self._now())
        return record.failure_count if record else 0
