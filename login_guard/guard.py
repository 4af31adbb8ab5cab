import logging
import time
from typing import Callable, Tuple

from login_guard import db
from login_guard.attempt_logger import log_attempt
from login_guard.config import Config, get_protection_flags
from login_guard.errors import StoreUnavailable, error_for
from login_guard.lockout_tracker import LockoutTracker
from login_guard.models import AuthResultKind, Decision, RejectReason
from login_guard.resolver import AccountResolver, DbAccountResolver, ResolvedAccount, tracking_key_for
from login_guard.security import dummy_hash, dummy_verify
from login_guard.store import create_store

logger = logging.getLogger(__name__)

# called with account=None for unresolved identifiers; must do comparable work and return False
Verifier = Callable[[ResolvedAccount | None, str], bool]


class DbVerifier:
    def __init__(self, config: Config):
        self.config = config
        dummy_hash(config.pepper, config.default_hash_mode)

    def __call__(self, account: ResolvedAccount | None, password: str) -> bool:
        if account is None:
            return dummy_verify(password, self.config.pepper, self.config.default_hash_mode)
        return db.verify_credentials(account.account_id, password, pepper=self.config.pepper)


class LoginGuard:
    def __init__(
        self,
        tracker: LockoutTracker,
        resolver: AccountResolver,
        verifier: Verifier | None = None,
        config: Config | None = None,
    ):
        self.tracker = tracker
        self.resolver = resolver
        self.config = config or Config()
        self.verifier = verifier if verifier is not None else DbVerifier(self.config)

    def _evaluate(self, account: ResolvedAccount, kind: AuthResultKind) -> Decision:
        try:
            return self.tracker.evaluate_attempt(account.tracking_key, kind)
        except StoreUnavailable as exc:
            logger.error("attempt store unavailable (%s policy) for %s: %s",
                         self.config.fail_policy, account.tracking_key, exc)
            if self.config.fail_policy == "closed":
                return Decision.reject(RejectReason.TOO_MANY_ATTEMPTS)
            if kind is AuthResultKind.FAILURE:
                return Decision.reject(RejectReason.INVALID_CREDENTIAL)
            return Decision.allow()

    def precheck(self, identifier: str) -> Tuple[ResolvedAccount | None, Decision]:
        account = self.resolver.resolve(identifier)
        if account is None or not self.config.enable_lockout:
            return account, Decision.allow()
        return account, self._evaluate(account, AuthResultKind.LOCKED_OUT)

    def after_verification(self, identifier: str, account: ResolvedAccount | None, verified: bool) -> Decision:
        # unknown identifiers are never tracked; they get the same rejection as a wrong password
        if account is None:
            return Decision.reject(RejectReason.INVALID_CREDENTIAL)
        if not self.config.enable_lockout:
            return Decision.allow() if verified else Decision.reject(RejectReason.INVALID_CREDENTIAL)
        kind = AuthResultKind.SUCCESS if verified else AuthResultKind.FAILURE
        return self._evaluate(account, kind)

    def on_login_success(self, account: ResolvedAccount) -> Decision:
        if not self.config.enable_lockout:
            return Decision.allow()
        return self._evaluate(account, AuthResultKind.SUCCESS)

    def filter_error_message(self, message: str | None = None) -> str | None:
        if self.config.suppress_error_message:
            return None
        return self.config.generic_error_message

    def authenticate(self, identifier: str, password: str) -> ResolvedAccount:
        # the credential check is skipped while locked, but runs (against a dummy hash) for unknown identifiers
        start_time = time.perf_counter()
        account, decision = self.precheck(identifier)
        if decision.allowed:
            verified = self.verifier(account, password) and account is not None
            decision = self.after_verification(identifier, account, verified)

        self._log(identifier, account, decision, start_time)
        if decision.rejected:
            raise error_for(decision, self.filter_error_message())
        return account

    def _log(self, identifier: str, account: ResolvedAccount | None, decision: Decision, start_time: float) -> None:
        latency_ms = (time.perf_counter() - start_time) * 1000
        extra = {"resolved": account is not None}
        if decision.retry_after:
            extra["lockout_remaining"] = decision.retry_after
        log_attempt(
            self.config.attempts_log_file,
            identifier=identifier,
            account_key=tracking_key_for(identifier, account),
            result=decision.result,
            reason=decision.reason.value if decision.reason else None,
            latency_ms=latency_ms,
            protection_flags=get_protection_flags(self.config),
            extra=extra,
        )


def build_guard(config: Config) -> LoginGuard:
    store = create_store(config)
    tracker = LockoutTracker(store, config.max_failures, config.lockout_duration_s)
    return LoginGuard(tracker, DbAccountResolver(), DbVerifier(config), config)
