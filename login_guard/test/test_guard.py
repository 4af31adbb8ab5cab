import json
import os
import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
from login_guard.config import Config
from login_guard.errors import InvalidCredential, StoreUnavailable, TooManyAttempts, error_for
from login_guard.guard import LoginGuard
from login_guard.lockout_tracker import LockoutTracker
from login_guard.models import Decision, RejectReason
from login_guard.resolver import ResolvedAccount, tracking_key_for
from login_guard.store import MemoryAttemptStore


ALICE = ResolvedAccount(account_id=1, username="alice")


class FakeResolver:
    def __init__(self, accounts):
        self.accounts = accounts

    def resolve(self, identifier):
        return self.accounts.get(identifier)


class FakeVerifier:
    def __init__(self, password="secret"):
        self.password = password
        self.calls = []

    def __call__(self, account, password):
        self.calls.append((account, password))
        return password == self.password


class DownStore(MemoryAttemptStore):
    def transaction(self, account_key, now):
        raise StoreUnavailable("store down")


def make_guard(store=None, **config):
    config.setdefault("attempts_log_file", None)
    cfg = Config(**config)
    tracker = LockoutTracker(store or MemoryAttemptStore(), cfg.max_failures, cfg.lockout_duration_s)
    resolver = FakeResolver({"alice": ALICE, "alice@example.com": ALICE})
    verifier = FakeVerifier()
    return LoginGuard(tracker, resolver, verifier, cfg), verifier


class TestAuthenticate:

    def test_success(self):
        guard, verifier = make_guard()
        assert guard.authenticate("alice", "secret") == ALICE
        assert verifier.calls == [(ALICE, "secret")]

    def test_wrong_password(self):
        guard, _ = make_guard()
        with pytest.raises(InvalidCredential) as exc:
            guard.authenticate("alice", "nope")
        assert exc.value.public_message == "Invalid username or password"
        assert guard.tracker.failure_count(ALICE.tracking_key) == 1

    def test_unknown_identifier_is_never_tracked(self):
        guard, verifier = make_guard()
        for _ in range(10):
            with pytest.raises(InvalidCredential):
                guard.authenticate("mallory", "secret")
        assert guard.tracker.store.records == {}

    def test_unknown_identifier_still_runs_verifier(self):
        guard, verifier = make_guard()
        with pytest.raises(InvalidCredential):
            guard.authenticate("mallory", "secret")
        # the verifier answering True for an unresolved account does not let it through
        assert verifier.calls == [(None, "secret")]

    def test_same_message_for_every_failure(self):
        guard, _ = make_guard(max_failures=2)
        messages = []
        for identifier, password in [("ghost", "x"), ("alice", "x"), ("alice", "x"), ("alice", "secret")]:
            with pytest.raises((InvalidCredential, TooManyAttempts)) as exc:
                guard.authenticate(identifier, password)
            messages.append(str(exc.value))
        assert len(set(messages)) == 1

    def test_lockout_skips_credential_check(self):
        guard, verifier = make_guard(max_failures=3)
        for _ in range(2):
            with pytest.raises(InvalidCredential):
                guard.authenticate("alice", "nope")
        with pytest.raises(TooManyAttempts):
            guard.authenticate("alice", "nope")

        verifier.calls.clear()
        with pytest.raises(TooManyAttempts) as exc:
            guard.authenticate("alice", "secret")
        assert verifier.calls == []
        assert exc.value.retry_after > 0

    def test_login_name_and_email_share_counter(self):
        guard, _ = make_guard(max_failures=3)
        with pytest.raises(InvalidCredential):
            guard.authenticate("alice", "nope")
        with pytest.raises(InvalidCredential):
            guard.authenticate("alice@example.com", "nope")
        with pytest.raises(TooManyAttempts):
            guard.authenticate("alice", "nope")
        with pytest.raises(TooManyAttempts):
            guard.authenticate("alice@example.com", "secret")

    def test_unlocks_after_duration(self):
        guard, _ = make_guard(max_failures=1, lockout_duration_s=300)
        with patch('time.time') as mock_time:
            mock_time.return_value = 1000.0
            with pytest.raises(TooManyAttempts):
                guard.authenticate("alice", "nope")
            mock_time.return_value = 1299.0
            with pytest.raises(TooManyAttempts):
                guard.authenticate("alice", "secret")
            mock_time.return_value = 1300.0
            assert guard.authenticate("alice", "secret") == ALICE

    def test_lockout_disabled(self):
        guard, _ = make_guard(enable_lockout=False, max_failures=1)
        for _ in range(3):
            with pytest.raises(InvalidCredential):
                guard.authenticate("alice", "nope")
        assert guard.authenticate("alice", "secret") == ALICE
        assert guard.tracker.store.records == {}

    def test_writes_attempt_log(self, tmp_path):
        log_path = tmp_path / "logs" / "attempts.log"
        guard, _ = make_guard(attempts_log_file=str(log_path))
        guard.authenticate("alice", "secret")
        with pytest.raises(InvalidCredential):
            guard.authenticate("ghost", "secret")

        lines = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert [rec["result"] for rec in lines] == ["allowed", "invalid_credential"]
        assert [rec["reason"] for rec in lines] == [None, "invalid_credential"]
        assert lines[0]["account_key"] == "account:1"
        assert lines[0]["resolved"] is True
        assert lines[1]["account_key"] == "ident:ghost"
        assert lines[1]["resolved"] is False
        assert lines[1]["attempt_id"] > lines[0]["attempt_id"]


class TestHooks:

    def test_precheck_unknown(self):
        guard, _ = make_guard()
        assert guard.precheck("ghost") == (None, Decision.allow())

    def test_after_verification_override(self):
        guard, _ = make_guard(max_failures=1)
        decision = guard.after_verification("alice", ALICE, verified=False)
        assert decision.reason is RejectReason.TOO_MANY_ATTEMPTS
        # a later successful check cannot override an active lock
        assert guard.after_verification("alice", ALICE, verified=True).reason is RejectReason.TOO_MANY_ATTEMPTS

    def test_on_login_success_clears(self):
        guard, _ = make_guard(max_failures=3)
        guard.after_verification("alice", ALICE, verified=False)
        assert guard.on_login_success(ALICE) == Decision.allow()
        assert guard.tracker.failure_count(ALICE.tracking_key) == 0

    def test_filter_error_message(self):
        guard, _ = make_guard(generic_error_message="Login failed")
        assert guard.filter_error_message("Unknown email address") == "Login failed"

    def test_suppressed_error_message(self):
        guard, _ = make_guard(suppress_error_message=True)
        assert guard.filter_error_message("Unknown email address") is None
        with pytest.raises(InvalidCredential) as exc:
            guard.authenticate("alice", "nope")
        assert exc.value.public_message is None


class TestStoreFailurePolicy:

    def test_fail_closed_rejects_even_correct_password(self):
        guard, verifier = make_guard(store=DownStore(), fail_policy="closed")
        with pytest.raises(TooManyAttempts):
            guard.authenticate("alice", "secret")
        assert verifier.calls == []

    def test_fail_open_passes_credential_result_through(self):
        guard, _ = make_guard(store=DownStore(), fail_policy="open")
        assert guard.authenticate("alice", "secret") == ALICE
        with pytest.raises(InvalidCredential):
            guard.authenticate("alice", "nope")


class TestErrors:

    def test_error_for(self):
        err = error_for(Decision.reject(RejectReason.TOO_MANY_ATTEMPTS, retry_after=5), "msg")
        assert isinstance(err, TooManyAttempts)
        assert err.retry_after == 5
        assert isinstance(error_for(Decision.reject(RejectReason.INVALID_CREDENTIAL), "msg"), InvalidCredential)
        with pytest.raises(ValueError):
            error_for(Decision.allow(), "msg")


def test_tracking_key_for():
    assert tracking_key_for("Alice@Example.com ", ALICE) == "account:1"
    assert tracking_key_for(" Ghost@Example.com", None) == "ident:ghost@example.com"
