from login_guard.models import Decision, RejectReason


class LoginGuardError(Exception):
    pass


class StoreUnavailable(LoginGuardError):
    """The attempt store could not be reached or did not answer in time."""


class AuthenticationRejected(LoginGuardError):
    reason: RejectReason

    def __init__(self, public_message: str | None, retry_after: int | None = None):
        super().__init__(public_message or "")
        self.public_message = public_message
        self.retry_after = retry_after


class TooManyAttempts(AuthenticationRejected):
    reason = RejectReason.TOO_MANY_ATTEMPTS


class InvalidCredential(AuthenticationRejected):
    reason = RejectReason.INVALID_CREDENTIAL


def error_for(decision: Decision, public_message: str | None) -> AuthenticationRejected:
    if decision.allowed:
        raise ValueError("decision is not a rejection")
    if decision.reason is RejectReason.TOO_MANY_ATTEMPTS:
        return TooManyAttempts(public_message, retry_after=decision.retry_after)
    return InvalidCredential(public_message)
