from dataclasses import dataclass
from enum import Enum
import math

from pydantic import BaseModel, Field
from sqlalchemy import Column, Float, Integer, String
from sqlalchemy.orm import DeclarativeBase


class AuthResultKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    # pre-check, asked before any credential verification
    LOCKED_OUT = "locked_out"


class RejectReason(str, Enum):
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_CREDENTIAL = "invalid_credential"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: RejectReason | None = None
    retry_after: int | None = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: RejectReason, retry_after: int | None = None) -> "Decision":
        return cls(allowed=False, reason=reason, retry_after=retry_after)

    @property
    def rejected(self) -> bool:
        return not self.allowed

    @property
    def result(self) -> str:
        return "allowed" if self.allowed else self.reason.value


@dataclass
class AccountAttemptRecord:
    """Failed-attempt counter and lock expiry for a single account key."""

    account_key: str
    failure_count: int = 0
    locked_until: float | None = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and self.locked_until > now

    def remaining(self, now: float) -> int:
        if not self.is_locked(now):
            return 0
        return max(1, math.ceil(self.locked_until - now))

    def expire(self, now: float) -> None:
        if self.locked_until is not None and self.locked_until <= now:
            self.locked_until = None

    def is_empty(self, now: float) -> bool:
        return self.failure_count == 0 and not self.is_locked(now)

    def clear(self) -> None:
        self.failure_count = 0
        self.locked_until = None


class Base(DeclarativeBase):
    pass


class AttemptRecordModel(Base):
    __tablename__ = "login_attempts"

    account_key = Column(String, primary_key=True)
    failure_count = Column(Integer, nullable=False, default=0)
    locked_until = Column(Float, nullable=True)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True, nullable=True)
    password = Column(String, nullable=False)
    salt = Column(String, nullable=False)
    hash_mode = Column(String, nullable=False)


class User(BaseModel):
    id: int | None = None
    username: str
    email: str | None = None
    password: str
    salt: str
    hash_mode: str | None = Field(default=None)

    @classmethod
    def from_orm_model(cls, orm_user: UserModel) -> "User":
        return cls(
            id=orm_user.id,
            username=orm_user.username,
            email=orm_user.email,
            password=orm_user.password,
            salt=orm_user.salt,
            hash_mode=orm_user.hash_mode,
        )


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=6)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    hash_mode: str | None = Field(default=None, description="argon2id|bcrypt")


class RegisterResponse(BaseModel):
    result: str


class LoginRequest(BaseModel):
    identifier: str = Field(description="login name or email")
    password: str


class LoginResponse(BaseModel):
    result: str
