from functools import lru_cache

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from login_guard.config import Config, load_config


argon2_hasher = PasswordHasher(time_cost=1, memory_cost=65536, parallelism=1, hash_len=32)

HASH_MODES = {"argon2id", "bcrypt"}

_DUMMY_SALT = "0" * 32


def _apply_pepper(password: str, salt: str, pepper: str) -> bytes:
    return (salt + password + pepper).encode()


def hash_password(password: str, salt: str, pepper: str, mode: str) -> str:
    payload = _apply_pepper(password, salt, pepper)
    if mode == "bcrypt":
        return bcrypt.hashpw(payload, bcrypt.gensalt(rounds=12)).decode()
    if mode == "argon2id":
        return argon2_hasher.hash(payload)
    raise ValueError(f"Unsupported hash mode: {mode}")


def verify_password(password: str, salt: str, pepper: str, stored_hash: str, mode: str) -> bool:
    payload = _apply_pepper(password, salt, pepper)
    if mode == "bcrypt":
        return bcrypt.checkpw(payload, stored_hash.encode())
    if mode == "argon2id":
        try:
            return argon2_hasher.verify(stored_hash, payload)
        except (VerificationError, InvalidHashError):
            return False
    raise ValueError(f"Unsupported hash mode: {mode}")


@lru_cache(maxsize=None)
def dummy_hash(pepper: str, mode: str) -> str:
    return hash_password("login-guard-unknown-account", _DUMMY_SALT, pepper, mode)


def dummy_verify(password: str, pepper: str, mode: str) -> bool:
    """Spend the same hashing work as a real check; always False."""
    verify_password(password, _DUMMY_SALT, pepper, dummy_hash(pepper, mode), mode)
    return False


def get_pepper(config: Config | None = None) -> str:
    return (config or load_config()).pepper
