from dataclasses import dataclass, fields
import json
import os

ENV_PREFIX = "LOGIN_GUARD_"

STORE_BACKENDS = {"memory", "sql"}
FAIL_POLICIES = {"closed", "open"}
_NULLABLE = {"attempts_log_file"}


def _bool(env_val: str | None, default: bool) -> bool:
    if env_val is None:
        return default
    return env_val.lower() in {"1", "true", "yes", "on"}


@dataclass
class Config:
    db_url: str = "sqlite:///./login_guard.db"
    attempts_log_file: str | None = "attempts.log"
    pepper: str = "pepper"
    default_hash_mode: str = "argon2id"

    enable_lockout: bool = True
    max_failures: int = 3
    lockout_duration_s: int = 300

    store_backend: str = "memory"
    store_url: str = "sqlite:///./login_guard.db"
    store_timeout_s: float = 2.0
    # behaviour when the attempt store cannot be reached: "closed" rejects, "open" lets the credential result through
    fail_policy: str = "closed"

    generic_error_message: str = "Invalid username or password"
    suppress_error_message: bool = False

    log_level: str = "INFO"

    def validate(self) -> "Config":
        if self.max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        if self.lockout_duration_s <= 0:
            raise ValueError("lockout_duration_s must be positive")
        if self.store_timeout_s <= 0:
            raise ValueError("store_timeout_s must be positive")
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(f"Unsupported store backend: {self.store_backend}")
        if self.fail_policy not in FAIL_POLICIES:
            raise ValueError(f"Unsupported fail policy: {self.fail_policy}")
        return self


def _coerce(raw: str, current):
    if raw == "":
        return None
    if isinstance(current, bool):
        return _bool(raw, current)
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def _apply_env(cfg: Config, environ) -> None:
    for f in fields(cfg):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is None or (raw == "" and f.name not in _NULLABLE):
            continue
        setattr(cfg, f.name, _coerce(raw, getattr(cfg, f.name)))


def load_config(path: str | None = None, environ=None) -> Config:
    """Build a Config from defaults, an optional JSON file and LOGIN_GUARD_* env vars.

    Environment variables win over the file; unknown JSON keys are ignored.
    """
    cfg = Config()
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        for k, v in data.items():
            if hasattr(cfg, k):
                setattr(cfg, k, v)

    _apply_env(cfg, os.environ if environ is None else environ)
    return cfg.validate()


def get_protection_flags(cfg: Config) -> list[str]:
    flags = []
    if cfg.enable_lockout:
        flags.append("lockout")
    if cfg.generic_error_message or cfg.suppress_error_message:
        flags.append("generic_errors")
    return flags
