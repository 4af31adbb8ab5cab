import json
import threading
from datetime import datetime, timezone
from pathlib import Path

_lock = threading.Lock()
_total_attempts = 0


def log_attempt(
    path: str | None,
    identifier: str,
    account_key: str,
    result: str,
    reason: str | None,
    latency_ms: float,
    protection_flags: list[str] | None = None,
    extra: dict | None = None,
) -> dict:
    # path=None skips the file write
    global _total_attempts
    with _lock:
        _total_attempts += 1
        attempt_id = _total_attempts

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "identifier": identifier,
            "account_key": account_key,
            "result": result,
            "reason": reason,
            "protection_flags": protection_flags or [],
            "latency_ms": round(latency_ms, 3),
            "attempt_id": attempt_id,
        }
        if extra:
            record.update(extra)

        if path:
            p = Path(path)
            p.parent.mkdir(parents=True, exist_ok=True)
            with p.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
    return record
