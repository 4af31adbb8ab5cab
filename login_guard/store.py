from contextlib import contextmanager
import logging
import threading
from typing import Dict, Iterator

from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from login_guard.config import Config
from login_guard.errors import StoreUnavailable
from login_guard.models import AccountAttemptRecord, AttemptRecordModel, Base

logger = logging.getLogger(__name__)


class _KeyLock:
    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class AttemptStore:
    def __init__(self, timeout_s: float = 2.0):
        self.timeout_s = timeout_s
        # only keys with a transaction in flight hold an entry
        self._locks: Dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
        try:
            if not entry.lock.acquire(timeout=self.timeout_s):
                raise StoreUnavailable(f"timed out waiting for attempt record {key!r}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def transaction(self, account_key: str, now: float):
        raise NotImplementedError

    def peek(self, account_key: str, now: float) -> AccountAttemptRecord | None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryAttemptStore(AttemptStore):
    def __init__(self, timeout_s: float = 2.0):
        super().__init__(timeout_s)
        self.records: Dict[str, AccountAttemptRecord] = {}

    @contextmanager
    def transaction(self, account_key: str, now: float) -> Iterator[AccountAttemptRecord]:
        with self._locked(account_key):
            current = self.records.get(account_key)
            record = AccountAttemptRecord(
                account_key=account_key,
                failure_count=current.failure_count if current else 0,
                locked_until=current.locked_until if current else None,
            )
            record.expire(now)
            yield record
            if record.is_empty(now):
                self.records.pop(account_key, None)
            else:
                self.records[account_key] = record

    def peek(self, account_key: str, now: float) -> AccountAttemptRecord | None:
        current = self.records.get(account_key)
        if current is None:
            return None
        snapshot = AccountAttemptRecord(account_key, current.failure_count, current.locked_until)
        snapshot.expire(now)
        return None if snapshot.is_empty(now) else snapshot

    def clear(self) -> None:
        self.records.clear()


def _begin_immediate(engine) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock before the read instead
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SqlAttemptStore(AttemptStore):
    """Attempt records kept in the ``login_attempts`` table."""

    def __init__(self, url: str = "sqlite:///./login_guard.db", timeout_s: float = 2.0):
        super().__init__(timeout_s)
        self.url = url
        if url.startswith("sqlite"):
            self.engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": timeout_s})
            _begin_immediate(self.engine)
        else:
            self.engine = create_engine(url, pool_timeout=timeout_s, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        try:
            Base.metadata.create_all(bind=self.engine, tables=[AttemptRecordModel.__table__])
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"cannot initialise attempt store at {url}") from exc

    @contextmanager
    def get_session(self):
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self, account_key: str, now: float) -> Iterator[AccountAttemptRecord]:
        with self._locked(account_key):
            try:
                with self.get_session() as session:
                    stmt = (
                        select(AttemptRecordModel)
                        .where(AttemptRecordModel.account_key == account_key)
                        .with_for_update()
                    )
                    row = session.execute(stmt).scalar_one_or_none()
                    record = AccountAttemptRecord(
                        account_key=account_key,
                        failure_count=row.failure_count if row else 0,
                        locked_until=row.locked_until if row else None,
                    )
                    record.expire(now)
                    yield record
                    if record.is_empty(now):
                        if row is not None:
                            session.delete(row)
                    elif row is None:
                        session.add(AttemptRecordModel(
                            account_key=account_key,
                            failure_count=record.failure_count,
                            locked_until=record.locked_until,
                        ))
                    else:
                        row.failure_count = record.failure_count
                        row.locked_until = record.locked_until
            except SQLAlchemyError as exc:
                logger.error("attempt store error for %s: %s", account_key, exc)
                raise StoreUnavailable(f"attempt store unavailable: {exc}") from exc

    def peek(self, account_key: str, now: float) -> AccountAttemptRecord | None:
        try:
            with self.get_session() as session:
                row = session.get(AttemptRecordModel, account_key)
                if row is None:
                    return None
                snapshot = AccountAttemptRecord(account_key, row.failure_count, row.locked_until)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"attempt store unavailable: {exc}") from exc
        snapshot.expire(now)
        return None if snapshot.is_empty(now) else snapshot

    def clear(self) -> None:
        with self.get_session() as session:
            session.query(AttemptRecordModel).delete()

    def dispose(self) -> None:
        self.engine.dispose()


def create_store(config: Config) -> AttemptStore:
    if config.store_backend == "sql":
        return SqlAttemptStore(config.store_url, config.store_timeout_s)
    return MemoryAttemptStore(config.store_timeout_s)
