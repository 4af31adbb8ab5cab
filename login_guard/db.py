from contextlib import contextmanager
import os
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from login_guard.models import User, UserModel, Base
from login_guard.security import hash_password, get_pepper, verify_password

db_path = "login_guard.db"
engine = None
SessionLocal = None

def init_db(path: str):
    global db_path, engine, SessionLocal
    db_path = path
    sqlite_url = f"sqlite:///{path}"

    engine = create_engine(sqlite_url, connect_args={"check_same_thread": False})
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine, tables=[UserModel.__table__])


@contextmanager
def get_session():
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    return email.strip().lower() or None

def create_user(username: str, password: str, hash_mode: str = "argon2id", email: str | None = None,
                pepper: str | None = None) -> User:
    salt = os.urandom(16).hex()
    pepper = pepper if pepper is not None else get_pepper()
    hashed_password = hash_password(password, salt, pepper, hash_mode)

    with get_session() as session:
        user_model = UserModel(
            username=username,
            email=normalize_email(email),
            password=hashed_password,
            salt=salt,
            hash_mode=hash_mode,
        )
        session.add(user_model)
        session.flush()
        return User.from_orm_model(user_model)

def get_user(username: str) -> User | None:
    with get_session() as session:
        stmt = select(UserModel).where(UserModel.username == username)
        user_model = session.execute(stmt).scalar_one_or_none()
        if user_model:
            return User.from_orm_model(user_model)
        return None

def get_user_by_email(email: str) -> User | None:
    email = normalize_email(email)
    if email is None:
        return None
    with get_session() as session:
        stmt = select(UserModel).where(func.lower(UserModel.email) == email)
        user_model = session.execute(stmt).scalar_one_or_none()
        if user_model:
            return User.from_orm_model(user_model)
        return None

def get_user_by_id(user_id: int) -> User | None:
    with get_session() as session:
        user_model = session.get(UserModel, user_id)
        if user_model:
            return User.from_orm_model(user_model)
        return None

def verify_credentials(account_id: int, password: str, pepper: str | None = None) -> bool:
    user = get_user_by_id(account_id)
    if user is None:
        return False
    pepper = pepper if pepper is not None else get_pepper()
    return verify_password(password, user.salt, pepper, user.password, user.hash_mode or "argon2id")
