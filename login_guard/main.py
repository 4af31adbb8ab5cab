import logging

from fastapi import FastAPI, HTTPException, status

from login_guard import db
from login_guard.config import load_config
from login_guard.errors import AuthenticationRejected
from login_guard.guard import build_guard
from login_guard.models import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from login_guard.security import HASH_MODES

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


config = load_config("config.json")
configure_logging(config.log_level)

app = FastAPI(title="Login Guard")
guard = build_guard(config)


@app.on_event("startup")
def startup():
    db.init_db(config.db_url.replace("sqlite:///", "", 1))


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/register", response_model=RegisterResponse)
def register(req: RegisterRequest):
    if db.get_user(req.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")
    if req.email and db.get_user_by_email(req.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    hash_mode = req.hash_mode if req.hash_mode is not None else config.default_hash_mode
    if hash_mode not in HASH_MODES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported hash mode: {hash_mode}")
    db.create_user(req.username, req.password, hash_mode, email=req.email, pepper=config.pepper)
    return RegisterResponse(result="created")


@app.post("/login", response_model=LoginResponse)
def login(req: LoginRequest):
    try:
        guard.authenticate(req.identifier, req.password)
    except AuthenticationRejected as exc:
        # every rejection renders the same way, whatever the cause
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.public_message or "")
    return LoginResponse(result="success")
