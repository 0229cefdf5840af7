# app.py — StudySync API
# - Append-only study outcome log per user
# - Aggregate stats: counts, current streak (recent window), best streak (full history)
# - Bearer tokens issued by /api/auth/login and held in memory

import hashlib
import hmac
import json
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

import db
from engines.aggregation import AggregationEngine
from env_validation import get_env_int
from schemas import AnswerAck, AnswerSubmission, DailyStat, LoginBody, RegisterBody, StudyStats, Word

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info("Study database ready at %s", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="StudySync", version="1.0.0", lifespan=_lifespan)

TOKENS = {}

_PROTECTED_PREFIXES = ("/api/study", "/api/words", "/api/auth/verify", "/api/auth/me")

AGGREGATOR = AggregationEngine(window=get_env_int("STUDYSYNC_RECENT_WINDOW", 100))


def _normalize_path(path: str) -> str:
    if not path or path == "/":
        return "/"
    return path.rstrip("/")


def _is_protected(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in _PROTECTED_PREFIXES)


def _extract_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    candidate = header_value.strip()
    if not candidate:
        return None
    if " " in candidate:
        prefix, token = candidate.split(" ", 1)
        if prefix.lower() != "bearer":
            return None
        candidate = token.strip()
    return candidate or None


def _authenticate_request(request: Request) -> Optional[str]:
    header_token = _extract_token(request.headers.get("authorization"))
    if header_token and header_token in TOKENS:
        return TOKENS[header_token]
    return None


@app.middleware("http")
async def _enforce_token(request: Request, call_next):
    normalized_path = _normalize_path(request.url.path)
    if _is_protected(normalized_path):
        user_id = _authenticate_request(request)
        if not user_id:
            return Response(
                status_code=401,
                content=json.dumps({"detail": "missing or invalid token"}),
                media_type="application/json",
            )
        request.state.user_id = user_id
    return await call_next(request)


_PBKDF2_ITERATIONS = 150_000
_PBKDF2_DIGEST = "sha256"


# ---------- Helpers ----------
def _generate_salt() -> str:
    return secrets.token_bytes(16).hex()


def _pbkdf2_hash(password: str, salt_hex: str) -> str:
    try:
        salt_bytes = bytes.fromhex(salt_hex)
    except ValueError:
        raise ValueError("Invalid salt for password hashing") from None
    return hashlib.pbkdf2_hmac(
        _PBKDF2_DIGEST,
        password.encode("utf-8"),
        salt_bytes,
        _PBKDF2_ITERATIONS,
    ).hex()


def _hash_password(password: str) -> tuple[str, str]:
    salt_hex = _generate_salt()
    return _pbkdf2_hash(password, salt_hex), salt_hex


def _verify_password(password: str, stored_hash: str, stored_salt: Optional[str]) -> bool:
    if not stored_salt:
        return False
    try:
        derived = _pbkdf2_hash(password, stored_salt)
    except ValueError:
        return False
    return hmac.compare_digest(stored_hash or "", derived)


def issue_token(user_id: str) -> str:
    token = secrets.token_urlsafe(24)
    TOKENS[token] = user_id
    return token


@app.get("/api/health")
def health():
    return {"status": "ok"}


# ---------- Auth ----------
@app.post("/api/auth/register")
def auth_register(body: RegisterBody):
    if db.get_user_auth(body.user_id):
        raise HTTPException(status_code=400, detail="user_id exists")
    pw_hash, pw_salt = _hash_password(body.password)
    db.create_user(body.user_id, pw_hash, pw_salt)
    return {"ok": True}

@app.post("/api/auth/login")
def auth_login(body: LoginBody):
    row = db.get_user_auth(body.user_id)
    if not row:
        raise HTTPException(status_code=401, detail="invalid credentials")
    if not _verify_password(body.password, row["pw_hash"], row["pw_salt"]):
        raise HTTPException(status_code=401, detail="invalid credentials")
    return {"token": issue_token(body.user_id), "user_id": body.user_id}


@app.get("/api/auth/verify")
def auth_verify(request: Request):
    return {"user_id": request.state.user_id}


@app.get("/api/auth/me")
def auth_me(request: Request):
    profile = db.get_user_profile(request.state.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="user not found")
    return {"user": profile}


# ---------- Words ----------
@app.get("/api/words", response_model=list[Word])
def words(
    level: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    return db.list_words(level, limit=limit, offset=offset)


@app.get("/api/words/stats/levels")
def word_level_stats():
    return db.word_level_counts()


@app.get("/api/words/{word_id}", response_model=Word)
def word_detail(word_id: int):
    word = db.get_word(word_id)
    if not word:
        raise HTTPException(status_code=404, detail="word not found")
    return word


# ---------- Study ----------
@app.post("/api/study/answer", response_model=AnswerAck)
def study_answer(body: AnswerSubmission, request: Request):
    user_id = request.state.user_id
    if not db.word_exists(body.word_id):
        raise HTTPException(status_code=404, detail="word not found")

    try:
        row_id = db.append_outcome(
            user_id,
            body.word_id,
            body.is_correct,
            timestamp=body.timestamp,
            submission_id=body.submission_id,
        )
    except Exception as exc:
        logger.error("Failed to record answer for %s: %s", user_id, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="failed to record answer")

    if row_id is None:
        logger.info("Duplicate submission %s from %s acknowledged", body.submission_id, user_id)
        return {"message": "answer already recorded", "duplicate": True}
    return {"message": "answer recorded", "duplicate": False}


@app.get("/api/study/stats", response_model=StudyStats)
def study_stats(request: Request):
    user_id = request.state.user_id
    try:
        snapshot = AGGREGATOR.snapshot(user_id)
    except Exception as exc:
        logger.error("Failed to aggregate stats for %s: %s", user_id, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="failed to load study stats")
    return snapshot.to_payload()


@app.get("/api/study/stats/daily", response_model=list[DailyStat])
def study_stats_daily(request: Request, days: int = Query(default=7, ge=1, le=365)):
    """Per-day counts for the trailing window, oldest day first."""
    return db.daily_outcome_counts(request.state.user_id, days)


@app.get("/api/study/history")
def study_history(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    return db.list_history(request.state.user_id, limit=limit, offset=offset)


@app.get("/api/study/difficult-words")
def study_difficult_words(request: Request, limit: int = Query(default=20, ge=1, le=100)):
    return db.list_difficult_words(request.state.user_id, limit=limit)
