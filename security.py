"""
Session tokens and the per-request auth gate.

Tokens are HS256 JWTs. Every issued token is also recorded in the user's
`tokens` list; a token only authenticates while it is still in that list,
so clearing the list revokes every session of the user at once.
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Optional

from bson.errors import InvalidId
from fastapi import Depends, Request, Response
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    COOKIE_SECURE,
    MAX_ACTIVE_TOKENS,
    SECRET_KEY,
    TOKEN_COOKIE,
    TOKEN_REFRESH_MINUTES,
)
from database import get_db, serialize_doc, to_object_id, utcnow
from errors import NotAuthenticated, NotFound, PermissionDenied

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

REFRESH_HEADER = "X-Refreshed-Token"


# Utilities

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": user_id, "iat": now, "exp": expire, "jti": uuid.uuid4().hex}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise NotAuthenticated("Authentication token expired")
    except JWTError:
        raise NotAuthenticated("Invalid authentication token")


def issue_token(db: Database, user: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token for `user`, keep only the newest MAX_ACTIVE_TOKENS and stamp last_login.

    The push is a single atomic update, so two concurrent issues both land
    in the list instead of overwriting each other.
    """
    token = create_access_token(str(user["_id"]), expires_delta)
    now = utcnow()
    result = db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$push": {"tokens": {"$each": [{"token": token, "created_at": now}], "$slice": -MAX_ACTIVE_TOKENS}},
            "$set": {"last_login": now},
        },
    )
    if result.matched_count == 0:
        raise NotFound("User not found")
    return token


def revoke_token(db: Database, user_id, token: str) -> None:
    db["user"].update_one({"_id": user_id}, {"$pull": {"tokens": {"token": token}}})


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def apply_refreshed_token(request: Request, response: Response) -> None:
    """Hand a token rotated during this request to the client, whatever the outcome of the route."""
    token = getattr(request.state, "refreshed_token", None)
    if token:
        set_token_cookie(response, token)
        response.headers[REFRESH_HEADER] = token


def extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1]
    return None


def public_user(user: dict) -> dict:
    doc = {k: v for k, v in user.items() if k not in ("password_hash", "tokens", "cart_version")}
    return serialize_doc(doc)


# Auth gate

def authenticate(request: Request, db: Database, role: Optional[str] = None) -> dict:
    token = extract_token(request)
    if not token:
        raise NotAuthenticated("Authentication required")

    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise NotAuthenticated("Invalid authentication token")
    try:
        oid = to_object_id(user_id)
    except InvalidId:
        raise NotAuthenticated("Invalid authentication token")

    user = db["user"].find_one({"_id": oid, "tokens.token": token})
    if not user:
        logger.debug("Rejected token for user %s: not in active token list", user_id)
        raise NotAuthenticated("Invalid token or user not found")
    if role is not None and user.get("role") != role:
        raise PermissionDenied(f"{role.replace('-', ' ').title()} privileges required")
    if not user.get("is_active", True):
        raise PermissionDenied("User is inactive")

    # sliding expiration; the replacement is delivered by apply_refreshed_token
    if payload["exp"] - time.time() < TOKEN_REFRESH_MINUTES * 60:
        revoke_token(db, user["_id"], token)
        token = issue_token(db, user)
        request.state.refreshed_token = token
        logger.info("Rotated session token for user %s", user_id)

    request.state.user = user
    request.state.token = token
    if role == "admin":
        request.state.admin = user
    elif role == "super-admin":
        request.state.super_admin = user
    return user


def require_user(request: Request, db: Database = Depends(get_db)) -> dict:
    return authenticate(request, db)


def require_admin(request: Request, db: Database = Depends(get_db)) -> dict:
    return authenticate(request, db, role="admin")


def require_super_admin(request: Request, db: Database = Depends(get_db)) -> dict:
    return authenticate(request, db, role="super-admin")


def optional_user(request: Request, response: Response, db: Database = Depends(get_db)) -> Optional[dict]:
    """Resolve the caller when a valid session exists; never rejects."""
    token = extract_token(request)
    if not token:
        return None
    try:
        payload = decode_token(token)
        user = db["user"].find_one({"_id": to_object_id(payload.get("sub")), "tokens.token": token})
    except (NotAuthenticated, InvalidId) as exc:
        logger.debug("Ignoring invalid session token: %s", exc)
        user = None
    if user is None:
        response.delete_cookie(TOKEN_COOKIE)
        return None
    request.state.user = user
    request.state.token = token
    return user
