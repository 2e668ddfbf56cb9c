"""
Identity collaborators: one-time codes (email), phone verification (Twilio
Verify) and Google sign-in.

One-time codes live in the `otp` collection rather than process memory, so
every server instance sees the same codes. MongoDB's TTL monitor removes
expired rows eventually; reads check `expires_at` themselves because the
monitor only runs once a minute.
"""

import logging
import secrets
from datetime import timedelta
from typing import Dict, Optional
from urllib.parse import urlencode

import requests
from pymongo.database import Database

from config import (
    GOOGLE_CALLBACK_URL,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    OTP_EXPIRY_MINUTES,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_VERIFY_SERVICE_SID,
)
from database import as_utc, utcnow
from errors import UpstreamError

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10

TWILIO_VERIFY_URL = "https://verify.twilio.com/v2/Services/{sid}"
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


# One-time codes

def generate_code() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


def store_code(db: Database, key: str, code: Optional[str] = None, minutes: int = OTP_EXPIRY_MINUTES) -> str:
    """Save a code for `key`, replacing any previous one."""
    code = code or generate_code()
    db["otp"].update_one(
        {"key": key},
        {"$set": {"code": code, "expires_at": utcnow() + timedelta(minutes=minutes), "created_at": utcnow()}},
        upsert=True,
    )
    return code


def consume_code(db: Database, key: str, code: str) -> bool:
    """True when `code` matches the live code for `key`. A matching code is deleted."""
    record = db["otp"].find_one({"key": key})
    if record is None:
        return False
    if as_utc(record["expires_at"]) <= utcnow():
        db["otp"].delete_one({"_id": record["_id"]})
        return False
    if not secrets.compare_digest(str(record["code"]), str(code)):
        return False
    # delete on the exact code so a concurrent verify of the same code only wins once
    return db["otp"].delete_one({"_id": record["_id"], "code": record["code"]}).deleted_count == 1


def email_key(email: str) -> str:
    return f"email:{email.strip().lower()}"


def verified_key(channel: str, value: str) -> str:
    return f"{channel}-verified:{value.strip().lower()}"


def mark_verified(db: Database, channel: str, value: str) -> None:
    """Remember that `value` passed a code check; registration consumes the mark."""
    store_code(db, verified_key(channel, value), code="verified")


def consume_verified(db: Database, channel: str, value: str) -> bool:
    return consume_code(db, verified_key(channel, value), "verified")


# Twilio Verify

def _twilio_post(path: str, data: Dict[str, str]) -> dict:
    if not (TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_VERIFY_SERVICE_SID):
        logger.error("Twilio Verify is not configured")
        raise UpstreamError()
    url = TWILIO_VERIFY_URL.format(sid=TWILIO_VERIFY_SERVICE_SID) + path
    try:
        response = requests.post(url, data=data, auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN), timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Twilio Verify call %s failed: %s", path, exc)
        raise UpstreamError()
    return response.json()


def send_phone_code(phone_number: str) -> str:
    result = _twilio_post("/Verifications", {"To": phone_number, "Channel": "sms"})
    return result.get("status", "pending")


def check_phone_code(phone_number: str, code: str) -> bool:
    result = _twilio_post("/VerificationCheck", {"To": phone_number, "Code": code})
    return result.get("status") == "approved"


# Google OAuth

def google_authorization_url(state: Optional[str] = None) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID or "",
        "redirect_uri": GOOGLE_CALLBACK_URL,
        "response_type": "code",
        "scope": "openid email profile",
        "access_type": "online",
        "prompt": "select_account",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def google_profile(code: str) -> dict:
    """Exchange an authorization code for the caller's Google profile ({sub, email, name, ...})."""
    try:
        token_response = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_CALLBACK_URL,
                "grant_type": "authorization_code",
            },
            timeout=HTTP_TIMEOUT,
        )
        token_response.raise_for_status()
        access_token = token_response.json()["access_token"]
        profile_response = requests.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=HTTP_TIMEOUT,
        )
        profile_response.raise_for_status()
    except (requests.RequestException, KeyError) as exc:
        logger.error("Google sign-in failed: %s", exc)
        raise UpstreamError()
    return profile_response.json()
