"""
Signup, login and request identity.

Tokens only carry the user id and email; the admin flag is always read from
the stored user record.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import DuplicateKeyError

import config
from database import get_db, parse_object_id, serialize_doc, create_document
from errors import (
    AdminRequiredError,
    AuthenticationError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
)
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_HASH_ITERATIONS = 100_000


def hash_password(password: str, salt: str = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _HASH_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash or "$" not in password_hash:
        return False
    salt, _ = password_hash.split("$", 1)
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def is_admin_email(email: str) -> bool:
    return email.lower() in config.ADMIN_EMAILS


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "is_admin": bool(user.get("is_admin", False)),
    }


def _session(user: dict) -> dict:
    token = create_token({"id": user["id"], "email": user["email"]})
    return {"token": token, "user": public_user(user)}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def signup(db, name: str, email: str, password: str) -> dict:
    email = normalize_email(email)
    if db["user"].find_one({"email": email}):
        raise EmailAlreadyRegisteredError(email)
    user = UserSchema(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_admin=is_admin_email(email),
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise EmailAlreadyRegisteredError(email)
    logger.info("User signed up: %s (admin=%s)", user_id, user.is_admin)
    return _session({"id": user_id, "name": name, "email": email, "is_admin": user.is_admin})


def login(db, email: str, password: str) -> dict:
    email = normalize_email(email)
    user = db["user"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash")):
        raise InvalidCredentialsError()
    return _session(serialize_doc(user))


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
):
    if credentials is None:
        raise AuthenticationError()
    payload = decode_token(credentials.credentials)
    user_id = parse_object_id(payload.get("id"))
    if user_id is None:
        raise AuthenticationError("Invalid token payload")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise AuthenticationError("User not found")
    user = serialize_doc(user)
    user.pop("password_hash", None)
    return user


def require_admin(user=Depends(get_current_user)):
    if user.get("is_admin") is not True:
        raise AdminRequiredError()
    return user
