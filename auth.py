import hashlib
import hmac
import os
import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import EmailStr, Field
from pymongo.errors import DuplicateKeyError

from database import collection, create_document, find_by_id, now, serialize_doc
from errors import InvalidArgument, NotAuthenticated, Unauthorized
from schemas import Address, ApiModel, Role

logger = structlog.get_logger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "168"))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

router = APIRouter(prefix="/api/auth", tags=["auth"])
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return hmac.new(SECRET_KEY.encode(), password.encode(), hashlib.sha256).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password), password_hash)


def _sign(payload: str) -> str:
    return hmac.new(SECRET_KEY.encode(), payload.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: str, ttl_hours: int = None) -> str:
    """Bearer token of the form `<user id>.<expiry epoch>.<signature>`."""
    expires = int(time.time()) + (ttl_hours if ttl_hours is not None else TOKEN_TTL_HOURS) * 3600
    payload = f"{user_id}.{expires}"
    return f"{payload}.{_sign(payload)}"


def decode_token(token: str) -> str:
    """Return the user id carried by a valid, unexpired token."""
    parts = token.split(".")
    if len(parts) != 3:
        raise NotAuthenticated("Not authorized, token failed")
    user_id, expires, signature = parts
    if not hmac.compare_digest(_sign(f"{user_id}.{expires}"), signature):
        raise NotAuthenticated("Not authorized, token failed")
    if not expires.isdigit() or int(expires) < time.time():
        raise NotAuthenticated("Not authorized, token expired")
    return user_id


# Dependencies

def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if credentials is None:
        raise NotAuthenticated("Not authorized, no token")
    user_id = decode_token(credentials.credentials)
    user = find_by_id("user", user_id)
    if not user:
        raise NotAuthenticated("Not authorized, user not found")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != Role.ADMIN.value:
        logger.warning("Admin route refused", user_id=str(user["_id"]))
        raise Unauthorized("Not authorized as an admin")
    return user


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value


# Schemas

class RegisterRequest(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    address: Optional[Address] = None


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class UserPublic(ApiModel):
    id: str
    name: str
    email: EmailStr
    role: Role
    address: Optional[Address] = None


class AuthResponse(ApiModel):
    success: bool = True
    token: str
    user: UserPublic


class MeResponse(ApiModel):
    success: bool = True
    user: UserPublic


def public_user(user: dict) -> dict:
    doc = serialize_doc(user)
    doc.pop("password_hash", None)
    return doc


# Routes

@router.post("/register", status_code=201, response_model=AuthResponse)
def register(payload: RegisterRequest):
    email = str(payload.email).lower()
    users = collection("user")
    if users.find_one({"email": email}):
        raise InvalidArgument("User already exists")
    try:
        uid = create_document("user", {
            "name": payload.name,
            "email": email,
            "password_hash": hash_password(payload.password),
            "role": Role.USER.value,
            "address": payload.address.model_dump() if payload.address else None,
        })
    except DuplicateKeyError:
        raise InvalidArgument("User already exists")
    logger.info("User registered", user_id=uid)
    return {"token": create_token(uid), "user": public_user(find_by_id("user", uid))}


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    user = collection("user").find_one({"email": str(payload.email).lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("Login failed", email=str(payload.email))
        raise NotAuthenticated("Invalid email or password")
    return {"token": create_token(str(user["_id"])), "user": public_user(user)}


@router.get("/me", response_model=MeResponse)
def me(user: dict = Depends(get_current_user)):
    return {"user": public_user(user)}


def seed_admin() -> None:
    """Make sure the account named by ADMIN_EMAIL exists with the admin role."""
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return
    email = ADMIN_EMAIL.lower()
    users = collection("user")
    if users.find_one({"email": email}):
        users.update_one(
            {"email": email},
            {"$set": {"role": Role.ADMIN.value, "password_hash": hash_password(ADMIN_PASSWORD), "updated_at": now()}},
        )
        return
    create_document("user", {
        "name": "Admin",
        "email": email,
        "password_hash": hash_password(ADMIN_PASSWORD),
        "role": Role.ADMIN.value,
    })
    logger.info("Admin account created", email=email)
