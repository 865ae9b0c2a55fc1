"""
Accounts and request authentication.

Sign-in hands out an opaque token stored in the `session` collection; clients
send it back in the Authorization header.
"""

import secrets
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Header
from passlib.context import CryptContext
from pymongo.database import Database

from database import create_document, get_db, now_utc, to_object_id
from logger import get_logger
from schemas import ROLE_ADMIN, ForgotPasswordRequest, ProfileUpdate, RegisterRequest, User

logger = get_logger("auth")

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

REGISTER_FIELDS = [
    ("name", "Name is required"),
    ("email", "Email is required"),
    ("password", "Password is required"),
    ("phone", "Phone number is required"),
    ("address", "Address is required"),
    ("answer", "Answer is required"),
]
MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class EmailTaken(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k not in ("password_hash", "answer")}


def create_token(db: Database, user_id: ObjectId) -> str:
    token = secrets.token_urlsafe(32)
    db["session"].insert_one({"token": token, "user_id": user_id, "created_at": now_utc()})
    return token


def missing_register_field(payload: RegisterRequest) -> Optional[str]:
    for name, message in REGISTER_FIELDS:
        value = getattr(payload, name)
        if value is None or str(value).strip() == "":
            return message
    return None


class AccountService:
    def __init__(self, db: Database):
        self.db = db
        self.users = db["user"]

    def register(self, payload: RegisterRequest) -> dict:
        if self.users.find_one({"email": payload.email}):
            raise EmailTaken(payload.email)
        user_doc = User(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password),
            phone=payload.phone,
            address=payload.address,
            answer=payload.answer,
        )
        uid = create_document(self.db, "user", user_doc)
        logger.info("Registered user %s", uid)
        return self.users.find_one({"_id": to_object_id(uid)})

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.users.find_one({"email": email})

    def reset_password(self, payload: ForgotPasswordRequest) -> bool:
        user = self.users.find_one({"email": payload.email, "answer": payload.answer})
        if not user:
            return False
        self.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"password_hash": hash_password(payload.newPassword), "updated_at": now_utc()}},
        )
        return True

    def update_profile(self, user: dict, payload: ProfileUpdate) -> dict:
        changes = {
            "name": payload.name or user.get("name"),
            "phone": payload.phone or user.get("phone"),
            "address": payload.address or user.get("address"),
            "updated_at": now_utc(),
        }
        if payload.password:
            changes["password_hash"] = hash_password(payload.password)
        self.users.update_one({"_id": user["_id"]}, {"$set": changes})
        return self.users.find_one({"_id": user["_id"]})

    def list_users(self):
        return list(self.users.find({}, {"password_hash": 0, "answer": 0}))


def get_current_user(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)) -> dict:
    if not authorization:
        raise AuthError("Sign in required")
    token = authorization.removeprefix("Bearer ").strip()
    session = db["session"].find_one({"token": token})
    user = db["user"].find_one({"_id": session["user_id"]}) if session else None
    if not user:
        raise AuthError("Invalid or expired token")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != ROLE_ADMIN:
        raise AuthError("UnAuthorized Access")
    return user
