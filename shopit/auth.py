"""
Signup and login on top of bcrypt password hashing and JWT issuance.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import bcrypt
import jwt

from shopit.errors import AuthError, NotFoundError, ValidationError
from shopit.users import UserRecord, UserRepository

logger = logging.getLogger(__name__)

ALG = "HS256"
# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class AuthService:
    users: UserRepository
    jwt_secret: str
    jwt_expires_seconds: Optional[int] = None
    bcrypt_rounds: int = 12
    cart_size: int = 300

    def issue_token(self, user_id: str) -> str:
        claims: dict = {"id": user_id}
        if self.jwt_expires_seconds:
            now = int(time.time())
            claims["iat"] = now
            claims["exp"] = now + self.jwt_expires_seconds
        return jwt.encode(claims, self.jwt_secret, algorithm=ALG)

    def signup(self, name: str, email: str, password: str) -> str:
        email = normalize_email(email)
        if not name or not email or not password:
            raise ValidationError("Name, email and password are required.")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes."
            )
        if self.users.find_by_email(email):
            raise AuthError("User already exists")

        user = self.users.create(
            UserRecord(
                name=name,
                email=email,
                password=hash_password(password, self.bcrypt_rounds),
                cart_data=[0] * self.cart_size,
            )
        )
        logger.info("Created user %s", user.id)
        return self.issue_token(user.id)

    def login(self, email: str, password: str) -> str:
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required.")
        user = self.users.find_by_email(email)
        if not user:
            raise NotFoundError("User does not exist")
        if not verify_password(password, user.password):
            raise AuthError("Incorrect password")
        return self.issue_token(user.id)
