"""Account storage, password hashing and JWT issuance.

The user store is in-process and exists so the credential endpoints have real
accounts to authenticate against; it is not a persistence layer.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import jwt

from app.core.errors import AuthenticationAppError, ConflictAppError, NotFoundAppError
from app.core.logging import hash_identifier
from app.schemas.auth import RegisterRequest

logger = logging.getLogger(__name__)

_PBKDF2_ALGORITHM = "pbkdf2_sha256"
_PBKDF2_ITERATIONS = 260_000
_JWT_ALGORITHM = "HS256"


def hash_password(password: str, *, iterations: int = _PBKDF2_ITERATIONS) -> str:
    """Hash a password with PBKDF2-HMAC-SHA256 and a random salt.

    Returns:
        Encoded string ``pbkdf2_sha256$<iterations>$<salt_hex>$<hash_hex>``.
    """

    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return f"{_PBKDF2_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against an encoded hash in constant time."""

    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
        if algorithm != _PBKDF2_ALGORITHM:
            return False
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode(), bytes.fromhex(salt_hex), int(iterations)
        )
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


@dataclass(frozen=True)
class User:
    id: int
    username: str
    email: str
    full_name: str
    password_hash: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Validated access token contents."""

    user_id: int
    username: str
    expires_at: datetime


class UserStore:
    """Thread-safe in-memory user registry with unique usernames and emails."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: dict[int, User] = {}
        self._by_username: dict[str, int] = {}
        self._by_email: dict[str, int] = {}
        self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def create(self, request: RegisterRequest) -> User:
        """Create a user, hashing the password.

        Raises:
            ConflictAppError: If the username or email is already registered.
        """

        password_hash = hash_password(request.password)
        email_key = request.email.lower()
        now = datetime.now(timezone.utc)

        with self._lock:
            if request.username in self._by_username:
                raise ConflictAppError(code="username_taken", message="Username already exists")
            if email_key in self._by_email:
                raise ConflictAppError(code="email_taken", message="Email already exists")

            user = User(
                id=self._next_id,
                username=request.username,
                email=request.email,
                full_name=request.full_name,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._users[user.id] = user
            self._by_username[user.username] = user.id
            self._by_email[email_key] = user.id
            return user

    def get_by_id(self, user_id: int) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def get_by_username(self, username: str) -> User | None:
        with self._lock:
            user_id = self._by_username.get(username)
            return self._users.get(user_id) if user_id is not None else None

    def update_profile(self, user_id: int, *, full_name: str, email: str) -> User:
        """Update name and email of an existing user.

        Raises:
            NotFoundAppError: If the user does not exist.
            ConflictAppError: If the email belongs to another user.
        """

        email_key = email.lower()
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundAppError(code="user_not_found", message="User not found")

            owner = self._by_email.get(email_key)
            if owner is not None and owner != user_id:
                raise ConflictAppError(code="email_taken", message="Email already exists")

            self._by_email.pop(user.email.lower(), None)
            updated = replace(
                user,
                full_name=full_name,
                email=email,
                updated_at=datetime.now(timezone.utc),
            )
            self._users[user_id] = updated
            self._by_email[email_key] = user_id
            return updated

    def set_password_hash(self, user_id: int, password_hash: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundAppError(code="user_not_found", message="User not found")
            updated = replace(
                user,
                password_hash=password_hash,
                updated_at=datetime.now(timezone.utc),
            )
            self._users[user_id] = updated
            return updated


class TokenManager:
    """Issue and validate HS256 access tokens."""

    def __init__(self, *, secret: str, expiry_hours: int, issuer: str) -> None:
        if not secret:
            raise ValueError("secret must be a non-empty string")
        self._secret = secret
        self._expiry = timedelta(hours=expiry_hours)
        self._issuer = issuer

    def generate_token(self, user_id: int, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "username": username,
            "sub": username,
            "iss": self._issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self._expiry,
        }
        return jwt.encode(payload, self._secret, algorithm=_JWT_ALGORITHM)

    def validate_token(self, token: str) -> TokenClaims:
        """Decode and verify a token.

        Raises:
            AuthenticationAppError: If the token is expired, malformed, signed
                with another key/algorithm or missing required claims.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_JWT_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "user_id"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationAppError(
                code="token_expired",
                message="Invalid or expired token",
            ) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationAppError(
                code="invalid_token",
                message="Invalid or expired token",
            ) from exc

        user_id = payload.get("user_id")
        if not isinstance(user_id, int):
            raise AuthenticationAppError(code="invalid_token", message="Invalid or expired token")

        return TokenClaims(
            user_id=user_id,
            username=str(payload.get("username", "")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


class AuthService:
    """Registration and login on top of the user store and token manager."""

    def __init__(self, *, users: UserStore, tokens: TokenManager) -> None:
        self._users = users
        self._tokens = tokens

    def register(self, request: RegisterRequest) -> tuple[User, str]:
        user = self._users.create(request)
        logger.info(
            "auth.registered",
            extra={"user_id": user.id, "username_hash": hash_identifier(user.username)},
        )
        return user, self._tokens.generate_token(user.id, user.username)

    def login(self, username: str, password: str) -> tuple[User, str]:
        """Authenticate by username and password.

        Raises:
            AuthenticationAppError: For unknown users and wrong passwords alike.
        """

        user = self._users.get_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(
                "auth.login_failed",
                extra={
                    "username_hash": hash_identifier(username),
                    "reason": "unknown_user" if user is None else "bad_password",
                },
            )
            raise AuthenticationAppError(
                code="invalid_credentials",
                message="Invalid username or password",
            )

        logger.info("auth.login_succeeded", extra={"user_id": user.id})
        return user, self._tokens.generate_token(user.id, user.username)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> User:
        """Replace the password after re-checking the current one.

        Raises:
            NotFoundAppError: If the user no longer exists.
            AuthenticationAppError: If ``current_password`` is wrong.
        """

        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundAppError(code="user_not_found", message="User not found")
        if not verify_password(current_password, user.password_hash):
            logger.warning("auth.password_change_rejected", extra={"user_id": user_id})
            raise AuthenticationAppError(
                code="invalid_current_password",
                message="Current password is incorrect",
            )

        updated = self._users.set_password_hash(user_id, hash_password(new_password))
        logger.info("auth.password_changed", extra={"user_id": user_id})
        return updated
