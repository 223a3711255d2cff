"""
AuthService - Accounts and Access Tokens

Registration, login, and the HS256 JWTs the mobile client sends as
`Authorization: Bearer <token>`.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email
from jose import JWTError, jwt
from passlib.context import CryptContext
from psycopg import errors as pg_errors

from habitrpg.config import (
    BCRYPT_ROUNDS,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_EXPIRATION_HOURS,
    JWT_ISSUER,
    get_jwt_secret,
)
from habitrpg.db import queries
from habitrpg.exceptions import AuthenticationError, ValidationError
from habitrpg.models import User, UserSummary
from habitrpg.observability.metrics import user_registrations_total
from habitrpg.services.profile_service import validate_username

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
EMAIL_TAKEN_MESSAGE = "An account with this email already exists"
USERNAME_TAKEN_MESSAGE = "This username is already taken"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unrecognized hash format in the row
        logger.warning("Stored password hash could not be parsed")
        return False


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issue a signed access token for user.

    Claims: userId, username, email, iss, aud, iat, exp
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=JWT_EXPIRATION_HOURS))
    claims = {
        "userId": user.id,
        "username": user.username,
        "email": user.email,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_user_id(token: str) -> int:
    """
    Verify token and return its userId claim.

    Raises:
        AuthenticationError: Bad signature, wrong issuer/audience, expired,
            or a userId that is not a positive integer
    """
    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid access token: {e}")

    user_id = payload.get("userId")
    if isinstance(user_id, str) and user_id.isdigit():
        user_id = int(user_id)
    if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
        raise AuthenticationError(f"Access token has invalid userId claim: {user_id!r}")

    return user_id


def normalize_email(email: str) -> str:
    """
    Validate email syntax and return it lower-cased.

    Raises:
        ValidationError: Not a valid email address
    """
    try:
        result = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError("Please provide a valid email address", field="email", value=email)
    return result.normalized.lower()


def validate_password(password: str) -> None:
    if len(password or "") < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
            field="password"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(f"Password cannot exceed {PASSWORD_MAX_LENGTH} characters", field="password")


class AuthService:
    """
    Service for registration and login.

    Returns (token, UserSummary) pairs; the API layer wraps them in the
    response envelope.
    """

    def __init__(self, db_connection):
        self.db = db_connection

    async def register(self, username: str, email: str, password: str) -> tuple[str, UserSummary]:
        """
        Create an account and sign the user in.

        Raises:
            ValidationError: Invalid fields, or email/username already in use
        """
        username = validate_username(username)
        email = normalize_email(email)
        validate_password(password)

        # bcrypt is CPU-bound; keep it off the event loop
        password_hash = await asyncio.to_thread(get_password_hash, password)

        try:
            async with self.db.transaction() as conn:
                if await queries.users.email_taken(conn, email):
                    raise ValidationError(EMAIL_TAKEN_MESSAGE, field="email", value=email)
                if await queries.users.username_taken(conn, username):
                    raise ValidationError(USERNAME_TAKEN_MESSAGE, field="username", value=username)

                user = await queries.users.create_user(conn, username, email, password_hash)

        except pg_errors.UniqueViolation as e:
            # Concurrent registration with the same email or username
            constraint = getattr(getattr(e, "diag", None), "constraint_name", None) or ""
            if "email" in constraint:
                raise ValidationError(EMAIL_TAKEN_MESSAGE, field="email", value=email)
            raise ValidationError(USERNAME_TAKEN_MESSAGE, field="username", value=username)

        user_registrations_total.inc()
        logger.info(f"Registered user {user.id} ({user.username})")

        return create_access_token(user), UserSummary.from_user(user)

    async def login(self, email: str, password: str) -> tuple[str, UserSummary]:
        """
        Raises:
            AuthenticationError: Unknown email or wrong password (same message for both)
        """
        async with self.db.connection() as conn:
            user = await queries.users.get_user_by_email(conn, (email or "").strip())

        valid = user is not None and await asyncio.to_thread(verify_password, password or "", user.password_hash)
        if not valid:
            raise AuthenticationError(f"Failed login for {email!r}", user_message=INVALID_CREDENTIALS_MESSAGE)

        logger.info(f"User {user.id} logged in")
        return create_access_token(user), UserSummary.from_user(user)
