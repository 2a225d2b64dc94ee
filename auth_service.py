"""
Authentication use-cases: register, login, refresh, logout, profile.

Refresh token lifecycle: a login stores exactly one refresh token on the
user (replacing any earlier one), a refresh rotates it, and logout clears
it. Only a token equal to the stored value can be exchanged.
"""
import logging
import re
from typing import Optional

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from errors import DuplicateEntryError, PersistenceError, SchemaValidationError, TokenExpiredError, TokenInvalidError
from repository import UserRepository
from responses import ServiceResponse
from tokens import TokenService

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password"


def make_password_context(rounds: int = 12) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


class AuthService:
    def __init__(self, users: UserRepository, tokens: TokenService, pwd_context: Optional[CryptContext] = None):
        self.users = users
        self.tokens = tokens
        self.pwd_context = pwd_context or make_password_context()

    # bcrypt is CPU bound; keep it off the event loop
    async def hash_password(self, password: str) -> str:
        return await run_in_threadpool(self.pwd_context.hash, password)

    async def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return await run_in_threadpool(self.pwd_context.verify, plain_password, hashed_password)

    async def register(self, username: str, email: str, password: str) -> ServiceResponse:
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            return ServiceResponse.bad_request("Invalid email format")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return ServiceResponse.bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            # Fast path for a friendly message; the unique index is the real guard
            if await self.users.exists_by_email(email):
                return ServiceResponse.conflict("User already exists with this email")

            user = await self.users.create({
                "username": (username or "").strip(),
                "email": email,
                "password_hash": await self.hash_password(password),
                "role": "user",
                "is_active": True,
            })
        except DuplicateEntryError:
            return ServiceResponse.conflict("User already exists with this email")
        except SchemaValidationError as e:
            return ServiceResponse.bad_request(e.message)
        except PersistenceError:
            logger.exception("Registration failed")
            return ServiceResponse.internal_server_error("Registration failed")

        logger.info("Registered user %s", user.id)
        return ServiceResponse.created("User registered successfully", {
            "message": "Please login with your credentials",
        })

    async def login(self, email: str, password: str) -> ServiceResponse:
        if not email or not password:
            return ServiceResponse.bad_request("Email and password are required")

        try:
            user = await self.users.find_by_email(email.strip().lower())
            if user is None:
                # Spend the same hashing time as a real check
                await run_in_threadpool(self.pwd_context.dummy_verify)
                return ServiceResponse.unauthorized(INVALID_CREDENTIALS)
            if not await self.verify_password(password, user.password_hash):
                return ServiceResponse.unauthorized(INVALID_CREDENTIALS)
            if not user.is_active:
                return ServiceResponse.forbidden("Account is deactivated")

            pair = self.tokens.issue_pair(user.id)
            # Overwrites any earlier token: one active session per user
            user = await self.users.store_refresh_token(user.id, pair.refresh_token, touch_login=True)
        except PersistenceError:
            logger.exception("Login failed")
            return ServiceResponse.internal_server_error("Login failed")

        if user is None:
            return ServiceResponse.unauthorized(INVALID_CREDENTIALS)

        logger.info("User %s logged in", user.id)
        return ServiceResponse.ok("Login successful", {
            "accessToken": pair.access_token,
            "refreshToken": pair.refresh_token,
            "user": user.to_public(),
        })

    async def refresh_access_token(self, old_refresh_token: str) -> ServiceResponse:
        if not old_refresh_token:
            return ServiceResponse.unauthorized("Refresh token not found")

        try:
            decoded = self.tokens.verify_refresh_token(old_refresh_token)
        except TokenExpiredError:
            return ServiceResponse.unauthorized("Refresh token expired")
        except TokenInvalidError:
            return ServiceResponse.unauthorized("Invalid refresh token")

        try:
            user = await self.users.find_by_refresh_token(old_refresh_token)
            if user is None:
                # Rotated away or revoked
                logger.warning("Refresh attempted with a token that is no longer stored (user %s)", decoded["id"])
                return ServiceResponse.unauthorized("Invalid refresh token")
            if user.id != decoded["id"]:
                return ServiceResponse.unauthorized("Token mismatch")
            if not user.is_active:
                await self.users.clear_refresh_token(user.id)
                return ServiceResponse.forbidden("Account is deactivated")

            pair = self.tokens.issue_pair(user.id)
            await self.users.store_refresh_token(user.id, pair.refresh_token)
        except PersistenceError:
            logger.exception("Token refresh failed")
            return ServiceResponse.internal_server_error("Token refresh failed")

        logger.info("Rotated refresh token for user %s", user.id)
        return ServiceResponse.ok("Token refreshed successfully", {
            "accessToken": pair.access_token,
            "refreshToken": pair.refresh_token,
        })

    async def logout(self, user_id: str) -> ServiceResponse:
        try:
            await self.users.clear_refresh_token(user_id)
        except PersistenceError:
            logger.exception("Logout failed")
            return ServiceResponse.internal_server_error("Logout failed")
        logger.info("Revoked refresh token for user %s", user_id)
        return ServiceResponse.ok("Logged out successfully", None)

    async def get_profile(self, user_id: str) -> ServiceResponse:
        try:
            user = await self.users.find_by_id(user_id)
        except PersistenceError:
            logger.exception("Profile lookup failed")
            return ServiceResponse.internal_server_error("Failed to retrieve profile")
        if user is None:
            return ServiceResponse.not_found("User not found")
        return ServiceResponse.ok("Profile retrieved successfully", {"user": user.to_public()})
