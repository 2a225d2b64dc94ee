import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from jose import ExpiredSignatureError, JWTError, jwt

from config import Settings
from errors import TokenExpiredError, TokenInvalidError
from schemas import TokenPair

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _token_id() -> str:
    return uuid.uuid4().hex


class TokenService:
    """
    Signs and verifies the two JWT kinds.

    Access and refresh tokens carry the same {"id": user_id} payload but use
    different secrets and lifetimes, so one can never pass as the other.
    Every token also gets a unique `jti`, which keeps a rotated refresh token
    distinct from its predecessor even within the same second.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
        token_id: Callable[[], str] = _token_id,
    ):
        self.access_secret = settings.jwt_access_secret
        self.refresh_secret = settings.jwt_refresh_secret
        self.algorithm = settings.jwt_algorithm
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)
        self.clock = clock
        self.token_id = token_id

    def _sign(self, payload: Dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = self.clock()
        to_encode = dict(payload)
        to_encode.update({"iat": now, "exp": now + ttl, "jti": self.token_id()})
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def _verify(self, token: str, secret: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token expired") from e
        except JWTError as e:
            raise TokenInvalidError("Invalid token") from e
        if not claims.get("id"):
            raise TokenInvalidError("Invalid token payload")
        return claims

    def sign_access_token(self, payload: Dict[str, Any]) -> str:
        return self._sign(payload, self.access_secret, self.access_ttl)

    def sign_refresh_token(self, payload: Dict[str, Any]) -> str:
        return self._sign(payload, self.refresh_secret, self.refresh_ttl)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.access_secret)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.refresh_secret)

    def issue_pair(self, user_id: str) -> TokenPair:
        payload = {"id": user_id}
        return TokenPair(
            access_token=self.sign_access_token(payload),
            refresh_token=self.sign_refresh_token(payload),
        )
