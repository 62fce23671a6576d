# blogdesk/UAA/utils.py
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from passlib.context import CryptContext
from jose import jwt, JWTError

from blogdesk.infrastructure.redis_client import redis_client

logger = structlog.get_logger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "change_me_now")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REVOKED_PREFIX = "blogdesk:revoked:"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class AccessToken:
    token: str
    jti: str
    expires_at: int

    @property
    def expires_in(self) -> int:
        return max(0, self.expires_at - _now_ts())


@dataclass(frozen=True)
class TokenClaims:
    operator_id: uuid.UUID
    jti: str
    expires_at: int


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError as e:
        # malformed stored hash
        logger.warning("password_verify_failed", error=str(e))
        return False


def assert_password_policy(password: str) -> None:
    if len(password) < 8:
        raise ValueError("password must be at least 8 characters")
    if not any(c.isdigit() for c in password):
        raise ValueError("password must include a digit")
    if not any(c.isalpha() for c in password):
        raise ValueError("password must include a letter")


def _now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def issue_access_token(operator_id: uuid.UUID, lifetime: Optional[timedelta] = None) -> AccessToken:
    jti = uuid.uuid4().hex
    issued = datetime.now(timezone.utc)
    expires_at = int((issued + (lifetime or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))).timestamp())
    claims: Dict[str, Any] = {
        "sub": str(operator_id),
        "jti": jti,
        "iat": int(issued.timestamp()),
        "exp": expires_at,
        "type": "access",
    }
    token = jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
    logger.debug("access_token_issued", operator_id=str(operator_id), jti=jti, exp=expires_at)
    return AccessToken(token=token, jti=jti, expires_at=expires_at)


def read_access_token(token: str) -> TokenClaims:
    """Decode and check an access token. Raises JWTError for anything unusable."""
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise
    if claims.get("type") != "access" or not claims.get("jti") or not claims.get("exp"):
        raise JWTError("not an access token")
    try:
        operator_id = uuid.UUID(str(claims.get("sub")))
    except ValueError as e:
        raise JWTError("malformed subject") from e
    return TokenClaims(operator_id=operator_id, jti=claims["jti"], expires_at=int(claims["exp"]))


async def revoke_jti(jti: str, expires_at: int) -> None:
    # the entry only has to outlive the token itself
    ttl = expires_at - _now_ts()
    if ttl <= 0:
        return
    await redis_client.set(f"{REVOKED_PREFIX}{jti}", "1", ex=ttl)
    logger.info("access_token_revoked", jti=jti, ttl=ttl)


async def is_jti_revoked(jti: str) -> bool:
    return await redis_client.exists(f"{REVOKED_PREFIX}{jti}") == 1
