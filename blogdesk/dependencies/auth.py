# blogdesk/dependencies/auth.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from redis.exceptions import RedisError
import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from blogdesk.UAA.utils import is_jti_revoked, read_access_token
from blogdesk.UAA.repository import OperatorRepository
from blogdesk.UAA.schemas import CurrentOperator
from blogdesk.dependencies.db import get_session_dep

logger = structlog.get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_operator(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session_dep),
) -> CurrentOperator:
    try:
        claims = read_access_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    try:
        revoked = await is_jti_revoked(claims.jti)
    except RedisError as exc:
        # revocations cannot be checked, so the token is not trusted
        logger.warning("revocation_check_failed", jti=claims.jti, error=str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="auth backend unavailable")
    if revoked:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token revoked")
    operator = await OperatorRepository(session).get_by_id(claims.operator_id)
    if not operator or not operator.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="operator not found")
    return CurrentOperator(id=operator.id, display_name=operator.display_name)
