# blogdesk/routers/auth_router.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession
from redis.exceptions import RedisError
import structlog

from blogdesk.dependencies.auth import get_current_operator, oauth2_scheme
from blogdesk.dependencies.db import get_session_dep
from blogdesk.UAA.repository import OperatorRepository
from blogdesk.UAA.schemas import CurrentOperator, OperatorCreate, OperatorLogin, OperatorRead, Token
from blogdesk.UAA.services import AuthenticationError, OperatorService, sign_out

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=OperatorRead, status_code=status.HTTP_201_CREATED)
async def register(operator_in: OperatorCreate, session: AsyncSession = Depends(get_session_dep)):
    svc = OperatorService(OperatorRepository(session))
    try:
        return await svc.register_operator(operator_in)
    except ValueError as e:
        logger.info("register_validation_failed", error=str(e), email=operator_in.email)
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/login", response_model=Token)
async def login(form: OperatorLogin, session: AsyncSession = Depends(get_session_dep)):
    svc = OperatorService(OperatorRepository(session))
    try:
        operator = await svc.authenticate(form.email, form.password)
    except AuthenticationError as e:
        # do not reveal whether the email exists
        logger.warning("login_failed", reason=str(e), email=form.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    access = svc.issue_token(operator)
    return {"access_token": access.token, "token_type": "bearer", "expires_in": access.expires_in}


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), operator: CurrentOperator = Depends(get_current_operator)):
    try:
        await sign_out(token)
    except AuthenticationError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    except RedisError as e:
        logger.exception("logout_failed", operator_id=str(operator.id), error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Logout failed")
    return {"ok": True}
