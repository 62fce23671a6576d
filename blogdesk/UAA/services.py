# blogdesk/UAA/services.py
from jose import JWTError
import structlog

from .models import Operator
from .repository import OperatorRepository
from .schemas import OperatorCreate
from . import utils

logger = structlog.get_logger(__name__)


class AuthenticationError(Exception):
    pass


class OperatorService:
    def __init__(self, repo: OperatorRepository):
        self.repo = repo

    async def register_operator(self, operator_in: OperatorCreate) -> Operator:
        utils.assert_password_policy(operator_in.password)
        existing = await self.repo.get_by_email(operator_in.email)
        if existing:
            logger.debug("register_email_exists", email=operator_in.email)
            raise ValueError("email already registered")

        operator = Operator(
            email=operator_in.email,
            display_name=operator_in.display_name,
            hashed_password=utils.hash_password(operator_in.password),
        )
        created = await self.repo.create(operator)
        logger.info("operator_registered", operator_id=str(created.id), email=created.email)
        return created

    async def authenticate(self, email: str, password: str) -> Operator:
        operator = await self.repo.get_by_email(email)
        if not operator or not operator.is_active:
            logger.debug("auth_failed_unknown_email", email=email)
            raise AuthenticationError("invalid credentials")

        if not utils.verify_password(password, operator.hashed_password):
            logger.info("auth_failed_wrong_password", operator_id=str(operator.id))
            raise AuthenticationError("invalid credentials")

        await self.repo.update_last_login(operator)
        logger.info("auth_success", operator_id=str(operator.id))
        return operator

    def issue_token(self, operator: Operator) -> utils.AccessToken:
        access = utils.issue_access_token(operator.id)
        logger.info("token_issued", operator_id=str(operator.id), jti=access.jti)
        return access


async def sign_out(access_token: str) -> None:
    """Revoke an access token until it would have expired anyway."""
    try:
        claims = utils.read_access_token(access_token)
    except JWTError as e:
        raise AuthenticationError("invalid token") from e
    await utils.revoke_jti(claims.jti, claims.expires_at)
    logger.info("operator_signed_out", operator_id=str(claims.operator_id), jti=claims.jti)
