# blogdesk/UAA/repository.py
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from .models import Operator
from blogdesk.models.post import utcnow
from typing import Optional
import uuid


class OperatorRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[Operator]:
        res = await self.session.exec(select(Operator).where(Operator.email == email))
        return res.first()

    async def get_by_id(self, operator_id: uuid.UUID) -> Optional[Operator]:
        res = await self.session.exec(select(Operator).where(Operator.id == operator_id))
        return res.first()

    async def create(self, operator: Operator) -> Operator:
        self.session.add(operator)
        await self.session.commit()
        await self.session.refresh(operator)
        return operator

    async def update_last_login(self, operator: Operator) -> Operator:
        operator.last_login = utcnow()
        self.session.add(operator)
        await self.session.commit()
        await self.session.refresh(operator)
        return operator
