# blogdesk/routers/user_router.py
from fastapi import APIRouter, Depends

from blogdesk.dependencies.auth import get_current_operator
from blogdesk.UAA.schemas import CurrentOperator

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=CurrentOperator)
async def me(current_operator: CurrentOperator = Depends(get_current_operator)):
    return current_operator
