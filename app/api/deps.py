"""
Caller identity: гейтвей уже проверил пользователя и передаёт его id в заголовке.
"""
from fastapi import Depends, HTTPException, Request, status

from app.access.models import Caller
from app.core.config import settings
from app.payments.config import is_creator


def get_caller(request: Request) -> Caller:
    user_id = (request.headers.get(settings.caller_id_header) or "").strip() or None
    return Caller(user_id=user_id, is_creator=is_creator(user_id))


def require_caller(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return caller
