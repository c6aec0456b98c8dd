from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import settings
from app.core.errors import unauthenticated
from app.core.security import verify_token

security = HTTPBearer(auto_error=False)  # auto_error=False permite requests sin token


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[int]:
    """
    Id del usuario autenticado según el token JWT (`sub`), o None.
    Si disable_auth está activado, devuelve settings.dev_user_id
    """
    actor_id = None
    if settings.disable_auth:
        actor_id = settings.dev_user_id
    elif credentials:
        subject = verify_token(credentials.credentials)
        if subject is not None and subject.isdigit():
            actor_id = int(subject)

    request.state.actor_id = actor_id
    return actor_id


async def require_actor(actor_id: Optional[int] = Depends(get_current_user)) -> int:
    """Actor obligatorio: 401 UNAUTHENTICATED si no hay usuario"""
    if actor_id is None:
        raise unauthenticated()
    return actor_id
