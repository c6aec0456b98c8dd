"""Alcance del staff: qué EP-SEDEs administra cada usuario"""
import logging
from typing import List, Optional

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError, unauthorized
from app.crud.staff import ep_sede_staff as crud_staff

logger = logging.getLogger(__name__)


async def ep_sedes_managed_by(db: AsyncSession, user_id: int) -> List[int]:
    return await crud_staff.sedes_activas_de(db, user_id)


async def user_manages_ep_sede(db: AsyncSession, user_id: int, ep_sede_id: int) -> bool:
    if not user_id or not ep_sede_id:
        return False
    return await crud_staff.get_activa(db, user_id=user_id, ep_sede_id=ep_sede_id) is not None


async def ensure_manages(db: AsyncSession, user_id: int, ep_sede_id: Optional[int]) -> int:
    """Devuelve la EP-SEDE o lanza 403 si el actor no la administra"""
    if ep_sede_id is None or not await user_manages_ep_sede(db, user_id, ep_sede_id):
        raise unauthorized(meta={"ep_sede_id": ep_sede_id})
    return int(ep_sede_id)


async def resolve_ep_sede(db: AsyncSession, user_id: int, ep_sede_id: Optional[int] = None) -> int:
    """
    EP-SEDE sobre la que actúa el staff.

    Si se envía, debe administrarla; si no, se usa la única que administra.
    Varias -> 422 AMBIGUOUS_UNIT con las opciones; ninguna -> 403.
    """
    if ep_sede_id:
        return await ensure_manages(db, user_id, ep_sede_id)

    managed = await ep_sedes_managed_by(db, user_id)
    if len(managed) == 1:
        return managed[0]
    if len(managed) > 1:
        raise VmError(
            ReasonCode.AMBIGUOUS_UNIT,
            "Administras más de una EP_SEDE. Envía ep_sede_id.",
            meta={"choices": managed},
        )
    logger.warning("Usuario %s sin EP_SEDE activa", user_id)
    raise VmError(
        ReasonCode.NO_MANAGED_UNIT,
        "No administras ninguna EP_SEDE activa.",
        status.HTTP_403_FORBIDDEN,
    )
