from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.ep_sede_staff import EpSedeStaff


class CRUDEpSedeStaff(CRUDBase[EpSedeStaff, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(EpSedeStaff)

    async def sedes_activas_de(self, db: AsyncSession, user_id: int) -> List[int]:
        result = await db.execute(
            select(EpSedeStaff.ep_sede_id)
            .where((EpSedeStaff.user_id == user_id) & EpSedeStaff.activo.is_(True))
            .distinct()
            .order_by(EpSedeStaff.ep_sede_id)
        )
        return [int(i) for i in result.scalars().all()]

    async def get_activa(
        self, db: AsyncSession, *, user_id: int, ep_sede_id: int
    ) -> Optional[EpSedeStaff]:
        result = await db.execute(
            select(EpSedeStaff)
            .where(
                (EpSedeStaff.user_id == user_id)
                & (EpSedeStaff.ep_sede_id == ep_sede_id)
                & EpSedeStaff.activo.is_(True)
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def activas_por_rol(
        self, db: AsyncSession, *, ep_sede_id: int, role: str
    ) -> List[EpSedeStaff]:
        result = await db.execute(
            select(EpSedeStaff).where(
                (EpSedeStaff.ep_sede_id == ep_sede_id)
                & (EpSedeStaff.role == role)
                & EpSedeStaff.activo.is_(True)
            )
        )
        return list(result.scalars().all())

    async def get_with_usuario(self, db: AsyncSession, id: int) -> Optional[EpSedeStaff]:
        result = await db.execute(
            select(EpSedeStaff)
            .options(selectinload(EpSedeStaff.usuario))
            .where(EpSedeStaff.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_de_sede(
        self, db: AsyncSession, *, ep_sede_id: int, solo_activos: bool = True
    ) -> List[EpSedeStaff]:
        stmt = (
            select(EpSedeStaff)
            .options(selectinload(EpSedeStaff.usuario))
            .where(EpSedeStaff.ep_sede_id == ep_sede_id)
            .order_by(EpSedeStaff.id)
        )
        if solo_activos:
            stmt = stmt.where(EpSedeStaff.activo.is_(True))
        result = await db.execute(stmt)
        return list(result.scalars().all())


ep_sede_staff = CRUDEpSedeStaff()
