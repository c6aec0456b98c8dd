from typing import List, Sequence
from pydantic import BaseModel
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.refs import Ref
from app.crud.base import CRUDBase
from app.models.asistencia import Asistencia
from app.models.registro_hora import RegistroHora
from app.models.sesion import Sesion


class CRUDSesion(CRUDBase[Sesion, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Sesion)

    async def get_de_owner(self, db: AsyncSession, owner: Ref) -> List[Sesion]:
        result = await db.execute(
            select(Sesion)
            .where((Sesion.owner_type == owner.kind.value) & (Sesion.owner_id == owner.id))
            .order_by(Sesion.fecha, Sesion.hora_inicio, Sesion.id)
        )
        return list(result.scalars().all())

    async def get_de_owners(self, db: AsyncSession, owners: Sequence[Ref]) -> List[Sesion]:
        resultado: List[Sesion] = []
        for owner in owners:
            resultado.extend(await self.get_de_owner(db, owner))
        return resultado

    async def delete_de_owner(self, db: AsyncSession, owner: Ref) -> int:
        """Borra las sesiones con sus asistencias y registros de horas; no confirma"""
        ids = select(Sesion.id).where(
            (Sesion.owner_type == owner.kind.value) & (Sesion.owner_id == owner.id)
        )
        await db.execute(delete(RegistroHora).where(RegistroHora.sesion_id.in_(ids)))
        await db.execute(delete(Asistencia).where(Asistencia.sesion_id.in_(ids)))
        result = await db.execute(
            delete(Sesion).where(
                (Sesion.owner_type == owner.kind.value) & (Sesion.owner_id == owner.id)
            )
        )
        return result.rowcount or 0


sesion = CRUDSesion()
