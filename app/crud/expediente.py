from typing import AsyncIterator, Dict, List, Optional, Sequence
from pydantic import BaseModel
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.enums import ExpedienteEstado
from app.models.expediente import Expediente
from app.models.usuario import Usuario


def _filtro_texto(q: str):
    """Coincidencia parcial por código, nombres, correo o celular"""
    patron = f"%{q.strip().lower()}%"
    nombre_completo = func.lower(
        func.coalesce(Usuario.first_name, "") + " " + func.coalesce(Usuario.last_name, "")
    )
    return or_(
        func.lower(Expediente.codigo_estudiante).like(patron),
        func.lower(Usuario.first_name).like(patron),
        func.lower(Usuario.last_name).like(patron),
        nombre_completo.like(patron),
        func.lower(Usuario.email).like(patron),
        func.lower(Usuario.celular).like(patron),
    )


class CRUDExpediente(CRUDBase[Expediente, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Expediente)

    async def get_with_usuario(self, db: AsyncSession, id: int) -> Optional[Expediente]:
        result = await db.execute(
            select(Expediente)
            .options(selectinload(Expediente.usuario))
            .where(Expediente.id == id)
        )
        return result.scalar_one_or_none()

    async def get_many_with_usuario(
        self, db: AsyncSession, ids: Sequence[int]
    ) -> Dict[int, Expediente]:
        ids = list({int(i) for i in ids})
        if not ids:
            return {}
        result = await db.execute(
            select(Expediente)
            .options(selectinload(Expediente.usuario))
            .where(Expediente.id.in_(ids))
        )
        return {e.id: e for e in result.scalars().all()}

    async def get_activo_de_usuario(
        self, db: AsyncSession, *, user_id: int, ep_sede_id: int
    ) -> Optional[Expediente]:
        result = await db.execute(
            select(Expediente)
            .where(
                (Expediente.user_id == user_id)
                & (Expediente.ep_sede_id == ep_sede_id)
                & (Expediente.estado == ExpedienteEstado.ACTIVE.value)
            )
            .order_by(Expediente.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_de_usuario(self, db: AsyncSession, *, user_id: int) -> List[Expediente]:
        result = await db.execute(
            select(Expediente).where(Expediente.user_id == user_id).order_by(Expediente.id)
        )
        return list(result.scalars().all())

    async def get_by_codigos(
        self, db: AsyncSession, codigos: Sequence[str], ep_sede_id: Optional[int] = None
    ) -> Optional[Expediente]:
        """Primer expediente cuyo código coincide con alguna variante, en orden"""
        for codigo in codigos:
            stmt = (
                select(Expediente)
                .options(selectinload(Expediente.usuario))
                .where(Expediente.codigo_estudiante == codigo)
                .order_by(Expediente.id)
                .limit(1)
            )
            if ep_sede_id is not None:
                stmt = stmt.where(Expediente.ep_sede_id == ep_sede_id)
            result = await db.execute(stmt)
            exp = result.scalar_one_or_none()
            if exp is not None:
                return exp
        return None

    async def iter_activos(
        self,
        db: AsyncSession,
        *,
        ep_sede_id: int,
        q: Optional[str] = None,
        batch_size: int = 500,
    ) -> AsyncIterator[List[Expediente]]:
        """
        Recorre los expedientes ACTIVE de una EP-SEDE en lotes por id (keyset).

        Nunca carga la población completa: cada lote pide `batch_size` filas
        con id mayor al último visto.
        """
        ultimo_id = 0
        while True:
            stmt = (
                select(Expediente)
                .join(Usuario, Usuario.id == Expediente.user_id)
                .options(selectinload(Expediente.usuario))
                .where(
                    (Expediente.ep_sede_id == ep_sede_id)
                    & (Expediente.estado == ExpedienteEstado.ACTIVE.value)
                    & (Expediente.id > ultimo_id)
                )
                .order_by(Expediente.id)
                .limit(batch_size)
            )
            if q and q.strip():
                stmt = stmt.where(_filtro_texto(q))

            result = await db.execute(stmt)
            lote = list(result.scalars().all())
            if not lote:
                return
            yield lote
            if len(lote) < batch_size:
                return
            ultimo_id = lote[-1].id

    async def count_por_sede(self, db: AsyncSession, *, ep_sede_id: int) -> int:
        result = await db.execute(
            select(func.count(Expediente.id)).where(Expediente.ep_sede_id == ep_sede_id)
        )
        return result.scalar() or 0


expediente = CRUDExpediente()
