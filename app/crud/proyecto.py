from typing import Dict, List, Optional, Sequence
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.proyecto import Proyecto, ProyectoCiclo, Proceso


def normalizar_niveles(niveles, nivel_legacy=None) -> List[int]:
    """Niveles sin duplicados y ordenados; cae al nivel heredado si no hay ciclos"""
    resultado = sorted({int(n) for n in niveles if n is not None})
    if not resultado and nivel_legacy is not None:
        resultado = [int(nivel_legacy)]
    return resultado


class CRUDProyecto(CRUDBase[Proyecto, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Proyecto)

    async def get_with_relations(self, db: AsyncSession, id: int) -> Optional[Proyecto]:
        result = await db.execute(
            select(Proyecto)
            .options(
                selectinload(Proyecto.ciclos),
                selectinload(Proyecto.periodo),
                selectinload(Proyecto.procesos),
            )
            .where(Proyecto.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many_with_relations(
        self, db: AsyncSession, ids: Sequence[int]
    ) -> Dict[int, Proyecto]:
        ids = list({int(i) for i in ids})
        if not ids:
            return {}
        result = await db.execute(
            select(Proyecto)
            .options(selectinload(Proyecto.ciclos), selectinload(Proyecto.periodo))
            .where(Proyecto.id.in_(ids))
        )
        return {p.id: p for p in result.scalars().all()}

    async def niveles(self, db: AsyncSession, proyecto: Proyecto) -> List[int]:
        result = await db.execute(
            select(ProyectoCiclo.nivel).where(ProyectoCiclo.proyecto_id == proyecto.id)
        )
        return normalizar_niveles(result.scalars().all(), proyecto.nivel)

    async def list_por_sede(
        self,
        db: AsyncSession,
        *,
        ep_sede_id: int,
        periodo_id: Optional[int] = None,
    ) -> List[Proyecto]:
        stmt = (
            select(Proyecto)
            .options(selectinload(Proyecto.ciclos), selectinload(Proyecto.periodo))
            .where(Proyecto.ep_sede_id == ep_sede_id)
            .order_by(Proyecto.id)
        )
        if periodo_id is not None:
            stmt = stmt.where(Proyecto.periodo_id == periodo_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())


class CRUDProceso(CRUDBase[Proceso, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Proceso)

    async def get_many_map(self, db: AsyncSession, ids: Sequence[int]) -> Dict[int, Proceso]:
        return {p.id: p for p in await self.get_many(db, ids)}

    async def siguiente_orden(self, db: AsyncSession, proyecto_id: int) -> int:
        result = await db.execute(
            select(Proceso.orden)
            .where(Proceso.proyecto_id == proyecto_id)
            .order_by(Proceso.orden.desc())
            .limit(1)
        )
        ultimo = result.scalar_one_or_none()
        return (ultimo or 0) + 1


proyecto = CRUDProyecto()
proceso = CRUDProceso()
