from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase
from app.models.enums import PeriodoEstado
from app.models.periodo import PeriodoAcademico
from app.schemas.periodo import PeriodoCreate


class CRUDPeriodo(CRUDBase[PeriodoAcademico, PeriodoCreate, PeriodoCreate]):
    def __init__(self):
        super().__init__(PeriodoAcademico)

    async def get_actual(self, db: AsyncSession) -> Optional[PeriodoAcademico]:
        result = await db.execute(
            select(PeriodoAcademico)
            .where(PeriodoAcademico.es_actual.is_(True))
            .order_by(PeriodoAcademico.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_codigo(self, db: AsyncSession, codigo: str) -> Optional[PeriodoAcademico]:
        result = await db.execute(
            select(PeriodoAcademico).where(PeriodoAcademico.codigo == codigo)
        )
        return result.scalar_one_or_none()

    async def get_ultimo_en_curso(self, db: AsyncSession) -> Optional[PeriodoAcademico]:
        result = await db.execute(
            select(PeriodoAcademico)
            .where(PeriodoAcademico.estado == PeriodoEstado.IN_PROGRESS.value)
            .order_by(PeriodoAcademico.anio.desc(), PeriodoAcademico.ciclo.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_recientes(self, db: AsyncSession) -> List[PeriodoAcademico]:
        result = await db.execute(
            select(PeriodoAcademico).order_by(
                PeriodoAcademico.anio.desc(), PeriodoAcademico.ciclo.desc()
            )
        )
        return list(result.scalars().all())

    async def desmarcar_actuales(self, db: AsyncSession, *, excepto_id: int) -> None:
        await db.execute(
            update(PeriodoAcademico)
            .where(PeriodoAcademico.id != excepto_id)
            .where(PeriodoAcademico.es_actual.is_(True))
            .values(es_actual=False)
        )


periodo = CRUDPeriodo()
