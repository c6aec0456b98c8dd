from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.expediente import Expediente
from app.models.matricula import Matricula
from app.models.periodo import PeriodoAcademico


class CRUDMatricula(CRUDBase[Matricula, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Matricula)

    async def get_for(
        self, db: AsyncSession, *, expediente_id: int, periodo_id: int
    ) -> Optional[Matricula]:
        result = await db.execute(
            select(Matricula).where(
                (Matricula.expediente_id == expediente_id)
                & (Matricula.periodo_id == periodo_id)
            )
        )
        return result.scalar_one_or_none()

    async def de_expediente(self, db: AsyncSession, expediente_id: int) -> List[Matricula]:
        result = await db.execute(
            select(Matricula)
            .join(PeriodoAcademico, PeriodoAcademico.id == Matricula.periodo_id)
            .options(selectinload(Matricula.periodo))
            .where(Matricula.expediente_id == expediente_id)
            .order_by(PeriodoAcademico.anio, PeriodoAcademico.ciclo)
        )
        return list(result.scalars().all())

    async def count_matriculados(
        self, db: AsyncSession, *, ep_sede_id: int, periodo_id: int
    ) -> int:
        """Expedientes de la EP-SEDE con fecha de matrícula en el período"""
        result = await db.execute(
            select(func.count(Matricula.id))
            .join(Expediente, Expediente.id == Matricula.expediente_id)
            .where(
                (Expediente.ep_sede_id == ep_sede_id)
                & (Matricula.periodo_id == periodo_id)
                & Matricula.fecha_matricula.isnot(None)
            )
        )
        return result.scalar() or 0


matricula = CRUDMatricula()
