from typing import Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel
from sqlalchemy import select, func, distinct
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.refs import RefKind
from app.crud.base import CRUDBase
from app.models.asistencia import Asistencia
from app.models.enums import RegistroHoraEstado
from app.models.proyecto import Proceso, Proyecto
from app.models.registro_hora import RegistroHora


def _aprobadas_de_proyecto(proyecto_id: int):
    """Condición: registro aprobado vinculado a un proceso del proyecto"""
    return (
        (RegistroHora.estado == RegistroHoraEstado.APPROVED.value)
        & (RegistroHora.link_type == RefKind.PROCESS.value)
        & (Proceso.proyecto_id == proyecto_id)
    )


class CRUDRegistroHora(CRUDBase[RegistroHora, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(RegistroHora)

    async def minutos_por_expediente(
        self, db: AsyncSession, *, proyecto_id: int, expediente_ids: Sequence[int]
    ) -> Dict[int, int]:
        """Minutos aprobados en un proyecto para muchos expedientes, en una consulta"""
        ids = list({int(i) for i in expediente_ids})
        if not ids:
            return {}
        result = await db.execute(
            select(RegistroHora.expediente_id, func.coalesce(func.sum(RegistroHora.minutos), 0))
            .join(Proceso, Proceso.id == RegistroHora.link_id)
            .where(_aprobadas_de_proyecto(proyecto_id) & RegistroHora.expediente_id.in_(ids))
            .group_by(RegistroHora.expediente_id)
        )
        return {exp_id: int(total) for exp_id, total in result.all()}

    async def minutos_de(self, db: AsyncSession, *, proyecto_id: int, expediente_id: int) -> int:
        mapa = await self.minutos_por_expediente(
            db, proyecto_id=proyecto_id, expediente_ids=[expediente_id]
        )
        return mapa.get(expediente_id, 0)

    async def minutos_por_proyecto(
        self, db: AsyncSession, *, proyecto_ids: Sequence[int]
    ) -> Dict[int, Tuple[int, int]]:
        """proyecto_id -> (minutos aprobados, expedientes con horas)"""
        ids = list({int(i) for i in proyecto_ids})
        if not ids:
            return {}
        result = await db.execute(
            select(
                Proceso.proyecto_id,
                func.coalesce(func.sum(RegistroHora.minutos), 0),
                func.count(distinct(RegistroHora.expediente_id)),
            )
            .join(Proceso, Proceso.id == RegistroHora.link_id)
            .where(
                (RegistroHora.estado == RegistroHoraEstado.APPROVED.value)
                & (RegistroHora.link_type == RefKind.PROCESS.value)
                & Proceso.proyecto_id.in_(ids)
            )
            .group_by(Proceso.proyecto_id)
        )
        return {pid: (int(total), int(alumnos)) for pid, total, alumnos in result.all()}

    async def totales_sede_periodo(
        self, db: AsyncSession, *, ep_sede_id: int, periodo_id: int
    ) -> Tuple[int, int]:
        """(minutos aprobados, expedientes distintos con horas aprobadas)"""
        result = await db.execute(
            select(
                func.coalesce(func.sum(RegistroHora.minutos), 0),
                func.count(distinct(RegistroHora.expediente_id)),
            ).where(
                (RegistroHora.ep_sede_id == ep_sede_id)
                & (RegistroHora.periodo_id == periodo_id)
                & (RegistroHora.estado == RegistroHoraEstado.APPROVED.value)
            )
        )
        minutos, expedientes = result.one()
        return int(minutos or 0), int(expedientes or 0)

    async def minutos_por_periodo_y_tipo(
        self, db: AsyncSession, *, expediente_id: int, ep_sede_id: int
    ) -> List[Tuple[int, Optional[str], int]]:
        """Filas (periodo_id, tipo de proyecto o None, minutos) del expediente"""
        result = await db.execute(
            select(RegistroHora.periodo_id, Proyecto.tipo, func.sum(RegistroHora.minutos))
            .outerjoin(
                Proceso,
                (RegistroHora.link_type == RefKind.PROCESS.value)
                & (Proceso.id == RegistroHora.link_id),
            )
            .outerjoin(Proyecto, Proyecto.id == Proceso.proyecto_id)
            .where(
                (RegistroHora.expediente_id == expediente_id)
                & (RegistroHora.ep_sede_id == ep_sede_id)
                & (RegistroHora.estado == RegistroHoraEstado.APPROVED.value)
            )
            .group_by(RegistroHora.periodo_id, Proyecto.tipo)
        )
        return [(pid, tipo, int(minutos or 0)) for pid, tipo, minutos in result.all()]

    async def get_by_asistencia(
        self, db: AsyncSession, asistencia_id: int
    ) -> Optional[RegistroHora]:
        result = await db.execute(
            select(RegistroHora).where(RegistroHora.asistencia_id == asistencia_id)
        )
        return result.scalar_one_or_none()


class CRUDAsistencia(CRUDBase[Asistencia, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Asistencia)

    async def get_for(
        self, db: AsyncSession, *, sesion_id: int, expediente_id: int
    ) -> Optional[Asistencia]:
        result = await db.execute(
            select(Asistencia).where(
                (Asistencia.sesion_id == sesion_id)
                & (Asistencia.expediente_id == expediente_id)
            )
        )
        return result.scalar_one_or_none()


registro_hora = CRUDRegistroHora()
asistencia = CRUDAsistencia()
