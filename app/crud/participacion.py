import logging
from typing import Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel
from sqlalchemy import delete, select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.refs import Ref, RefKind
from app.crud.base import CRUDBase
from app.models.enums import ParticipacionEstado, ParticipacionRol, ProyectoTipo, PROYECTO_TIPO_LEGACY
from app.models.evento import Evento
from app.models.expediente import Expediente
from app.models.participacion import Participacion
from app.models.periodo import PeriodoAcademico
from app.models.proyecto import Proyecto

logger = logging.getLogger(__name__)


def _de(ref: Ref):
    return (Participacion.participable_type == ref.kind.value) & (
        Participacion.participable_id == ref.id
    )


class CRUDParticipacion(CRUDBase[Participacion, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Participacion)

    async def get_for(
        self, db: AsyncSession, ref: Ref, expediente_id: int
    ) -> Optional[Participacion]:
        result = await db.execute(
            select(Participacion).where(_de(ref) & (Participacion.expediente_id == expediente_id))
        )
        return result.scalar_one_or_none()

    async def expedientes_inscritos(
        self, db: AsyncSession, ref: Ref, expediente_ids: Sequence[int]
    ) -> Dict[int, int]:
        """expediente_id -> participacion_id para los ya inscritos del lote"""
        ids = list({int(i) for i in expediente_ids})
        if not ids:
            return {}
        result = await db.execute(
            select(Participacion.expediente_id, Participacion.id).where(
                _de(ref) & Participacion.expediente_id.in_(ids)
            )
        )
        return {exp_id: part_id for exp_id, part_id in result.all()}

    async def count_for(self, db: AsyncSession, ref: Ref) -> int:
        # Cualquier estado ocupa cupo
        result = await db.execute(select(func.count(Participacion.id)).where(_de(ref)))
        return result.scalar() or 0

    async def delete_for(self, db: AsyncSession, ref: Ref) -> int:
        result = await db.execute(delete(Participacion).where(_de(ref)))
        return result.rowcount or 0

    async def create_or_fetch(
        self,
        db: AsyncSession,
        ref: Ref,
        expediente_id: int,
        *,
        rol: str = ParticipacionRol.STUDENT.value,
    ) -> Tuple[Participacion, bool]:
        """
        Inserta la participación si no existe.

        El insert corre en un savepoint: si otra transacción ganó la carrera, la
        restricción única lo rechaza y se devuelve la fila existente.
        Retorna (participacion, creada).
        """
        existente = await self.get_for(db, ref, expediente_id)
        if existente is not None:
            return existente, False

        nueva = Participacion(
            participable_type=ref.kind.value,
            participable_id=ref.id,
            expediente_id=expediente_id,
            rol=rol,
            estado=ParticipacionEstado.ENROLLED.value,
        )
        try:
            async with db.begin_nested():
                db.add(nueva)
                await db.flush()
        except IntegrityError:
            logger.info(
                "Participación concurrente detectada %s/%s expediente=%s",
                ref.kind.value, ref.id, expediente_id,
            )
            existente = await self.get_for(db, ref, expediente_id)
            if existente is None:
                raise
            return existente, False
        return nueva, True

    async def list_for(
        self,
        db: AsyncSession,
        ref: Ref,
        *,
        estados: Optional[Sequence[str]] = None,
        roles: Optional[Sequence[str]] = None,
    ) -> List[Participacion]:
        stmt = (
            select(Participacion)
            .options(selectinload(Participacion.expediente).selectinload(Expediente.usuario))
            .where(_de(ref))
            .order_by(Participacion.id)
        )
        if estados:
            stmt = stmt.where(Participacion.estado.in_(list(estados)))
        if roles:
            stmt = stmt.where(Participacion.rol.in_(list(roles)))
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def vinculadas_de_expediente(
        self,
        db: AsyncSession,
        *,
        expediente_id: int,
        ep_sede_id: int,
        estados_proyecto: Sequence[str],
    ) -> List[Tuple[Participacion, Proyecto]]:
        """Participaciones del expediente en proyectos LINKED (o heredados) de la EP-SEDE"""
        result = await db.execute(
            select(Participacion, Proyecto)
            .join(
                Proyecto,
                (Participacion.participable_type == RefKind.PROJECT.value)
                & (Participacion.participable_id == Proyecto.id),
            )
            .options(selectinload(Proyecto.ciclos), selectinload(Proyecto.periodo))
            .where(
                (Participacion.expediente_id == expediente_id)
                & (Proyecto.ep_sede_id == ep_sede_id)
                & Proyecto.estado.in_(list(estados_proyecto))
                & Proyecto.tipo.in_([ProyectoTipo.LINKED.value, PROYECTO_TIPO_LEGACY])
            )
            .order_by(Participacion.id)
        )
        return [(p, proy) for p, proy in result.all()]

    async def eventos_de_usuario(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        estados: Optional[Sequence[str]] = None,
        periodo_id: Optional[int] = None,
    ) -> List[Tuple[Participacion, Evento, PeriodoAcademico]]:
        """Participaciones como alumno del usuario en eventos, con su período"""
        stmt = (
            select(Participacion, Evento, PeriodoAcademico)
            .join(Expediente, Expediente.id == Participacion.expediente_id)
            .join(
                Evento,
                (Participacion.participable_type == RefKind.EVENT.value)
                & (Participacion.participable_id == Evento.id),
            )
            .join(PeriodoAcademico, PeriodoAcademico.id == Evento.periodo_id)
            .where(
                (Expediente.user_id == user_id)
                & (Participacion.rol == ParticipacionRol.STUDENT.value)
            )
            .order_by(PeriodoAcademico.anio.desc(), PeriodoAcademico.ciclo.desc(), Evento.id)
        )
        if estados:
            stmt = stmt.where(Participacion.estado.in_(list(estados)))
        if periodo_id:
            stmt = stmt.where(Evento.periodo_id == periodo_id)
        result = await db.execute(stmt)
        return [(p, e, per) for p, e, per in result.all()]

    async def de_expediente(
        self, db: AsyncSession, expediente_ids: Sequence[int], kind: RefKind
    ) -> List[Participacion]:
        ids = list({int(i) for i in expediente_ids})
        if not ids:
            return []
        result = await db.execute(
            select(Participacion)
            .where(
                (Participacion.participable_type == kind.value)
                & Participacion.expediente_id.in_(ids)
            )
            .order_by(Participacion.id)
        )
        return list(result.scalars().all())


participacion = CRUDParticipacion()
