"""Reglas comunes a proyectos y eventos: estados y sesiones programadas"""
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref
from app.crud.sesion import sesion as crud_sesion
from app.models.enums import ActividadEstado
from app.models.periodo import PeriodoAcademico
from app.models.sesion import Sesion
from app.schemas.sesion import SesionCreate

# Solo hacia adelante; CLOSED y CANCELLED son terminales
TRANSICIONES_ACTIVIDAD = {
    ActividadEstado.PLANNED.value: {
        ActividadEstado.IN_PROGRESS.value,
        ActividadEstado.CANCELLED.value,
    },
    ActividadEstado.IN_PROGRESS.value: {
        ActividadEstado.CLOSED.value,
        ActividadEstado.CANCELLED.value,
    },
    ActividadEstado.CLOSED.value: set(),
    ActividadEstado.CANCELLED.value: set(),
}


def validar_estado_actividad(desde: str, hacia: str) -> None:
    if desde == hacia:
        return
    if hacia not in TRANSICIONES_ACTIVIDAD.get(desde, set()):
        raise VmError(
            ReasonCode.INVALID_TRANSITION,
            f"No se puede pasar de {desde} a {hacia}.",
            meta={"from": desde, "to": hacia},
        )


def validar_sesiones(sesiones: Sequence[SesionCreate], periodo: PeriodoAcademico) -> None:
    """Cada sesión cae dentro del período y termina después de empezar"""
    for index, s in enumerate(sesiones):
        if s.hora_fin <= s.hora_inicio:
            raise VmError(
                ReasonCode.INVALID_SESSION_TIME,
                "La hora de fin debe ser posterior a la hora de inicio.",
                meta={
                    "index": index,
                    "hora_inicio": s.hora_inicio.isoformat(),
                    "hora_fin": s.hora_fin.isoformat(),
                },
            )
        fuera = (periodo.fecha_inicio is not None and s.fecha < periodo.fecha_inicio) or (
            periodo.fecha_fin is not None and s.fecha > periodo.fecha_fin
        )
        if fuera:
            raise VmError(
                ReasonCode.SESSION_OUT_OF_PERIOD,
                "La fecha de la sesión está fuera del rango del período.",
                meta={
                    "index": index,
                    "fecha": s.fecha.isoformat(),
                    "periodo_inicio": periodo.fecha_inicio.isoformat() if periodo.fecha_inicio else None,
                    "periodo_fin": periodo.fecha_fin.isoformat() if periodo.fecha_fin else None,
                },
            )


async def crear_sesiones(
    db: AsyncSession, owner: Ref, sesiones: Sequence[SesionCreate]
) -> List[Sesion]:
    """Agrega las sesiones del dueño sin confirmar"""
    creadas = []
    for s in sesiones:
        creadas.append(
            await crud_sesion.create(
                db,
                obj_in={
                    "owner_type": owner.kind.value,
                    "owner_id": owner.id,
                    "fecha": s.fecha,
                    "hora_inicio": s.hora_inicio,
                    "hora_fin": s.hora_fin,
                    "estado": ActividadEstado.PLANNED.value,
                },
                commit=False,
            )
        )
    return creadas


def serializar_sesion(s: Sesion) -> Dict[str, Any]:
    return {
        "id": s.id,
        "fecha": s.fecha.isoformat() if s.fecha else None,
        "hora_inicio": s.hora_inicio.strftime("%H:%M:%S") if s.hora_inicio else None,
        "hora_fin": s.hora_fin.strftime("%H:%M:%S") if s.hora_fin else None,
        "estado": s.estado,
    }


def serializar_periodo(periodo: Optional[PeriodoAcademico]) -> Optional[Dict[str, Any]]:
    if periodo is None:
        return None
    return {
        "id": periodo.id,
        "codigo": periodo.codigo,
        "anio": periodo.anio,
        "ciclo": periodo.ciclo,
        "estado": periodo.estado,
        "fecha_inicio": periodo.fecha_inicio.isoformat() if periodo.fecha_inicio else None,
        "fecha_fin": periodo.fecha_fin.isoformat() if periodo.fecha_fin else None,
    }
