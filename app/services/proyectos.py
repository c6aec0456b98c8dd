import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError, not_found
from app.core.refs import Ref, RefKind
from app.crud.periodo import periodo as crud_periodo
from app.crud.proyecto import normalizar_niveles, proceso as crud_proceso, proyecto as crud_proyecto
from app.crud.sesion import sesion as crud_sesion
from app.models.enums import ActividadEstado
from app.models.proyecto import Proceso, Proyecto, ProyectoCiclo
from app.schemas.proyecto import ProcesoCreate, ProyectoCreate
from app.services import ep_scope
from app.services.actividades import (
    crear_sesiones,
    serializar_sesion,
    validar_estado_actividad,
    validar_sesiones,
)
from app.services.elegibilidad import minutos_requeridos_proyecto, normalizar_tipo

logger = logging.getLogger(__name__)


def serializar_proyecto(proyecto: Proyecto) -> Dict[str, Any]:
    """Requiere `ciclos` y `periodo` cargados"""
    return {
        "id": proyecto.id,
        "ep_sede_id": proyecto.ep_sede_id,
        "periodo_id": proyecto.periodo_id,
        "periodo_codigo": proyecto.periodo.codigo if proyecto.periodo else None,
        "codigo": proyecto.codigo,
        "titulo": proyecto.titulo,
        "tipo": normalizar_tipo(proyecto.tipo),
        "estado": proyecto.estado,
        "niveles": normalizar_niveles([c.nivel for c in proyecto.ciclos], proyecto.nivel),
        "horas_planificadas": proyecto.horas_planificadas,
        "horas_minimas_participante": proyecto.horas_minimas_participante,
        "requerido_min": minutos_requeridos_proyecto(proyecto),
    }


async def obtener(db: AsyncSession, proyecto_id: int) -> Proyecto:
    proyecto = await crud_proyecto.get_with_relations(db, proyecto_id)
    if proyecto is None:
        raise not_found("Proyecto no encontrado.", meta={"proyecto_id": proyecto_id})
    return proyecto


async def crear(db: AsyncSession, actor_id: int, obj_in: ProyectoCreate) -> Dict[str, Any]:
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, obj_in.ep_sede_id)
    if await crud_periodo.get(db, obj_in.periodo_id) is None:
        raise not_found(
            "Período no encontrado.", ReasonCode.PERIOD_NOT_FOUND, {"periodo_id": obj_in.periodo_id}
        )

    proyecto = Proyecto(
        ep_sede_id=ep_sede_id,
        periodo_id=obj_in.periodo_id,
        codigo=obj_in.codigo,
        titulo=obj_in.titulo,
        tipo=obj_in.tipo.value,
        estado=ActividadEstado.PLANNED.value,
        horas_planificadas=obj_in.horas_planificadas,
        horas_minimas_participante=obj_in.horas_minimas_participante,
        ciclos=[ProyectoCiclo(nivel=n) for n in obj_in.niveles],
    )
    try:
        db.add(proyecto)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Proyecto %s (%s) creado por %s en EP_SEDE %s",
        proyecto.id, proyecto.tipo, actor_id, ep_sede_id,
    )
    return serializar_proyecto(await obtener(db, proyecto.id))


async def _proyecto_de_mi_sede(db: AsyncSession, actor_id: int, proyecto_id: int) -> Proyecto:
    proyecto = await obtener(db, proyecto_id)
    await ep_scope.ensure_manages(db, actor_id, proyecto.ep_sede_id)
    return proyecto


async def cambiar_estado(
    db: AsyncSession, actor_id: int, proyecto_id: int, estado: ActividadEstado
) -> Dict[str, Any]:
    proyecto = await _proyecto_de_mi_sede(db, actor_id, proyecto_id)
    anterior = proyecto.estado
    validar_estado_actividad(anterior, estado.value)
    if anterior != estado.value:
        await crud_proyecto.update(db, db_obj=proyecto, obj_in={"estado": estado.value})
        logger.info(
            "Proyecto %s: %s -> %s por %s", proyecto.id, anterior, estado.value, actor_id
        )
    return serializar_proyecto(await obtener(db, proyecto.id))


async def crear_proceso(
    db: AsyncSession, actor_id: int, proyecto_id: int, obj_in: ProcesoCreate
) -> Dict[str, Any]:
    """Proceso con sus sesiones en una sola transacción"""
    proyecto = await _proyecto_de_mi_sede(db, actor_id, proyecto_id)
    if proyecto.estado in (ActividadEstado.CLOSED.value, ActividadEstado.CANCELLED.value):
        raise VmError(
            ReasonCode.PROJECT_NOT_ACTIVE,
            "El proyecto no admite nuevos procesos.",
            meta={"estado": proyecto.estado},
        )
    validar_sesiones(obj_in.sessions, proyecto.periodo)

    orden: Optional[int] = obj_in.orden or await crud_proceso.siguiente_orden(db, proyecto.id)
    try:
        proceso: Proceso = await crud_proceso.create(
            db,
            obj_in={"proyecto_id": proyecto.id, "nombre": obj_in.nombre, "orden": orden},
            commit=False,
        )
        await crear_sesiones(db, Ref(RefKind.PROCESS, proceso.id), obj_in.sessions)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    sesiones = await crud_sesion.get_de_owner(db, Ref(RefKind.PROCESS, proceso.id))
    logger.info(
        "Proceso %s creado en proyecto %s con %s sesiones", proceso.id, proyecto.id, len(sesiones)
    )
    return {
        "id": proceso.id,
        "proyecto_id": proyecto.id,
        "nombre": proceso.nombre,
        "orden": proceso.orden,
        "sesiones": [serializar_sesion(s) for s in sesiones],
    }
