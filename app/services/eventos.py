"""
Ciclo de vida de eventos VM y sus categorías.

Un evento y sus sesiones se crean y se eliminan juntos en una transacción.
El destino (EP-SEDE, sede o facultad) se guarda como referencia tipada y se
publica con el nombre de la tabla de alias.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError, not_found
from app.core.refs import Ref, RefKind, resolve_unit_id
from app.crud.evento import (
    categoria_evento as crud_categoria,
    evento as crud_evento,
    parent_units,
    targets_de_unidades,
)
from app.crud.participacion import participacion as crud_participacion
from app.crud.periodo import periodo as crud_periodo
from app.crud.sesion import sesion as crud_sesion
from app.models.enums import ActividadEstado
from app.models.evento import CategoriaEvento, Evento
from app.models.sesion import Sesion
from app.schemas.categoria import CategoriaCreate, CategoriaUpdate
from app.schemas.evento import TARGET_TYPE_PUBLICO, EventoCreate, EventoUpdate
from app.services import ep_scope
from app.services.actividades import (
    crear_sesiones,
    serializar_periodo,
    serializar_sesion,
    validar_estado_actividad,
    validar_sesiones,
)
from app.services.reportes import estados_para_filtro

logger = logging.getLogger(__name__)


def codigo_por_defecto(actor_id: int, now: datetime) -> str:
    return f"EVT-{now:%Y%m%d%H%M%S}-{actor_id}"


def serializar_evento(
    evento: Evento,
    ep_sede_id: Optional[int],
    sesiones: Optional[List[Sesion]] = None,
) -> Dict[str, Any]:
    ref = evento.target
    datos = {
        "id": evento.id,
        "codigo": evento.codigo,
        "periodo_id": evento.periodo_id,
        "categoria_evento_id": evento.categoria_evento_id,
        "titulo": evento.titulo,
        "subtitulo": evento.subtitulo,
        "descripcion_corta": evento.descripcion_corta,
        "modalidad": evento.modalidad,
        "lugar_detallado": evento.lugar_detallado,
        "target_type": TARGET_TYPE_PUBLICO.get(ref.kind) if ref else None,
        "target_id": evento.target_id,
        "ep_sede_id": ep_sede_id,
        "requiere_inscripcion": bool(evento.requiere_inscripcion),
        "cupo_maximo": evento.cupo_maximo,
        "inscripcion_desde": evento.inscripcion_desde,
        "inscripcion_hasta": evento.inscripcion_hasta,
        "estado": evento.estado,
        "periodo": serializar_periodo(evento.periodo),
        "categoria": (
            {"id": evento.categoria.id, "nombre": evento.categoria.nombre}
            if evento.categoria is not None
            else None
        ),
    }
    if sesiones is not None:
        datos["sesiones"] = [serializar_sesion(s) for s in sesiones]
        primera = sesiones[0] if sesiones else None
        datos["fecha"] = primera.fecha.isoformat() if primera else None
    return datos


async def _unidad_del_destino(db: AsyncSession, actor_id: int, obj_in: EventoCreate) -> Ref:
    """Destino del evento; sin destino explícito se usa la EP-SEDE del actor"""
    if obj_in.target_type is not None:
        ref = Ref(obj_in.target_type, obj_in.target_id)
    else:
        ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, obj_in.ep_sede_id)
        ref = Ref(RefKind.EP_SEDE, ep_sede_id)

    ep_sede_id = resolve_unit_id(ref, await parent_units(db, [ref]))
    if not ep_sede_id:
        raise VmError(
            ReasonCode.EVENT_WITHOUT_UNIT,
            "El destino del evento no tiene una EP_SEDE asociada.",
            meta={"target_type": TARGET_TYPE_PUBLICO.get(ref.kind), "target_id": ref.id},
        )
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    return ref


async def detalle(db: AsyncSession, evento_id: int) -> Dict[str, Any]:
    evento = await obtener(db, evento_id)
    sesiones = await crud_sesion.get_de_owner(db, Ref(RefKind.EVENT, evento.id))
    return serializar_evento(evento, await crud_evento.resolver_ep_sede(db, evento), sesiones)


async def obtener(db: AsyncSession, evento_id: int) -> Evento:
    evento = await crud_evento.get_with_relations(db, evento_id)
    if evento is None:
        raise not_found("Evento no encontrado.", meta={"evento_id": evento_id})
    return evento


async def crear(
    db: AsyncSession, actor_id: int, obj_in: EventoCreate, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Crea el evento con sus sesiones.

    Todas las sesiones deben caer en el rango del período y terminar después
    de empezar; si alguna falla no se guarda nada.
    """
    destino = await _unidad_del_destino(db, actor_id, obj_in)
    periodo = await crud_periodo.get(db, obj_in.periodo_id)
    if periodo is None:
        raise not_found(
            "Período no encontrado.", ReasonCode.PERIOD_NOT_FOUND, {"periodo_id": obj_in.periodo_id}
        )
    if obj_in.categoria_evento_id and await crud_categoria.get(db, obj_in.categoria_evento_id) is None:
        raise not_found(
            "Categoría no encontrada.", meta={"categoria_evento_id": obj_in.categoria_evento_id}
        )
    validar_sesiones(obj_in.sessions, periodo)

    codigo = (obj_in.codigo or "").strip() or codigo_por_defecto(actor_id, now or datetime.now())
    if await crud_evento.get_by_codigo(db, codigo) is not None:
        raise VmError(
            ReasonCode.VALIDATION_ERROR,
            "Ya existe un evento con ese código.",
            meta={"codigo": codigo},
        )

    datos = obj_in.model_dump(exclude={"sessions", "ep_sede_id", "target_type", "target_id", "codigo"})
    datos.update(
        codigo=codigo,
        modalidad=obj_in.modalidad.value,
        target_type=destino.kind.value,
        target_id=destino.id,
        estado=ActividadEstado.PLANNED.value,
    )
    try:
        evento = await crud_evento.create(db, obj_in=datos, commit=False)
        await crear_sesiones(db, Ref(RefKind.EVENT, evento.id), obj_in.sessions)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Evento %s creado por %s con %s sesiones", evento.id, actor_id, len(obj_in.sessions)
    )
    return await detalle(db, evento.id)


async def listar(
    db: AsyncSession,
    actor_id: int,
    *,
    estado: Optional[str] = None,
    only_my_unit: bool = False,
    page: int = 1,
    per_page: int = 15,
) -> Dict[str, Any]:
    targets = None
    if only_my_unit:
        targets = await targets_de_unidades(
            db, await ep_scope.ep_sedes_managed_by(db, actor_id)
        )
    eventos, total = await crud_evento.list_filtrado(
        db,
        estado=estado,
        targets=targets,
        skip=(page - 1) * per_page,
        limit=per_page,
    )
    unidades = await parent_units(db, [e.target for e in eventos])
    return {
        "items": [serializar_evento(e, resolve_unit_id(e.target, unidades)) for e in eventos],
        "meta": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "last_page": max(1, -(-total // per_page)),
        },
    }


async def _evento_de_mi_sede(db: AsyncSession, actor_id: int, evento_id: int) -> Evento:
    evento = await obtener(db, evento_id)
    await ep_scope.ensure_manages(db, actor_id, await crud_evento.resolver_ep_sede(db, evento))
    return evento


async def actualizar(
    db: AsyncSession, actor_id: int, evento_id: int, obj_in: EventoUpdate
) -> Dict[str, Any]:
    evento = await _evento_de_mi_sede(db, actor_id, evento_id)
    if evento.estado == ActividadEstado.CLOSED.value:
        raise VmError(
            ReasonCode.EVENT_NOT_EDITABLE,
            "No se puede editar un evento cerrado.",
            meta={"estado": evento.estado},
        )

    cambios = obj_in.model_dump(exclude_unset=True)
    if "estado" in cambios and cambios["estado"] is not None:
        validar_estado_actividad(evento.estado, obj_in.estado.value)
        cambios["estado"] = obj_in.estado.value
    if cambios.get("modalidad") is not None:
        cambios["modalidad"] = obj_in.modalidad.value
    if cambios.get("categoria_evento_id") and await crud_categoria.get(
        db, cambios["categoria_evento_id"]
    ) is None:
        raise not_found(
            "Categoría no encontrada.", meta={"categoria_evento_id": cambios["categoria_evento_id"]}
        )
    desde = cambios.get("inscripcion_desde", evento.inscripcion_desde)
    hasta = cambios.get("inscripcion_hasta", evento.inscripcion_hasta)
    if desde is not None and hasta is not None and hasta < desde:
        raise VmError(
            ReasonCode.VALIDATION_ERROR,
            "inscripcion_hasta debe ser posterior a inscripcion_desde.",
            meta={"inscripcion_desde": desde.isoformat(), "inscripcion_hasta": hasta.isoformat()},
        )

    await crud_evento.update(db, db_obj=evento, obj_in=cambios)
    logger.info("Evento %s actualizado por %s: %s", evento.id, actor_id, sorted(cambios))
    return await detalle(db, evento.id)


async def eliminar(db: AsyncSession, actor_id: int, evento_id: int) -> None:
    """
    Solo eventos PLANNED. Lo que cuelga del evento (sesiones con sus
    asistencias y horas, participaciones) se borra en la misma transacción;
    el vínculo es polimórfico y no hay FK que lo arrastre.
    """
    evento = await _evento_de_mi_sede(db, actor_id, evento_id)
    if evento.estado != ActividadEstado.PLANNED.value:
        raise VmError(
            ReasonCode.EVENT_NOT_DELETABLE,
            "Solo se pueden eliminar eventos en estado PLANNED.",
            meta={"estado": evento.estado},
        )
    try:
        ref = Ref(RefKind.EVENT, evento.id)
        borradas = await crud_sesion.delete_de_owner(db, ref)
        participantes = await crud_participacion.delete_for(db, ref)
        await db.delete(evento)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(
        "Evento %s eliminado por %s (%s sesiones, %s participaciones)",
        evento_id, actor_id, borradas, participantes,
    )


async def mis_eventos(
    db: AsyncSession,
    actor_id: int,
    *,
    estado_participacion: Optional[str] = "ACTIVE",
    periodo_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Eventos en los que participa el alumno, agrupados por período"""
    filas = await crud_participacion.eventos_de_usuario(
        db,
        user_id=actor_id,
        estados=estados_para_filtro(estado_participacion),
        periodo_id=periodo_id,
    )

    periodos: Dict[int, Dict[str, Any]] = {}
    eventos = []
    for part, evento, periodo in filas:
        resumen = periodos.setdefault(
            periodo.id,
            {
                "id": periodo.id,
                "codigo": periodo.codigo,
                "anio": periodo.anio,
                "ciclo": periodo.ciclo,
                "estado": periodo.estado,
                "total_eventos": 0,
            },
        )
        resumen["total_eventos"] += 1
        eventos.append(
            {
                "id": evento.id,
                "codigo": evento.codigo,
                "titulo": evento.titulo,
                "subtitulo": evento.subtitulo,
                "modalidad": evento.modalidad,
                "estado": evento.estado,
                "periodo_id": evento.periodo_id,
                "requiere_inscripcion": bool(evento.requiere_inscripcion),
                "cupo_maximo": evento.cupo_maximo,
                "descripcion_corta": evento.descripcion_corta,
                "lugar_detallado": evento.lugar_detallado,
                "inscripcion_desde": evento.inscripcion_desde,
                "inscripcion_hasta": evento.inscripcion_hasta,
                "participacion": {"id": part.id, "estado": part.estado},
            }
        )

    return {"periodos": list(periodos.values()), "eventos": eventos}


# --- categorías ---


def serializar_categoria(c: CategoriaEvento) -> Dict[str, Any]:
    return {"id": c.id, "nombre": c.nombre, "descripcion": c.descripcion}


async def listar_categorias(db: AsyncSession) -> List[Dict[str, Any]]:
    return [serializar_categoria(c) for c in await crud_categoria.list_ordenadas(db)]


async def crear_categoria(db: AsyncSession, obj_in: CategoriaCreate) -> Dict[str, Any]:
    return serializar_categoria(await crud_categoria.create(db, obj_in=obj_in))


async def _categoria(db: AsyncSession, categoria_id: int) -> CategoriaEvento:
    categoria = await crud_categoria.get(db, categoria_id)
    if categoria is None:
        raise not_found("Categoría no encontrada.", meta={"categoria_evento_id": categoria_id})
    return categoria


async def actualizar_categoria(
    db: AsyncSession, categoria_id: int, obj_in: CategoriaUpdate
) -> Dict[str, Any]:
    categoria = await _categoria(db, categoria_id)
    categoria = await crud_categoria.update(db, db_obj=categoria, obj_in=obj_in)
    return serializar_categoria(categoria)


async def eliminar_categoria(db: AsyncSession, categoria_id: int) -> None:
    await _categoria(db, categoria_id)
    await crud_categoria.remove(db, id=categoria_id)


async def unidad_de_evento(db: AsyncSession, evento: Evento) -> int:
    """EP-SEDE del evento o 422 EVENT_WITHOUT_UNIT"""
    ep_sede_id = await crud_evento.resolver_ep_sede(db, evento)
    if not ep_sede_id:
        raise VmError(
            ReasonCode.EVENT_WITHOUT_UNIT,
            "El evento no tiene una EP_SEDE resoluble.",
            meta={"target_type": evento.target_type, "target_id": evento.target_id},
        )
    return ep_sede_id
