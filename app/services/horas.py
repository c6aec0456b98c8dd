"""
Asistencias y libro de horas.

Los minutos validados salen del horario declarado de la sesión (fecha + hora
de inicio / fin), no de marcas reales de ingreso. Cada par (sesión,
expediente) tiene a lo sumo una asistencia y un registro de horas: volver a
marcar sobrescribe ambos.
"""
import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, not_found
from app.core.refs import Ref, RefKind
from app.crud.participacion import participacion as crud_participacion
from app.crud.proyecto import proceso as crud_proceso, proyecto as crud_proyecto
from app.crud.registro_hora import asistencia as crud_asistencia, registro_hora as crud_registro_hora
from app.crud.sesion import sesion as crud_sesion
from app.models.asistencia import Asistencia
from app.models.enums import AsistenciaEstado, AsistenciaMetodo, RegistroHoraEstado
from app.models.expediente import Expediente
from app.models.proyecto import Proyecto
from app.models.registro_hora import RegistroHora
from app.models.sesion import Sesion
from app.services import ep_scope
from app.services.elegibilidad import esta_finalizado, porcentaje_avance
from app.services.expedientes import resolver_expediente

logger = logging.getLogger(__name__)

ACTIVIDAD_INSPECCION = "Manual VM validation (inspection)"

SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
SESSION_NOT_PROCESS = "SESSION_NOT_PROCESS"
OTHER_UNIT = "OTHER_UNIT"


def normalizar_hora(valor: Union[str, time]) -> time:
    """'08:00' -> 08:00:00; los objetos time pasan sin cambios"""
    if isinstance(valor, time):
        return valor
    texto = str(valor).strip()
    if len(texto) == 5:
        texto += ":00"
    return datetime.strptime(texto.split(".")[0], "%H:%M:%S").time()


def ventana_sesion(
    fecha: date, hora_inicio: Union[str, time], hora_fin: Union[str, time]
) -> Tuple[datetime, datetime, int]:
    """(check_in, check_out, minutos) de una sesión; minutos nunca negativos"""
    check_in = datetime.combine(fecha, normalizar_hora(hora_inicio))
    check_out = datetime.combine(fecha, normalizar_hora(hora_fin))
    minutos = max(0, int((check_out - check_in).total_seconds() // 60))
    return check_in, check_out, minutos


def avance(estado: Optional[str], requerido: int, acumulado: int) -> Dict[str, Any]:
    return {
        "requerido_min": requerido,
        "acumulado_min": acumulado,
        "faltan_min": max(0, requerido - acumulado),
        "porcentaje": porcentaje_avance(acumulado, requerido),
        "finalizado": esta_finalizado(estado, acumulado, requerido),
    }


async def minutos_proyecto(
    db: AsyncSession, proyecto: Proyecto, expediente_ids: Sequence[int]
) -> Dict[int, int]:
    return await crud_registro_hora.minutos_por_expediente(
        db, proyecto_id=proyecto.id, expediente_ids=expediente_ids
    )


async def registrar_asistencia(
    db: AsyncSession,
    *,
    sesion: Sesion,
    expediente: Expediente,
    ep_sede_id: int,
    periodo_id: int,
    link: Ref,
    metodo: AsistenciaMetodo = AsistenciaMetodo.MANUAL_INSPECTION,
    actividad: str = ACTIVIDAD_INSPECCION,
) -> Tuple[Asistencia, RegistroHora]:
    """
    Upsert de la asistencia (sesión, expediente) y de su registro de horas.

    No confirma: el llamador controla la transacción.
    """
    check_in, check_out, minutos = ventana_sesion(sesion.fecha, sesion.hora_inicio, sesion.hora_fin)

    asistencia = await crud_asistencia.get_for(
        db, sesion_id=sesion.id, expediente_id=expediente.id
    )
    if asistencia is None:
        asistencia = Asistencia(sesion_id=sesion.id, expediente_id=expediente.id)
        db.add(asistencia)
    asistencia.metodo = metodo.value
    asistencia.estado = AsistenciaEstado.VALIDATED.value
    asistencia.check_in_at = check_in
    asistencia.check_out_at = check_out
    asistencia.minutos_validados = minutos
    await db.flush()

    registro = await crud_registro_hora.get_by_asistencia(db, asistencia.id)
    if registro is None:
        registro = RegistroHora(asistencia_id=asistencia.id)
        db.add(registro)
    registro.expediente_id = expediente.id
    registro.ep_sede_id = ep_sede_id
    registro.periodo_id = periodo_id
    registro.fecha = sesion.fecha
    registro.minutos = minutos
    registro.actividad = actividad
    registro.estado = RegistroHoraEstado.APPROVED.value
    registro.link_type = link.kind.value
    registro.link_id = link.id
    registro.sesion_id = sesion.id
    await db.flush()

    return asistencia, registro


async def marcar_asistencias(
    db: AsyncSession,
    *,
    expediente: Expediente,
    ep_sede_id: int,
    sesion_ids: Sequence[int],
) -> Dict[str, Any]:
    """
    Validación manual de asistencias a sesiones de procesos.

    Solo se aceptan sesiones de procesos cuyo proyecto es de la EP-SEDE; el
    resto se informa en `skipped`. Asegura la participación en el proyecto
    antes de marcar. Toda la petición es una transacción.
    """
    sesiones = {s.id: s for s in await crud_sesion.get_many(db, sesion_ids)}
    if not sesiones:
        raise not_found(
            "No se encontraron sesiones.",
            ReasonCode.NO_SESSIONS_FOUND,
            {"session_ids": list(sesion_ids)},
        )

    proceso_ids = [s.owner_id for s in sesiones.values() if s.owner_type == RefKind.PROCESS.value]
    procesos = await crud_proceso.get_many_map(db, proceso_ids)
    proyectos = await crud_proyecto.get_many_with_relations(
        db, [p.proyecto_id for p in procesos.values()]
    )

    creados: List[Dict[str, Any]] = []
    omitidos: List[Dict[str, Any]] = []
    try:
        for sesion_id in sesion_ids:
            sesion = sesiones.get(sesion_id)
            if sesion is None:
                omitidos.append({"sesion_id": sesion_id, "razon": SESSION_NOT_FOUND})
                continue
            proceso = procesos.get(sesion.owner_id) if sesion.owner_type == RefKind.PROCESS.value else None
            proyecto = proyectos.get(proceso.proyecto_id) if proceso else None
            if proyecto is None:
                omitidos.append({"sesion_id": sesion_id, "razon": SESSION_NOT_PROCESS})
                continue
            if proyecto.ep_sede_id != ep_sede_id:
                omitidos.append({"sesion_id": sesion_id, "razon": OTHER_UNIT})
                continue

            await crud_participacion.create_or_fetch(
                db, Ref(RefKind.PROJECT, proyecto.id), expediente.id
            )
            asistencia, registro = await registrar_asistencia(
                db,
                sesion=sesion,
                expediente=expediente,
                ep_sede_id=ep_sede_id,
                periodo_id=proyecto.periodo_id,
                link=Ref(RefKind.PROCESS, proceso.id),
            )
            creados.append(
                {
                    "sesion_id": sesion.id,
                    "proyecto_id": proyecto.id,
                    "proyecto_codigo": proyecto.codigo,
                    "periodo_codigo": proyecto.periodo.codigo if proyecto.periodo else None,
                    "minutos": asistencia.minutos_validados,
                    "asistencia_id": asistencia.id,
                    "registro_hora_id": registro.id,
                }
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Asistencias marcadas expediente=%s ep_sede=%s creadas=%s omitidas=%s",
        expediente.id, ep_sede_id, len(creados), len(omitidos),
    )
    return {
        "expediente_id": expediente.id,
        "codigo_estudiante": expediente.codigo_estudiante,
        "created": creados,
        "skipped": omitidos,
    }


async def marcar_por_inspeccion(
    db: AsyncSession,
    actor_id: int,
    *,
    sesion_ids: Sequence[int],
    ep_sede_id: Optional[int] = None,
    record_id: Optional[int] = None,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, ep_sede_id)
    expediente = await resolver_expediente(db, ep_sede_id, record_id=record_id, code=code)
    return await marcar_asistencias(
        db, expediente=expediente, ep_sede_id=ep_sede_id, sesion_ids=sesion_ids
    )
