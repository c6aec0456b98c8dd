"""
Orquestador de inscripciones.

Toda inscripción pasa por el `EvaluadorElegibilidad` en el momento de la
llamada (nunca se confía en un listado previo) y termina en un
create-or-fetch de la participación, respaldado por la restricción única
(destino, expediente).
"""
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref, RefKind
from app.crud.expediente import expediente as crud_expediente
from app.crud.participacion import participacion as crud_participacion
from app.crud.proyecto import proyecto as crud_proyecto
from app.models.evento import Evento
from app.models.expediente import Expediente
from app.models.participacion import Participacion
from app.models.proyecto import Proyecto
from app.services import ep_scope
from app.services.elegibilidad import (
    Decision,
    EvaluadorElegibilidad,
    Objetivo,
    normalizar_tipo,
    parse_ciclo,
    recorrer_candidatos,
    ref_de,
)
from app.services.expedientes import resolver_expediente

logger = logging.getLogger(__name__)


def serializar_participacion(part: Participacion) -> Dict[str, Any]:
    return {
        "id": part.id,
        "participable_type": part.participable_type,
        "participable_id": part.participable_id,
        "expediente_id": part.expediente_id,
        "rol": part.rol,
        "estado": part.estado,
    }


def serializar_usuario(exp: Expediente) -> Optional[Dict[str, Any]]:
    u = exp.usuario
    if u is None:
        return None
    return {
        "id": u.id,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "full_name": u.full_name,
        "email": u.email,
        "celular": u.celular,
    }


def item_candidato(exp: Expediente, decision: Decision) -> Dict[str, Any]:
    return {
        "expediente_id": exp.id,
        "codigo": exp.codigo_estudiante,
        "ciclo": parse_ciclo(exp.ciclo),
        "grupo": exp.grupo,
        "usuario": serializar_usuario(exp),
        "motivo": decision.motivo,
    }


def item_descartado(
    exp: Optional[Expediente], decision: Decision, expediente_id: Optional[int] = None
) -> Dict[str, Any]:
    return {
        "expediente_id": exp.id if exp is not None else expediente_id,
        "codigo": exp.codigo_estudiante if exp is not None else None,
        "ciclo": parse_ciclo(exp.ciclo) if exp is not None else None,
        "grupo": exp.grupo if exp is not None else None,
        "razon": decision.code.value,
        "meta": decision.meta,
    }


async def resumen_objetivo(evaluador: EvaluadorElegibilidad, objetivo: Objetivo) -> Dict[str, Any]:
    if isinstance(objetivo, Proyecto):
        niveles = await evaluador.niveles(objetivo)
        return {
            "id": objetivo.id,
            "tipo": normalizar_tipo(objetivo.tipo),
            "nivel": niveles[0] if niveles else objetivo.nivel,
            "niveles": niveles,
        }
    return {
        "id": objetivo.id,
        "estado": objetivo.estado,
        "ep_sede_id": await evaluador.unidad(objetivo),
        "cupo_maximo": objetivo.cupo_maximo,
    }


async def _unidad_o_error(evaluador: EvaluadorElegibilidad, objetivo: Objetivo) -> int:
    ep_sede_id = await evaluador.unidad(objetivo)
    if not ep_sede_id:
        raise VmError(
            ReasonCode.EVENT_WITHOUT_UNIT,
            "El evento no tiene una EP_SEDE resoluble.",
            meta={"target_type": objetivo.target_type, "target_id": objetivo.target_id},
        )
    return ep_sede_id


async def _expediente_del_actor(
    db: AsyncSession, actor_id: int, ep_sede_id: Optional[int]
) -> Optional[Expediente]:
    """Expediente ACTIVE del actor en la EP-SEDE; si no hay, el más cercano para diagnóstico"""
    if ep_sede_id:
        activo = await crud_expediente.get_activo_de_usuario(
            db, user_id=actor_id, ep_sede_id=ep_sede_id
        )
        if activo is not None:
            return activo
    propios = await crud_expediente.get_de_usuario(db, user_id=actor_id)
    de_la_sede = [e for e in propios if e.ep_sede_id == ep_sede_id]
    if de_la_sede:
        return de_la_sede[0]
    return propios[0] if propios else None


async def confirmar_participacion(
    db: AsyncSession, ref: Ref, expediente_id: int
) -> Tuple[Participacion, bool]:
    """Create-or-fetch en su propia transacción; devuelve (participación, creada)"""
    try:
        part, creada = await crud_participacion.create_or_fetch(db, ref, expediente_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return part, creada


async def _crear(
    db: AsyncSession, evaluador: EvaluadorElegibilidad, objetivo: Objetivo, exp: Expediente
) -> Participacion:
    """Una carrera perdida se informa como ALREADY_ENROLLED"""
    ref = ref_de(objetivo)
    part, creada = await confirmar_participacion(db, ref, exp.id)
    if not creada:
        raise VmError(
            ReasonCode.ALREADY_ENROLLED,
            "Ya estás inscrito.",
            meta={"participacion_id": part.id},
        )
    evaluador.registrar_inscripcion(ref, exp.id, part.id)
    logger.info(
        "Inscripción creada %s/%s expediente=%s participacion=%s",
        ref.kind.value, ref.id, exp.id, part.id,
    )
    return part


async def inscribir_actor(
    db: AsyncSession, actor_id: int, objetivo: Objetivo, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Autoinscripción del alumno autenticado en un proyecto o evento"""
    evaluador = EvaluadorElegibilidad(db, now)
    ep_sede_id = await evaluador.unidad(objetivo)
    exp = await _expediente_del_actor(db, actor_id, ep_sede_id)

    decision = await evaluador.evaluar(objetivo, exp)
    if not decision.eligible:
        logger.info(
            "Inscripción rechazada actor=%s %s/%s: %s",
            actor_id, ref_de(objetivo).kind.value, objetivo.id, decision.code.value,
        )
        raise decision.to_error()

    part = await _crear(db, evaluador, objetivo, exp)
    clave = "project" if isinstance(objetivo, Proyecto) else "event"
    return {
        "participation": serializar_participacion(part),
        clave: await resumen_objetivo(evaluador, objetivo),
        "motivo": decision.motivo,
    }


async def inscribir_expediente_en_evento(
    db: AsyncSession,
    actor_id: int,
    evento: Evento,
    *,
    record_id: Optional[int] = None,
    code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Inscripción manual por staff: revalida ventana y cupo en el momento"""
    evaluador = EvaluadorElegibilidad(db, now)
    ep_sede_id = await _unidad_o_error(evaluador, evento)
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    exp = await resolver_expediente(db, ep_sede_id, record_id=record_id, code=code)

    decision = await evaluador.evaluar_evento(evento, exp)
    if not decision.eligible:
        raise decision.to_error()

    part = await _crear(db, evaluador, evento, exp)
    return {
        "participation": serializar_participacion(part),
        "event": await resumen_objetivo(evaluador, evento),
        "expediente": {"id": exp.id, "codigo": exp.codigo_estudiante},
    }


@dataclass
class ResultadoMasivo:
    only_eligible: bool
    created: int = 0
    already_enrolled: int = 0
    skipped_by_limit: int = 0
    discarded: List[Dict[str, Any]] = field(default_factory=list)
    discarded_total: int = 0

    def descartar(self, item: Dict[str, Any]) -> None:
        if self.only_eligible:
            return
        self.discarded_total += 1
        self.discarded.append(item)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "already_enrolled": self.already_enrolled,
            "skipped_by_limit": self.skipped_by_limit,
            "discarded_total": self.discarded_total,
            "discarded": self.discarded,
        }


async def _procesar(
    db: AsyncSession,
    evaluador: EvaluadorElegibilidad,
    objetivo: Objetivo,
    exp: Optional[Expediente],
    decision: Decision,
    resultado: ResultadoMasivo,
    limit: int,
    expediente_id: Optional[int] = None,
) -> None:
    """Aplica una decisión del lote: crear, contar como ya inscrito o descartar"""
    if decision.code == ReasonCode.ALREADY_ENROLLED:
        resultado.already_enrolled += 1
        return
    if not decision.eligible:
        resultado.descartar(item_descartado(exp, decision, expediente_id))
        return
    if limit > 0 and resultado.created >= limit:
        resultado.skipped_by_limit += 1
        return

    ref = ref_de(objetivo)
    part, creada = await confirmar_participacion(db, ref, exp.id)
    if creada:
        resultado.created += 1
        evaluador.registrar_inscripcion(ref, exp.id, part.id)
    else:
        resultado.already_enrolled += 1


async def _preparar_masivo(
    db: AsyncSession, actor_id: int, objetivo: Objetivo, now: Optional[datetime]
):
    evaluador = EvaluadorElegibilidad(db, now)
    ep_sede_id = await _unidad_o_error(evaluador, objetivo)
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    return evaluador, ep_sede_id


async def inscribir_todos_elegibles(
    db: AsyncSession,
    actor_id: int,
    objetivo: Objetivo,
    *,
    only_eligible: bool = True,
    limit: int = 0,
    q: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Inscribe a todos los candidatos elegibles de la EP-SEDE.

    `limit` solo topa las creaciones: el recorrido continúa para que la
    contabilidad de ya inscritos y descartados quede completa.
    """
    evaluador, ep_sede_id = await _preparar_masivo(db, actor_id, objetivo, now)
    resultado = ResultadoMasivo(only_eligible=only_eligible)

    async with aclosing(recorrer_candidatos(evaluador, objetivo, ep_sede_id, q=q)) as candidatos:
        async for exp, decision in candidatos:
            await _procesar(db, evaluador, objetivo, exp, decision, resultado, limit)

    logger.info(
        "Inscripción masiva %s/%s por %s: creados=%s ya_inscritos=%s descartados=%s",
        ref_de(objetivo).kind.value, objetivo.id, actor_id,
        resultado.created, resultado.already_enrolled, resultado.discarded_total,
    )
    datos = resultado.to_dict()
    datos["target"] = await resumen_objetivo(evaluador, objetivo)
    return datos


async def inscribir_seleccionados(
    db: AsyncSession,
    actor_id: int,
    objetivo: Objetivo,
    record_ids: Sequence[int],
    *,
    only_eligible: bool = True,
    limit: int = 0,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Igual que la masiva pero sobre los expedientes elegidos por el staff"""
    evaluador, ep_sede_id = await _preparar_masivo(db, actor_id, objetivo, now)
    resultado = ResultadoMasivo(only_eligible=only_eligible)

    expedientes = await crud_expediente.get_many_with_usuario(db, record_ids)
    await evaluador.precargar_inscritos(ref_de(objetivo), list(expedientes))

    for expediente_id in record_ids:
        exp = expedientes.get(int(expediente_id))
        decision = await evaluador.evaluar(objetivo, exp)
        await _procesar(
            db, evaluador, objetivo, exp, decision, resultado, limit, expediente_id=expediente_id
        )

    logger.info(
        "Inscripción de seleccionados %s/%s por %s: creados=%s ya_inscritos=%s descartados=%s",
        ref_de(objetivo).kind.value, objetivo.id, actor_id,
        resultado.created, resultado.already_enrolled, resultado.discarded_total,
    )
    datos = resultado.to_dict()
    datos["target"] = await resumen_objetivo(evaluador, objetivo)
    return datos


async def listar_candidatos(
    db: AsyncSession,
    actor_id: int,
    objetivo: Objetivo,
    *,
    only_eligible: bool = True,
    limit: int = 0,
    q: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Particiona los expedientes ACTIVE de la EP-SEDE en elegibles y no elegibles"""
    evaluador, ep_sede_id = await _preparar_masivo(db, actor_id, objetivo, now)
    elegibles: List[Dict[str, Any]] = []
    no_elegibles: List[Dict[str, Any]] = []

    async with aclosing(recorrer_candidatos(evaluador, objetivo, ep_sede_id, q=q)) as candidatos:
        async for exp, decision in candidatos:
            if decision.eligible:
                elegibles.append(item_candidato(exp, decision))
                if limit > 0 and len(elegibles) >= limit:
                    break
            elif not only_eligible:
                no_elegibles.append(item_descartado(exp, decision))

    return {
        "target": await resumen_objetivo(evaluador, objetivo),
        "eligible_total": len(elegibles),
        "not_eligible_total": len(no_elegibles),
        "eligible": elegibles,
        "not_eligible": no_elegibles,
    }


async def inscribir_por_inspeccion(
    db: AsyncSession,
    actor_id: int,
    *,
    project_id: int,
    ep_sede_id: Optional[int] = None,
    record_id: Optional[int] = None,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Alta directa por inspección: el staff fuerza la participación.

    Solo valida alcance (expediente y proyecto de la EP-SEDE del actor); no
    aplica reglas de nivel ni de período.
    """
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, ep_sede_id)
    proyecto = await crud_proyecto.get(db, project_id)
    if proyecto is None or proyecto.ep_sede_id != ep_sede_id:
        raise VmError(
            ReasonCode.PROJECT_NOT_IN_UNIT,
            "El proyecto no pertenece a la EP_SEDE.",
            meta={"project_id": project_id, "ep_sede_id": ep_sede_id},
        )
    exp = await resolver_expediente(db, ep_sede_id, record_id=record_id, code=code)

    part, creada = await confirmar_participacion(db, Ref(RefKind.PROJECT, proyecto.id), exp.id)

    if creada:
        logger.info(
            "Inscripción por inspección proyecto=%s expediente=%s por %s",
            proyecto.id, exp.id, actor_id,
        )
    return {
        "expediente_id": exp.id,
        "codigo_estudiante": exp.codigo_estudiante,
        "proyecto_id": proyecto.id,
        "participation": {"id": part.id, "estado": part.estado, "rol": part.rol},
        "created": creada,
    }
