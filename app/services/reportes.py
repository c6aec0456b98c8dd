import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.refs import Ref, RefKind
from app.crud.expediente import expediente as crud_expediente
from app.crud.matricula import matricula as crud_matricula
from app.crud.participacion import participacion as crud_participacion
from app.crud.periodo import periodo as crud_periodo
from app.crud.proyecto import proyecto as crud_proyecto, normalizar_niveles
from app.crud.registro_hora import registro_hora as crud_registro_hora
from app.models.enums import (
    ESTADOS_PARTICIPACION_ACTIVOS,
    ParticipacionEstado,
    ProyectoTipo,
)
from app.models.evento import Evento
from app.models.participacion import Participacion
from app.models.proyecto import Proyecto
from app.services import ep_scope, periodos
from app.services.elegibilidad import minutos_requeridos_proyecto, normalizar_tipo, parse_ciclo
from app.services.expedientes import resolver_expediente
from app.services.horas import avance, minutos_proyecto
from app.services.inscripciones import serializar_usuario

logger = logging.getLogger(__name__)

# Meta de horas por período en la inspección de alumnos
HORAS_REQUERIDAS_PERIODO = 5

ESTADO_VCM_COMPLETO = "COMPLETE"
ESTADO_VCM_INCOMPLETO = "INCOMPLETE"
ESTADO_VCM_SIN_HORAS = "NO_HOURS"

FILTRO_TODOS = "ALL"
FILTRO_ACTIVOS = "ACTIVE"
FILTRO_FINALIZADOS = "FINISHED"


def estados_para_filtro(filtro: Optional[str]) -> Optional[List[str]]:
    filtro = (filtro or FILTRO_TODOS).upper()
    if filtro == FILTRO_ACTIVOS:
        return list(ESTADOS_PARTICIPACION_ACTIVOS)
    if filtro == FILTRO_FINALIZADOS:
        return [ParticipacionEstado.FINISHED.value]
    return None


def estado_vcm(horas_total: int, horas_requeridas: int = HORAS_REQUERIDAS_PERIODO) -> str:
    if horas_total >= horas_requeridas:
        return ESTADO_VCM_COMPLETO
    if horas_total > 0:
        return ESTADO_VCM_INCOMPLETO
    return ESTADO_VCM_SIN_HORAS


def _item_participacion(part: Participacion) -> Dict[str, Any]:
    exp = part.expediente
    return {
        "participacion_id": part.id,
        "rol": part.rol,
        "estado": part.estado,
        "expediente": {
            "id": exp.id,
            "codigo": exp.codigo_estudiante,
            "grupo": exp.grupo,
            "usuario": serializar_usuario(exp),
        },
    }


async def listar_inscritos_proyecto(
    db: AsyncSession,
    actor_id: int,
    proyecto: Proyecto,
    *,
    estado: Optional[str] = None,
    roles: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """Inscritos con minutos requeridos / acumulados / faltantes y porcentaje"""
    await ep_scope.ensure_manages(db, actor_id, proyecto.ep_sede_id)

    participaciones = await crud_participacion.list_for(
        db,
        Ref(RefKind.PROJECT, proyecto.id),
        estados=estados_para_filtro(estado),
        roles=roles,
    )
    requerido = minutos_requeridos_proyecto(proyecto)
    minutos = await minutos_proyecto(db, proyecto, [p.expediente_id for p in participaciones])

    items = []
    for part in participaciones:
        item = _item_participacion(part)
        item.update(avance(part.estado, requerido, minutos.get(part.expediente_id, 0)))
        items.append(item)

    return {
        "project": {
            "id": proyecto.id,
            "titulo": proyecto.titulo,
            "tipo": normalizar_tipo(proyecto.tipo),
            "requerido_min": requerido,
        },
        "items": items,
        "summary": {
            "total": len(items),
            "activos": sum(1 for i in items if i["estado"] in ESTADOS_PARTICIPACION_ACTIVOS),
            "finalizados": sum(1 for i in items if i["finalizado"]),
        },
    }


async def listar_inscritos_evento(
    db: AsyncSession,
    actor_id: int,
    evento: Evento,
    ep_sede_id: int,
    *,
    estado: Optional[str] = None,
) -> Dict[str, Any]:
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    participaciones = await crud_participacion.list_for(
        db, Ref(RefKind.EVENT, evento.id), estados=estados_para_filtro(estado)
    )
    items = [_item_participacion(p) for p in participaciones]
    return {
        "event": {"id": evento.id, "titulo": evento.titulo, "cupo_maximo": evento.cupo_maximo},
        "items": items,
        "summary": {
            "total": len(items),
            "activos": sum(1 for i in items if i["estado"] in ESTADOS_PARTICIPACION_ACTIVOS),
            "finalizados": sum(
                1 for i in items if i["estado"] == ParticipacionEstado.FINISHED.value
            ),
        },
    }


async def progreso_proyecto(db: AsyncSession, actor_id: int, proyecto: Proyecto) -> Dict[str, Any]:
    """Totales de minutos aprobados del proyecto en su período"""
    await ep_scope.ensure_manages(db, actor_id, proyecto.ep_sede_id)

    participaciones = await crud_participacion.list_for(db, Ref(RefKind.PROJECT, proyecto.id))
    requerido = minutos_requeridos_proyecto(proyecto)
    minutos = await minutos_proyecto(db, proyecto, [p.expediente_id for p in participaciones])
    totales = await crud_registro_hora.minutos_por_proyecto(db, proyecto_ids=[proyecto.id])
    minutos_totales, alumnos_con_horas = totales.get(proyecto.id, (0, 0))

    avances = [avance(p.estado, requerido, minutos.get(p.expediente_id, 0)) for p in participaciones]
    return {
        "proyecto_id": proyecto.id,
        "periodo_id": proyecto.periodo_id,
        "periodo_codigo": proyecto.periodo.codigo if proyecto.periodo else None,
        "requerido_min": requerido,
        "participantes": len(participaciones),
        "alumnos_con_horas": alumnos_con_horas,
        "minutos_totales": minutos_totales,
        "horas_totales": round(minutos_totales / 60, 2),
        "finalizados": sum(1 for a in avances if a["finalizado"]),
    }


async def resumen_sede(
    db: AsyncSession,
    actor_id: int,
    *,
    ep_sede_id: Optional[int] = None,
    periodo_id: Optional[int] = None,
    periodo_codigo: Optional[str] = None,
) -> Dict[str, Any]:
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, ep_sede_id)
    periodo = await periodos.resolver(db, periodo_id=periodo_id, periodo_codigo=periodo_codigo)

    total = await crud_expediente.count_por_sede(db, ep_sede_id=ep_sede_id)
    matriculados = await crud_matricula.count_matriculados(
        db, ep_sede_id=ep_sede_id, periodo_id=periodo.id
    )
    minutos, con_horas = await crud_registro_hora.totales_sede_periodo(
        db, ep_sede_id=ep_sede_id, periodo_id=periodo.id
    )
    return {
        "ep_sede_id": ep_sede_id,
        "periodo": {"id": periodo.id, "codigo": periodo.codigo, "estado": periodo.estado},
        "stats": {
            "total_expedientes": total,
            "total_matriculados": matriculados,
            "total_no_matriculados": max(0, total - matriculados),
            "total_con_horas_vcm": con_horas,
            "total_sin_horas_vcm": max(0, matriculados - con_horas),
            "total_horas_vcm_aprobadas": round(minutos / 60, 2),
            "total_minutos_vcm_aprobados": minutos,
        },
    }


def _fila_periodo(periodo, matricula=None) -> Dict[str, Any]:
    return {
        "periodo_id": periodo.id,
        "periodo_codigo": periodo.codigo,
        "anio": periodo.anio,
        "ciclo_periodo": periodo.ciclo,
        "periodo_estado": periodo.estado,
        "ciclo_matricula": parse_ciclo(matricula.ciclo) if matricula else None,
        "grupo": matricula.grupo if matricula else None,
        "matriculado": bool(matricula and matricula.fecha_matricula),
        "fecha_matricula": matricula.fecha_matricula if matricula else None,
        "horas_requeridas": HORAS_REQUERIDAS_PERIODO,
        "horas_total": 0,
        "horas_vinculadas": 0,
        "horas_libres": 0,
        "faltan": HORAS_REQUERIDAS_PERIODO,
        "estado_vcm": ESTADO_VCM_SIN_HORAS,
        "proyectos": [],
    }


async def inspeccionar_alumno(
    db: AsyncSession,
    actor_id: int,
    *,
    ep_sede_id: Optional[int] = None,
    record_id: Optional[int] = None,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Situación VM del alumno por período.

    Une matrículas y horas aprobadas; las horas se truncan a enteros y se
    separan por tipo de proyecto (LINKED / FREE).
    """
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, ep_sede_id)
    exp = await resolver_expediente(db, ep_sede_id, record_id=record_id, code=code)

    filas: Dict[int, Dict[str, Any]] = {}
    for mat in await crud_matricula.de_expediente(db, exp.id):
        filas[mat.periodo_id] = _fila_periodo(mat.periodo, mat)

    minutos: Dict[int, Dict[str, int]] = {}
    for periodo_id, tipo, cantidad in await crud_registro_hora.minutos_por_periodo_y_tipo(
        db, expediente_id=exp.id, ep_sede_id=exp.ep_sede_id
    ):
        acumulado = minutos.setdefault(periodo_id, {"total": 0, "linked": 0, "free": 0})
        acumulado["total"] += cantidad
        tipo = normalizar_tipo(tipo) if tipo else None
        if tipo == ProyectoTipo.LINKED.value:
            acumulado["linked"] += cantidad
        elif tipo == ProyectoTipo.FREE.value:
            acumulado["free"] += cantidad

    for periodo_id in minutos:
        if periodo_id not in filas:
            periodo = await crud_periodo.get(db, periodo_id)
            if periodo is not None:
                filas[periodo_id] = _fila_periodo(periodo)

    for periodo_id, fila in filas.items():
        m = minutos.get(periodo_id)
        if m:
            fila["horas_total"] = m["total"] // 60
            fila["horas_vinculadas"] = m["linked"] // 60
            fila["horas_libres"] = m["free"] // 60
        fila["faltan"] = max(0, fila["horas_requeridas"] - fila["horas_total"])
        fila["estado_vcm"] = estado_vcm(fila["horas_total"], fila["horas_requeridas"])

    participa = {
        p.participable_id: p
        for p in await crud_participacion.de_expediente(db, [exp.id], RefKind.PROJECT)
    }
    for periodo_id, fila in filas.items():
        for proy in await crud_proyecto.list_por_sede(db, ep_sede_id=ep_sede_id, periodo_id=periodo_id):
            part = participa.get(proy.id)
            fila["proyectos"].append(
                {
                    "proyecto_id": proy.id,
                    "codigo": proy.codigo,
                    "titulo": proy.titulo,
                    "tipo": normalizar_tipo(proy.tipo),
                    "estado": proy.estado,
                    "horas_planificadas": proy.horas_planificadas,
                    "participa": part is not None,
                    "participacion_id": part.id if part else None,
                    "estado_participacion": part.estado if part else None,
                }
            )

    resumen = sorted(filas.values(), key=lambda f: (f["anio"], f["ciclo_periodo"]))
    return {
        "ep_sede_id": ep_sede_id,
        "expediente_id": exp.id,
        "codigo_estudiante": exp.codigo_estudiante,
        "resumen": resumen,
    }


async def proyectos_por_periodo(
    db: AsyncSession,
    actor_id: int,
    *,
    periodo_codigo: str,
    ep_sede_id: Optional[int] = None,
    nivel: Optional[int] = None,
) -> Dict[str, Any]:
    """Proyectos de la EP-SEDE en el período, separados en vinculados y libres"""
    ep_sede_id = await ep_scope.resolve_ep_sede(db, actor_id, ep_sede_id)
    periodo = await periodos.resolver(db, periodo_codigo=periodo_codigo, por_defecto=False)

    vinculados, libres = [], []
    for proy in await crud_proyecto.list_por_sede(db, ep_sede_id=ep_sede_id, periodo_id=periodo.id):
        niveles = normalizar_niveles([c.nivel for c in proy.ciclos], proy.nivel)
        if nivel is not None and nivel not in niveles:
            continue
        item = {
            "id": proy.id,
            "codigo": proy.codigo,
            "titulo": proy.titulo,
            "horas_planificadas": proy.horas_planificadas,
            "niveles": niveles,
        }
        if normalizar_tipo(proy.tipo) == ProyectoTipo.LINKED.value:
            vinculados.append(item)
        else:
            libres.append(item)

    return {
        "ep_sede_id": ep_sede_id,
        "periodo": {"id": periodo.id, "codigo": periodo.codigo},
        "nivel": nivel,
        "vinculados": sorted(vinculados, key=lambda p: p["codigo"] or ""),
        "libres": sorted(libres, key=lambda p: p["codigo"] or ""),
    }
