from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.schemas.inscripcion import InspectionEnrollRequest, MarkAttendanceRequest
from app.services import horas, inscripciones, reportes
from app.utils.helpers import ResponseFormatter

router = APIRouter()


@router.get("/summary", response_model=dict)
async def unit_summary(
    ep_sede_id: Optional[int] = Query(default=None),
    periodo_id: Optional[int] = Query(default=None),
    periodo_codigo: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Resumen VM de la EP-SEDE en un período (por defecto el actual)"""
    data = await reportes.resumen_sede(
        db,
        actor_id,
        ep_sede_id=ep_sede_id,
        periodo_id=periodo_id,
        periodo_codigo=periodo_codigo,
    )
    return ResponseFormatter.success(data)


@router.get("/student", response_model=dict)
async def inspect_student(
    record_id: Optional[int] = Query(default=None),
    code: Optional[str] = Query(default=None),
    ep_sede_id: Optional[int] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Situación VM de un alumno por período"""
    data = await reportes.inspeccionar_alumno(
        db, actor_id, ep_sede_id=ep_sede_id, record_id=record_id, code=code
    )
    return ResponseFormatter.success(data)


@router.get("/projects", response_model=dict)
async def projects_by_period(
    periodo_codigo: str = Query(..., min_length=1),
    nivel: Optional[int] = Query(default=None, ge=1, le=10),
    ep_sede_id: Optional[int] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    data = await reportes.proyectos_por_periodo(
        db, actor_id, periodo_codigo=periodo_codigo, ep_sede_id=ep_sede_id, nivel=nivel
    )
    return ResponseFormatter.success(data)


@router.post("/enroll", response_model=dict, status_code=status.HTTP_201_CREATED)
async def inspection_enroll(
    body: InspectionEnrollRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Alta directa de un expediente en un proyecto de la EP-SEDE"""
    data = await inscripciones.inscribir_por_inspeccion(
        db,
        actor_id,
        project_id=body.project_id,
        ep_sede_id=body.ep_sede_id,
        record_id=body.record_id,
        code=body.code,
    )
    return ResponseFormatter.success(data, code="ENROLLED")


@router.post("/attendance/mark", response_model=dict)
async def mark_attendance(
    body: MarkAttendanceRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Validación manual de asistencia a sesiones de procesos"""
    data = await horas.marcar_por_inspeccion(
        db,
        actor_id,
        sesion_ids=body.session_ids,
        ep_sede_id=body.ep_sede_id,
        record_id=body.record_id,
        code=body.code,
    )
    return ResponseFormatter.success(data, code="ATTENDANCE_MARKED")
