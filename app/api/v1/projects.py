from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.schemas.inscripcion import EnrollSelectedRequest
from app.schemas.proyecto import ProcesoCreate, ProyectoCreate, ProyectoEstadoUpdate
from app.services import inscripciones, proyectos, reportes
from app.utils.helpers import ResponseFormatter, split_csv

router = APIRouter()


@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_project(
    proyecto_in: ProyectoCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Crear proyecto VM en la EP-SEDE del staff (estado PLANNED)"""
    data = await proyectos.crear(db, actor_id, proyecto_in)
    return ResponseFormatter.success(data)


@router.get("/{proyecto_id}", response_model=dict)
async def read_project(
    proyecto_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    proyecto = await proyectos.obtener(db, proyecto_id)
    return ResponseFormatter.success(proyectos.serializar_proyecto(proyecto))


@router.patch("/{proyecto_id}/status", response_model=dict)
async def update_project_status(
    proyecto_id: int,
    estado_in: ProyectoEstadoUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Cambiar estado del proyecto (solo hacia adelante)"""
    data = await proyectos.cambiar_estado(db, actor_id, proyecto_id, estado_in.estado)
    return ResponseFormatter.success(data)


@router.post("/{proyecto_id}/processes", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_process(
    proyecto_id: int,
    proceso_in: ProcesoCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Crear proceso con sus sesiones"""
    data = await proyectos.crear_proceso(db, actor_id, proyecto_id, proceso_in)
    return ResponseFormatter.success(data)


@router.post("/{proyecto_id}/enroll", response_model=dict, status_code=status.HTTP_201_CREATED)
async def enroll_in_project(
    proyecto_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Autoinscripción del alumno autenticado"""
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await inscripciones.inscribir_actor(db, actor_id, proyecto)
    return ResponseFormatter.success(data, code="ENROLLED")


@router.post("/{proyecto_id}/enroll-all-eligible-candidates", response_model=dict)
async def enroll_all_eligible(
    proyecto_id: int,
    only_eligible: bool = Query(default=True),
    limit: int = Query(default=0, ge=0),
    q: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Inscribir a todos los candidatos elegibles de la EP-SEDE"""
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await inscripciones.inscribir_todos_elegibles(
        db, actor_id, proyecto, only_eligible=only_eligible, limit=limit, q=q
    )
    return ResponseFormatter.success(data, code="BULK_ENROLLED")


@router.post("/{proyecto_id}/enroll-selected-candidates", response_model=dict)
async def enroll_selected(
    proyecto_id: int,
    body: EnrollSelectedRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await inscripciones.inscribir_seleccionados(
        db,
        actor_id,
        proyecto,
        body.record_ids,
        only_eligible=body.only_eligible,
        limit=body.limit,
    )
    return ResponseFormatter.success(data, code="BULK_ENROLLED")


@router.get("/{proyecto_id}/enrolled", response_model=dict)
async def list_enrolled(
    proyecto_id: int,
    estado: str = Query(default="ALL", description="ALL | ACTIVE | FINISHED"),
    roles: Optional[str] = Query(default=None, description="Lista separada por comas"),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Inscritos con minutos requeridos, acumulados, faltantes y porcentaje"""
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await reportes.listar_inscritos_proyecto(
        db, actor_id, proyecto, estado=estado, roles=split_csv(roles)
    )
    return ResponseFormatter.success(data)


@router.get("/{proyecto_id}/candidates", response_model=dict)
async def list_candidates(
    proyecto_id: int,
    only_eligible: bool = Query(default=True),
    limit: int = Query(default=0, ge=0),
    q: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Candidatos de la EP-SEDE separados en elegibles y no elegibles"""
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await inscripciones.listar_candidatos(
        db, actor_id, proyecto, only_eligible=only_eligible, limit=limit, q=q
    )
    return ResponseFormatter.success(data)


@router.get("/{proyecto_id}/progress", response_model=dict)
async def project_progress(
    proyecto_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    proyecto = await proyectos.obtener(db, proyecto_id)
    data = await reportes.progreso_proyecto(db, actor_id, proyecto)
    return ResponseFormatter.success(data)
