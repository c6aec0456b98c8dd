from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.schemas.categoria import CategoriaCreate, CategoriaUpdate
from app.schemas.evento import EventoCreate, EventoUpdate
from app.schemas.inscripcion import EnrollRecordRequest, EnrollSelectedRequest
from app.services import eventos, inscripciones, reportes
from app.utils.helpers import ResponseFormatter, clamp_per_page

router = APIRouter()


# Las rutas fijas van antes de /{evento_id}


@router.get("/categories", response_model=dict)
async def read_categories(
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return ResponseFormatter.success(await eventos.listar_categorias(db))


@router.post("/categories", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_category(
    categoria_in: CategoriaCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return ResponseFormatter.success(await eventos.crear_categoria(db, categoria_in))


@router.put("/categories/{categoria_id}", response_model=dict)
async def update_category(
    categoria_id: int,
    categoria_in: CategoriaUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    data = await eventos.actualizar_categoria(db, categoria_id, categoria_in)
    return ResponseFormatter.success(data)


@router.delete("/categories/{categoria_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    categoria_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    await eventos.eliminar_categoria(db, categoria_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/mine", response_model=dict)
async def read_my_events(
    estado_participacion: str = Query(default="ACTIVE", description="ACTIVE | FINISHED | ALL"),
    periodo_id: Optional[int] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Eventos del alumno autenticado agrupados por período"""
    data = await eventos.mis_eventos(
        db, actor_id, estado_participacion=estado_participacion, periodo_id=periodo_id
    )
    return ResponseFormatter.success(data)


@router.get("/", response_model=dict)
async def read_events(
    estado: Optional[str] = Query(default=None),
    only_my_unit: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    per_page: Optional[int] = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    data = await eventos.listar(
        db,
        actor_id,
        estado=estado.upper() if estado else None,
        only_my_unit=only_my_unit,
        page=page,
        per_page=clamp_per_page(per_page),
    )
    return ResponseFormatter.success(data["items"], meta=data["meta"])


@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_event(
    evento_in: EventoCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Crear evento con sus sesiones en una transacción"""
    data = await eventos.crear(db, actor_id, evento_in)
    return ResponseFormatter.success(data)


@router.get("/{evento_id}", response_model=dict)
async def read_event(
    evento_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return ResponseFormatter.success(await eventos.detalle(db, evento_id))


@router.put("/{evento_id}", response_model=dict)
async def update_event(
    evento_id: int,
    evento_in: EventoUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    data = await eventos.actualizar(db, actor_id, evento_id, evento_in)
    return ResponseFormatter.success(data)


@router.delete("/{evento_id}", response_model=dict)
async def delete_event(
    evento_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Solo eventos PLANNED"""
    await eventos.eliminar(db, actor_id, evento_id)
    return ResponseFormatter.success(None, code="DELETED")


@router.post("/{evento_id}/enroll", response_model=dict, status_code=status.HTTP_201_CREATED)
async def enroll_in_event(
    evento_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Autoinscripción del alumno autenticado"""
    evento = await eventos.obtener(db, evento_id)
    data = await inscripciones.inscribir_actor(db, actor_id, evento)
    return ResponseFormatter.success(data, code="ENROLLED")


@router.post("/{evento_id}/enroll-record", response_model=dict, status_code=status.HTTP_201_CREATED)
async def enroll_record_in_event(
    evento_id: int,
    body: EnrollRecordRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Inscripción manual de un expediente por staff (revalida ventana y cupo)"""
    evento = await eventos.obtener(db, evento_id)
    data = await inscripciones.inscribir_expediente_en_evento(
        db, actor_id, evento, record_id=body.record_id, code=body.code
    )
    return ResponseFormatter.success(data, code="ENROLLED")


@router.post("/{evento_id}/enroll-all-eligible-candidates", response_model=dict)
async def enroll_all_eligible(
    evento_id: int,
    only_eligible: bool = Query(default=True),
    limit: int = Query(default=0, ge=0),
    q: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    evento = await eventos.obtener(db, evento_id)
    data = await inscripciones.inscribir_todos_elegibles(
        db, actor_id, evento, only_eligible=only_eligible, limit=limit, q=q
    )
    return ResponseFormatter.success(data, code="BULK_ENROLLED")


@router.post("/{evento_id}/enroll-selected-candidates", response_model=dict)
async def enroll_selected(
    evento_id: int,
    body: EnrollSelectedRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    evento = await eventos.obtener(db, evento_id)
    data = await inscripciones.inscribir_seleccionados(
        db,
        actor_id,
        evento,
        body.record_ids,
        only_eligible=body.only_eligible,
        limit=body.limit,
    )
    return ResponseFormatter.success(data, code="BULK_ENROLLED")


@router.get("/{evento_id}/enrolled", response_model=dict)
async def list_enrolled(
    evento_id: int,
    estado: str = Query(default="ALL", description="ALL | ACTIVE | FINISHED"),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    evento = await eventos.obtener(db, evento_id)
    ep_sede_id = await eventos.unidad_de_evento(db, evento)
    data = await reportes.listar_inscritos_evento(db, actor_id, evento, ep_sede_id, estado=estado)
    return ResponseFormatter.success(data)


@router.get("/{evento_id}/candidates", response_model=dict)
async def list_candidates(
    evento_id: int,
    only_eligible: bool = Query(default=True),
    limit: int = Query(default=0, ge=0),
    q: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    evento = await eventos.obtener(db, evento_id)
    data = await inscripciones.listar_candidatos(
        db, actor_id, evento, only_eligible=only_eligible, limit=limit, q=q
    )
    return ResponseFormatter.success(data)
