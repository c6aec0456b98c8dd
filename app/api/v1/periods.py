from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.crud.periodo import periodo as crud_periodo
from app.schemas.periodo import Periodo, PeriodoCreate
from app.services import periodos
from app.utils.helpers import ResponseFormatter

router = APIRouter()


@router.get("/", response_model=dict)
async def read_periods(
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    items = await crud_periodo.list_recientes(db)
    return ResponseFormatter.success([Periodo.model_validate(p).model_dump() for p in items])


@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_period(
    periodo_in: PeriodoCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    periodo = await periodos.crear(db, periodo_in)
    return ResponseFormatter.success(Periodo.model_validate(periodo).model_dump())


@router.post("/{periodo_id}/set-current", response_model=dict)
async def set_current_period(
    periodo_id: int,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Marca el período como actual y desmarca todos los demás"""
    periodo = await periodos.marcar_actual(db, periodo_id)
    return ResponseFormatter.success(Periodo.model_validate(periodo).model_dump())
