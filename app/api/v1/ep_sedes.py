from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.schemas.staff import StaffAssign, StaffUnassign
from app.services import staff
from app.utils.helpers import ResponseFormatter

router = APIRouter()


@router.get("/staff/context", response_model=dict)
async def staff_context(
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """EP-SEDEs que administra el actor y la predeterminada"""
    return ResponseFormatter.success(await staff.contexto(db, actor_id))


@router.get("/{ep_sede_id}/staff", response_model=dict)
async def list_staff(
    ep_sede_id: int,
    only_active: bool = Query(default=True),
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    data = await staff.listar(db, actor_id, ep_sede_id, solo_activos=only_active)
    return ResponseFormatter.success(data)


@router.post("/{ep_sede_id}/staff/assign", response_model=dict)
async def assign_staff(
    ep_sede_id: int,
    body: StaffAssign,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Asignar staff; un nuevo COORDINATOR reemplaza al activo"""
    asignacion = await staff.asignar(db, actor_id, ep_sede_id, user_id=body.user_id, role=body.role)
    return ResponseFormatter.success(staff.serializar_asignacion(asignacion))


@router.post("/{ep_sede_id}/staff/unassign", response_model=dict)
async def unassign_staff(
    ep_sede_id: int,
    body: StaffUnassign,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    asignacion = await staff.desasignar(db, actor_id, ep_sede_id, user_id=body.user_id)
    return ResponseFormatter.success(staff.serializar_asignacion(asignacion))
