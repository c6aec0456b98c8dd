from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_actor
from app.config.database import get_db
from app.schemas.participacion import ParticipacionEstadoUpdate
from app.services import participaciones
from app.services.inscripciones import serializar_participacion
from app.utils.helpers import ResponseFormatter

router = APIRouter()


@router.patch("/{participacion_id}", response_model=dict)
async def update_participation_status(
    participacion_id: int,
    estado_in: ParticipacionEstadoUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    """Transición de estado por staff de la EP-SEDE del destino"""
    part = await participaciones.cambiar_estado(db, actor_id, participacion_id, estado_in.estado)
    return ResponseFormatter.success(serializar_participacion(part))
