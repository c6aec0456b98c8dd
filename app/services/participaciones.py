import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError, not_found
from app.core.refs import RefKind, resolve_unit_id
from app.crud.evento import evento as crud_evento, parent_units
from app.crud.participacion import participacion as crud_participacion
from app.crud.proyecto import proyecto as crud_proyecto
from app.models.enums import ParticipacionEstado as E
from app.models.participacion import Participacion
from app.services import ep_scope

logger = logging.getLogger(__name__)

# Transiciones permitidas; CANCELLED y FINISHED son terminales
TRANSICIONES = {
    E.ENROLLED: {E.CONFIRMED, E.FINISHED, E.CANCELLED},
    E.CONFIRMED: {E.FINISHED, E.CANCELLED},
    E.FINISHED: set(),
    E.CANCELLED: set(),
}


def puede_transicionar(desde: str, hacia: str) -> bool:
    try:
        origen, destino = E(desde), E(hacia)
    except ValueError:
        return False
    return origen == destino or destino in TRANSICIONES[origen]


def validar_transicion(desde: str, hacia: str) -> None:
    if not puede_transicionar(desde, hacia):
        raise VmError(
            ReasonCode.INVALID_TRANSITION,
            f"No se puede pasar de {desde} a {hacia}.",
            meta={"from": desde, "to": hacia},
        )


async def unidad_de(db: AsyncSession, part: Participacion) -> Optional[int]:
    """EP-SEDE del destino de la participación"""
    ref = part.participable
    if ref.kind == RefKind.PROJECT:
        proyecto = await crud_proyecto.get(db, ref.id)
        return proyecto.ep_sede_id if proyecto else None
    evento = await crud_evento.get(db, ref.id)
    if evento is None:
        return None
    return resolve_unit_id(evento.target, await parent_units(db, [evento.target]))


async def cambiar_estado(
    db: AsyncSession, actor_id: int, participacion_id: int, estado: E
) -> Participacion:
    """Transición explícita por staff de la EP-SEDE del destino"""
    part = await crud_participacion.get(db, participacion_id)
    if part is None:
        raise not_found("Participación no encontrada.", meta={"participacion_id": participacion_id})

    await ep_scope.ensure_manages(db, actor_id, await unidad_de(db, part))

    validar_transicion(part.estado, estado.value)
    if part.estado == estado.value:
        return part

    anterior = part.estado
    part = await crud_participacion.update(db, db_obj=part, obj_in={"estado": estado.value})
    logger.info(
        "Participación %s: %s -> %s por %s", part.id, anterior, part.estado, actor_id
    )
    return part
