import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import not_found
from app.crud.staff import ep_sede_staff as crud_staff
from app.crud.usuario import ep_sede as crud_ep_sede, usuario as crud_usuario
from app.models.enums import StaffRol
from app.models.ep_sede_staff import EpSedeStaff
from app.services import ep_scope

logger = logging.getLogger(__name__)


def serializar_asignacion(asignacion: EpSedeStaff) -> Dict[str, Any]:
    usuario = asignacion.usuario
    return {
        "id": asignacion.id,
        "ep_sede_id": asignacion.ep_sede_id,
        "role": asignacion.role,
        "activo": asignacion.activo,
        "assigned_at": asignacion.assigned_at,
        "ended_at": asignacion.ended_at,
        "usuario": {
            "id": usuario.id,
            "first_name": usuario.first_name,
            "last_name": usuario.last_name,
            "full_name": usuario.full_name,
            "email": usuario.email,
        } if usuario is not None else None,
    }


async def contexto(db: AsyncSession, actor_id: int) -> Dict[str, Any]:
    usuario = await crud_usuario.get(db, actor_id)
    managed = await ep_scope.ep_sedes_managed_by(db, actor_id)
    sedes = await crud_ep_sede.get_many(db, managed)
    return {
        "user": {
            "id": actor_id,
            "username": usuario.username if usuario else None,
            "first_name": usuario.first_name if usuario else None,
            "last_name": usuario.last_name if usuario else None,
            "email": usuario.email if usuario else None,
        },
        "ep_sede_id": managed[0] if len(managed) == 1 else None,
        "ep_sede_ids": managed,
        "ep_sedes": [
            {"id": s.id, "label": s.label or f"EP-Sede #{s.id}"}
            for s in sorted(sedes, key=lambda s: s.id)
        ],
    }


async def listar(db: AsyncSession, actor_id: int, ep_sede_id: int, solo_activos: bool = True):
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    asignaciones = await crud_staff.list_de_sede(db, ep_sede_id=ep_sede_id, solo_activos=solo_activos)
    return [serializar_asignacion(a) for a in asignaciones]


async def asignar(
    db: AsyncSession,
    actor_id: int,
    ep_sede_id: int,
    *,
    user_id: int,
    role: StaffRol,
    now: Optional[datetime] = None,
) -> EpSedeStaff:
    """
    Asigna un usuario al staff de la EP-SEDE.

    Solo puede haber un COORDINATOR activo: asignar uno nuevo cierra la
    asignación anterior en la misma transacción.
    """
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    if await crud_ep_sede.get(db, ep_sede_id) is None:
        raise not_found("EP_SEDE no encontrada.", meta={"ep_sede_id": ep_sede_id})
    if await crud_usuario.get(db, user_id) is None:
        raise not_found("Usuario no encontrado.", meta={"user_id": user_id})

    now = now or datetime.now()
    try:
        existente = await crud_staff.get_activa(db, user_id=user_id, ep_sede_id=ep_sede_id)
        if existente is not None and existente.role == role.value:
            return await crud_staff.get_with_usuario(db, existente.id)

        if existente is not None:
            existente.activo = False
            existente.ended_at = now

        if role == StaffRol.COORDINATOR:
            for previo in await crud_staff.activas_por_rol(
                db, ep_sede_id=ep_sede_id, role=role.value
            ):
                previo.activo = False
                previo.ended_at = now
                logger.info(
                    "Coordinador %s reemplazado en EP_SEDE %s", previo.user_id, ep_sede_id
                )

        nueva = await crud_staff.create(
            db,
            obj_in={
                "user_id": user_id,
                "ep_sede_id": ep_sede_id,
                "role": role.value,
                "activo": True,
                "assigned_at": now,
            },
            commit=False,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Staff asignado user=%s ep_sede=%s rol=%s por %s", user_id, ep_sede_id, role.value, actor_id)
    return await crud_staff.get_with_usuario(db, nueva.id)


async def desasignar(
    db: AsyncSession,
    actor_id: int,
    ep_sede_id: int,
    *,
    user_id: int,
    now: Optional[datetime] = None,
) -> EpSedeStaff:
    await ep_scope.ensure_manages(db, actor_id, ep_sede_id)
    asignacion = await crud_staff.get_activa(db, user_id=user_id, ep_sede_id=ep_sede_id)
    if asignacion is None:
        raise not_found(
            "El usuario no tiene una asignación activa en esta EP_SEDE.",
            meta={"user_id": user_id, "ep_sede_id": ep_sede_id},
        )

    asignacion = await crud_staff.update(
        db,
        db_obj=asignacion,
        obj_in={"activo": False, "ended_at": now or datetime.now()},
    )
    logger.info("Staff desasignado user=%s ep_sede=%s por %s", user_id, ep_sede_id, actor_id)
    return await crud_staff.get_with_usuario(db, asignacion.id)
