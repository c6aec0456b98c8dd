from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, not_found
from app.crud.expediente import expediente as crud_expediente
from app.models.expediente import Expediente


def variantes_codigo(raw: Optional[str]) -> List[str]:
    """Código tal cual, sin ceros a la izquierda y sin espacios; sin repetir"""
    codigo = (raw or "").strip()
    if not codigo:
        return []
    candidatos = [codigo, codigo.lstrip("0"), "".join(codigo.split())]
    return [c for c in dict.fromkeys(candidatos) if c]


async def resolver_expediente(
    db: AsyncSession,
    ep_sede_id: int,
    *,
    record_id: Optional[int] = None,
    code: Optional[str] = None,
) -> Expediente:
    """Expediente de la EP-SEDE por id o por código; 404 RECORD_NOT_FOUND si no existe"""
    if record_id is not None:
        exp = await crud_expediente.get_with_usuario(db, record_id)
        if exp is None or exp.ep_sede_id != ep_sede_id:
            raise not_found(
                "Expediente no encontrado en la EP_SEDE.",
                ReasonCode.RECORD_NOT_FOUND,
                {"record_id": record_id, "ep_sede_id": ep_sede_id},
            )
        return exp

    variantes = variantes_codigo(code)
    exp = await crud_expediente.get_by_codigos(db, variantes, ep_sede_id=ep_sede_id)
    if exp is None:
        raise not_found(
            "Expediente no encontrado en la EP_SEDE.",
            ReasonCode.RECORD_NOT_FOUND,
            {"tried_variants": variantes, "ep_sede_id": ep_sede_id},
        )
    return exp
