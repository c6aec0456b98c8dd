import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ReasonCode, VmError, not_found
from app.crud.periodo import periodo as crud_periodo
from app.models.periodo import PeriodoAcademico
from app.schemas.periodo import PeriodoCreate

logger = logging.getLogger(__name__)


def normalizar_codigo(codigo: Optional[str]) -> Optional[str]:
    """'2025_1 ' -> '2025-1'"""
    if not codigo or not codigo.strip():
        return None
    return codigo.strip().replace("_", "-").upper()


async def marcar_actual(db: AsyncSession, periodo_id: int) -> PeriodoAcademico:
    """Deja un único período actual: desmarca los demás y marca este en una transacción"""
    try:
        periodo = await crud_periodo.get(db, periodo_id)
        if periodo is None:
            raise not_found(
                "Período no encontrado.", ReasonCode.PERIOD_NOT_FOUND, {"periodo_id": periodo_id}
            )
        await crud_periodo.desmarcar_actuales(db, excepto_id=periodo.id)
        periodo.es_actual = True
        await db.flush()
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(periodo)
    logger.info("Período actual: %s (%s)", periodo.codigo, periodo.id)
    return periodo


async def crear(db: AsyncSession, obj_in: PeriodoCreate) -> PeriodoAcademico:
    codigo = normalizar_codigo(obj_in.codigo)
    if await crud_periodo.get_by_codigo(db, codigo) is not None:
        raise VmError(
            ReasonCode.VALIDATION_ERROR,
            "Ya existe un período con ese código.",
            meta={"codigo": codigo},
        )
    datos = obj_in.model_dump(exclude={"es_actual"})
    datos["codigo"] = codigo
    periodo = await crud_periodo.create(db, obj_in=datos)
    if obj_in.es_actual:
        periodo = await marcar_actual(db, periodo.id)
    return periodo


async def resolver(
    db: AsyncSession,
    *,
    periodo_id: Optional[int] = None,
    periodo_codigo: Optional[str] = None,
    por_defecto: bool = True,
) -> PeriodoAcademico:
    """Período pedido por id o código; si no se envía, el actual o el último en curso"""
    periodo = None
    if periodo_id:
        periodo = await crud_periodo.get(db, periodo_id)
    elif normalizar_codigo(periodo_codigo):
        periodo = await crud_periodo.get_by_codigo(db, normalizar_codigo(periodo_codigo))
    elif por_defecto:
        periodo = await crud_periodo.get_actual(db) or await crud_periodo.get_ultimo_en_curso(db)

    if periodo is None:
        raise not_found(
            "No se pudo resolver el período. Envía periodo_id o periodo_codigo.",
            ReasonCode.PERIOD_NOT_FOUND,
            {"periodo_id": periodo_id, "periodo_codigo": periodo_codigo},
        )
    return periodo
