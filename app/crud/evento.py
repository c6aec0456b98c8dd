from typing import Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.refs import Ref, RefKind, resolve_unit_id
from app.crud.base import CRUDBase
from app.models.ep_sede import Sede, Facultad
from app.models.evento import Evento, CategoriaEvento


async def parent_units(
    db: AsyncSession, refs: Sequence[Optional[Ref]]
) -> Dict[Tuple[str, int], Optional[int]]:
    """EP-SEDE registrada para cada sede / facultad referida, en dos consultas"""
    mapa: Dict[Tuple[str, int], Optional[int]] = {}
    for kind, model in ((RefKind.SEDE, Sede), (RefKind.FACULTAD, Facultad)):
        ids = {r.id for r in refs if r is not None and r.kind == kind}
        if not ids:
            continue
        result = await db.execute(select(model.id, model.ep_sede_id).where(model.id.in_(ids)))
        for id_, ep_sede_id in result.all():
            mapa[(kind.value, id_)] = ep_sede_id
    return mapa


async def targets_de_unidades(db: AsyncSession, ep_sede_ids: Sequence[int]) -> List[Ref]:
    """Destinos de evento que resuelven a alguna de las EP-SEDEs dadas"""
    ids = list({int(i) for i in ep_sede_ids})
    targets = [Ref(RefKind.EP_SEDE, i) for i in ids]
    if not ids:
        return targets
    for kind, model in ((RefKind.SEDE, Sede), (RefKind.FACULTAD, Facultad)):
        result = await db.execute(select(model.id).where(model.ep_sede_id.in_(ids)))
        targets.extend(Ref(kind, id_) for id_ in result.scalars().all())
    return targets


class CRUDEvento(CRUDBase[Evento, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Evento)

    async def get_with_relations(self, db: AsyncSession, id: int) -> Optional[Evento]:
        result = await db.execute(
            select(Evento)
            .options(selectinload(Evento.periodo), selectinload(Evento.categoria))
            .where(Evento.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_codigo(self, db: AsyncSession, codigo: str) -> Optional[Evento]:
        result = await db.execute(select(Evento).where(Evento.codigo == codigo))
        return result.scalar_one_or_none()

    async def resolver_ep_sede(self, db: AsyncSession, evento: Evento) -> Optional[int]:
        ref = evento.target
        return resolve_unit_id(ref, await parent_units(db, [ref]))

    async def list_filtrado(
        self,
        db: AsyncSession,
        *,
        estado: Optional[str] = None,
        targets: Optional[Sequence[Ref]] = None,
        skip: int = 0,
        limit: int = 15,
    ) -> Tuple[List[Evento], int]:
        """Eventos más recientes primero; `targets` restringe a esos destinos"""
        stmt = select(Evento)
        if estado:
            stmt = stmt.where(Evento.estado == estado)
        if targets is not None:
            if not targets:
                return [], 0
            condiciones = [
                (Evento.target_type == r.kind.value) & (Evento.target_id == r.id)
                for r in targets
            ]
            stmt = stmt.where(or_(*condiciones))

        total = await db.execute(select(func.count()).select_from(stmt.subquery()))
        result = await db.execute(
            stmt.options(selectinload(Evento.periodo), selectinload(Evento.categoria))
            .order_by(Evento.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total.scalar() or 0


class CRUDCategoriaEvento(CRUDBase[CategoriaEvento, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(CategoriaEvento)

    async def list_ordenadas(self, db: AsyncSession) -> List[CategoriaEvento]:
        result = await db.execute(select(CategoriaEvento).order_by(CategoriaEvento.nombre))
        return list(result.scalars().all())


evento = CRUDEvento()
categoria_evento = CRUDCategoriaEvento()
