"""
Referencias polimórficas como variantes etiquetadas.

Cada columna "type/id" de la base (participable, target del evento, dueño de
la sesión, vínculo del registro de horas) se lee como un `Ref(kind, id)`.
La resolución a una EP-SEDE es una función pura sobre el `Ref` más un mapa
de unidades precargado por la capa de consultas.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple


class RefKind(str, Enum):
    PROJECT = "project"
    EVENT = "event"
    PROCESS = "process"
    EP_SEDE = "ep_sede"
    SEDE = "sede"
    FACULTAD = "facultad"


# Alias públicos aceptados en la frontera de serialización
TARGET_ALIASES = {
    "ep_sede": RefKind.EP_SEDE,
    "ep-sede": RefKind.EP_SEDE,
    "unit": RefKind.EP_SEDE,
    "sede": RefKind.SEDE,
    "campus": RefKind.SEDE,
    "facultad": RefKind.FACULTAD,
    "faculty": RefKind.FACULTAD,
}

TARGET_KINDS = (RefKind.EP_SEDE, RefKind.SEDE, RefKind.FACULTAD)
PARTICIPABLE_KINDS = (RefKind.PROJECT, RefKind.EVENT)
SESSION_OWNER_KINDS = (RefKind.PROCESS, RefKind.EVENT)


@dataclass(frozen=True)
class Ref:
    kind: RefKind
    id: int

    @classmethod
    def of(cls, kind, id_) -> Optional["Ref"]:
        """Construye desde columnas crudas; None si falta alguna parte"""
        if kind is None or id_ is None:
            return None
        return cls(RefKind(kind), int(id_))

    def key(self) -> Tuple[str, int]:
        return self.kind.value, self.id


def parse_target_alias(alias: str) -> RefKind:
    """Traduce un alias público (`ep_sede`, `sede`, ...) a su `RefKind`"""
    kind = TARGET_ALIASES.get((alias or "").strip().lower())
    if kind is None:
        raise ValueError(f"Tipo de destino no soportado: {alias}")
    return kind


def resolve_unit_id(
    ref: Optional[Ref], parent_units: Mapping[Tuple[str, int], Optional[int]] = None
) -> Optional[int]:
    """
    EP-SEDE de un destino de evento.

    - ep_sede: el propio id
    - sede / facultad: la EP-SEDE registrada en `parent_units`
    - cualquier otra cosa: None
    """
    if ref is None or not ref.id:
        return None
    if ref.kind == RefKind.EP_SEDE:
        return ref.id
    if ref.kind in (RefKind.SEDE, RefKind.FACULTAD):
        unit_id = (parent_units or {}).get(ref.key())
        return int(unit_id) if unit_id else None
    return None
