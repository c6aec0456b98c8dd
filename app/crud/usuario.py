from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.ep_sede import EpSede, Sede, Facultad
from app.models.usuario import Usuario


class CRUDUsuario(CRUDBase[Usuario, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(Usuario)


class CRUDEpSede(CRUDBase[EpSede, BaseModel, BaseModel]):
    def __init__(self):
        super().__init__(EpSede)


usuario = CRUDUsuario()
ep_sede = CRUDEpSede()
sede = CRUDBase(Sede)
facultad = CRUDBase(Facultad)
