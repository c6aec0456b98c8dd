from sqlalchemy import Column, Integer, String, Date, Time, Index
from app.core.refs import Ref
from .base import BaseModel
from .enums import ActividadEstado


class Sesion(BaseModel):
    __tablename__ = "vm_sesiones"
    __table_args__ = (Index("ix_sesion_owner", "owner_type", "owner_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Dueño: RefKind.PROCESS | EVENT
    owner_type = Column(String(20), nullable=False)
    owner_id = Column(Integer, nullable=False)
    fecha = Column(Date, nullable=False)
    hora_inicio = Column(Time, nullable=False)
    hora_fin = Column(Time, nullable=False)
    estado = Column(String(20), nullable=False, default=ActividadEstado.PLANNED.value)

    @property
    def owner(self):
        return Ref.of(self.owner_type, self.owner_id)
