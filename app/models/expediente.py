from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import ExpedienteEstado


class Expediente(BaseModel):
    __tablename__ = "expedientes_academicos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False, index=True)
    ep_sede_id = Column(Integer, ForeignKey("ep_sedes.id"), nullable=False, index=True)
    codigo_estudiante = Column(String(30), nullable=True, index=True)
    estado = Column(String(20), nullable=False, default=ExpedienteEstado.ACTIVE.value)
    # Texto libre en origen ("5", "05", "V-05"): se interpreta con parse_ciclo
    ciclo = Column(String(10), nullable=True)
    grupo = Column(String(10), nullable=True)

    # Relationships
    usuario = relationship("Usuario", back_populates="expedientes")
    ep_sede = relationship("EpSede", back_populates="expedientes")
    matriculas = relationship("Matricula", back_populates="expediente")
