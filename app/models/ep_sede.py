from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel


class Sede(BaseModel):
    __tablename__ = "sedes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(150), nullable=False)
    # EP-SEDE a la que se resuelven los eventos dirigidos a esta sede
    ep_sede_id = Column(Integer, nullable=True, index=True)


class Facultad(BaseModel):
    __tablename__ = "facultades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(150), nullable=False)
    ep_sede_id = Column(Integer, nullable=True, index=True)


class EpSede(BaseModel):
    """Escuela profesional dictada en una sede: límite de autorización del staff"""

    __tablename__ = "ep_sedes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    label = Column(String(255), nullable=True)
    sede_id = Column(Integer, ForeignKey("sedes.id"), nullable=True)
    facultad_id = Column(Integer, ForeignKey("facultades.id"), nullable=True)

    # Relationships
    sede = relationship("Sede", foreign_keys=[sede_id])
    facultad = relationship("Facultad", foreign_keys=[facultad_id])
    expedientes = relationship("Expediente", back_populates="ep_sede")
    staff = relationship("EpSedeStaff", back_populates="ep_sede")
