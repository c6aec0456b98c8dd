from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import BaseModel


class EpSedeStaff(BaseModel):
    __tablename__ = "ep_sede_staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("usuarios.id"), nullable=False, index=True)
    ep_sede_id = Column(Integer, ForeignKey("ep_sedes.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    activo = Column(Boolean, nullable=False, default=True)
    assigned_at = Column(DateTime, server_default=func.now())
    ended_at = Column(DateTime, nullable=True)

    # Relationships
    usuario = relationship("Usuario", back_populates="asignaciones_staff")
    ep_sede = relationship("EpSede", back_populates="staff")
