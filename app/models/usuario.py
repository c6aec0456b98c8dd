from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from .base import BaseModel


class Usuario(BaseModel):
    __tablename__ = "usuarios"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(150), unique=True, nullable=True, index=True)
    celular = Column(String(30), nullable=True)

    # Relationships
    expedientes = relationship("Expediente", back_populates="usuario")
    asignaciones_staff = relationship("EpSedeStaff", back_populates="usuario")

    @property
    def full_name(self):
        nombre = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return nombre or None
