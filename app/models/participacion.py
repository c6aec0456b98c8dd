from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from app.core.refs import Ref
from .base import BaseModel
from .enums import ParticipacionEstado, ParticipacionRol


class Participacion(BaseModel):
    __tablename__ = "vm_participaciones"
    __table_args__ = (
        # Respaldo del create-or-fetch: un alumno no se inscribe dos veces al mismo destino
        UniqueConstraint(
            "participable_type", "participable_id", "expediente_id",
            name="uq_participacion_destino_expediente",
        ),
        Index("ix_participacion_destino", "participable_type", "participable_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Destino: RefKind.PROJECT | EVENT
    participable_type = Column(String(20), nullable=False)
    participable_id = Column(Integer, nullable=False)
    expediente_id = Column(Integer, ForeignKey("expedientes_academicos.id"), nullable=False, index=True)
    rol = Column(String(20), nullable=False, default=ParticipacionRol.STUDENT.value)
    estado = Column(String(20), nullable=False, default=ParticipacionEstado.ENROLLED.value)

    # Relationships
    expediente = relationship("Expediente")

    @property
    def participable(self):
        return Ref.of(self.participable_type, self.participable_id)
