from sqlalchemy import Column, Integer, String, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class Matricula(BaseModel):
    __tablename__ = "matriculas"
    __table_args__ = (
        UniqueConstraint("expediente_id", "periodo_id", name="uq_matricula_expediente_periodo"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    expediente_id = Column(Integer, ForeignKey("expedientes_academicos.id"), nullable=False, index=True)
    periodo_id = Column(Integer, ForeignKey("periodos_academicos.id"), nullable=False, index=True)
    ciclo = Column(String(10), nullable=True)
    grupo = Column(String(10), nullable=True)
    fecha_matricula = Column(Date, nullable=True)

    # Relationships
    expediente = relationship("Expediente", back_populates="matriculas")
    periodo = relationship("PeriodoAcademico")
