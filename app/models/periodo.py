from sqlalchemy import Column, Integer, String, Boolean, Date
from .base import BaseModel
from .enums import PeriodoEstado


class PeriodoAcademico(BaseModel):
    __tablename__ = "periodos_academicos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    codigo = Column(String(20), unique=True, nullable=False, index=True)
    anio = Column(Integer, nullable=False)
    ciclo = Column(Integer, nullable=False)
    estado = Column(String(20), nullable=False, default=PeriodoEstado.PLANNED.value)
    # A lo sumo un período actual: lo garantiza services.periodos.marcar_actual
    es_actual = Column(Boolean, nullable=False, default=False, index=True)
    fecha_inicio = Column(Date, nullable=True)
    fecha_fin = Column(Date, nullable=True)
