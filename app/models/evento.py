from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.refs import Ref
from .base import BaseModel
from .enums import ActividadEstado, Modalidad


class CategoriaEvento(BaseModel):
    __tablename__ = "vm_categorias_evento"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre = Column(String(255), nullable=False)
    descripcion = Column(Text, nullable=True)

    eventos = relationship("Evento", back_populates="categoria")


class Evento(BaseModel):
    __tablename__ = "vm_eventos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    periodo_id = Column(Integer, ForeignKey("periodos_academicos.id"), nullable=False, index=True)
    categoria_evento_id = Column(
        Integer, ForeignKey("vm_categorias_evento.id", ondelete="SET NULL"), nullable=True
    )

    # Destino: RefKind.EP_SEDE | SEDE | FACULTAD
    target_type = Column(String(20), nullable=False)
    target_id = Column(Integer, nullable=False)

    codigo = Column(String(100), unique=True, nullable=False)
    titulo = Column(String(255), nullable=False)
    subtitulo = Column(String(255), nullable=True)
    descripcion_corta = Column(Text, nullable=True)
    modalidad = Column(String(20), nullable=False, default=Modalidad.PRESENTIAL.value)
    lugar_detallado = Column(String(255), nullable=True)

    estado = Column(String(20), nullable=False, default=ActividadEstado.PLANNED.value, index=True)
    requiere_inscripcion = Column(Boolean, nullable=False, default=False)
    cupo_maximo = Column(Integer, nullable=True)
    inscripcion_desde = Column(DateTime, nullable=True)
    inscripcion_hasta = Column(DateTime, nullable=True)

    # Relationships
    periodo = relationship("PeriodoAcademico")
    categoria = relationship("CategoriaEvento", back_populates="eventos")

    @property
    def target(self):
        return Ref.of(self.target_type, self.target_id)
