from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import ActividadEstado


class Proyecto(BaseModel):
    __tablename__ = "vm_proyectos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ep_sede_id = Column(Integer, ForeignKey("ep_sedes.id"), nullable=False, index=True)
    periodo_id = Column(Integer, ForeignKey("periodos_academicos.id"), nullable=False, index=True)
    codigo = Column(String(50), nullable=True, index=True)
    titulo = Column(String(255), nullable=False)
    tipo = Column(String(20), nullable=False)
    estado = Column(String(20), nullable=False, default=ActividadEstado.PLANNED.value)
    # Campo heredado: se usa solo si el proyecto no tiene ciclos
    nivel = Column(Integer, nullable=True)
    horas_planificadas = Column(Integer, nullable=True)
    horas_minimas_participante = Column(Integer, nullable=True)

    # Relationships
    periodo = relationship("PeriodoAcademico")
    ciclos = relationship(
        "ProyectoCiclo", back_populates="proyecto", cascade="all, delete-orphan"
    )
    procesos = relationship(
        "Proceso", back_populates="proyecto", cascade="all, delete-orphan"
    )


class ProyectoCiclo(BaseModel):
    __tablename__ = "vm_proyecto_ciclos"
    __table_args__ = (
        UniqueConstraint("proyecto_id", "nivel", name="uq_proyecto_ciclo"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    proyecto_id = Column(Integer, ForeignKey("vm_proyectos.id"), nullable=False, index=True)
    nivel = Column(Integer, nullable=False)

    proyecto = relationship("Proyecto", back_populates="ciclos")


class Proceso(BaseModel):
    __tablename__ = "vm_procesos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    proyecto_id = Column(Integer, ForeignKey("vm_proyectos.id"), nullable=False, index=True)
    nombre = Column(String(255), nullable=False)
    orden = Column(Integer, nullable=False, default=1)

    proyecto = relationship("Proyecto", back_populates="procesos")
