from sqlalchemy import Column, Integer, String, Date, ForeignKey, Index
from app.core.refs import Ref
from .base import BaseModel
from .enums import RegistroHoraEstado


class RegistroHora(BaseModel):
    """Libro de horas desnormalizado: una fila por asistencia validada"""

    __tablename__ = "registro_horas"
    __table_args__ = (
        Index("ix_registro_horas_sede_periodo", "ep_sede_id", "periodo_id", "estado"),
        Index("ix_registro_horas_vinculo", "link_type", "link_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    expediente_id = Column(Integer, ForeignKey("expedientes_academicos.id"), nullable=False, index=True)
    ep_sede_id = Column(Integer, ForeignKey("ep_sedes.id"), nullable=False)
    periodo_id = Column(Integer, ForeignKey("periodos_academicos.id"), nullable=False)
    fecha = Column(Date, nullable=True)
    minutos = Column(Integer, nullable=False, default=0)
    actividad = Column(String(255), nullable=True)
    estado = Column(String(20), nullable=False, default=RegistroHoraEstado.PENDING.value)
    # Vínculo: RefKind.PROCESS | EVENT
    link_type = Column(String(20), nullable=True)
    link_id = Column(Integer, nullable=True)
    sesion_id = Column(Integer, ForeignKey("vm_sesiones.id"), nullable=True)
    asistencia_id = Column(Integer, ForeignKey("vm_asistencias.id"), unique=True, nullable=True)

    @property
    def link(self):
        return Ref.of(self.link_type, self.link_id)
