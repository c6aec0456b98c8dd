from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from .base import BaseModel
from .enums import AsistenciaEstado


class Asistencia(BaseModel):
    __tablename__ = "vm_asistencias"
    __table_args__ = (
        UniqueConstraint("sesion_id", "expediente_id", name="uq_asistencia_sesion_expediente"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sesion_id = Column(Integer, ForeignKey("vm_sesiones.id"), nullable=False, index=True)
    expediente_id = Column(Integer, ForeignKey("expedientes_academicos.id"), nullable=False, index=True)
    metodo = Column(String(30), nullable=False)
    estado = Column(String(20), nullable=False, default=AsistenciaEstado.PENDING.value)
    check_in_at = Column(DateTime, nullable=True)
    check_out_at = Column(DateTime, nullable=True)
    minutos_validados = Column(Integer, nullable=False, default=0)
