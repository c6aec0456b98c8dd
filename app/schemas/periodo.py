from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date

from app.models.enums import PeriodoEstado


class PeriodoBase(BaseModel):
    codigo: str = Field(..., min_length=1, max_length=20)
    anio: int = Field(..., ge=1900, le=3000)
    ciclo: int = Field(..., ge=1, le=3)
    estado: PeriodoEstado = PeriodoEstado.PLANNED
    fecha_inicio: Optional[date] = None
    fecha_fin: Optional[date] = None


class PeriodoCreate(PeriodoBase):
    es_actual: bool = False


class Periodo(PeriodoBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    es_actual: bool
