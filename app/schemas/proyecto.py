from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional

from app.models.enums import ActividadEstado, ProyectoTipo, PROYECTO_TIPO_LEGACY
from .sesion import SesionCreate


class ProyectoCreate(BaseModel):
    ep_sede_id: Optional[int] = None
    periodo_id: int
    codigo: Optional[str] = Field(default=None, max_length=50)
    titulo: str = Field(..., min_length=1, max_length=255)
    tipo: ProyectoTipo
    niveles: List[int] = Field(default_factory=list)
    horas_planificadas: Optional[int] = Field(default=None, ge=0)
    horas_minimas_participante: Optional[int] = Field(default=None, ge=0)

    @field_validator("tipo", mode="before")
    @classmethod
    def tipo_legacy(cls, v):
        if isinstance(v, str) and v.strip().upper() == PROYECTO_TIPO_LEGACY:
            return ProyectoTipo.LINKED
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("niveles")
    @classmethod
    def niveles_validos(cls, v):
        for nivel in v:
            if nivel < 1 or nivel > 10:
                raise ValueError("Cada nivel debe estar entre 1 y 10")
        return sorted(set(v))

    @model_validator(mode="after")
    def vinculado_con_niveles(self):
        if self.tipo == ProyectoTipo.LINKED and not self.niveles:
            raise ValueError("Un proyecto LINKED requiere al menos un nivel")
        return self


class ProyectoEstadoUpdate(BaseModel):
    estado: ActividadEstado


class ProcesoCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=255)
    orden: Optional[int] = Field(default=None, ge=1)
    sessions: List[SesionCreate] = Field(default_factory=list)
