from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime

from app.core.refs import RefKind, parse_target_alias
from app.models.enums import ActividadEstado, Modalidad
from .sesion import SesionCreate

# Nombre público de cada tipo de destino; internamente siempre RefKind
TARGET_TYPE_PUBLICO = {
    RefKind.EP_SEDE: "ep_sede",
    RefKind.SEDE: "sede",
    RefKind.FACULTAD: "facultad",
}


def a_hora_local(v: Optional[datetime]) -> Optional[datetime]:
    """Las fechas se guardan sin zona: las conscientes se pasan a hora local"""
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone().replace(tzinfo=None)
    return v


class _VentanaInscripcion(BaseModel):
    inscripcion_desde: Optional[datetime] = None
    inscripcion_hasta: Optional[datetime] = None

    @field_validator("inscripcion_desde", "inscripcion_hasta", mode="after")
    @classmethod
    def sin_zona(cls, v):
        return a_hora_local(v)

    @model_validator(mode="after")
    def ventana_ordenada(self):
        if (
            self.inscripcion_desde is not None
            and self.inscripcion_hasta is not None
            and self.inscripcion_hasta < self.inscripcion_desde
        ):
            raise ValueError("inscripcion_hasta debe ser posterior a inscripcion_desde")
        return self


class EventoCreate(_VentanaInscripcion):
    periodo_id: int
    categoria_evento_id: Optional[int] = None
    ep_sede_id: Optional[int] = None
    target_type: Optional[RefKind] = None
    target_id: Optional[int] = None
    codigo: Optional[str] = Field(default=None, max_length=100)
    titulo: str = Field(..., min_length=1, max_length=255)
    subtitulo: Optional[str] = Field(default=None, max_length=255)
    descripcion_corta: Optional[str] = None
    modalidad: Modalidad = Modalidad.PRESENTIAL
    lugar_detallado: Optional[str] = Field(default=None, max_length=255)
    requiere_inscripcion: bool = False
    cupo_maximo: Optional[int] = Field(default=None, ge=1)
    sessions: List[SesionCreate] = Field(..., min_length=1)

    @field_validator("target_type", mode="before")
    @classmethod
    def parse_target(cls, v):
        if v is None or isinstance(v, RefKind):
            return v
        kind = parse_target_alias(str(v))
        if kind not in TARGET_TYPE_PUBLICO:
            raise ValueError(f"Tipo de destino no soportado: {v}")
        return kind

    @model_validator(mode="after")
    def target_completo(self):
        if (self.target_type is None) != (self.target_id is None):
            raise ValueError("target_type y target_id deben enviarse juntos")
        return self


class EventoUpdate(_VentanaInscripcion):
    categoria_evento_id: Optional[int] = None
    titulo: Optional[str] = Field(default=None, min_length=1, max_length=255)
    subtitulo: Optional[str] = Field(default=None, max_length=255)
    descripcion_corta: Optional[str] = None
    modalidad: Optional[Modalidad] = None
    lugar_detallado: Optional[str] = Field(default=None, max_length=255)
    requiere_inscripcion: Optional[bool] = None
    cupo_maximo: Optional[int] = Field(default=None, ge=1)
    estado: Optional[ActividadEstado] = None
