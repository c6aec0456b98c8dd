from pydantic import BaseModel, ConfigDict, field_validator
from datetime import date, time


def parse_hora(v):
    """Acepta HH:MM, HH:MM:SS y HH:MM:SS.sss"""
    if isinstance(v, str):
        if "." in v:
            v = v.split(".")[0]
        partes = v.strip().split(":")
        if len(partes) < 2:
            raise ValueError("Formato de hora inválido, se espera HH:MM")
        return time(
            int(partes[0]),
            int(partes[1]),
            int(partes[2]) if len(partes) > 2 else 0,
        )
    return v


class SesionCreate(BaseModel):
    fecha: date
    hora_inicio: time
    hora_fin: time

    @field_validator("hora_inicio", "hora_fin", mode="before")
    @classmethod
    def parse_time(cls, v):
        return parse_hora(v)


class Sesion(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    owner_type: str
    owner_id: int
    fecha: date
    hora_inicio: time
    hora_fin: time
    estado: str
