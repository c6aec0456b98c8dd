from pydantic import BaseModel, ConfigDict

from app.models.enums import ParticipacionEstado


class ParticipacionEstadoUpdate(BaseModel):
    estado: ParticipacionEstado


class Participacion(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    participable_type: str
    participable_id: int
    expediente_id: int
    rol: str
    estado: str
