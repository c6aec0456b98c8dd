from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional


class _ExpedienteRef(BaseModel):
    """Expediente por id o por código de estudiante"""

    record_id: Optional[int] = None
    code: Optional[str] = None

    @model_validator(mode="after")
    def id_o_codigo(self):
        if self.record_id is None and not (self.code and self.code.strip()):
            raise ValueError("Envía record_id o code")
        return self


class EnrollSelectedRequest(BaseModel):
    record_ids: List[int] = Field(..., min_length=1)
    only_eligible: bool = True
    limit: int = Field(default=0, ge=0)

    @field_validator("record_ids")
    @classmethod
    def sin_duplicados(cls, v):
        return list(dict.fromkeys(v))


class EnrollRecordRequest(_ExpedienteRef):
    pass


class InspectionEnrollRequest(_ExpedienteRef):
    ep_sede_id: Optional[int] = None
    project_id: int


class MarkAttendanceRequest(_ExpedienteRef):
    ep_sede_id: Optional[int] = None
    session_ids: List[int] = Field(..., min_length=1)

    @field_validator("session_ids")
    @classmethod
    def distintas(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("session_ids no debe repetir sesiones")
        return v
