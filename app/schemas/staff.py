from pydantic import BaseModel

from app.models.enums import StaffRol


class StaffAssign(BaseModel):
    user_id: int
    role: StaffRol


class StaffUnassign(BaseModel):
    user_id: int
