from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class CategoriaBase(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=255)
    descripcion: Optional[str] = None


class CategoriaCreate(CategoriaBase):
    pass


class CategoriaUpdate(BaseModel):
    nombre: Optional[str] = Field(default=None, min_length=1, max_length=255)
    descripcion: Optional[str] = None


class Categoria(CategoriaBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
