from .base import BaseModel
from .usuario import Usuario
from .ep_sede import EpSede, Sede, Facultad
from .ep_sede_staff import EpSedeStaff
from .periodo import PeriodoAcademico
from .expediente import Expediente
from .matricula import Matricula
from .proyecto import Proyecto, ProyectoCiclo, Proceso
from .evento import Evento, CategoriaEvento
from .sesion import Sesion
from .participacion import Participacion
from .asistencia import Asistencia
from .registro_hora import RegistroHora

__all__ = [
    "BaseModel",
    "Usuario",
    "EpSede",
    "Sede",
    "Facultad",
    "EpSedeStaff",
    "PeriodoAcademico",
    "Expediente",
    "Matricula",
    "Proyecto",
    "ProyectoCiclo",
    "Proceso",
    "Evento",
    "CategoriaEvento",
    "Sesion",
    "Participacion",
    "Asistencia",
    "RegistroHora",
]
