from enum import Enum


class ExpedienteEstado(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    GRADUATED = "GRADUATED"


class PeriodoEstado(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"


class ActividadEstado(str, Enum):
    """Estados compartidos por proyectos y eventos VM"""

    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


ESTADOS_INSCRIBIBLES = (ActividadEstado.PLANNED.value, ActividadEstado.IN_PROGRESS.value)
ESTADOS_CERRADOS = (ActividadEstado.CLOSED.value, ActividadEstado.CANCELLED.value)


class ProyectoTipo(str, Enum):
    FREE = "FREE"
    LINKED = "LINKED"


# Alias heredado: PROJECT se trata como LINKED
PROYECTO_TIPO_LEGACY = "PROJECT"


class Modalidad(str, Enum):
    PRESENTIAL = "PRESENTIAL"
    VIRTUAL = "VIRTUAL"
    MIXED = "MIXED"


class ParticipacionEstado(str, Enum):
    ENROLLED = "ENROLLED"
    CONFIRMED = "CONFIRMED"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


ESTADOS_PARTICIPACION_ACTIVOS = (
    ParticipacionEstado.ENROLLED.value,
    ParticipacionEstado.CONFIRMED.value,
)


class ParticipacionRol(str, Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"


class AsistenciaEstado(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


class AsistenciaMetodo(str, Enum):
    QR = "QR"
    MANUAL = "MANUAL"
    MANUAL_INSPECTION = "MANUAL_INSPECTION"


class RegistroHoraEstado(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StaffRol(str, Enum):
    COORDINATOR = "COORDINATOR"
    MANAGER = "MANAGER"
