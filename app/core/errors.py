import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config.settings import settings

logger = logging.getLogger(__name__)


class ReasonCode(str, Enum):
    # Elegibilidad
    EVENT_NOT_ACTIVE = "EVENT_NOT_ACTIVE"
    PROJECT_NOT_ACTIVE = "PROJECT_NOT_ACTIVE"
    EVENT_WITHOUT_UNIT = "EVENT_WITHOUT_UNIT"
    DIFFERENT_UNIT = "DIFFERENT_UNIT"
    REGISTRATION_NOT_REQUIRED = "REGISTRATION_NOT_REQUIRED"
    REGISTRATION_NOT_OPEN = "REGISTRATION_NOT_OPEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    ALREADY_ENROLLED = "ALREADY_ENROLLED"
    EVENT_FULL = "EVENT_FULL"
    NO_CURRENT_PERIOD = "NO_CURRENT_PERIOD"
    NOT_ENROLLED_CURRENT_PERIOD = "NOT_ENROLLED_CURRENT_PERIOD"
    LEVEL_MISMATCH = "LEVEL_MISMATCH"
    PENDING_LINKED_PREV = "PENDING_LINKED_PREV"

    # Autenticación / alcance
    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNAUTHORIZED = "UNAUTHORIZED"
    AMBIGUOUS_UNIT = "AMBIGUOUS_UNIT"
    NO_MANAGED_UNIT = "NO_MANAGED_UNIT"

    # Recursos / validación
    NOT_FOUND = "NOT_FOUND"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    NO_SESSIONS_FOUND = "NO_SESSIONS_FOUND"
    PROJECT_NOT_IN_UNIT = "PROJECT_NOT_IN_UNIT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    EVENT_NOT_EDITABLE = "EVENT_NOT_EDITABLE"
    EVENT_NOT_DELETABLE = "EVENT_NOT_DELETABLE"
    SESSION_OUT_OF_PERIOD = "SESSION_OUT_OF_PERIOD"
    INVALID_SESSION_TIME = "INVALID_SESSION_TIME"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class VmError(Exception):
    """Error de negocio con código legible por máquina y meta de diagnóstico"""

    def __init__(
        self,
        code: ReasonCode,
        message: str,
        status_code: int = 422,
        meta: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.meta = meta or {}

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.code, self.message, self.meta)


def error_body(code, message: str, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "ok": False,
        "code": code.value if isinstance(code, ReasonCode) else code,
        "message": message,
        "meta": meta or {},
    }


def unauthenticated() -> VmError:
    return VmError(ReasonCode.UNAUTHENTICATED, "No autenticado.", status.HTTP_401_UNAUTHORIZED)


def unauthorized(message: str = "No autorizado para esta EP_SEDE.", meta=None) -> VmError:
    return VmError(ReasonCode.UNAUTHORIZED, message, status.HTTP_403_FORBIDDEN, meta)


def not_found(message: str, code: ReasonCode = ReasonCode.NOT_FOUND, meta=None) -> VmError:
    return VmError(code, message, status.HTTP_404_NOT_FOUND, meta)


def _request_context(request: Request) -> Dict[str, Any]:
    actor = getattr(request.state, "actor_id", None)
    return {
        "method": request.method,
        "path": request.url.path,
        "query": str(request.query_params),
        "actor_id": actor,
    }


async def vm_error_handler(request: Request, exc: VmError) -> JSONResponse:
    if exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        logger.warning("Acceso denegado %s: %s", exc.code.value, _request_context(request))
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(
            error_body(
                ReasonCode.VALIDATION_ERROR,
                "Datos de entrada inválidos.",
                {"errors": exc.errors()},
            )
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Error no controlado: %s", _request_context(request))
    meta = {"exception": f"{type(exc).__name__}: {exc}"} if settings.debug else {}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(ReasonCode.INTERNAL_ERROR, "Error interno del servidor", meta),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VmError, vm_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
