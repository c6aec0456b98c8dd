import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.api.v1.router import api_router
from app.config.database import close_db, init_db
from app.config.settings import settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("Iniciando VM backend (%s)...", settings.environment)
    if settings.disable_auth:
        logger.warning("Autenticación desactivada: actor fijo %s", settings.dev_user_id)

    await init_db()
    logger.info("Sistema listo")

    yield

    logger.info("Cerrando VM backend...")
    await close_db()


app = FastAPI(
    title="VM Backend API",
    description="""
    ## Voluntariado / Vinculación con el Medio

    - Elegibilidad e inscripción a proyectos y eventos
    - Inscripción masiva de candidatos por EP-SEDE
    - Asistencias y libro de horas
    - Inspección de alumnos y resúmenes por período
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health", tags=["General"])
async def health_check():
    """Verificación de salud del servicio"""
    return {
        "status": "healthy",
        "service": "vm-backend",
        "version": "1.0.0",
        "environment": settings.environment,
    }
