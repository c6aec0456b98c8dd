from fastapi import APIRouter

from app.api.v1 import ep_sedes, events, inspection, participations, periods, projects

api_router = APIRouter()

# Endpoints VM (proyectos, eventos, inscripciones y horas)
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(inspection.router, prefix="/inspection", tags=["inspection"])
api_router.include_router(
    participations.router, prefix="/participations", tags=["participations"]
)

# Catálogos y alcance del staff
api_router.include_router(periods.router, prefix="/periods", tags=["periods"])
api_router.include_router(ep_sedes.router, prefix="/ep-sedes", tags=["ep-sedes"])
