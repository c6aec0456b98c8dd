"""
Configuración de pytest: base sqlite en memoria por test, fábricas de datos
y cliente HTTP sobre la app FastAPI con get_db / get_current_user
reemplazados.
"""
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import app.models  # noqa: F401
from app.api.deps import get_current_user
from app.config.database import Base, build_engine, get_db
from app.core.refs import Ref, RefKind
from app.main import app as fastapi_app
from app.models.enums import (
    ActividadEstado,
    ExpedienteEstado,
    ParticipacionEstado,
    PeriodoEstado,
    ProyectoTipo,
    RegistroHoraEstado,
    StaffRol,
)
from app.models.ep_sede import EpSede, Facultad, Sede
from app.models.ep_sede_staff import EpSedeStaff
from app.models.evento import Evento
from app.models.expediente import Expediente
from app.models.matricula import Matricula
from app.models.participacion import Participacion
from app.models.periodo import PeriodoAcademico
from app.models.proyecto import Proceso, Proyecto, ProyectoCiclo
from app.models.registro_hora import RegistroHora
from app.models.sesion import Sesion
from app.models.usuario import Usuario


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: pure function tests")
    config.addinivalue_line("markers", "integration: service tests against the database")
    config.addinivalue_line("markers", "api: HTTP tests through the FastAPI app")


@pytest_asyncio.fixture
async def engine(tmp_path):
    # Misma configuración que producción; base en archivo para que cada sesión tenga su conexión
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Actor:
    """Usuario autenticado que ve la app durante el test"""

    def __init__(self):
        self.user_id = None


@pytest.fixture
def actor():
    return Actor()


@pytest_asyncio.fixture
async def client(session_factory, actor):
    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _get_current_user():
        return actor.user_id

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_current_user] = _get_current_user
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


class Factory:
    """Crea filas mínimas válidas y confirma cada una"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def usuario(self, **kw):
        n = self._next()
        datos = dict(
            username=f"user{n}",
            first_name=f"Nombre{n}",
            last_name=f"Apellido{n}",
            email=f"user{n}@vm.test",
            celular=f"9000000{n:02d}",
        )
        datos.update(kw)
        return await self._save(Usuario(**datos))

    async def ep_sede(self, label="EP Sistemas - Sede Central"):
        return await self._save(EpSede(label=label))

    async def sede(self, ep_sede=None, nombre="Sede Norte"):
        return await self._save(Sede(nombre=nombre, ep_sede_id=ep_sede.id if ep_sede else None))

    async def facultad(self, ep_sede=None, nombre="Facultad de Ingeniería"):
        return await self._save(
            Facultad(nombre=nombre, ep_sede_id=ep_sede.id if ep_sede else None)
        )

    async def staff(self, usuario, ep_sede, role=StaffRol.COORDINATOR, activo=True):
        return await self._save(
            EpSedeStaff(
                user_id=usuario.id, ep_sede_id=ep_sede.id, role=role.value, activo=activo
            )
        )

    async def periodo(
        self,
        codigo="2025-1",
        anio=2025,
        ciclo=1,
        es_actual=True,
        estado=PeriodoEstado.IN_PROGRESS,
        fecha_inicio=date(2025, 3, 1),
        fecha_fin=date(2025, 7, 31),
    ):
        return await self._save(
            PeriodoAcademico(
                codigo=codigo,
                anio=anio,
                ciclo=ciclo,
                es_actual=es_actual,
                estado=estado.value,
                fecha_inicio=fecha_inicio,
                fecha_fin=fecha_fin,
            )
        )

    async def expediente(
        self,
        ep_sede,
        usuario=None,
        codigo=None,
        ciclo="3",
        estado=ExpedienteEstado.ACTIVE,
        grupo="A",
    ):
        usuario = usuario or await self.usuario()
        return await self._save(
            Expediente(
                user_id=usuario.id,
                ep_sede_id=ep_sede.id,
                codigo_estudiante=codigo or f"2025{self._next():04d}",
                estado=estado.value,
                ciclo=ciclo,
                grupo=grupo,
            )
        )

    async def matricula(self, expediente, periodo, ciclo=None, fecha_matricula=date(2025, 3, 5)):
        return await self._save(
            Matricula(
                expediente_id=expediente.id,
                periodo_id=periodo.id,
                ciclo=ciclo,
                fecha_matricula=fecha_matricula,
            )
        )

    async def proyecto(
        self,
        ep_sede,
        periodo,
        tipo=ProyectoTipo.FREE,
        niveles=(),
        horas_minimas=10,
        horas_planificadas=20,
        estado=ActividadEstado.IN_PROGRESS,
        codigo=None,
    ):
        tipo_valor = tipo.value if isinstance(tipo, ProyectoTipo) else tipo
        return await self._save(
            Proyecto(
                ep_sede_id=ep_sede.id,
                periodo_id=periodo.id,
                codigo=codigo or f"PRY-{self._next():03d}",
                titulo="Proyecto de prueba",
                tipo=tipo_valor,
                estado=estado.value,
                horas_planificadas=horas_planificadas,
                horas_minimas_participante=horas_minimas,
                ciclos=[ProyectoCiclo(nivel=n) for n in niveles],
            )
        )

    async def proceso(self, proyecto, nombre="Proceso 1", orden=1):
        return await self._save(Proceso(proyecto_id=proyecto.id, nombre=nombre, orden=orden))

    async def sesion(self, owner: Ref, fecha=date(2025, 4, 10), hora_inicio="08:00", hora_fin="10:30"):
        from app.services.horas import normalizar_hora

        return await self._save(
            Sesion(
                owner_type=owner.kind.value,
                owner_id=owner.id,
                fecha=fecha,
                hora_inicio=normalizar_hora(hora_inicio),
                hora_fin=normalizar_hora(hora_fin),
                estado=ActividadEstado.PLANNED.value,
            )
        )

    async def evento(
        self,
        periodo,
        target: Ref,
        estado=ActividadEstado.PLANNED,
        requiere_inscripcion=True,
        cupo_maximo=None,
        inscripcion_desde=None,
        inscripcion_hasta=None,
    ):
        return await self._save(
            Evento(
                periodo_id=periodo.id,
                target_type=target.kind.value,
                target_id=target.id,
                codigo=f"EVT-{self._next():04d}",
                titulo="Evento de prueba",
                estado=estado.value,
                requiere_inscripcion=requiere_inscripcion,
                cupo_maximo=cupo_maximo,
                inscripcion_desde=inscripcion_desde,
                inscripcion_hasta=inscripcion_hasta,
            )
        )

    async def participacion(self, ref: Ref, expediente, estado=ParticipacionEstado.ENROLLED):
        return await self._save(
            Participacion(
                participable_type=ref.kind.value,
                participable_id=ref.id,
                expediente_id=expediente.id,
                estado=estado.value,
            )
        )

    async def horas(
        self,
        expediente,
        proceso,
        periodo,
        minutos,
        estado=RegistroHoraEstado.APPROVED,
    ):
        return await self._save(
            RegistroHora(
                expediente_id=expediente.id,
                ep_sede_id=expediente.ep_sede_id,
                periodo_id=periodo.id,
                fecha=date(2025, 4, 10),
                minutos=minutos,
                estado=estado.value,
                link_type=RefKind.PROCESS.value,
                link_id=proceso.id,
            )
        )


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest_asyncio.fixture
async def unidad(factory):
    """EP-SEDE con un coordinador y un período actual"""
    ep_sede = await factory.ep_sede()
    coordinador = await factory.usuario(first_name="Coordinador")
    await factory.staff(coordinador, ep_sede)
    periodo = await factory.periodo()
    return {"ep_sede": ep_sede, "coordinador": coordinador, "periodo": periodo}
