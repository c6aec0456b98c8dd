from datetime import date, datetime, time

import pytest
from sqlalchemy import select

from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref, RefKind
from app.models.asistencia import Asistencia
from app.models.enums import AsistenciaEstado, AsistenciaMetodo, ParticipacionEstado
from app.models.participacion import Participacion
from app.models.registro_hora import RegistroHora
from app.services import horas


@pytest.mark.unit
def test_ventana_sesion_minutos():
    check_in, check_out, minutos = horas.ventana_sesion(date(2025, 4, 10), "08:00", "10:30")
    assert minutos == 150
    assert check_in == datetime(2025, 4, 10, 8, 0)
    assert check_out == datetime(2025, 4, 10, 10, 30)


@pytest.mark.unit
def test_ventana_sesion_nunca_negativa():
    _, _, minutos = horas.ventana_sesion(date(2025, 4, 10), "10:00", "09:00")
    assert minutos == 0


@pytest.mark.unit
@pytest.mark.parametrize(
    "valor, esperado",
    [
        ("08:00", time(8, 0)),
        ("08:15:30", time(8, 15, 30)),
        ("08:15:30.250", time(8, 15, 30)),
        (time(9, 45), time(9, 45)),
    ],
)
def test_normalizar_hora(valor, esperado):
    assert horas.normalizar_hora(valor) == esperado


@pytest.mark.unit
def test_avance():
    assert horas.avance("ENROLLED", 600, 150) == {
        "requerido_min": 600,
        "acumulado_min": 150,
        "faltan_min": 450,
        "porcentaje": 25,
        "finalizado": False,
    }
    assert horas.avance("ENROLLED", 600, 700)["faltan_min"] == 0
    assert horas.avance("ENROLLED", 600, 700)["finalizado"] is True


async def _escenario(factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    proceso = await factory.proceso(proyecto)
    sesion = await factory.sesion(Ref(RefKind.PROCESS, proceso.id))
    exp = await factory.expediente(unidad["ep_sede"])
    return proyecto, proceso, sesion, exp


@pytest.mark.integration
async def test_marcar_asistencia_crea_registro_y_participacion(
    db, factory, unidad, session_factory
):
    proyecto, proceso, sesion, exp = await _escenario(factory, unidad)

    data = await horas.marcar_asistencias(
        db, expediente=exp, ep_sede_id=unidad["ep_sede"].id, sesion_ids=[sesion.id]
    )

    assert data["skipped"] == []
    [creado] = data["created"]
    assert creado["minutos"] == 150
    assert creado["proyecto_id"] == proyecto.id
    assert creado["periodo_codigo"] == "2025-1"

    async with session_factory() as s:
        asistencia = await s.get(Asistencia, creado["asistencia_id"])
        registro = await s.get(RegistroHora, creado["registro_hora_id"])
        participacion = await s.scalar(
            select(Participacion).where(
                (Participacion.participable_type == RefKind.PROJECT.value)
                & (Participacion.participable_id == proyecto.id)
                & (Participacion.expediente_id == exp.id)
            )
        )

    assert asistencia.estado == AsistenciaEstado.VALIDATED.value
    assert asistencia.metodo == AsistenciaMetodo.MANUAL_INSPECTION.value
    assert registro.minutos == 150
    assert registro.estado == "APPROVED"
    assert registro.link_type == RefKind.PROCESS.value
    assert registro.link_id == proceso.id
    assert registro.periodo_id == unidad["periodo"].id
    assert participacion.estado == ParticipacionEstado.ENROLLED.value


@pytest.mark.integration
async def test_remarcar_sobrescribe_misma_asistencia(db, factory, unidad, session_factory):
    _, _, sesion, exp = await _escenario(factory, unidad)
    ep_sede_id = unidad["ep_sede"].id

    primera = await horas.marcar_asistencias(
        db, expediente=exp, ep_sede_id=ep_sede_id, sesion_ids=[sesion.id]
    )
    segunda = await horas.marcar_asistencias(
        db, expediente=exp, ep_sede_id=ep_sede_id, sesion_ids=[sesion.id]
    )

    assert segunda["created"][0]["asistencia_id"] == primera["created"][0]["asistencia_id"]
    assert segunda["created"][0]["registro_hora_id"] == primera["created"][0]["registro_hora_id"]
    async with session_factory() as s:
        asistencias = (await s.execute(select(Asistencia))).scalars().all()
        registros = (await s.execute(select(RegistroHora))).scalars().all()
    assert len(asistencias) == 1
    assert len(registros) == 1


@pytest.mark.integration
async def test_sesiones_omitidas(db, factory, unidad):
    _, _, sesion, exp = await _escenario(factory, unidad)
    evento = await factory.evento(unidad["periodo"], Ref(RefKind.EP_SEDE, unidad["ep_sede"].id))
    sesion_evento = await factory.sesion(Ref(RefKind.EVENT, evento.id))
    otra = await factory.ep_sede("EP Arquitectura")
    ajeno = await factory.proyecto(otra, unidad["periodo"])
    sesion_ajena = await factory.sesion(Ref(RefKind.PROCESS, (await factory.proceso(ajeno)).id))

    data = await horas.marcar_asistencias(
        db,
        expediente=exp,
        ep_sede_id=unidad["ep_sede"].id,
        sesion_ids=[sesion.id, sesion_evento.id, sesion_ajena.id, 99999],
    )

    assert [c["sesion_id"] for c in data["created"]] == [sesion.id]
    razones = {o["sesion_id"]: o["razon"] for o in data["skipped"]}
    assert razones == {
        sesion_evento.id: horas.SESSION_NOT_PROCESS,
        sesion_ajena.id: horas.OTHER_UNIT,
        99999: horas.SESSION_NOT_FOUND,
    }


@pytest.mark.integration
async def test_sin_sesiones(db, factory, unidad):
    exp = await factory.expediente(unidad["ep_sede"])
    with pytest.raises(VmError) as error:
        await horas.marcar_asistencias(
            db, expediente=exp, ep_sede_id=unidad["ep_sede"].id, sesion_ids=[12345]
        )
    assert error.value.code == ReasonCode.NO_SESSIONS_FOUND
    assert error.value.status_code == 404


@pytest.mark.integration
async def test_marcar_por_inspeccion_resuelve_codigo(db, factory, unidad):
    _, _, sesion, _ = await _escenario(factory, unidad)
    exp = await factory.expediente(unidad["ep_sede"], codigo="20251234")

    data = await horas.marcar_por_inspeccion(
        db, unidad["coordinador"].id, sesion_ids=[sesion.id], code=" 20251234 "
    )
    assert data["expediente_id"] == exp.id
    assert data["codigo_estudiante"] == "20251234"


@pytest.mark.integration
async def test_minutos_acumulados_marcan_finalizado(db, factory, unidad):
    from app.services import reportes

    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"], horas_minimas=2)
    proceso = await factory.proceso(proyecto)
    exp = await factory.expediente(unidad["ep_sede"])
    await factory.participacion(Ref(RefKind.PROJECT, proyecto.id), exp)
    await factory.horas(exp, proceso, unidad["periodo"], minutos=90)
    await factory.horas(exp, proceso, unidad["periodo"], minutos=30)

    from app.services.proyectos import obtener

    data = await reportes.listar_inscritos_proyecto(
        db, unidad["coordinador"].id, await obtener(db, proyecto.id)
    )
    [item] = data["items"]
    assert item["requerido_min"] == 120
    assert item["acumulado_min"] == 120
    assert item["porcentaje"] == 100
    assert item["finalizado"] is True
    assert data["summary"]["finalizados"] == 1


@pytest.mark.integration
async def test_create_or_fetch_se_deshace_con_la_transaccion(db, factory, unidad, session_factory):
    from app.crud.participacion import participacion as crud_participacion

    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    ref, exp_id = Ref(RefKind.PROJECT, proyecto.id), exp.id

    _, creada = await crud_participacion.create_or_fetch(db, ref, exp_id)
    assert creada is True
    await db.rollback()

    async with session_factory() as s:
        assert (await s.execute(select(Participacion))).scalars().all() == []


@pytest.mark.integration
async def test_marcar_asistencias_es_atomico(db, factory, unidad, session_factory, monkeypatch):
    proyecto, proceso, sesion, exp = await _escenario(factory, unidad)
    segunda = await factory.sesion(Ref(RefKind.PROCESS, proceso.id), fecha=date(2025, 4, 17))
    ep_sede_id = unidad["ep_sede"].id
    sesion_ids = [sesion.id, segunda.id]

    registrar = horas.registrar_asistencia
    llamadas = []

    async def registrar_y_fallar(db, **kwargs):
        resultado = await registrar(db, **kwargs)
        llamadas.append(kwargs["sesion"].id)
        if len(llamadas) == 2:
            raise RuntimeError("fallo al registrar la segunda sesión")
        return resultado

    monkeypatch.setattr(horas, "registrar_asistencia", registrar_y_fallar)

    with pytest.raises(RuntimeError):
        await horas.marcar_asistencias(
            db, expediente=exp, ep_sede_id=ep_sede_id, sesion_ids=sesion_ids
        )

    assert llamadas == sesion_ids
    async with session_factory() as s:
        assert (await s.execute(select(Participacion))).scalars().all() == []
        assert (await s.execute(select(Asistencia))).scalars().all() == []
        assert (await s.execute(select(RegistroHora))).scalars().all() == []
