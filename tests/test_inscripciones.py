import pytest
from sqlalchemy import func, select

from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref, RefKind
from app.models.enums import ExpedienteEstado, ParticipacionEstado, ProyectoTipo
from app.models.participacion import Participacion
from app.services import inscripciones

pytestmark = pytest.mark.integration


async def _participaciones(session_factory, ref: Ref) -> list:
    async with session_factory() as s:
        result = await s.execute(
            select(Participacion).where(
                (Participacion.participable_type == ref.kind.value)
                & (Participacion.participable_id == ref.id)
            )
        )
        return list(result.scalars().all())


async def test_autoinscripcion_libre_crea_una_participacion(db, factory, unidad, session_factory):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])

    data = await inscripciones.inscribir_actor(db, exp.user_id, proyecto)

    assert data["motivo"] == "ELIGIBLE_FREE"
    assert data["participation"]["estado"] == ParticipacionEstado.ENROLLED.value
    assert data["participation"]["rol"] == "STUDENT"
    assert data["project"]["tipo"] == ProyectoTipo.FREE.value

    filas = await _participaciones(session_factory, Ref(RefKind.PROJECT, proyecto.id))
    assert [p.expediente_id for p in filas] == [exp.id]


async def test_segunda_inscripcion_ya_inscrito(db, factory, unidad, session_factory):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])

    primera = await inscripciones.inscribir_actor(db, exp.user_id, proyecto)
    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_actor(db, exp.user_id, proyecto)

    assert error.value.code == ReasonCode.ALREADY_ENROLLED
    assert error.value.meta["participacion_id"] == primera["participation"]["id"]
    assert len(await _participaciones(session_factory, Ref(RefKind.PROJECT, proyecto.id))) == 1


async def test_participacion_cancelada_sigue_bloqueando(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    await factory.participacion(
        Ref(RefKind.PROJECT, proyecto.id), exp, estado=ParticipacionEstado.CANCELLED
    )

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_actor(db, exp.user_id, proyecto)
    assert error.value.code == ReasonCode.ALREADY_ENROLLED


async def test_autoinscripcion_sin_expediente(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    alumno = await factory.usuario()

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_actor(db, alumno.id, proyecto)
    assert error.value.code == ReasonCode.DIFFERENT_UNIT
    assert error.value.meta["motivo"] == "NOT_FOUND"


async def test_proyecto_cerrado_no_inscribe(db, factory, unidad):
    from app.models.enums import ActividadEstado

    proyecto = await factory.proyecto(
        unidad["ep_sede"], unidad["periodo"], estado=ActividadEstado.CLOSED
    )
    exp = await factory.expediente(unidad["ep_sede"])

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_actor(db, exp.user_id, proyecto)
    assert error.value.code == ReasonCode.PROJECT_NOT_ACTIVE


async def test_evento_lleno(db, factory, unidad):
    evento = await factory.evento(
        unidad["periodo"], Ref(RefKind.EP_SEDE, unidad["ep_sede"].id), cupo_maximo=2
    )
    alumnos = [await factory.expediente(unidad["ep_sede"]) for _ in range(3)]

    for exp in alumnos[:2]:
        await inscripciones.inscribir_actor(db, exp.user_id, evento)

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_actor(db, alumnos[2].user_id, evento)
    assert error.value.code == ReasonCode.EVENT_FULL
    assert error.value.meta == {"cupo_maximo": 2, "inscritos": 2}


async def test_inscripcion_manual_en_evento_por_codigo(db, factory, unidad):
    evento = await factory.evento(unidad["periodo"], Ref(RefKind.EP_SEDE, unidad["ep_sede"].id))
    exp = await factory.expediente(unidad["ep_sede"], codigo="20250042")

    data = await inscripciones.inscribir_expediente_en_evento(
        db, unidad["coordinador"].id, evento, code="0020250042"
    )
    assert data["expediente"] == {"id": exp.id, "codigo": "20250042"}
    assert data["participation"]["participable_type"] == RefKind.EVENT.value


async def test_inscripcion_manual_requiere_staff(db, factory, unidad):
    evento = await factory.evento(unidad["periodo"], Ref(RefKind.EP_SEDE, unidad["ep_sede"].id))
    exp = await factory.expediente(unidad["ep_sede"])
    intruso = await factory.usuario()

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_expediente_en_evento(
            db, intruso.id, evento, record_id=exp.id
        )
    assert error.value.status_code == 403


async def test_masiva_contabilidad_completa(db, factory, unidad):
    """N elegibles, M ya inscritos y K no elegibles en la EP-SEDE"""
    ep_sede, periodo = unidad["ep_sede"], unidad["periodo"]
    proyecto = await factory.proyecto(
        ep_sede, periodo, tipo=ProyectoTipo.LINKED, niveles=[3]
    )
    ref = Ref(RefKind.PROJECT, proyecto.id)

    for _ in range(3):
        exp = await factory.expediente(ep_sede, ciclo="3")
        await factory.matricula(exp, periodo)
    for _ in range(2):
        exp = await factory.expediente(ep_sede, ciclo="3")
        await factory.matricula(exp, periodo)
        await factory.participacion(ref, exp)
    nivel_distinto = await factory.expediente(ep_sede, ciclo="6")
    await factory.matricula(nivel_distinto, periodo)
    await factory.expediente(ep_sede, ciclo="3")
    await factory.expediente(ep_sede, ciclo="3", estado=ExpedienteEstado.INACTIVE)

    data = await inscripciones.inscribir_todos_elegibles(
        db, unidad["coordinador"].id, proyecto, only_eligible=False
    )

    assert data["created"] == 3
    assert data["already_enrolled"] == 2
    assert data["discarded_total"] == 2
    assert data["skipped_by_limit"] == 0
    razones = sorted(d["razon"] for d in data["discarded"])
    assert razones == ["LEVEL_MISMATCH", "NOT_ENROLLED_CURRENT_PERIOD"]
    assert data["target"]["niveles"] == [3]


async def test_masiva_solo_elegibles_omite_descartes(db, factory, unidad):
    ep_sede, periodo = unidad["ep_sede"], unidad["periodo"]
    proyecto = await factory.proyecto(ep_sede, periodo, tipo=ProyectoTipo.LINKED, niveles=[3])
    exp = await factory.expediente(ep_sede, ciclo="3")
    await factory.matricula(exp, periodo)
    await factory.expediente(ep_sede, ciclo="9")

    data = await inscripciones.inscribir_todos_elegibles(db, unidad["coordinador"].id, proyecto)
    assert data["created"] == 1
    assert data["discarded_total"] == 0
    assert data["discarded"] == []


async def test_masiva_limit_solo_topa_creaciones(db, factory, unidad, session_factory):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    for _ in range(4):
        await factory.expediente(unidad["ep_sede"])

    data = await inscripciones.inscribir_todos_elegibles(
        db, unidad["coordinador"].id, proyecto, limit=1
    )
    assert data["created"] == 1
    assert data["skipped_by_limit"] == 3
    assert len(await _participaciones(session_factory, Ref(RefKind.PROJECT, proyecto.id))) == 1


async def test_masiva_respeta_cupo_del_evento(db, factory, unidad):
    evento = await factory.evento(
        unidad["periodo"], Ref(RefKind.EP_SEDE, unidad["ep_sede"].id), cupo_maximo=2
    )
    for _ in range(4):
        await factory.expediente(unidad["ep_sede"])

    data = await inscripciones.inscribir_todos_elegibles(
        db, unidad["coordinador"].id, evento, only_eligible=False
    )
    assert data["created"] == 2
    assert data["discarded_total"] == 2
    assert {d["razon"] for d in data["discarded"]} == {"EVENT_FULL"}


async def test_seleccionados_con_expediente_desconocido(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    otra = await factory.ep_sede("EP Derecho")
    ajeno = await factory.expediente(otra)

    data = await inscripciones.inscribir_seleccionados(
        db,
        unidad["coordinador"].id,
        proyecto,
        [exp.id, ajeno.id, 99999],
        only_eligible=False,
    )
    assert data["created"] == 1
    assert data["discarded_total"] == 2
    descartados = {d["expediente_id"]: d for d in data["discarded"]}
    assert descartados[ajeno.id]["meta"]["motivo"] == "DIFFERENT_UNIT"
    assert descartados[99999]["meta"]["motivo"] == "NOT_FOUND"
    assert descartados[99999]["codigo"] is None


async def test_candidatos_particion(db, factory, unidad):
    ep_sede, periodo = unidad["ep_sede"], unidad["periodo"]
    proyecto = await factory.proyecto(ep_sede, periodo, tipo=ProyectoTipo.LINKED, niveles=[3])
    elegible = await factory.expediente(ep_sede, ciclo="3")
    await factory.matricula(elegible, periodo)
    no_elegible = await factory.expediente(ep_sede, ciclo="8")
    await factory.matricula(no_elegible, periodo)

    data = await inscripciones.listar_candidatos(
        db, unidad["coordinador"].id, proyecto, only_eligible=False
    )
    assert data["eligible_total"] == 1
    assert data["eligible"][0]["expediente_id"] == elegible.id
    assert data["eligible"][0]["motivo"] == "ELIGIBLE_LINKED"
    assert data["not_eligible_total"] == 1
    assert data["not_eligible"][0]["razon"] == "LEVEL_MISMATCH"


async def test_candidatos_filtra_por_texto(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    ana = await factory.usuario(first_name="Ana", last_name="Quispe")
    await factory.expediente(unidad["ep_sede"], usuario=ana)
    await factory.expediente(unidad["ep_sede"])

    data = await inscripciones.listar_candidatos(
        db, unidad["coordinador"].id, proyecto, q="quispe"
    )
    assert data["eligible_total"] == 1
    assert data["eligible"][0]["usuario"]["last_name"] == "Quispe"


async def test_inspeccion_fuerza_inscripcion_sin_reglas(db, factory, unidad):
    ep_sede, periodo = unidad["ep_sede"], unidad["periodo"]
    proyecto = await factory.proyecto(ep_sede, periodo, tipo=ProyectoTipo.LINKED, niveles=[1])
    exp = await factory.expediente(ep_sede, ciclo="9")

    data = await inscripciones.inscribir_por_inspeccion(
        db, unidad["coordinador"].id, project_id=proyecto.id, record_id=exp.id
    )
    assert data["created"] is True
    assert data["participation"]["estado"] == ParticipacionEstado.ENROLLED.value

    otra_vez = await inscripciones.inscribir_por_inspeccion(
        db, unidad["coordinador"].id, project_id=proyecto.id, record_id=exp.id
    )
    assert otra_vez["created"] is False
    assert otra_vez["participation"]["id"] == data["participation"]["id"]


async def test_inspeccion_proyecto_de_otra_sede(db, factory, unidad):
    otra = await factory.ep_sede("EP Medicina")
    proyecto = await factory.proyecto(otra, unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])

    with pytest.raises(VmError) as error:
        await inscripciones.inscribir_por_inspeccion(
            db, unidad["coordinador"].id, project_id=proyecto.id, record_id=exp.id
        )
    assert error.value.code == ReasonCode.PROJECT_NOT_IN_UNIT


async def test_unicidad_destino_expediente(db, factory, unidad, session_factory):
    from app.crud.participacion import participacion as crud_participacion

    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    ref = Ref(RefKind.PROJECT, proyecto.id)

    primera, creada = await crud_participacion.create_or_fetch(db, ref, exp.id)
    await db.commit()
    segunda, otra = await crud_participacion.create_or_fetch(db, ref, exp.id)
    await db.commit()

    assert creada and not otra
    assert primera.id == segunda.id
    async with session_factory() as s:
        total = await s.scalar(select(func.count(Participacion.id)))
    assert total == 1


async def test_eliminar_evento_borra_sus_inscripciones(db, factory, unidad, session_factory):
    from datetime import date

    from app.models.asistencia import Asistencia
    from app.models.enums import AsistenciaMetodo
    from app.models.registro_hora import RegistroHora
    from app.models.sesion import Sesion
    from app.services import eventos

    destino = Ref(RefKind.EP_SEDE, unidad["ep_sede"].id)
    evento = await factory.evento(unidad["periodo"], destino, cupo_maximo=1)
    ref = Ref(RefKind.EVENT, evento.id)
    sesion = await factory.sesion(ref)
    primero = await factory.expediente(unidad["ep_sede"])
    await inscripciones.inscribir_actor(db, primero.user_id, evento)

    asistencia = Asistencia(
        sesion_id=sesion.id, expediente_id=primero.id, metodo=AsistenciaMetodo.MANUAL.value
    )
    db.add(asistencia)
    await db.flush()
    db.add(
        RegistroHora(
            expediente_id=primero.id,
            ep_sede_id=unidad["ep_sede"].id,
            periodo_id=unidad["periodo"].id,
            fecha=date(2025, 4, 10),
            minutos=150,
            sesion_id=sesion.id,
            asistencia_id=asistencia.id,
        )
    )
    await db.commit()

    await eventos.eliminar(db, unidad["coordinador"].id, evento.id)

    assert await _participaciones(session_factory, ref) == []
    async with session_factory() as s:
        assert await s.scalar(select(func.count(Sesion.id))) == 0
        assert await s.scalar(select(func.count(Asistencia.id))) == 0
        assert await s.scalar(select(func.count(RegistroHora.id))) == 0

    nuevo = await factory.evento(unidad["periodo"], destino, cupo_maximo=1)
    segundo = await factory.expediente(unidad["ep_sede"])
    data = await inscripciones.inscribir_actor(db, segundo.user_id, nuevo)
    assert data["participation"]["expediente_id"] == segundo.id


async def test_confirmar_participacion_es_idempotente(db, factory, unidad, session_factory):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    ref = Ref(RefKind.PROJECT, proyecto.id)

    part, creada = await inscripciones.confirmar_participacion(db, ref, exp.id)
    otra, repetida = await inscripciones.confirmar_participacion(db, ref, exp.id)

    assert creada is True
    assert repetida is False
    assert otra.id == part.id
    assert len(await _participaciones(session_factory, ref)) == 1
