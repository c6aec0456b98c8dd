import pytest

from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref, RefKind
from app.models.enums import ActividadEstado, ParticipacionEstado
from app.services import participaciones, proyectos
from app.services.actividades import validar_estado_actividad


@pytest.mark.unit
@pytest.mark.parametrize(
    "desde, hacia, permitido",
    [
        ("ENROLLED", "CONFIRMED", True),
        ("ENROLLED", "FINISHED", True),
        ("ENROLLED", "CANCELLED", True),
        ("CONFIRMED", "FINISHED", True),
        ("CONFIRMED", "ENROLLED", False),
        ("FINISHED", "ENROLLED", False),
        ("CANCELLED", "ENROLLED", False),
        ("FINISHED", "FINISHED", True),
        ("ENROLLED", "UNKNOWN", False),
    ],
)
def test_transiciones_participacion(desde, hacia, permitido):
    assert participaciones.puede_transicionar(desde, hacia) is permitido


@pytest.mark.unit
def test_transicion_invalida_informa_origen_y_destino():
    with pytest.raises(VmError) as error:
        participaciones.validar_transicion("FINISHED", "ENROLLED")
    assert error.value.code == ReasonCode.INVALID_TRANSITION
    assert error.value.meta == {"from": "FINISHED", "to": "ENROLLED"}


@pytest.mark.unit
@pytest.mark.parametrize(
    "desde, hacia",
    [
        ("PLANNED", "IN_PROGRESS"),
        ("PLANNED", "CANCELLED"),
        ("IN_PROGRESS", "CLOSED"),
        ("IN_PROGRESS", "CANCELLED"),
        ("CLOSED", "CLOSED"),
    ],
)
def test_transiciones_actividad_validas(desde, hacia):
    validar_estado_actividad(desde, hacia)


@pytest.mark.unit
@pytest.mark.parametrize(
    "desde, hacia",
    [
        ("IN_PROGRESS", "PLANNED"),
        ("PLANNED", "CLOSED"),
        ("CLOSED", "IN_PROGRESS"),
        ("CANCELLED", "PLANNED"),
    ],
)
def test_transiciones_actividad_invalidas(desde, hacia):
    with pytest.raises(VmError) as error:
        validar_estado_actividad(desde, hacia)
    assert error.value.code == ReasonCode.INVALID_TRANSITION


@pytest.mark.integration
async def test_staff_confirma_participacion(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    part = await factory.participacion(Ref(RefKind.PROJECT, proyecto.id), exp)

    actualizada = await participaciones.cambiar_estado(
        db, unidad["coordinador"].id, part.id, ParticipacionEstado.CONFIRMED
    )
    assert actualizada.estado == ParticipacionEstado.CONFIRMED.value


@pytest.mark.integration
async def test_participacion_de_evento_por_facultad(db, factory, unidad):
    facultad = await factory.facultad(unidad["ep_sede"])
    evento = await factory.evento(unidad["periodo"], Ref(RefKind.FACULTAD, facultad.id))
    exp = await factory.expediente(unidad["ep_sede"])
    part = await factory.participacion(Ref(RefKind.EVENT, evento.id), exp)

    actualizada = await participaciones.cambiar_estado(
        db, unidad["coordinador"].id, part.id, ParticipacionEstado.FINISHED
    )
    assert actualizada.estado == ParticipacionEstado.FINISHED.value


@pytest.mark.integration
async def test_participacion_terminal_no_cambia(db, factory, unidad):
    proyecto = await factory.proyecto(unidad["ep_sede"], unidad["periodo"])
    exp = await factory.expediente(unidad["ep_sede"])
    part = await factory.participacion(
        Ref(RefKind.PROJECT, proyecto.id), exp, estado=ParticipacionEstado.CANCELLED
    )

    with pytest.raises(VmError) as error:
        await participaciones.cambiar_estado(
            db, unidad["coordinador"].id, part.id, ParticipacionEstado.ENROLLED
        )
    assert error.value.code == ReasonCode.INVALID_TRANSITION


@pytest.mark.integration
async def test_participacion_de_otra_sede_prohibida(db, factory, unidad):
    otra = await factory.ep_sede("EP Economía")
    proyecto = await factory.proyecto(otra, unidad["periodo"])
    exp = await factory.expediente(otra)
    part = await factory.participacion(Ref(RefKind.PROJECT, proyecto.id), exp)

    with pytest.raises(VmError) as error:
        await participaciones.cambiar_estado(
            db, unidad["coordinador"].id, part.id, ParticipacionEstado.CONFIRMED
        )
    assert error.value.status_code == 403


@pytest.mark.integration
async def test_proyecto_avanza_y_no_retrocede(db, factory, unidad):
    proyecto = await factory.proyecto(
        unidad["ep_sede"], unidad["periodo"], estado=ActividadEstado.PLANNED
    )
    actor = unidad["coordinador"].id

    data = await proyectos.cambiar_estado(db, actor, proyecto.id, ActividadEstado.IN_PROGRESS)
    assert data["estado"] == ActividadEstado.IN_PROGRESS.value

    with pytest.raises(VmError) as error:
        await proyectos.cambiar_estado(db, actor, proyecto.id, ActividadEstado.PLANNED)
    assert error.value.meta == {"from": "IN_PROGRESS", "to": "PLANNED"}
