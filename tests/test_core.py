from datetime import timedelta

import pytest

from app.api.deps import get_current_user
from app.core.refs import Ref, RefKind, parse_target_alias, resolve_unit_id
from app.core.security import create_access_token, verify_token
from app.main import app as fastapi_app
from app.services.expedientes import variantes_codigo
from app.services.periodos import normalizar_codigo
from app.utils.helpers import ResponseFormatter, clamp_per_page, split_csv


@pytest.mark.unit
def test_resolve_unit_id():
    unidades = {("sede", 7): 3, ("facultad", 9): None}
    assert resolve_unit_id(Ref(RefKind.EP_SEDE, 5)) == 5
    assert resolve_unit_id(Ref(RefKind.SEDE, 7), unidades) == 3
    assert resolve_unit_id(Ref(RefKind.FACULTAD, 9), unidades) is None
    assert resolve_unit_id(Ref(RefKind.SEDE, 8), unidades) is None
    assert resolve_unit_id(Ref(RefKind.PROJECT, 1), unidades) is None
    assert resolve_unit_id(None) is None


@pytest.mark.unit
def test_alias_de_destino():
    assert parse_target_alias("EP-SEDE") == RefKind.EP_SEDE
    assert parse_target_alias("campus") == RefKind.SEDE
    assert parse_target_alias(" faculty ") == RefKind.FACULTAD
    with pytest.raises(ValueError):
        parse_target_alias("universidad")


@pytest.mark.unit
def test_ref_desde_columnas():
    assert Ref.of("project", "4") == Ref(RefKind.PROJECT, 4)
    assert Ref.of(None, 4) is None
    assert Ref(RefKind.EVENT, 2).key() == ("event", 2)


@pytest.mark.unit
def test_variantes_codigo():
    assert variantes_codigo(" 00123 ") == ["00123", "123"]
    assert variantes_codigo("2025 001") == ["2025 001", "2025001"]
    assert variantes_codigo("") == []
    assert variantes_codigo(None) == []


@pytest.mark.unit
def test_normalizar_codigo_de_periodo():
    assert normalizar_codigo(" 2025_1 ") == "2025-1"
    assert normalizar_codigo("   ") is None


@pytest.mark.unit
def test_helpers():
    assert clamp_per_page(None) == 15
    assert clamp_per_page(500) == 100
    assert split_csv("student, staff,") == ["STUDENT", "STAFF"]
    assert split_csv("") is None
    assert ResponseFormatter.success([1], code="X", meta={"page": 1}) == {
        "ok": True,
        "code": "X",
        "data": [1],
        "meta": {"page": 1},
    }


@pytest.mark.unit
def test_token_roundtrip_y_expirado():
    assert verify_token(create_access_token(42)) == "42"
    assert verify_token(create_access_token(42, timedelta(seconds=-5))) is None
    assert verify_token("no-es-un-token") is None


@pytest.mark.api
async def test_actor_desde_bearer(client, unidad):
    fastapi_app.dependency_overrides.pop(get_current_user)
    token = create_access_token(unidad["coordinador"].id)

    response = await client.get(
        "/api/v1/ep-sedes/staff/context", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == unidad["coordinador"].id

    response = await client.get(
        "/api/v1/ep-sedes/staff/context", headers={"Authorization": "Bearer roto"}
    )
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.integration
async def test_resolve_ep_sede(db, factory, unidad):
    from app.core.errors import ReasonCode, VmError
    from app.services import ep_scope

    coordinador = unidad["coordinador"]
    assert await ep_scope.resolve_ep_sede(db, coordinador.id) == unidad["ep_sede"].id

    segunda = await factory.ep_sede("EP Enfermería")
    await factory.staff(coordinador, segunda)
    with pytest.raises(VmError) as error:
        await ep_scope.resolve_ep_sede(db, coordinador.id)
    assert error.value.code == ReasonCode.AMBIGUOUS_UNIT
    assert error.value.meta == {"choices": [unidad["ep_sede"].id, segunda.id]}

    sin_sede = await factory.usuario()
    with pytest.raises(VmError) as error:
        await ep_scope.resolve_ep_sede(db, sin_sede.id)
    assert error.value.code == ReasonCode.NO_MANAGED_UNIT
    assert error.value.status_code == 403


@pytest.mark.unit
def test_vm_error_por_defecto_es_422():
    from app.core.errors import ReasonCode, VmError

    error = VmError(ReasonCode.LEVEL_MISMATCH, "Nivel no habilitado.")
    assert error.status_code == 422
    assert error.to_dict() == {
        "ok": False,
        "code": "LEVEL_MISMATCH",
        "message": "Nivel no habilitado.",
        "meta": {},
    }
