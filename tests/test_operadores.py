import pytest

from agendamiento import operadores
from agendamiento.auth.service import registrar_usuario
from agendamiento.errors import DuplicateResource, NotFound, ValidationError
from agendamiento.models import Operador, Usuario


@pytest.fixture
def usuario_operador(db, operador_headers):
    return db.session.query(Usuario).filter_by(email="oscar@x.com").one()


def test_operator_routes_are_admin_only(client, admin_headers, operador_headers, usuario_operador):
    assert client.get("/api/operadores").status_code == 401
    resp = client.get("/api/operadores", headers=operador_headers)
    assert resp.status_code == 403
    resp = client.post("/api/operadores", json={"id_usuario": usuario_operador.id}, headers=operador_headers)
    assert resp.status_code == 403
    assert client.get("/api/operadores", headers=admin_headers).get_json() == []


def test_create_returns_operator_with_user(client, admin_headers, usuario_operador):
    resp = client.post("/api/operadores", json={"id_usuario": usuario_operador.id}, headers=admin_headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["activo"] is True
    assert body["id_usuario"] == usuario_operador.id
    assert body["usuario"]["email"] == "oscar@x.com"
    assert body["usuario"]["rol"] == "OPERADOR"
    assert "password_hash" not in body["usuario"]

    resp = client.get(f"/api/operadores/{body['id_operador']}", headers=admin_headers)
    assert resp.get_json()["usuario"]["nombre"] == "Oscar"


def test_list_is_ordered_by_user_name(db, client, admin_headers, usuario_operador):
    beatriz, _ = registrar_usuario(db.session, "Beatriz", "bea@x.com", "secret1", "OPERADOR")
    operadores.crear_operador(db.session, {"id_usuario": usuario_operador.id})
    operadores.crear_operador(db.session, {"id_usuario": beatriz.id, "activo": False})

    resp = client.get("/api/operadores", headers=admin_headers)
    assert [o["usuario"]["nombre"] for o in resp.get_json()] == ["Beatriz", "Oscar"]
    assert [o["activo"] for o in resp.get_json()] == [False, True]


def test_admin_user_cannot_be_operator(db, admin_headers):
    admin = db.session.query(Usuario).filter_by(email="admin@x.com").one()
    with pytest.raises(NotFound):
        operadores.crear_operador(db.session, {"id_usuario": admin.id})
    with pytest.raises(NotFound):
        operadores.crear_operador(db.session, {"id_usuario": 999})


def test_duplicate_operator_conflicts(client, admin_headers, usuario_operador):
    payload = {"id_usuario": usuario_operador.id}
    assert client.post("/api/operadores", json=payload, headers=admin_headers).status_code == 201
    resp = client.post("/api/operadores", json=payload, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "DuplicateResource"


def test_duplicate_operator_direct(db, usuario_operador):
    operadores.crear_operador(db.session, {"id_usuario": usuario_operador.id})
    with pytest.raises(DuplicateResource):
        operadores.crear_operador(db.session, {"id_usuario": usuario_operador.id})
    assert db.session.query(Operador).count() == 1


@pytest.mark.parametrize("payload", [
    {},
    {"id_usuario": "abc"},
    {"id_usuario": 10**30},
    {"id_usuario": 2, "activo": "si"},
])
def test_create_validation(client, admin_headers, usuario_operador, payload):
    resp = client.post("/api/operadores", json=payload, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "ValidationError"


def test_update_only_toggles_active(db, client, admin_headers, usuario_operador):
    operador = operadores.crear_operador(db.session, {"id_usuario": usuario_operador.id})

    resp = client.put(f"/api/operadores/{operador.id}", json={"activo": False}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["activo"] is False

    resp = client.put(f"/api/operadores/{operador.id}", json={"id_usuario": 1}, headers=admin_headers)
    assert resp.status_code == 400
    with pytest.raises(ValidationError):
        operadores.actualizar_operador(db.session, operador.id, {"activo": 1})
    assert client.put("/api/operadores/99", json={"activo": True}, headers=admin_headers).status_code == 404


def test_delete_operator_keeps_user(db, client, admin_headers, usuario_operador):
    operador = operadores.crear_operador(db.session, {"id_usuario": usuario_operador.id})

    assert client.delete(f"/api/operadores/{operador.id}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/operadores/{operador.id}", headers=admin_headers).status_code == 404
    assert client.delete(f"/api/operadores/{operador.id}", headers=admin_headers).status_code == 404
    assert db.session.get(Usuario, usuario_operador.id) is not None
