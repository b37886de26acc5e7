"""
Fixtures de pruebas.

- App sobre SQLite en memoria (StaticPool) con JWT_SECRET fijo
- Notificaciones en línea y SMS deshabilitado
- Datos de referencia y cabeceras Bearer para ADMIN y OPERADOR
"""
import pytest
from sqlalchemy.pool import StaticPool

from agendamiento import create_app, db as _db
from agendamiento.auth.service import registrar_usuario
from agendamiento.models import Especialidad, Paciente, Sede

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SQLALCHEMY_ENGINE_OPTIONS": {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    },
    "JWT_SECRET": "test-secret",
    "JWT_EXPIRES_HOURS": 8,
    "BCRYPT_LOG_ROUNDS": 4,
    "NOTIFICACIONES_ASYNC": False,
    "SMS_ENABLED": False,
    "ADMIN_NOTIFY_EMAIL": None,
}


@pytest.fixture
def app(monkeypatch):
    for var in ("DATABASE_URL", "ADMIN_EMAIL", "ADMIN_PASSWORD", "JWT_SECRET"):
        monkeypatch.delenv(var, raising=False)

    app = create_app(TEST_CONFIG)
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()
    app.extensions["notificaciones"].shutdown(wait=True)


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def referencias(db):
    """Paciente 1, especialidades 1-2 y sedes 1-3."""
    db.session.add(Paciente(nombre="María Pérez", telefono="+573001112233", email="maria@x.com"))
    db.session.add_all([
        Especialidad(nombre="Medicina General"),
        Especialidad(nombre="Cardiología"),
    ])
    db.session.add_all([
        Sede(nombre="Sede Norte"),
        Sede(nombre="Sede Sur"),
        Sede(nombre="Sede Centro"),
    ])
    db.session.commit()


@pytest.fixture
def cita_payload():
    return {
        "id_paciente": 1,
        "id_especialidad": 2,
        "id_sede": 3,
        "fecha": "2024-05-01",
        "hora": "09:00:00",
        "canal": "WEB",
    }


def _headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(db):
    _, token = registrar_usuario(db.session, "Admin", "admin@x.com", "secret1", "ADMIN")
    return _headers(token)


@pytest.fixture
def operador_headers(db):
    _, token = registrar_usuario(db.session, "Oscar", "oscar@x.com", "secret1", "OPERADOR")
    return _headers(token)
