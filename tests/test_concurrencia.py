"""
Reservas simultáneas sobre SQLite en archivo.

Cada hilo abre su propio contexto de aplicación, y con él su propia sesión
y conexión; la base de datos decide quién gana la franja.
"""
import threading

import pytest

from agendamiento import citas, create_app, db as _db
from agendamiento.errors import ScheduleConflict
from agendamiento.models import Cita, Especialidad, EstadoCita, IdempotencyKey, Paciente, Sede

HILOS = 2


@pytest.fixture
def app_archivo(tmp_path, monkeypatch):
    for var in ("DATABASE_URL", "ADMIN_EMAIL", "ADMIN_PASSWORD", "JWT_SECRET"):
        monkeypatch.delenv(var, raising=False)

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'citas.db'}",
        # espera al bloqueo de escritura del otro hilo en vez de fallar
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "JWT_SECRET": "test-secret",
        "NOTIFICACIONES_ASYNC": False,
        "SMS_ENABLED": False,
        "ADMIN_NOTIFY_EMAIL": None,
    })
    yield app
    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()
    app.extensions["notificaciones"].shutdown(wait=True)


@pytest.fixture
def referencias_archivo(app_archivo):
    with app_archivo.app_context():
        _db.session.add(Paciente(nombre="María Pérez", telefono="+573001112233"))
        _db.session.add(Especialidad(nombre="Medicina General"))
        _db.session.add(Sede(nombre="Sede Norte"))
        _db.session.commit()
    return {
        "id_paciente": 1,
        "id_especialidad": 1,
        "id_sede": 1,
        "fecha": "2024-05-01",
        "hora": "09:00:00",
        "canal": "API",
    }


def _reservar_en_paralelo(app, payload, key=None):
    barrera = threading.Barrier(HILOS)
    resultados = []
    errores = []

    def reservar():
        with app.app_context():
            barrera.wait()
            try:
                cita, creada = citas.crear_cita(_db.session, payload, key)
                resultados.append(("creada" if creada else "repetida", cita.id))
            except ScheduleConflict:
                resultados.append(("conflicto", None))
            except Exception as e:
                errores.append(e)
            finally:
                _db.session.remove()

    hilos = [threading.Thread(target=reservar) for _ in range(HILOS)]
    for hilo in hilos:
        hilo.start()
    for hilo in hilos:
        hilo.join(timeout=60)

    assert not errores, errores
    assert len(resultados) == HILOS
    return resultados


def test_simultaneous_bookings_for_same_slot(app_archivo, referencias_archivo):
    resultados = _reservar_en_paralelo(app_archivo, referencias_archivo)

    assert sorted(r[0] for r in resultados) == ["conflicto", "creada"]
    with app_archivo.app_context():
        activas = _db.session.query(Cita).filter(Cita.estado != EstadoCita.CANCELADO).count()
        assert activas == 1


def test_simultaneous_retries_with_same_key(app_archivo, referencias_archivo):
    resultados = _reservar_en_paralelo(app_archivo, referencias_archivo, key="misma-clave")

    assert sorted(r[0] for r in resultados) == ["creada", "repetida"]
    assert resultados[0][1] == resultados[1][1]
    with app_archivo.app_context():
        assert _db.session.query(Cita).count() == 1
        assert _db.session.query(IdempotencyKey).count() == 1
