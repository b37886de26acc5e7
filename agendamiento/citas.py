"""
Ciclo de vida de las citas.

Creación: verificación de franja + inserción + registro de la clave de
idempotencia en una sola transacción. Confirmación y cancelación son
UPDATE condicionales de una sola sentencia.

    PENDIENTE  -> CONFIRMADO | CANCELADO
    CONFIRMADO -> CONFIRMADO (re-sella) | CANCELADO
    CANCELADO  -> CANCELADO (sin cambios); confirmar se rechaza
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from agendamiento import idempotencia, notificaciones
from agendamiento.agenda import hay_conflicto
from agendamiento.errors import AlreadyCancelled, NotFound, ScheduleConflict, ValidationError
from agendamiento.models import Canal, Cita, Especialidad, EstadoCita, Paciente, Sede
from agendamiento.validacion import parse_id

logger = logging.getLogger(__name__)

ENTIDAD = "citas"
MAX_KEY_LENGTH = 255


def _parse_fecha(valor):
    if not isinstance(valor, str):
        raise ValidationError("La fecha es requerida (YYYY-MM-DD)")
    try:
        return datetime.strptime(valor.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Formato de fecha incorrecto (YYYY-MM-DD)")


def _parse_hora(valor):
    if not isinstance(valor, str):
        raise ValidationError("La hora es requerida (HH:MM:SS)")
    for formato in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(valor.strip(), formato).time()
        except ValueError:
            continue
    raise ValidationError("Formato de hora incorrecto (HH:MM:SS)")


def _parse_canal(valor):
    if not isinstance(valor, str):
        raise ValidationError("El canal es requerido")
    try:
        return Canal(valor.strip())
    except ValueError:
        raise ValidationError("El canal debe ser 'API', 'SMS' o 'WEB'")


def _parse_estado(valor):
    if valor is None:
        return EstadoCita.PENDIENTE
    if not isinstance(valor, str):
        raise ValidationError("El estado debe ser texto")
    try:
        return EstadoCita(valor.strip().upper())
    except ValueError:
        raise ValidationError("Estado de cita inválido")


def _parse_telefono(valor):
    if valor is None:
        return None
    if not isinstance(valor, str):
        raise ValidationError("El teléfono debe ser texto")
    return valor.strip() or None


def validar_idempotency_key(key):
    if key is None:
        return None
    key = key.strip()
    if not key:
        return None
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError("Idempotency-Key demasiado larga")
    return key


def validar_solicitud(datos) -> dict:
    if not isinstance(datos, dict):
        raise ValidationError()
    return {
        "id_paciente": parse_id(datos.get("id_paciente"), "id_paciente"),
        "id_especialidad": parse_id(datos.get("id_especialidad"), "id_especialidad"),
        "id_sede": parse_id(datos.get("id_sede"), "id_sede"),
        "fecha": _parse_fecha(datos.get("fecha")),
        "hora": _parse_hora(datos.get("hora")),
        "canal": _parse_canal(datos.get("canal")),
        "estado": _parse_estado(datos.get("estado")),
        "telefono": _parse_telefono(datos.get("telefono")),
    }


def _verificar_referencias(session, solicitud):
    for modelo, campo in ((Paciente, "id_paciente"), (Especialidad, "id_especialidad"), (Sede, "id_sede")):
        if session.get(modelo, solicitud[campo]) is None:
            raise ValidationError(f"No existe el registro indicado en {campo}")


def _replay(session, key):
    """Cita ya creada con esta clave, o None."""
    if key is None:
        return None
    existente = idempotencia.resolver(session, key)
    if existente is None:
        return None
    logger.info("Reintento idempotente con clave %s -> cita %s", key, existente)
    return session.get(Cita, existente)


def _insertar(session, solicitud, key):
    cita = _replay(session, key)
    if cita is not None:
        return cita, False

    _verificar_referencias(session, solicitud)

    franja = (solicitud["id_especialidad"], solicitud["id_sede"], solicitud["fecha"], solicitud["hora"])
    if solicitud["estado"] != EstadoCita.CANCELADO and hay_conflicto(session, *franja):
        # la misma clave pudo confirmarse en otra petición tras la primera consulta
        cita = _replay(session, key)
        if cita is not None:
            return cita, False
        logger.warning("Conflicto de horario en especialidad=%s sede=%s %s %s", *franja)
        raise ScheduleConflict()

    ahora = datetime.utcnow()
    cita = Cita(
        id_paciente=solicitud["id_paciente"],
        id_especialidad=solicitud["id_especialidad"],
        id_sede=solicitud["id_sede"],
        fecha=solicitud["fecha"],
        hora=solicitud["hora"],
        canal=solicitud["canal"],
        estado=solicitud["estado"],
        creado_en=ahora,
        actualizado_en=ahora,
        confirmado_en=ahora if solicitud["estado"] == EstadoCita.CONFIRMADO else None,
        cancelado_en=ahora if solicitud["estado"] == EstadoCita.CANCELADO else None,
    )
    session.add(cita)
    try:
        session.flush()
    except IntegrityError:
        # otra transacción ocupó la franja después de la verificación
        session.rollback()
        cita = _replay(session, key)
        if cita is not None:
            return cita, False
        logger.warning("Conflicto de horario detectado por el índice único: %s", franja)
        raise ScheduleConflict()

    if key is not None:
        try:
            idempotencia.registrar(session, key, ENTIDAD, cita.id)
        except IntegrityError:
            # carrera con la misma clave: responde con la cita del ganador
            session.rollback()
            cita = _replay(session, key)
            if cita is None:
                raise
            return cita, False

    session.commit()
    logger.info("Cita %s creada por canal %s", cita.id, cita.canal.value)
    return cita, True


def crear_cita(session, datos, idempotency_key=None):
    """
    Crea una cita o devuelve la ya creada con la misma Idempotency-Key.

    Returns:
        (cita, creada): creada es False cuando la respuesta sale del registro
        de idempotencia.
    """
    try:
        key = validar_idempotency_key(idempotency_key)
        solicitud = validar_solicitud(datos)
        cita, creada = _insertar(session, solicitud, key)
    except Exception:
        session.rollback()
        raise

    if creada:
        notificaciones.notificar_cita_creada(cita.to_dict(), solicitud["telefono"])
    return cita, creada


def crear_cita_por_sms(session, datos, idempotency_key=None):
    """Alta por la pasarela SMS: el paciente se identifica por su teléfono."""
    if not isinstance(datos, dict):
        raise ValidationError()
    telefono = _parse_telefono(datos.get("telefono"))
    if not telefono:
        raise ValidationError("El teléfono es requerido")

    try:
        key = validar_idempotency_key(idempotency_key)
        cita = _replay(session, key)
        if cita is not None:
            return cita, False

        paciente = session.query(Paciente).filter_by(telefono=telefono).first()
        if paciente is None:
            # se descarta con el rollback si la cita no llega a crearse
            nombre = datos.get("nombre")
            if not isinstance(nombre, str) or not nombre.strip():
                nombre = f"Paciente {telefono}"
            paciente = Paciente(nombre=nombre.strip(), telefono=telefono)
            session.add(paciente)
            session.flush()
            logger.info("Paciente %s creado desde SMS", paciente.id)
    except Exception:
        session.rollback()
        raise

    return crear_cita(
        session,
        {
            "id_paciente": paciente.id,
            "id_especialidad": datos.get("id_especialidad"),
            "id_sede": datos.get("id_sede"),
            "fecha": datos.get("fecha"),
            "hora": datos.get("hora"),
            "canal": Canal.SMS.value,
            "telefono": telefono,
        },
        key,
    )


def obtener_cita(session, id_cita):
    return session.get(Cita, id_cita)


def listar_citas(session):
    return session.query(Cita).order_by(Cita.fecha.asc(), Cita.hora.asc(), Cita.id.asc()).all()


def confirmar_cita(session, id_cita, telefono=None):
    telefono = _parse_telefono(telefono)
    ahora = datetime.utcnow()
    filas = (
        session.query(Cita)
        .filter(Cita.id == id_cita, Cita.estado != EstadoCita.CANCELADO)
        .update(
            {
                Cita.estado: EstadoCita.CONFIRMADO,
                Cita.confirmado_en: ahora,
                Cita.cancelado_en: None,
                Cita.actualizado_en: ahora,
            },
            synchronize_session=False,
        )
    )
    session.commit()

    cita = session.get(Cita, id_cita)
    if cita is None:
        raise NotFound("Cita no encontrada")
    if filas == 0:
        raise AlreadyCancelled()

    logger.info("Cita %s confirmada", cita.id)
    notificaciones.notificar_cita_confirmada(cita.to_dict(), telefono)
    return cita


def cancelar_cita(session, id_cita):
    ahora = datetime.utcnow()
    filas = (
        session.query(Cita)
        .filter(Cita.id == id_cita, Cita.estado != EstadoCita.CANCELADO)
        .update(
            {
                Cita.estado: EstadoCita.CANCELADO,
                Cita.cancelado_en: ahora,
                Cita.actualizado_en: ahora,
            },
            synchronize_session=False,
        )
    )
    session.commit()

    cita = session.get(Cita, id_cita)
    if cita is None:
        raise NotFound("Cita no encontrada")
    if filas:
        logger.info("Cita %s cancelada", cita.id)
    return cita
