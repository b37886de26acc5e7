"""
Datos de referencia: especialidades, sedes y pacientes.

Altas con un constructor tipado por entidad; las actualizaciones parciales
solo tocan las columnas de la lista permitida de cada entidad.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from agendamiento.errors import DuplicateResource, NotFound, ResourceInUse, ValidationError
from agendamiento.models import Especialidad, Paciente, Sede

logger = logging.getLogger(__name__)

CAMPOS_ACTUALIZABLES = {
    Especialidad: ("nombre", "descripcion"),
    Sede: ("nombre", "direccion", "telefono"),
    Paciente: (
        "nombre", "email", "telefono", "fecha_nacimiento",
        "documento", "genero", "direccion", "ciudad",
    ),
}

CAMPOS_REQUERIDOS = {
    Especialidad: ("nombre",),
    Sede: ("nombre",),
    Paciente: ("nombre", "telefono"),
}

NOMBRES = {
    Especialidad: "Especialidad",
    Sede: "Sede",
    Paciente: "Paciente",
}

NO_ENCONTRADO = {
    Especialidad: "Especialidad no encontrada",
    Sede: "Sede no encontrada",
    Paciente: "Paciente no encontrado",
}


def _limpiar(modelo, campo, valor):
    if valor is None:
        if campo in CAMPOS_REQUERIDOS[modelo]:
            raise ValidationError(f"{campo} es requerido")
        return None
    if not isinstance(valor, str):
        raise ValidationError(f"{campo} debe ser texto")
    valor = valor.strip()
    if campo in CAMPOS_REQUERIDOS[modelo] and not valor:
        raise ValidationError(f"{campo} es requerido")
    if campo == "fecha_nacimiento" and valor:
        try:
            return datetime.strptime(valor, "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError("Formato de fecha_nacimiento incorrecto (YYYY-MM-DD)")
    if campo == "email" and valor:
        return valor.lower()
    return valor or None


def _guardar(session, modelo):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateResource(f"{NOMBRES[modelo]} ya existe")


def listar(session, modelo):
    return session.query(modelo).order_by(modelo.nombre.asc()).all()


def obtener(session, modelo, id_):
    obj = session.get(modelo, id_)
    if obj is None:
        raise NotFound(NO_ENCONTRADO[modelo])
    return obj


def crear(session, modelo, datos):
    if not isinstance(datos, dict):
        raise ValidationError()
    valores = {campo: _limpiar(modelo, campo, datos.get(campo)) for campo in CAMPOS_ACTUALIZABLES[modelo]}
    obj = modelo(**valores)
    session.add(obj)
    _guardar(session, modelo)
    logger.info("%s %s creado", NOMBRES[modelo], obj.id)
    return obj


def actualizar(session, modelo, id_, datos):
    """Actualiza solo los campos presentes en datos y permitidos."""
    if not isinstance(datos, dict):
        raise ValidationError()
    cambios = {
        campo: _limpiar(modelo, campo, datos[campo])
        for campo in CAMPOS_ACTUALIZABLES[modelo]
        if campo in datos
    }
    if not cambios:
        raise ValidationError("No hay campos para actualizar")

    obj = obtener(session, modelo, id_)
    for campo, valor in cambios.items():
        setattr(obj, campo, valor)
    _guardar(session, modelo)
    return obj


def eliminar(session, modelo, id_):
    obj = obtener(session, modelo, id_)
    session.delete(obj)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ResourceInUse(f"{NOMBRES[modelo]} tiene citas asociadas")
