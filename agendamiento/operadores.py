"""Ficha de operador: marca activo/inactivo sobre un usuario con rol OPERADOR."""
import logging

from sqlalchemy.exc import IntegrityError

from agendamiento.errors import DuplicateResource, NotFound, ValidationError
from agendamiento.models import Operador, Rol, Usuario
from agendamiento.validacion import parse_id

logger = logging.getLogger(__name__)


def _parse_activo(valor):
    if not isinstance(valor, bool):
        raise ValidationError("El campo activo debe ser booleano")
    return valor


def listar_operadores(session):
    return (
        session.query(Operador)
        .join(Usuario, Operador.id_usuario == Usuario.id)
        .order_by(Usuario.nombre.asc(), Operador.id.asc())
        .all()
    )


def obtener_operador(session, id_operador):
    operador = session.get(Operador, id_operador)
    if operador is None:
        raise NotFound("Operador no encontrado")
    return operador


def crear_operador(session, datos):
    if not isinstance(datos, dict):
        raise ValidationError()
    if datos.get("id_usuario") is None:
        raise ValidationError("id_usuario es requerido")
    id_usuario = parse_id(datos["id_usuario"], "id_usuario")
    activo = _parse_activo(datos["activo"]) if datos.get("activo") is not None else True

    usuario = session.get(Usuario, id_usuario)
    if usuario is None or usuario.rol != Rol.OPERADOR:
        raise NotFound("Usuario no encontrado o no es OPERADOR")

    operador = Operador(id_usuario=id_usuario, activo=activo)
    session.add(operador)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateResource("El operador ya existe")

    logger.info("Operador %s creado para usuario %s", operador.id, id_usuario)
    return operador


def actualizar_operador(session, id_operador, datos):
    """Solo se puede cambiar activo."""
    if not isinstance(datos, dict):
        raise ValidationError()
    if "activo" not in datos:
        raise ValidationError("No hay campos para actualizar")
    activo = _parse_activo(datos["activo"])

    operador = obtener_operador(session, id_operador)
    operador.activo = activo
    session.commit()
    return operador


def eliminar_operador(session, id_operador):
    operador = obtener_operador(session, id_operador)
    session.delete(operador)
    session.commit()
    logger.info("Operador %s eliminado", id_operador)
