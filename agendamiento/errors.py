"""Errores de dominio y su traducción a respuestas JSON."""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from agendamiento import db

logger = logging.getLogger(__name__)


class AgendaError(Exception):
    status_code = 500
    message = "Error interno"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {"error": type(self).__name__, "message": self.message}


class ValidationError(AgendaError):
    status_code = 400
    message = "Datos incompletos o con tipo inválido"


class InvalidRole(AgendaError):
    status_code = 400
    message = "Rol no permitido"


class ScheduleConflict(AgendaError):
    status_code = 409
    message = "Existe otra cita para esa especialidad y sede en la misma fecha/hora"


class NotFound(AgendaError):
    status_code = 404
    message = "Recurso no encontrado"


class AlreadyCancelled(AgendaError):
    status_code = 409
    message = "La cita está cancelada y no puede confirmarse"


class DuplicateResource(AgendaError):
    status_code = 409
    message = "El recurso ya existe"


class DuplicateEmail(DuplicateResource):
    message = "Ya existe un usuario con ese email"


class ResourceInUse(AgendaError):
    status_code = 409
    message = "El recurso está en uso"


class InvalidCredentials(AgendaError):
    status_code = 401
    message = "Credenciales inválidas"


class Unauthenticated(AgendaError):
    status_code = 401
    message = "Token no proporcionado"


class InvalidOrExpiredToken(AgendaError):
    status_code = 401
    message = "Token inválido o expirado"


class Forbidden(AgendaError):
    status_code = 403
    message = "No tiene permisos para esta acción"


class SigningKeyNotConfigured(AgendaError):
    status_code = 500
    message = "Falta configurar JWT_SECRET"


def register_error_handlers(app):

    @app.errorhandler(AgendaError)
    def handle_agenda_error(err):
        if err.status_code >= 500:
            logger.error("Error de configuración: %s", err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({"error": err.name, "message": err.description}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        # no filtrar detalles internos al cliente
        logger.exception("Error no controlado: %s", err)
        db.session.rollback()
        return jsonify({"error": "InternalServerError", "message": "Error interno del servidor"}), 500
