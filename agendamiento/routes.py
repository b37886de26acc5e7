import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import text

from agendamiento import catalogos, citas, db, operadores
from agendamiento.auth.decorators import login_required, roles_required
from agendamiento.errors import NotFound
from agendamiento.metricas import metricas_operacion
from agendamiento.models import Especialidad, Paciente, Rol, Sede
from agendamiento.validacion import json_body, parse_id

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

IDEMPOTENCY_HEADER = "Idempotency-Key"


@api_bp.route("/health")
def health():
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"})


# ========== CITAS ==========

@api_bp.route("/citas", methods=["POST"])
def crear_cita():
    cita, creada = citas.crear_cita(
        db.session, json_body(), request.headers.get(IDEMPOTENCY_HEADER)
    )
    return jsonify(cita.to_dict()), 201 if creada else 200


@api_bp.route("/citas", methods=["GET"])
def listar_citas():
    return jsonify([c.to_dict() for c in citas.listar_citas(db.session)])


@api_bp.route("/citas/sms", methods=["POST"])
def crear_cita_sms():
    cita, creada = citas.crear_cita_por_sms(
        db.session, json_body(), request.headers.get(IDEMPOTENCY_HEADER)
    )
    return jsonify(cita.to_dict()), 201 if creada else 200


@api_bp.route("/citas/<id_cita>", methods=["GET"])
def obtener_cita(id_cita):
    cita = citas.obtener_cita(db.session, parse_id(id_cita, "id"))
    if cita is None:
        raise NotFound("Cita no encontrada")
    return jsonify(cita.to_dict())


def _id_cita_del_cuerpo(data):
    valor = data.get("id_cita", data.get("id"))
    return parse_id(valor, "id_cita")


@api_bp.route("/citas/confirmar", methods=["POST"])
@login_required
def confirmar_cita():
    data = json_body()
    cita = citas.confirmar_cita(db.session, _id_cita_del_cuerpo(data), data.get("telefono"))
    return jsonify(cita.to_dict())


@api_bp.route("/citas/cancelar", methods=["POST"])
@login_required
def cancelar_cita():
    cita = citas.cancelar_cita(db.session, _id_cita_del_cuerpo(json_body()))
    return jsonify(cita.to_dict())


# ========== MÉTRICAS ==========

@api_bp.route("/metrics/operacion")
@login_required
def metricas():
    return jsonify(metricas_operacion(db.session))


# ========== OPERADORES ==========

@api_bp.route("/operadores", methods=["GET"])
@roles_required(Rol.ADMIN)
def listar_operadores():
    return jsonify([o.to_dict() for o in operadores.listar_operadores(db.session)])


@api_bp.route("/operadores/<id_>", methods=["GET"])
@roles_required(Rol.ADMIN)
def obtener_operador(id_):
    return jsonify(operadores.obtener_operador(db.session, parse_id(id_, "id")).to_dict())


@api_bp.route("/operadores", methods=["POST"])
@roles_required(Rol.ADMIN)
def crear_operador():
    operador = operadores.crear_operador(db.session, json_body())
    return jsonify(operador.to_dict()), 201


@api_bp.route("/operadores/<id_>", methods=["PUT"])
@roles_required(Rol.ADMIN)
def actualizar_operador(id_):
    operador = operadores.actualizar_operador(db.session, parse_id(id_, "id"), json_body())
    return jsonify(operador.to_dict())


@api_bp.route("/operadores/<id_>", methods=["DELETE"])
@roles_required(Rol.ADMIN)
def eliminar_operador(id_):
    operadores.eliminar_operador(db.session, parse_id(id_, "id"))
    return "", 204


# ========== DATOS DE REFERENCIA ==========

def _registrar_catalogo(ruta, modelo, lectura=None, escritura=(Rol.ADMIN,), borrado=(Rol.ADMIN,)):
    """
    Registra GET/POST en /<ruta> y GET/PUT/DELETE en /<ruta>/<id>.

    lectura: None = público; una tupla de roles exige autenticación
    (vacía = cualquier usuario autenticado).
    """

    def proteger_lectura(view):
        if lectura is None:
            return view
        if not lectura:
            return login_required(view)
        return roles_required(*lectura)(view)

    def listar():
        return jsonify([o.to_dict() for o in catalogos.listar(db.session, modelo)])

    def obtener(id_):
        obj = catalogos.obtener(db.session, modelo, parse_id(id_, "id"))
        return jsonify(obj.to_dict())

    def crear():
        obj = catalogos.crear(db.session, modelo, json_body())
        return jsonify(obj.to_dict()), 201

    def actualizar(id_):
        obj = catalogos.actualizar(db.session, modelo, parse_id(id_, "id"), json_body())
        return jsonify(obj.to_dict())

    def eliminar(id_):
        catalogos.eliminar(db.session, modelo, parse_id(id_, "id"))
        return "", 204

    api_bp.add_url_rule(f"/{ruta}", f"listar_{ruta}", proteger_lectura(listar), methods=["GET"])
    api_bp.add_url_rule(f"/{ruta}/<id_>", f"obtener_{ruta}", proteger_lectura(obtener), methods=["GET"])
    api_bp.add_url_rule(f"/{ruta}", f"crear_{ruta}", roles_required(*escritura)(crear), methods=["POST"])
    api_bp.add_url_rule(
        f"/{ruta}/<id_>", f"actualizar_{ruta}", roles_required(*escritura)(actualizar), methods=["PUT"]
    )
    api_bp.add_url_rule(
        f"/{ruta}/<id_>", f"eliminar_{ruta}", roles_required(*borrado)(eliminar), methods=["DELETE"]
    )


_registrar_catalogo("especialidades", Especialidad)
_registrar_catalogo("sedes", Sede)
_registrar_catalogo("pacientes", Paciente, lectura=(), escritura=(Rol.ADMIN, Rol.OPERADOR))
