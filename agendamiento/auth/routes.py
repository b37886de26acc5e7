from flask import Blueprint, g, jsonify

from agendamiento import db
from agendamiento.auth import service
from agendamiento.auth.decorators import login_required
from agendamiento.validacion import json_body

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/register", methods=["POST"])
def register():
    data = json_body()
    usuario, token = service.registrar_usuario(
        db.session,
        data.get("nombre"),
        data.get("email"),
        data.get("password"),
        data.get("rol"),
    )
    return jsonify({"user": usuario.to_dict(), "token": token}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    usuario, token = service.login(db.session, data.get("email"), data.get("password"))
    return jsonify({"user": usuario.to_dict(), "token": token})


@auth_bp.route("/me")
@login_required
def me():
    u = g.usuario
    return jsonify({
        "id_usuario": u["sub"],
        "nombre": u.get("nombre"),
        "email": u.get("email"),
        "rol": u["role"],
    })
