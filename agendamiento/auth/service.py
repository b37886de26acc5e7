"""
Credenciales y tokens de sesión.

Las contraseñas se guardan con bcrypt (Flask-Bcrypt). Los tokens son JWT
firmados con HS256 y JWT_SECRET; no hay sesión en servidor, la validez del
token depende solo de la firma y de la expiración.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from agendamiento import bcrypt
from agendamiento.errors import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidRole,
    SigningKeyNotConfigured,
    ValidationError,
)
from agendamiento.models import Rol, Usuario

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 6


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_rol(valor) -> Rol:
    if not isinstance(valor, str):
        raise InvalidRole()
    try:
        return Rol(valor.strip().upper())
    except ValueError:
        raise InvalidRole()


def _hash_ficticio() -> str:
    """Hash bcrypt sin dueño para igualar el coste de un login con email desconocido."""
    ficticio = current_app.extensions.get("hash_ficticio")
    if ficticio is None:
        ficticio = bcrypt.generate_password_hash(secrets.token_urlsafe()).decode()
        current_app.extensions["hash_ficticio"] = ficticio
    return ficticio


def _jwt_secret() -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not secret:
        raise SigningKeyNotConfigured()
    return secret


def emitir_token(usuario: Usuario, expires_delta: timedelta = None) -> str:
    """Firma un token con id, rol, email y nombre del usuario."""
    secret = _jwt_secret()
    if expires_delta is None:
        expires_delta = timedelta(hours=current_app.config.get("JWT_EXPIRES_HOURS", 8))

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(usuario.id),
        "role": usuario.rol.value,
        "email": usuario.email,
        "nombre": usuario.nombre,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verificar_token(token: str) -> dict:
    """
    Valida firma y expiración.

    Raises:
        InvalidOrExpiredToken: firma incorrecta, token mal formado o vencido
        SigningKeyNotConfigured: no hay JWT_SECRET
    """
    secret = _jwt_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Token expirado")
        raise InvalidOrExpiredToken()
    except jwt.InvalidTokenError as e:
        logger.warning("Token inválido: %s", e)
        raise InvalidOrExpiredToken()

    try:
        payload["sub"] = int(payload["sub"])
        Rol(payload["role"])
    except (KeyError, TypeError, ValueError):
        raise InvalidOrExpiredToken()
    return payload


def registrar_usuario(session, nombre, email, password, rol):
    rol = parse_rol(rol)

    if (
        not isinstance(nombre, str)
        or not isinstance(email, str)
        or not isinstance(password, str)
        or not nombre.strip()
        or not email.strip()
        or len(password) < MIN_PASSWORD_LENGTH
    ):
        raise ValidationError("Datos inválidos para registro")

    usuario = Usuario(
        nombre=nombre.strip(),
        email=normalize_email(email),
        password_hash=bcrypt.generate_password_hash(password).decode(),
        rol=rol,
    )
    session.add(usuario)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateEmail()

    logger.info("Usuario registrado: %s (%s)", usuario.email, usuario.rol.value)
    return usuario, emitir_token(usuario)


def login(session, email, password):
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError("Email y contraseña son requeridos")

    usuario = session.query(Usuario).filter_by(email=normalize_email(email)).first()

    # mismo error y mismo coste para email inexistente y contraseña incorrecta
    if usuario is None:
        bcrypt.check_password_hash(_hash_ficticio(), password)
        raise InvalidCredentials()
    if not bcrypt.check_password_hash(usuario.password_hash, password):
        raise InvalidCredentials()

    return usuario, emitir_token(usuario)
