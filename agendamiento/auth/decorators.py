from functools import wraps

from flask import g, request

from agendamiento.auth.service import verificar_token
from agendamiento.errors import Forbidden, Unauthenticated


def _bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):].strip() or None


def login_required(view):
    """Exige un token Bearer válido; deja el payload en g.usuario."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise Unauthenticated()
        g.usuario = verificar_token(token)
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles):
    permitidos = {getattr(r, "value", r) for r in roles}

    def decorator(view):
        @wraps(view)
        @login_required
        def wrapper(*args, **kwargs):
            if g.usuario["role"] not in permitidos:
                raise Forbidden()
            return view(*args, **kwargs)

        return wrapper

    return decorator
