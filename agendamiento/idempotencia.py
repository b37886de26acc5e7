from agendamiento.models import IdempotencyKey


def resolver(session, key):
    """Id del recurso creado antes con esta clave, o None."""
    registro = session.get(IdempotencyKey, key)
    return registro.recurso_id if registro is not None else None


def registrar(session, key, entidad, recurso_id):
    # sin commit: viaja en la misma transacción que el recurso
    registro = IdempotencyKey(key=key, entidad=entidad, recurso_id=recurso_id)
    session.add(registro)
    session.flush()
    return registro
