from sqlalchemy import case, func

from agendamiento.models import Cita, EstadoCita


def _contar(estado):
    return func.coalesce(func.sum(case((Cita.estado == estado, 1), else_=0)), 0)


def metricas_operacion(session) -> dict:
    """Conteos agregados de citas por estado."""
    reservas, cancelaciones, confirmaciones, pendientes = session.query(
        func.count(Cita.id),
        _contar(EstadoCita.CANCELADO),
        _contar(EstadoCita.CONFIRMADO),
        _contar(EstadoCita.PENDIENTE),
    ).one()
    return {
        "reservas": int(reservas),
        "cancelaciones": int(cancelaciones),
        "confirmaciones": int(confirmaciones),
        "pendientes": int(pendientes),
    }
