from agendamiento.models import Cita, EstadoCita


def hay_conflicto(session, id_especialidad, id_sede, fecha, hora) -> bool:
    """
    True si ya existe una cita activa (no cancelada) en la franja.

    Debe llamarse con la misma sesión que luego inserta la cita; el índice
    único parcial 'uq_citas_franja_activa' cubre las inserciones concurrentes
    que esta consulta no alcanza a ver.
    """
    cita_existente = (
        session.query(Cita.id)
        .filter(
            Cita.id_especialidad == id_especialidad,
            Cita.id_sede == id_sede,
            Cita.fecha == fecha,
            Cita.hora == hora,
            Cita.estado != EstadoCita.CANCELADO,
        )
        .first()
    )
    return cita_existente is not None
