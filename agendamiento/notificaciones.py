"""
Notificaciones de mejor esfuerzo (SMS al paciente, correo al administrador).

Se despachan después del commit de la cita. Un fallo aquí se registra en
el log y nunca se propaga a quien agendó.

Variables de entorno:
- SMS_ENABLED=true
- TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_MESSAGING_SERVICE_SID
- ADMIN_NOTIFY_EMAIL (+ configuración MAIL_* de Flask-Mail)
"""
import logging

import httpx
from flask import current_app
from flask_mail import Message

from agendamiento import mail

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def enviar_sms(config, telefono: str, mensaje: str):
    """Envía un SMS por la API REST de Twilio. Lanza excepción si falla."""
    if not config.get("SMS_ENABLED"):
        logger.info("SMS deshabilitado; no se envía a %s: %s", telefono, mensaje)
        return None

    account_sid = config.get("TWILIO_ACCOUNT_SID")
    auth_token = config.get("TWILIO_AUTH_TOKEN")
    messaging_service_sid = config.get("TWILIO_MESSAGING_SERVICE_SID")
    if not (account_sid and auth_token and messaging_service_sid):
        logger.warning("Credenciales de Twilio incompletas; SMS a %s omitido", telefono)
        return None

    response = httpx.post(
        TWILIO_API_URL.format(sid=account_sid),
        auth=(account_sid, auth_token),
        data={
            "To": telefono,
            "Body": mensaje,
            "MessagingServiceSid": messaging_service_sid,
        },
        timeout=10.0,
    )
    response.raise_for_status()
    sid = response.json().get("sid")
    logger.info("SMS enviado a %s (SID: %s)", telefono, sid)
    return sid


def avisar_admin(config, asunto: str, cuerpo: str):
    destinatario = config.get("ADMIN_NOTIFY_EMAIL")
    if not destinatario:
        return
    msg = Message(asunto, recipients=[destinatario])
    msg.body = cuerpo
    mail.send(msg)


def _resumen(cita: dict) -> str:
    return f"{cita['fecha']} a las {cita['hora'][:5]}"


def _cita_creada(cita: dict, telefono=None):
    config = current_app.config
    if telefono:
        enviar_sms(
            config,
            telefono,
            f"Su cita #{cita['id_cita']} fue registrada para el {_resumen(cita)}. "
            "Estado: PENDIENTE.",
        )
    avisar_admin(
        config,
        "Nueva cita registrada",
        "Nueva cita registrada:\n\n"
        f"Cita: {cita['id_cita']}\nPaciente: {cita['id_paciente']}\n"
        f"Especialidad: {cita['id_especialidad']}\nSede: {cita['id_sede']}\n"
        f"Fecha y hora: {_resumen(cita)}\nCanal: {cita['canal']}\n",
    )


def _cita_confirmada(cita: dict, telefono=None):
    if telefono:
        enviar_sms(
            current_app.config,
            telefono,
            f"Su cita #{cita['id_cita']} del {_resumen(cita)} fue CONFIRMADA.",
        )


def _ejecutar(app, fn, args):
    with app.app_context():
        try:
            fn(*args)
        except Exception:
            # no interrumpir flujo si falla la notificación
            logger.warning("Falló la notificación %s", fn.__name__, exc_info=True)


def despachar(fn, *args):
    """Ejecuta fn fuera de la transacción; en un hilo si NOTIFICACIONES_ASYNC."""
    app = current_app._get_current_object()
    if app.config.get("NOTIFICACIONES_ASYNC"):
        app.extensions["notificaciones"].submit(_ejecutar, app, fn, args)
    else:
        _ejecutar(app, fn, args)


def notificar_cita_creada(cita: dict, telefono=None):
    despachar(_cita_creada, cita, telefono)


def notificar_cita_confirmada(cita: dict, telefono=None):
    despachar(_cita_confirmada, cita, telefono)
