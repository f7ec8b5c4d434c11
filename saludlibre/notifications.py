# saludlibre/notifications.py
"""Transactional emails sent over SMTP.

Every sender returns ``Ok``/``Err``; callers log failures and carry on, an
email problem never fails the request that triggered it.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from . import config
from .formatting import format_date_es
from .results import Err, Ok, Result

logger = logging.getLogger(__name__)

EMAIL_NOT_CONFIGURED = "El servicio de correo no está configurado"
EMAIL_FAILED = "No se pudo enviar el correo"


def send_email(to_email: str, subject: str, html: str) -> Result[bool]:
    if not config.SMTP_HOST:
        logger.warning("SMTP not configured, skipping email to %s", to_email)
        return Err(EMAIL_NOT_CONFIGURED, 503)
    if not to_email:
        return Err("Falta el email del destinatario", 400)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.FROM_EMAIL
    msg["To"] = to_email
    msg.attach(MIMEText(html, "html", "utf-8"))

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=15) as server:
            server.starttls()
            if config.SMTP_USERNAME:
                server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
            server.sendmail(config.FROM_EMAIL, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("SMTP error sending %r to %s: %s", subject, to_email, exc)
        return Err(EMAIL_FAILED, 502)

    logger.info("Email %r sent to %s", subject, to_email)
    return Ok(True)


def _layout(title: str, body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #FFC107;">Salud Libre</h2>
      <h3>{escape(title)}</h3>
      {body}
      <p style="color: #666666; font-size: 12px;">Este es un mensaje automático, por favor no responder.</p>
    </div>
    """


def send_welcome_email(patient_name: str, patient_email: str, temporary_password: str, doctor_name: str) -> Result[bool]:
    body = f"""
      <p>Hola {escape(patient_name)},</p>
      <p>{escape(doctor_name)} creó tu cuenta en Salud Libre.</p>
      <p>Email: <b>{escape(patient_email)}</b><br>
         Contraseña temporal: <b>{escape(temporary_password)}</b></p>
      <p>Por seguridad vas a tener que cambiarla al ingresar.</p>
      <p><a href="{config.APP_URL}/auth/login">Ingresar a Salud Libre</a></p>
    """
    return send_email(patient_email, "Bienvenido a Salud Libre", _layout("Tu cuenta está lista", body))


def send_appointment_requested(doctor_email: str, doctor_name: str, patient_name: str, day, time: str) -> Result[bool]:
    body = f"""
      <p>Hola {escape(doctor_name)},</p>
      <p>{escape(patient_name)} solicitó un turno para el {format_date_es(day)} a las {escape(time)}.</p>
      <p><a href="{config.APP_URL}/admin">Revisar solicitudes pendientes</a></p>
    """
    return send_email(doctor_email, "Nueva solicitud de turno", _layout("Nueva solicitud de turno", body))


def send_appointment_confirmed(patient_email: str, patient_name: str, doctor_name: str, day, time: str) -> Result[bool]:
    body = f"""
      <p>Hola {escape(patient_name)},</p>
      <p>Tu turno con {escape(doctor_name)} fue confirmado.</p>
      <p>Fecha: <b>{format_date_es(day)}</b><br>Hora: <b>{escape(time)}</b></p>
      <p><a href="{config.APP_URL}/paciente/dashboard">Ver mis turnos</a></p>
    """
    return send_email(patient_email, "Turno confirmado", _layout("Turno confirmado", body))
