from flask_mail import Message
from cozycabin import mail
from flask import render_template, current_app
import threading

from cozycabin.exceptions import EmailDeliveryError


def build_message(subject, recipients, text_body, html_body=None):
    msg = Message(subject,
                  sender=current_app.config['MAIL_DEFAULT_SENDER'] or current_app.config['MAIL_USERNAME'],
                  recipients=recipients)
    msg.body = text_body
    msg.html = html_body
    return msg


def deliver(app, msg):
    """Envía el mensaje con Flask-Mail (MAIL_SUPPRESS_SEND lo evita en pruebas)."""
    try:
        mail.send(msg)
    except Exception as e:
        raise EmailDeliveryError(f"No se pudo enviar el correo a {', '.join(msg.recipients)}.", original_exception=e)
    app.logger.info(f"Correo '{msg.subject}' enviado exitosamente a {msg.recipients}.")


def send_email_async(app, msg):
    """Función auxiliar para enviar correos en un hilo separado."""
    with app.app_context():
        try:
            deliver(app, msg)
        except EmailDeliveryError as e:
            app.logger.error(f"Error asíncrono al enviar correo '{msg.subject}' a {msg.recipients}: {e.original_exception}", exc_info=True)


def send_notification_email(subject, recipients, template, **kwargs):
    """
    Envía un correo en segundo plano. Para avisos no críticos:
    los fallos solo se registran en el log.
    """
    msg = build_message(
        subject,
        recipients,
        render_template(f"{template}.txt", **kwargs),
        render_template(f"{template}.html", **kwargs),
    )
    threading.Thread(target=send_email_async, args=(current_app._get_current_object(), msg)).start()
    current_app.logger.debug(f"Email '{subject}' en cola para: {recipients}")


def send_password_reset_email(user):
    token = user.get_reset_password_token()
    send_notification_email(
        subject='Restablecer Contraseña - CozyCabin',
        recipients=[user.email],
        template='email/reset_password',
        user=user,
        reset_url=f"{current_app.config['SITE_URL']}/auth/reset-password?token={token}",
    )


def send_invite_email(invite):
    """
    Envía la invitación de forma síncrona: quien invita necesita saber si
    el correo salió. Lanza EmailDeliveryError si falla.
    """
    invite_url = f"{current_app.config['SITE_URL']}/auth/sign-up?invite={invite['token']}"
    msg = build_message(
        'Invitación a CozyCabin',
        [invite["email"]],
        render_template("email/invite.txt", invite=invite, invite_url=invite_url),
        render_template("email/invite.html", invite=invite, invite_url=invite_url),
    )
    deliver(current_app._get_current_object(), msg)
