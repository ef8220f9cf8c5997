# cozycabin/invites.py

import logging

from flask import current_app

from cozycabin.email import send_invite_email

logger = logging.getLogger(__name__)


def send_invite(invite_repository, email, role, invited_by=None):
    """
    Crea la invitación (token generado en el servidor) y envía el correo.
    Si el envío falla, la invitación queda registrada y se lanza EmailDeliveryError.
    """
    invite = invite_repository.create(email, role, invited_by, current_app.config["INVITE_EXPIRATION"])
    logger.info(f"Invitación {invite['id']} creada para {invite['email']} con rol '{role}'")
    send_invite_email(invite)
    logger.info(f"Correo de invitación enviado a {invite['email']}")
    return invite
