import logging

from cozycabin.admin.forms import InviteForm
from cozycabin.auth import policies
from cozycabin.invites import send_invite
from cozycabin.stores.base import BaseStore

logger = logging.getLogger(__name__)


class InviteStore(BaseStore):
    """Invitaciones de agentes y administradores (solo administradores)."""

    def __init__(self, user, invite_repository):
        super().__init__()
        self.user = user
        self.invite_repository = invite_repository
        self.invites = []

    def fetch_invites(self):
        with self.action("cargar invitaciones"):
            policies.check(self.user.is_admin, "Debes ser administrador para ver las invitaciones.")
            self.invites = self.invite_repository.get_all()
        return self.invites

    def create_invite(self, payload):
        with self.action("crear invitación"):
            form = self.validate(InviteForm.from_payload(payload))
            policies.check(
                self.user.is_admin,
                f"Debes ser administrador para crear invitaciones. Tu rol es \"{self.user.role}\".",
            )
            invite = send_invite(self.invite_repository, form.email.data, form.role.data, self.user.id)
            self.invites = self.invite_repository.get_all()
            return invite
        return None
