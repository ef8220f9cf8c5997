import logging

from flask_login import login_user, logout_user

from cozycabin.auth.forms import LoginForm, SignUpForm, RequestResetPasswordForm, ResetPasswordForm
from cozycabin.auth.models import Profile
from cozycabin.email import send_password_reset_email
from cozycabin.exceptions import AuthenticationError, ConflictError, InviteError, InvalidTokenError, NotFoundError
from cozycabin.models import UserRole
from cozycabin.stores.base import BaseStore
from cozycabin.utils import utcnow

logger = logging.getLogger(__name__)


class AuthStore(BaseStore):
    """Sesión del usuario: inicio/cierre de sesión, registro y contraseñas."""

    def __init__(self, profile_repository, invite_repository, user=None):
        super().__init__()
        self.profile_repository = profile_repository
        self.invite_repository = invite_repository
        self.user = user
        self.access_token = None

    @property
    def profile(self):
        return self.user.to_dict() if self.user else None

    def login(self, credentials):
        with self.action("iniciar sesión"):
            form = self.validate(LoginForm.from_payload(credentials))
            doc = self.profile_repository.find_by_email(form.email.data)
            user = Profile(**doc) if doc else None

            if user is None or not user.check_password(form.password.data):
                logger.warning(f"Intento de inicio de sesión fallido para '{form.email.data}'")
                raise AuthenticationError()
            if not user.is_active:
                logger.warning(f"Inicio de sesión de una cuenta desactivada: '{form.email.data}'")
                raise AuthenticationError("Tu cuenta está desactivada.")

            login_user(user, remember=bool(form.remember_me.data))
            self.user = user
            self.access_token = user.get_access_token()
            logger.info(f"Inicio de sesión de {user.email}")
            return user
        return None

    def sign_up(self, payload):
        """
        Crea un perfil 'customer'. Con un token de invitación válido para el
        mismo correo, el perfil recibe el rol de la invitación, que queda consumida.
        """
        with self.action("registrar usuario"):
            form = self.validate(SignUpForm.from_payload(payload))
            email = form.email.data.strip().lower()
            if self.profile_repository.find_by_email(email):
                raise ConflictError("Este correo electrónico ya está registrado.")

            role = UserRole.CUSTOMER
            token = form.invite_token.data
            if token:
                invite = self.invite_repository.verify(token)
                if not invite["is_valid"] or invite["email"] != email:
                    raise InviteError("La invitación no es válida o ha expirado.")
                if self.invite_repository.consume(token) is None:
                    raise InviteError("La invitación ya ha sido utilizada.")
                role = invite["role"]

            now = utcnow()
            user = Profile(email=email, full_name=form.full_name.data.strip(), role=role,
                           password=form.password.data, created_at=now, updated_at=now)
            doc = self.profile_repository.add(user.to_document())
            user.id = str(doc["_id"])

            login_user(user)
            self.user = user
            self.access_token = user.get_access_token()
            logger.info(f"Usuario {email} registrado con rol '{role}'")
            return user
        return None

    def logout(self):
        if self.user is not None:
            logger.info(f"Cierre de sesión de {self.user.email}")
        logout_user()
        self.user = None
        self.access_token = None

    def request_password_reset(self, payload):
        """Envía el enlace si la cuenta existe; la respuesta no revela si existe."""
        with self.action("solicitar el restablecimiento de contraseña"):
            form = self.validate(RequestResetPasswordForm.from_payload(payload))
            doc = self.profile_repository.find_by_email(form.email.data)
            if doc:
                send_password_reset_email(Profile(**doc))
            else:
                logger.warning(f"Restablecimiento solicitado para un correo inexistente: '{form.email.data}'")
            return True
        return False

    def reset_password(self, token, payload):
        with self.action("restablecer la contraseña"):
            form = self.validate(ResetPasswordForm.from_payload(payload))
            user = Profile.verify_reset_password_token(token)
            if user is None:
                raise InvalidTokenError()
            user.set_password(form.password.data)
            self.profile_repository.update(user.id, {"password_hash": user.password_hash})
            logger.info(f"Contraseña restablecida para {user.email}")
            return True
        return False

    def load_profile(self, profile_id):
        with self.action("cargar perfil"):
            doc = self.profile_repository.find_by_id(profile_id)
            if doc is None:
                raise NotFoundError("El perfil no existe.")
            self.user = Profile(**doc)
            return self.user
        return None
