from cozycabin import mongo
from cozycabin.models import UserRole
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from itsdangerous import URLSafeTimedSerializer as TimedSerializer, BadSignature
from flask import current_app
from bson.objectid import ObjectId
from bson.errors import InvalidId


class Profile(UserMixin):
    """
    Perfil de un usuario autenticado (colección 'profiles').
    El rol es exclusivo: customer, agent o admin.
    """

    def __init__(self, email, full_name="", role=UserRole.CUSTOMER, password="", _id=None,
                 password_hash=None, avatar_url=None, is_active=True, created_at=None,
                 updated_at=None, **kwargs):
        self.email = email
        self.full_name = full_name
        self.role = role
        self.avatar_url = avatar_url
        self.active = is_active
        self.created_at = created_at
        self.updated_at = updated_at

        # Flask-Login requiere que el atributo 'id' sea un string.
        self.id = str(_id) if _id else None

        if password_hash:
            self.password_hash = password_hash
        elif password:
            self.set_password(password)
        else:
            self.password_hash = None

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if self.password_hash:
            return check_password_hash(self.password_hash, password)
        return False

    def to_document(self):
        """Documento para insertar en MongoDB (sin _id; Mongo lo genera)."""
        return {
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "is_active": self.active,
            "password_hash": self.password_hash,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "is_active": self.active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    # --- Tokens firmados ---

    def get_reset_password_token(self):
        s = TimedSerializer(current_app.config["SECRET_KEY"], salt="reset-password")
        return s.dumps({"user_id": self.id})

    @staticmethod
    def verify_reset_password_token(token, expires_in=600):
        return Profile._load_from_token(token, "reset-password", expires_in)

    def get_access_token(self):
        s = TimedSerializer(current_app.config["SECRET_KEY"], salt="access-token")
        return s.dumps({"user_id": self.id})

    @staticmethod
    def verify_access_token(token):
        return Profile._load_from_token(token, "access-token", current_app.config["ACCESS_TOKEN_EXPIRATION"])

    @staticmethod
    def _load_from_token(token, salt, max_age):
        s = TimedSerializer(current_app.config["SECRET_KEY"], salt=salt)
        try:
            data = s.loads(token, max_age=max_age)
            user_id = data.get("user_id")
            if user_id is None:
                return None
            profile_data = mongo.db.profiles.find_one({"_id": ObjectId(user_id)})
        except (BadSignature, InvalidId, TypeError):
            return None
        if not profile_data:
            return None
        profile = Profile(**profile_data)
        return profile if profile.is_active else None

    # get_id es requerido por Flask-Login
    def get_id(self):
        return self.id

    @property
    def is_active(self):
        return bool(self.active)

    # --- MÉTODOS DE PROPIEDAD PARA ROLES ---
    @property
    def is_customer(self):
        return self.role == UserRole.CUSTOMER

    @property
    def is_agent(self):
        return self.role == UserRole.AGENT

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self):
        return self.role in UserRole.STAFF

    def has_any_role(self, roles):
        return self.role in roles

    def __repr__(self):
        return f"<Profile {self.email} (Rol: {self.role})>"
