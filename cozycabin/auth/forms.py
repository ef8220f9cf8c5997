from wtforms import StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Email, EqualTo, ValidationError, Length
import re

from cozycabin.forms import JSONForm, optional_value


def password_complexity_validator(form, field):
    password = field.data or ""
    errors = []

    if len(password) < 8:
        errors.append("La contraseña debe tener al menos 8 caracteres.")
    if not re.search(r"\d", password):
        errors.append("La contraseña debe contener al menos un número.")
    if not re.search(r"[A-Z]", password):
        errors.append("La contraseña debe contener al menos una letra mayúscula.")
    if not re.search(r"[a-z]", password):
        errors.append("La contraseña debe contener al menos una letra minúscula.")

    if errors:
        raise ValidationError("La contraseña no cumple los siguientes requisitos: " + " ".join(errors))


class LoginForm(JSONForm):
    email = StringField('Correo Electrónico', validators=[DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])
    password = PasswordField('Contraseña', validators=[DataRequired(message="Este campo es obligatorio")])
    remember_me = BooleanField('Recordarme')


class SignUpForm(JSONForm):
    email = StringField('Correo Electrónico', validators=[DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])
    full_name = StringField('Nombre completo', validators=[DataRequired(message="Este campo es obligatorio"), Length(min=2, max=100)])
    password = PasswordField(
        "Contraseña",
        validators=[
            DataRequired(message="Este campo es obligatorio"),
            password_complexity_validator,
        ],
    )
    password2 = PasswordField('Repetir Contraseña', validators=[DataRequired(message="Este campo es obligatorio"), EqualTo('password', message='Las contraseñas no coinciden.')])
    invite_token = StringField('Invitación', validators=[optional_value, Length(max=128)])


class RequestResetPasswordForm(JSONForm):
    email = StringField('Correo Electrónico', validators=[DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])


class ResetPasswordForm(JSONForm):
    password = PasswordField(
        "Contraseña",
        validators=[
            DataRequired(message="Este campo es obligatorio"),
            password_complexity_validator,
        ],
    )
    password2 = PasswordField('Confirmar Nueva Contraseña', validators=[DataRequired(message="Este campo es obligatorio"), EqualTo('password', message='Las contraseñas no coinciden.')])
