from wtforms import StringField, SelectField, BooleanField, TextAreaField
from wtforms.validators import DataRequired, Email, Length

from cozycabin.forms import JSONForm, optional_value
from cozycabin.models import UserRole

INVITE_ROLE_CHOICES = [(value, label) for value, label in UserRole.CHOICES if value in UserRole.INVITABLE]


class InviteForm(JSONForm):
    email = StringField('Correo Electrónico', validators=[DataRequired(message="Este campo es obligatorio"), Email(message="Correo electrónico inválido.")])
    role = SelectField("Rol", choices=INVITE_ROLE_CHOICES, validators=[DataRequired(message="Este campo es obligatorio")])


class UserEditForm(JSONForm):
    full_name = StringField('Nombre completo', validators=[optional_value, Length(min=2, max=100)])
    role = SelectField("Tipo de usuario", choices=UserRole.CHOICES, validators=[optional_value])
    is_active = BooleanField('Activo')


class ConsoleMessageForm(JSONForm):
    content = TextAreaField('Mensaje', validators=[
        DataRequired(message="El mensaje no puede estar vacío."),
        Length(max=1000, message="El mensaje debe tener como máximo 1000 caracteres."),
    ])
