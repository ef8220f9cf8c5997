from wtforms import StringField, SelectField, FieldList, FormField
from wtforms.validators import DataRequired, Length

from cozycabin.forms import JSONForm
from cozycabin.models import MessageRole


class ChatMessageForm(JSONForm):
    role = SelectField("Rol", choices=[(r, r) for r in MessageRole.ALL], validators=[DataRequired(message="Este campo es obligatorio")])
    content = StringField("Contenido", validators=[DataRequired(message="Message cannot be empty"), Length(max=10000, message="Message is too long")])


class AdminAgentRequestForm(JSONForm):
    messages = FieldList(FormField(ChatMessageForm))
    newUserMessage = StringField("Mensaje", validators=[DataRequired(message="newUserMessage is required"), Length(max=10000, message="Message is too long")])
