from wtforms import StringField, TextAreaField, SelectField, BooleanField, FieldList
from wtforms.validators import DataRequired, Length, ValidationError

from cozycabin.forms import JSONForm, JSONObjectField, optional_value, skip_if_missing, strip_value
from cozycabin.models import TicketPriority, TicketStatus

SUBJECT_MIN, SUBJECT_MAX = 5, 100
DESCRIPTION_MIN, DESCRIPTION_MAX = 20, 2000
MAX_TAGS = 5


def validate_tag_list(form, field):
    tags = field.data or []
    if len(tags) > MAX_TAGS:
        raise ValidationError(f"Se permiten como máximo {MAX_TAGS} etiquetas.")
    for tag in tags:
        if not isinstance(tag, str) or not tag:
            raise ValidationError("Las etiquetas no pueden estar vacías.")
        if len(tag) > 50:
            raise ValidationError("Cada etiqueta debe tener como máximo 50 caracteres.")


class CreateTicketForm(JSONForm):
    subject = StringField('Asunto', filters=[strip_value], validators=[
        DataRequired(message="Este campo es obligatorio"),
        Length(min=SUBJECT_MIN, max=SUBJECT_MAX, message=f"El asunto debe tener entre {SUBJECT_MIN} y {SUBJECT_MAX} caracteres."),
    ])
    description = TextAreaField('Descripción', filters=[strip_value], validators=[
        DataRequired(message="Este campo es obligatorio"),
        Length(min=DESCRIPTION_MIN, max=DESCRIPTION_MAX, message=f"La descripción debe tener entre {DESCRIPTION_MIN} y {DESCRIPTION_MAX} caracteres."),
    ])
    priority = SelectField('Prioridad', choices=TicketPriority.CHOICES, validators=[optional_value])
    customer_id = StringField('Cliente', validators=[optional_value, Length(max=24)])
    tags = FieldList(StringField('Etiqueta', filters=[strip_value]), validators=[validate_tag_list])
    metadata = JSONObjectField('Metadatos')


class UpdateTicketForm(JSONForm):
    """Actualización parcial: todos los campos son opcionales."""
    subject = StringField('Asunto', filters=[strip_value], validators=[
        skip_if_missing,
        Length(min=SUBJECT_MIN, max=SUBJECT_MAX, message=f"El asunto debe tener entre {SUBJECT_MIN} y {SUBJECT_MAX} caracteres."),
    ])
    description = TextAreaField('Descripción', filters=[strip_value], validators=[
        skip_if_missing,
        Length(min=DESCRIPTION_MIN, max=DESCRIPTION_MAX, message=f"La descripción debe tener entre {DESCRIPTION_MIN} y {DESCRIPTION_MAX} caracteres."),
    ])
    status = SelectField('Estado', choices=TicketStatus.CHOICES, validators=[optional_value])
    priority = SelectField('Prioridad', choices=TicketPriority.CHOICES, validators=[optional_value])
    assigned_to = StringField('Asignado a', validators=[optional_value, Length(min=24, max=24, message="Identificador de agente inválido.")])
    tags = FieldList(StringField('Etiqueta', filters=[strip_value]), validators=[validate_tag_list])
    metadata = JSONObjectField('Metadatos')


class StatusForm(JSONForm):
    status = SelectField('Estado', choices=TicketStatus.CHOICES, validators=[DataRequired(message="Este campo es obligatorio")])


class CommentForm(JSONForm):
    content = TextAreaField('Comentario', filters=[strip_value], validators=[
        DataRequired(message="El comentario no puede estar vacío."),
        Length(max=1000, message="El comentario debe tener como máximo 1000 caracteres."),
    ])
    is_internal = BooleanField('Nota interna')


class EditCommentForm(JSONForm):
    content = TextAreaField('Comentario', filters=[strip_value], validators=[
        DataRequired(message="El comentario no puede estar vacío."),
        Length(max=1000, message="El comentario debe tener como máximo 1000 caracteres."),
    ])
