# cozycabin/forms.py

from flask_wtf import FlaskForm
from wtforms import Field
from wtforms.validators import StopValidation, ValidationError


def optional_value(form, field):
    """
    Equivalente a Optional() para formularios construidos desde JSON:
    Optional() mira raw_data, que siempre está vacío sin formdata.
    """
    if field.data is None or field.data == "" or field.data == []:
        field.errors[:] = []
        raise StopValidation()


def skip_if_missing(form, field):
    """Para actualizaciones parciales: solo se omite si el campo no venía en el JSON."""
    if field.data is None:
        field.errors[:] = []
        raise StopValidation()


def strip_value(value):
    """Filtro: los límites de longitud se comprueban sobre el texto ya recortado."""
    return value.strip() if isinstance(value, str) else value


class JSONObjectField(Field):
    """Campo que acepta un objeto JSON (dict) tal cual."""

    def process_data(self, value):
        self.data = value

    def pre_validate(self, form):
        if self.data is not None and not isinstance(self.data, dict):
            raise ValidationError("Debe ser un objeto JSON.")


class JSONForm(FlaskForm):
    """
    Formulario validado a partir del cuerpo JSON de una petición.
    La API usa sesión o token Bearer, por eso no se exige el token CSRF del formulario.
    """

    class Meta:
        csrf = False

    @classmethod
    def from_payload(cls, payload, **kwargs):
        # Los None se descartan: SelectField los convertiría en 'None'
        data = {key: value for key, value in (payload or {}).items() if value is not None}
        return cls(formdata=None, data=data, **kwargs)

    def cleaned_data(self, payload):
        """Solo los campos que venían en el payload, con los valores ya procesados."""
        return {name: self.data.get(name) for name in (payload or {}) if name in self._fields}
