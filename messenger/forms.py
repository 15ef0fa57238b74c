"""
Form plumbing for decoding JSON request bodies.

Django form fields coerce whatever they are given ("5" becomes 5). The fields
here take already-decoded JSON values and accept only the exact JSON type
they declare. Error messages name the field through the ``name`` parameter,
which ``JSONForm`` fills in from the field's label.
"""
from django import forms
from django.core.exceptions import ValidationError

# Marks a key absent from the payload, as opposed to an explicit null.
MISSING = object()

INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1


def is_int64(value):
    # bool is a subclass of int but true/false are not identifiers
    return isinstance(value, int) and not isinstance(value, bool) and INT64_MIN <= value <= INT64_MAX


class JSONValueWidget(forms.Widget):
    """Hands the raw decoded JSON value to the field."""

    def value_from_datadict(self, data, files, name):
        return data.get(name, MISSING)


class JSONField(forms.Field):
    widget = JSONValueWidget
    default_error_messages = {
        "required": 'Missing Field "%(name)s"',
    }

    def clean(self, value):
        if value is MISSING:
            raise ValidationError(self.error_messages["required"], code="required", params={"name": self.label})
        value = self.to_python(value)
        self.run_validators(value)
        return value


class StrictCharField(JSONField):
    default_error_messages = {
        "invalid": 'Field "%(name)s" must be a string',
        "blank": 'Field "%(name)s" must have non-zero length',
        "max_length": 'Field "%(name)s" must be at most %(max)d characters long',
    }

    def __init__(self, *, max_length=None, **kwargs):
        self.max_length = max_length
        super().__init__(**kwargs)

    def to_python(self, value):
        params = {"name": self.label, "max": self.max_length}
        if not isinstance(value, str):
            raise ValidationError(self.error_messages["invalid"], code="invalid", params=params)
        if not value:
            raise ValidationError(self.error_messages["blank"], code="blank", params=params)
        if self.max_length is not None and len(value) > self.max_length:
            raise ValidationError(self.error_messages["max_length"], code="max_length", params=params)
        return value


class IDField(JSONField):
    """A positive 64-bit integer identifier of ``entity``."""

    default_error_messages = {
        "invalid": 'Field "%(name)s" must be a 64-bit integer value',
        "min_value": 'Field "%(name)s" must be a valid %(entity)s id greater than zero',
    }

    def __init__(self, *, entity, **kwargs):
        self.entity = entity
        super().__init__(**kwargs)

    def to_python(self, value):
        params = {"name": self.label, "entity": self.entity}
        if not is_int64(value):
            raise ValidationError(self.error_messages["invalid"], code="invalid", params=params)
        if value < 1:
            raise ValidationError(self.error_messages["min_value"], code="min_value", params=params)
        return value


class IDListField(JSONField):
    """A non-empty array of positive 64-bit integer identifiers of ``entity``."""

    default_error_messages = {
        "invalid": 'Field "%(name)s" must be an array',
        "empty": 'Field "%(name)s" must contain at least one %(entity)s id',
        "invalid_item": 'Each item in "%(name)s" array field must be a 64-bit integer value',
        "item_min_value": 'Each integer in "%(name)s" array must be a valid %(entity)s id greater than zero',
    }

    def __init__(self, *, entity, **kwargs):
        self.entity = entity
        super().__init__(**kwargs)

    def to_python(self, value):
        params = {"name": self.label, "entity": self.entity}
        if not isinstance(value, list):
            raise ValidationError(self.error_messages["invalid"], code="invalid", params=params)
        if not value:
            raise ValidationError(self.error_messages["empty"], code="empty", params=params)
        for item in value:
            if not is_int64(item):
                raise ValidationError(self.error_messages["invalid_item"], code="invalid_item", params=params)
            if item < 1:
                raise ValidationError(self.error_messages["item_min_value"], code="item_min_value", params=params)
        return value


class JSONForm(forms.Form):
    """Base form bound to a decoded JSON object rather than POST data."""

    def __init__(self, payload, *args, **kwargs):
        super().__init__(payload, *args, **kwargs)
        for name, field in self.fields.items():
            if field.label is None:
                field.label = name

    def first_error(self):
        """The first error message, in field declaration order."""
        for name in self.fields:
            if name in self.errors:
                return self.errors[name][0]
        return next(iter(self.errors.values()))[0]

    def error_dict(self):
        return {name: list(errors) for name, errors in self.errors.items()}
