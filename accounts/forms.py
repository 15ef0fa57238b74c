from messenger.forms import JSONForm, StrictCharField

from accounts.models import User


class CreateUserForm(JSONForm):
    username = StrictCharField(max_length=User._meta.get_field('username').max_length)
