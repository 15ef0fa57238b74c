from messenger.forms import IDField, IDListField, JSONForm, StrictCharField

from chat.models import Chat


class CreateChatForm(JSONForm):
    name = StrictCharField(max_length=Chat._meta.get_field('name').max_length)
    users = IDListField(entity="user")


class CreateMessageForm(JSONForm):
    chat = IDField(entity="chat")
    author = IDField(entity="user")
    text = StrictCharField()


class ChatsByUserForm(JSONForm):
    user = IDField(entity="user")


class MessagesByChatForm(JSONForm):
    chat = IDField(entity="chat")
