"""
Chat store.

'Store' is the only code that reads or writes users, chats, memberships and
messages. Every operation either returns its result or raises a
'StoreError' subclass from 'chat.exceptions'; raw database errors never
leave this module.

Uniqueness of usernames and chat names is left to the database's unique
constraints. The store never checks for an existing row before inserting.
Multi-statement writes run inside 'transaction.atomic', so a failure at any
step leaves nothing behind. Reads are independent statements with no
surrounding transaction.
"""
import logging

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, transaction
from django.db.models import Max, Prefetch

from accounts.models import User
from chat.exceptions import (ChatBadUsers, ChatExists, ChatHasNoMessages, ChatNotExist, InternalError,
                             UserExists, UserHasNoChats, UserNotChatMember, UserNotExist)
from chat.models import Chat, ChatMember, Message
from chat.schemas import ChatOut, MessageOut, UserOut

logger = logging.getLogger("messenger")


def get_store():
    return Store(using=settings.MESSENGER_DATABASE)


def _require_positive(**ids):
    for name, value in ids.items():
        if value < 1:
            raise ValueError(f"{name} must be greater than zero, got {value}")


class Store:
    """
    Storage operations bound to one database alias.
    """

    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    def create_user(self, username: str) -> int:
        if not username:
            raise ValueError("username must not be empty")

        logger.debug(f"Creating user ({username})")

        try:
            # savepoint so a unique violation does not break an outer transaction
            with transaction.atomic(using=self.using):
                user = User.objects.using(self.using).create(username=username)
        except IntegrityError as e:
            logger.debug(f"User ({username}) already exists: {e}")
            raise UserExists() from e
        except DatabaseError as e:
            raise InternalError(f"creating user ({username}): {e}") from e

        logger.debug(f"Created user ({username}) with id {user.pk}")

        return user.pk

    def create_chat(self, name: str, user_ids: list[int]) -> int:
        """
        Create a chat and its memberships in one transaction.

        Repeated ids in 'user_ids' produce a single membership. Raises
        'ChatExists' when the name is taken and 'ChatBadUsers' when any id is
        not an existing user; in both cases nothing is written.
        """
        if not name:
            raise ValueError("chat name must not be empty")
        if not user_ids:
            raise ValueError("chat must have at least one member")
        _require_positive(**{f"user_ids[{i}]": user_id for i, user_id in enumerate(user_ids)})

        member_ids = list(dict.fromkeys(user_ids))

        logger.debug(f"Creating chat ({name}) with users ({member_ids})")

        try:
            with transaction.atomic(using=self.using):
                try:
                    chat = Chat.objects.using(self.using).create(name=name)
                except IntegrityError as e:
                    raise ChatExists() from e

                # foreign keys may be checked only at commit, so look the users up explicitly
                found = User.objects.using(self.using).filter(pk__in=member_ids).count()
                if found != len(member_ids):
                    raise ChatBadUsers(f"{len(member_ids) - found} of {len(member_ids)} users do not exist")

                try:
                    ChatMember.objects.using(self.using).bulk_create(
                        [ChatMember(chat=chat, user_id=user_id) for user_id in member_ids]
                    )
                except IntegrityError as e:
                    raise ChatBadUsers() from e
        except DatabaseError as e:
            raise InternalError(f"creating chat ({name}): {e}") from e

        logger.debug(f"Created chat ({name}) with id {chat.pk}")

        return chat.pk

    def create_message(self, chat_id: int, author_id: int, text: str) -> int:
        """
        Add a message to a chat.

        The chat must exist, the author must exist and the author must be a
        member of the chat, checked in that order.
        """
        if not text:
            raise ValueError("message text must not be empty")
        _require_positive(chat_id=chat_id, author_id=author_id)

        logger.debug(f"Creating message from user (id: {author_id}) in chat (id: {chat_id})")

        try:
            with transaction.atomic(using=self.using):
                if not Chat.objects.using(self.using).filter(pk=chat_id).exists():
                    raise ChatNotExist()
                if not User.objects.using(self.using).filter(pk=author_id).exists():
                    raise UserNotExist()
                if not ChatMember.objects.using(self.using).filter(chat_id=chat_id, user_id=author_id).exists():
                    raise UserNotChatMember()

                message = Message.objects.using(self.using).create(chat_id=chat_id, author_id=author_id, text=text)
        except DatabaseError as e:
            raise InternalError(f"creating message in chat (id: {chat_id}): {e}") from e

        logger.debug(f"Created message with id {message.pk}")

        return message.pk

    def chats_by_user_id(self, user_id: int) -> list[ChatOut]:
        """
        Chats of a user, most recently active first.

        A chat's activity is the time of its newest message, so chats without
        messages are left out. Ties are broken by chat id. Each chat carries
        all of its members, not only the requesting user.
        """
        _require_positive(user_id=user_id)

        logger.debug(f"Retrieving chats for user (id: {user_id})")

        try:
            if not User.objects.using(self.using).filter(pk=user_id).exists():
                raise UserNotExist()
            if not ChatMember.objects.using(self.using).filter(user_id=user_id).exists():
                raise UserHasNoChats()

            members = Prefetch('members', queryset=User.objects.using(self.using).order_by('id'))
            chats = (
                Chat.objects.using(self.using)
                .filter(memberships__user_id=user_id)
                .annotate(last_message_at=Max('messages__created_at'))
                .filter(last_message_at__isnull=False)
                .order_by('-last_message_at', 'id')
                .prefetch_related(members)
            )

            result = [
                ChatOut(
                    id=chat.pk,
                    name=chat.name,
                    users=[
                        UserOut(id=user.pk, username=user.username, created_at=user.created_at)
                        for user in chat.members.all()
                    ],
                    created_at=chat.created_at,
                )
                for chat in chats
            ]
        except DatabaseError as e:
            raise InternalError(f"retrieving chats for user (id: {user_id}): {e}") from e

        logger.debug(f"Retrieved {len(result)} chats")

        return result

    def messages_by_chat_id(self, chat_id: int) -> list[MessageOut]:
        """All messages of a chat, oldest first."""
        _require_positive(chat_id=chat_id)

        logger.debug(f"Retrieving messages for chat (id: {chat_id})")

        try:
            if not Chat.objects.using(self.using).filter(pk=chat_id).exists():
                raise ChatNotExist()

            messages = Message.objects.using(self.using).filter(chat_id=chat_id).order_by('created_at', 'id')

            result = [
                MessageOut(
                    id=message.pk,
                    chat=message.chat_id,
                    author=message.author_id,
                    text=message.text,
                    created_at=message.created_at,
                )
                for message in messages
            ]
        except DatabaseError as e:
            raise InternalError(f"retrieving messages for chat (id: {chat_id}): {e}") from e

        if not result:
            raise ChatHasNoMessages()

        logger.debug(f"Retrieved {len(result)} messages")

        return result
