import json
from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, Client
from django.urls import reverse
from django.utils import timezone

from accounts.models import User
from chat.exceptions import (ChatBadUsers, ChatExists, ChatHasNoMessages, ChatNotExist, InternalError,
                             UserHasNoChats, UserNotChatMember, UserNotExist)
from chat.models import Chat, ChatMember, Message
from chat.store import Store


def set_created_at(message_id, created_at):
    Message.objects.filter(pk=message_id).update(created_at=created_at)


class ChatStoreTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.alice = User.objects.create(username='alice')
        cls.bob = User.objects.create(username='bob')
        cls.carol = User.objects.create(username='carol')

    def setUp(self):
        self.store = Store()

    # create_chat

    def test_create_chat_success(self):
        chat_id = self.store.create_chat("general", [self.alice.pk, self.bob.pk])

        chat = Chat.objects.get(pk=chat_id)
        self.assertEqual(chat.name, "general")
        self.assertEqual(set(chat.members.values_list('pk', flat=True)), {self.alice.pk, self.bob.pk})

    def test_create_chat_duplicate_member_ids_give_one_membership(self):
        chat_id = self.store.create_chat("general", [self.alice.pk, self.alice.pk, self.bob.pk])
        self.assertEqual(ChatMember.objects.filter(chat_id=chat_id).count(), 2)

    def test_create_chat_same_members_different_name_allowed(self):
        self.store.create_chat("first", [self.alice.pk, self.bob.pk])
        self.store.create_chat("second", [self.alice.pk, self.bob.pk])
        self.assertEqual(Chat.objects.count(), 2)

    def test_create_chat_name_exists(self):
        self.store.create_chat("general", [self.alice.pk])

        with self.assertRaises(ChatExists):
            self.store.create_chat("general", [self.bob.pk, self.carol.pk])

        self.assertEqual(Chat.objects.filter(name="general").count(), 1)
        self.assertEqual(ChatMember.objects.count(), 1)

    def test_create_chat_bad_users_rolls_back(self):
        missing_id = User.objects.order_by('-pk').first().pk + 100

        with self.assertRaises(ChatBadUsers):
            self.store.create_chat("general", [self.alice.pk, missing_id])

        self.assertEqual(Chat.objects.count(), 0)
        self.assertEqual(ChatMember.objects.count(), 0)

    def test_create_chat_name_free_again_after_rollback(self):
        missing_id = User.objects.order_by('-pk').first().pk + 100

        with self.assertRaises(ChatBadUsers):
            self.store.create_chat("general", [missing_id])

        chat_id = self.store.create_chat("general", [self.alice.pk])
        self.assertEqual(Chat.objects.get(pk=chat_id).name, "general")

    def test_create_chat_preconditions(self):
        with self.assertRaises(ValueError):
            self.store.create_chat("", [self.alice.pk])
        with self.assertRaises(ValueError):
            self.store.create_chat("general", [])
        with self.assertRaises(ValueError):
            self.store.create_chat("general", [self.alice.pk, 0])
        self.assertEqual(Chat.objects.count(), 0)

    @patch("chat.store.ChatMember")
    def test_create_chat_database_error_is_internal_and_rolls_back(self, mock_chat_member):
        mock_chat_member.objects.using.return_value.bulk_create.side_effect = DatabaseError("disk full")

        with self.assertRaises(InternalError):
            self.store.create_chat("general", [self.alice.pk])

        self.assertEqual(Chat.objects.count(), 0)

    # create_message

    def test_create_message_success(self):
        chat_id = self.store.create_chat("general", [self.alice.pk, self.bob.pk])

        message_id = self.store.create_message(chat_id, self.bob.pk, "hi alice")

        message = Message.objects.get(pk=message_id)
        self.assertEqual(message.chat_id, chat_id)
        self.assertEqual(message.author_id, self.bob.pk)
        self.assertEqual(message.text, "hi alice")

    def test_create_message_chat_not_exist(self):
        with self.assertRaises(ChatNotExist):
            self.store.create_message(1000, self.alice.pk, "hello")
        self.assertEqual(Message.objects.count(), 0)

    def test_create_message_chat_checked_before_author(self):
        with self.assertRaises(ChatNotExist):
            self.store.create_message(1000, 1000, "hello")

    def test_create_message_author_not_exist(self):
        chat_id = self.store.create_chat("general", [self.alice.pk])

        with self.assertRaises(UserNotExist):
            self.store.create_message(chat_id, 1000, "hello")
        self.assertEqual(Message.objects.count(), 0)

    def test_create_message_author_not_chat_member(self):
        chat_id = self.store.create_chat("general", [self.alice.pk, self.bob.pk])

        with self.assertRaises(UserNotChatMember):
            self.store.create_message(chat_id, self.carol.pk, "let me in")
        self.assertEqual(Message.objects.count(), 0)

    def test_create_message_preconditions(self):
        with self.assertRaises(ValueError):
            self.store.create_message(1, self.alice.pk, "")
        with self.assertRaises(ValueError):
            self.store.create_message(0, self.alice.pk, "hello")
        with self.assertRaises(ValueError):
            self.store.create_message(1, -1, "hello")

    @patch("chat.store.Message")
    def test_create_message_database_error_is_internal(self, mock_message):
        chat_id = self.store.create_chat("general", [self.alice.pk])
        mock_message.objects.using.return_value.create.side_effect = DatabaseError("deadlock")

        with self.assertRaises(InternalError):
            self.store.create_message(chat_id, self.alice.pk, "hello")

    # chats_by_user_id

    def test_chats_by_user_id_ordered_by_last_message(self):
        others = [User.objects.create(username=f'user_{i}') for i in range(5)]
        chat_ids = [self.store.create_chat(f"chat_{i}", [self.alice.pk, other.pk]) for i, other in enumerate(others)]

        # each chat gets two messages; the order of activity differs from creation order
        activity_order = [3, 1, 4, 0, 2]
        base = timezone.now() - timedelta(hours=1)
        minute = 0
        for index in activity_order:
            for author in (self.alice, others[index]):
                message_id = self.store.create_message(chat_ids[index], author.pk, f"msg {minute}")
                set_created_at(message_id, base + timedelta(minutes=minute))
                minute += 1

        chats = self.store.chats_by_user_id(self.alice.pk)

        expected = [chat_ids[index] for index in reversed(activity_order)]
        self.assertEqual([chat.id for chat in chats], expected)

    def test_chats_by_user_id_embeds_all_members(self):
        chat_id = self.store.create_chat("general", [self.carol.pk, self.alice.pk, self.bob.pk])
        self.store.create_message(chat_id, self.carol.pk, "hello")

        chats = self.store.chats_by_user_id(self.alice.pk)

        self.assertEqual(len(chats), 1)
        chat = chats[0]
        self.assertEqual(chat.name, "general")
        self.assertEqual([user.id for user in chat.users], sorted([self.alice.pk, self.bob.pk, self.carol.pk]))
        self.assertEqual([user.username for user in chat.users], ["alice", "bob", "carol"])
        self.assertEqual(chat.users[0].created_at, self.alice.created_at)

    def test_chats_by_user_id_excludes_chats_without_messages(self):
        active_id = self.store.create_chat("active", [self.alice.pk, self.bob.pk])
        self.store.create_chat("silent", [self.alice.pk, self.carol.pk])
        self.store.create_message(active_id, self.bob.pk, "hello")

        chats = self.store.chats_by_user_id(self.alice.pk)

        self.assertEqual([chat.id for chat in chats], [active_id])

    def test_chats_by_user_id_only_chats_without_messages(self):
        self.store.create_chat("silent", [self.alice.pk])
        self.assertEqual(self.store.chats_by_user_id(self.alice.pk), [])

    def test_chats_by_user_id_excludes_chats_of_other_users(self):
        mine = self.store.create_chat("mine", [self.alice.pk])
        theirs = self.store.create_chat("theirs", [self.bob.pk])
        self.store.create_message(mine, self.alice.pk, "note to self")
        self.store.create_message(theirs, self.bob.pk, "note to self")

        chats = self.store.chats_by_user_id(self.alice.pk)

        self.assertEqual([chat.id for chat in chats], [mine])

    def test_chats_by_user_id_tie_broken_by_chat_id(self):
        first = self.store.create_chat("first", [self.alice.pk])
        second = self.store.create_chat("second", [self.alice.pk])
        moment = timezone.now()
        set_created_at(self.store.create_message(second, self.alice.pk, "a"), moment)
        set_created_at(self.store.create_message(first, self.alice.pk, "b"), moment)

        chats = self.store.chats_by_user_id(self.alice.pk)

        self.assertEqual([chat.id for chat in chats], [first, second])

    def test_chats_by_user_id_user_not_exist(self):
        with self.assertRaises(UserNotExist):
            self.store.chats_by_user_id(1000)

    def test_chats_by_user_id_user_has_no_chats(self):
        with self.assertRaises(UserHasNoChats):
            self.store.chats_by_user_id(self.carol.pk)

    @patch("chat.store.User")
    def test_chats_by_user_id_database_error_is_internal(self, mock_user):
        mock_user.objects.using.return_value.filter.side_effect = DatabaseError("timeout")

        with self.assertRaises(InternalError):
            self.store.chats_by_user_id(self.alice.pk)

    # messages_by_chat_id

    def test_messages_by_chat_id_oldest_first(self):
        chat_id = self.store.create_chat("general", [self.alice.pk, self.bob.pk])
        base = timezone.now() - timedelta(hours=1)
        authors = [self.alice, self.bob, self.bob, self.alice, self.bob]
        for i, author in enumerate(authors):
            message_id = self.store.create_message(chat_id, author.pk, f"message {i}")
            set_created_at(message_id, base + timedelta(seconds=i))

        messages = self.store.messages_by_chat_id(chat_id)

        self.assertEqual(len(messages), len(authors))
        self.assertEqual([m.text for m in messages], [f"message {i}" for i in range(len(authors))])
        self.assertEqual([m.author for m in messages], [author.pk for author in authors])
        self.assertTrue(all(m.chat == chat_id for m in messages))
        self.assertEqual(messages, sorted(messages, key=lambda m: m.created_at))

    def test_messages_by_chat_id_only_that_chat(self):
        chat_id = self.store.create_chat("general", [self.alice.pk])
        other_id = self.store.create_chat("other", [self.alice.pk])
        self.store.create_message(chat_id, self.alice.pk, "here")
        self.store.create_message(other_id, self.alice.pk, "elsewhere")

        messages = self.store.messages_by_chat_id(chat_id)

        self.assertEqual([m.text for m in messages], ["here"])

    def test_messages_by_chat_id_chat_not_exist(self):
        with self.assertRaises(ChatNotExist):
            self.store.messages_by_chat_id(1000)

    def test_messages_by_chat_id_chat_has_no_messages(self):
        chat_id = self.store.create_chat("general", [self.alice.pk])
        with self.assertRaises(ChatHasNoMessages):
            self.store.messages_by_chat_id(chat_id)

    # round trip

    def test_created_entities_read_back(self):
        dave_id = self.store.create_user("dave")
        chat_id = self.store.create_chat("round trip", [dave_id, self.alice.pk])
        message_id = self.store.create_message(chat_id, dave_id, "there and back")

        chats = self.store.chats_by_user_id(dave_id)
        self.assertEqual(chats[0].id, chat_id)
        self.assertEqual(chats[0].name, "round trip")
        self.assertIn("dave", [user.username for user in chats[0].users])
        self.assertIn(dave_id, [user.id for user in chats[0].users])

        messages = self.store.messages_by_chat_id(chat_id)
        self.assertEqual(messages[0].id, message_id)
        self.assertEqual(messages[0].text, "there and back")
        self.assertEqual(messages[0].author, dave_id)


class ChatViewTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.alice = User.objects.create(username='alice')
        cls.bob = User.objects.create(username='bob')
        cls.carol = User.objects.create(username='carol')

        cls.test_chat = Chat.objects.create(name='test chat')
        ChatMember.objects.create(chat=cls.test_chat, user=cls.alice)
        ChatMember.objects.create(chat=cls.test_chat, user=cls.bob)

        base = timezone.now() - timedelta(hours=1)
        for i in range(1, 5):
            author = cls.alice if i % 2 else cls.bob
            m = Message.objects.create(chat=cls.test_chat, author=author, text=f"Message_{i}")
            set_created_at(m.pk, base + timedelta(minutes=i))

        cls.empty_chat = Chat.objects.create(name='empty chat')
        ChatMember.objects.create(chat=cls.empty_chat, user=cls.alice)

    def post_json(self, name, data):
        response = self.client.post(reverse(name), data=data, content_type="application/json")
        return response, json.loads(str(response.content, 'utf-8'))

    # /chats/add

    def test_create_chat_success(self):
        response, body = self.post_json("create_chat", {"name": "new chat", "users": [self.alice.pk, self.carol.pk]})

        self.assertEqual(response.status_code, 201)
        new_chat = Chat.objects.get(pk=body["id"])
        self.assertEqual(new_chat.name, "new chat")
        self.assertEqual(set(new_chat.members.values_list('pk', flat=True)), {self.alice.pk, self.carol.pk})

    def test_create_chat_already_exists(self):
        response, body = self.post_json("create_chat", {"name": "test chat", "users": [self.carol.pk]})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Chat already exists")

    def test_create_chat_bad_user_list(self):
        response, body = self.post_json("create_chat", {"name": "new chat", "users": [self.alice.pk, 100000]})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Bad user list")
        self.assertFalse(Chat.objects.filter(name="new chat").exists())

    def test_create_chat_field_errors(self):
        cases = [
            ({"users": [1]}, 'Missing Field "name"'),
            ({"name": 1, "users": [1]}, 'Field "name" must be a string'),
            ({"name": "", "users": [1]}, 'Field "name" must have non-zero length'),
            ({"name": "new chat"}, 'Missing Field "users"'),
            ({"name": "new chat", "users": 1}, 'Field "users" must be an array'),
            ({"name": "new chat", "users": []}, 'Field "users" must contain at least one user id'),
            ({"name": "new chat", "users": [1, "2"]},
             'Each item in "users" array field must be a 64-bit integer value'),
            ({"name": "new chat", "users": [1, 2.5]},
             'Each item in "users" array field must be a 64-bit integer value'),
            ({"name": "new chat", "users": [1, 2 ** 63]},
             'Each item in "users" array field must be a 64-bit integer value'),
            ({"name": "new chat", "users": [1, 0]},
             'Each integer in "users" array must be a valid user id greater than zero'),
        ]
        for data, message in cases:
            with self.subTest(data=data):
                response, body = self.post_json("create_chat", data)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(body["error"], message)

        self.assertFalse(Chat.objects.filter(name="new chat").exists())

    # /messages/add

    def test_create_message_success(self):
        response, body = self.post_json(
            "create_message", {"chat": self.test_chat.pk, "author": self.bob.pk, "text": "new message"})

        self.assertEqual(response.status_code, 201)
        message = Message.objects.get(pk=body["id"])
        self.assertEqual(message.text, "new message")
        self.assertEqual(message.chat, self.test_chat)
        self.assertEqual(message.author, self.bob)

    def test_create_message_chat_not_exist(self):
        response, body = self.post_json("create_message", {"chat": 100000, "author": self.bob.pk, "text": "hi"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Chat with provided id does not exist")

    def test_create_message_author_not_exist(self):
        response, body = self.post_json("create_message", {"chat": self.test_chat.pk, "author": 100000, "text": "hi"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Author with provided id does not exist")

    def test_create_message_author_not_chat_member(self):
        count = Message.objects.count()

        response, body = self.post_json(
            "create_message", {"chat": self.test_chat.pk, "author": self.carol.pk, "text": "hi"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Author is not chat member")
        self.assertEqual(Message.objects.count(), count)

    def test_create_message_field_errors(self):
        cases = [
            ({"author": 1, "text": "hi"}, 'Missing Field "chat"'),
            ({"chat": "1", "author": 1, "text": "hi"}, 'Field "chat" must be a 64-bit integer value'),
            ({"chat": 1.0, "author": 1, "text": "hi"}, 'Field "chat" must be a 64-bit integer value'),
            ({"chat": True, "author": 1, "text": "hi"}, 'Field "chat" must be a 64-bit integer value'),
            ({"chat": 0, "author": 1, "text": "hi"}, 'Field "chat" must be a valid chat id greater than zero'),
            ({"chat": 1, "text": "hi"}, 'Missing Field "author"'),
            ({"chat": 1, "author": None, "text": "hi"}, 'Field "author" must be a 64-bit integer value'),
            ({"chat": 1, "author": -5, "text": "hi"}, 'Field "author" must be a valid user id greater than zero'),
            ({"chat": 1, "author": 1}, 'Missing Field "text"'),
            ({"chat": 1, "author": 1, "text": ["hi"]}, 'Field "text" must be a string'),
            ({"chat": 1, "author": 1, "text": ""}, 'Field "text" must have non-zero length'),
        ]
        for data, message in cases:
            with self.subTest(data=data):
                response, body = self.post_json("create_message", data)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(body["error"], message)

    # /chats/get

    def test_chats_by_user_success(self):
        other_chat = Chat.objects.create(name='other chat')
        ChatMember.objects.create(chat=other_chat, user=self.alice)
        ChatMember.objects.create(chat=other_chat, user=self.carol)
        Message.objects.create(chat=other_chat, author=self.carol, text="newest")

        response, body = self.post_json("chats_by_user", {"user": self.alice.pk})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([chat["id"] for chat in body], [other_chat.pk, self.test_chat.pk])

        chat = body[1]
        self.assertEqual(set(chat.keys()), {"id", "name", "users", "created_at"})
        self.assertEqual(chat["name"], "test chat")
        self.assertEqual([user["username"] for user in chat["users"]], ["alice", "bob"])
        self.assertEqual(set(chat["users"][0].keys()), {"id", "username", "created_at"})
        self.assertIsInstance(chat["created_at"], str)

    def test_chats_by_user_not_exist(self):
        response, body = self.post_json("chats_by_user", {"user": 100000})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "User does not exist")

    def test_chats_by_user_has_no_chats(self):
        response, body = self.post_json("chats_by_user", {"user": self.carol.pk})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "User does not have chats")

    def test_chats_by_user_field_errors(self):
        cases = [
            ({}, 'Missing Field "user"'),
            ({"user": "one"}, 'Field "user" must be a 64-bit integer value'),
            ({"user": 0}, 'Field "user" must be a valid user id greater than zero'),
        ]
        for data, message in cases:
            with self.subTest(data=data):
                response, body = self.post_json("chats_by_user", data)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(body["error"], message)

    @patch("chat.views.get_store")
    def test_chats_by_user_internal_error(self, mock_get_store):
        mock_get_store.return_value.chats_by_user_id.side_effect = InternalError("retrieving chats: timeout")

        with self.assertLogs("messenger", level="ERROR"):
            response, body = self.post_json("chats_by_user", {"user": self.alice.pk})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(body, {"error": "Internal Server Error"})

    # /messages/get

    def test_messages_by_chat_success(self):
        response, body = self.post_json("messages_by_chat", {"chat": self.test_chat.pk})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["text"] for m in body], ["Message_1", "Message_2", "Message_3", "Message_4"])
        self.assertEqual([m["author"] for m in body], [self.alice.pk, self.bob.pk, self.alice.pk, self.bob.pk])
        self.assertEqual(set(body[0].keys()), {"id", "chat", "author", "text", "created_at"})
        self.assertTrue(all(m["chat"] == self.test_chat.pk for m in body))

    def test_messages_by_chat_not_exist(self):
        response, body = self.post_json("messages_by_chat", {"chat": 100000})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Chat does not exist")

    def test_messages_by_chat_has_no_messages(self):
        response, body = self.post_json("messages_by_chat", {"chat": self.empty_chat.pk})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "Chat does not have messages")

    # identifiers are validated before the store is touched

    @patch("chat.views.get_store")
    def test_non_positive_ids_never_reach_store(self, mock_get_store):
        requests = [
            ("create_chat", {"name": "x", "users": [0]}),
            ("create_message", {"chat": 0, "author": 1, "text": "x"}),
            ("create_message", {"chat": 1, "author": -1, "text": "x"}),
            ("chats_by_user", {"user": -1}),
            ("messages_by_chat", {"chat": 0}),
        ]
        for name, data in requests:
            with self.subTest(name=name, data=data):
                response, body = self.post_json(name, data)
                self.assertEqual(response.status_code, 400)

        mock_get_store.assert_not_called()

    def test_round_trip_through_endpoints(self):
        _, user = self.post_json("create_user", {"username": "dave"})
        _, chat = self.post_json("create_chat", {"name": "dave's chat", "users": [user["id"], self.alice.pk]})
        _, message = self.post_json("create_message", {"chat": chat["id"], "author": user["id"], "text": "hello"})

        _, chats = self.post_json("chats_by_user", {"user": user["id"]})
        self.assertEqual(chats[0]["id"], chat["id"])
        self.assertEqual(chats[0]["name"], "dave's chat")
        self.assertIn({"id": user["id"], "username": "dave"},
                      [{"id": u["id"], "username": u["username"]} for u in chats[0]["users"]])

        _, messages = self.post_json("messages_by_chat", {"chat": chat["id"]})
        self.assertEqual(messages, [{**messages[0], "id": message["id"], "text": "hello", "author": user["id"]}])


class ChatAdminTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.admin_user = get_user_model().objects.create_superuser(username='admin', password='password')
        alice = User.objects.create(username='alice')
        chat = Chat.objects.create(name='test chat')
        ChatMember.objects.create(chat=chat, user=alice)
        Message.objects.create(chat=chat, author=alice, text="hello")

    def setUp(self):
        self.client.force_login(self.admin_user)

    def test_chat_changelist(self):
        response = self.client.get(reverse("admin:chat_chat_changelist"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "test chat")

    def test_message_changelist(self):
        response = self.client.get(reverse("admin:chat_message_changelist"))
        self.assertEqual(response.status_code, 200)

    def test_user_changelist(self):
        response = self.client.get(reverse("admin:accounts_user_changelist"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "alice")
