import json
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, Client
from django.urls import reverse

from accounts.models import User
from chat.exceptions import InternalError, UserExists
from chat.store import Store


class CreateUserStoreTestCase(TestCase):

    def setUp(self):
        self.store = Store()

    def test_create_user_success(self):
        user_id = self.store.create_user("alice")

        user = User.objects.get(pk=user_id)
        self.assertEqual(user.username, "alice")
        self.assertIsNotNone(user.created_at)

    def test_create_user_ids_increase(self):
        first_id = self.store.create_user("alice")
        second_id = self.store.create_user("bob")
        self.assertGreater(second_id, first_id)

    def test_create_user_twice_fails_with_user_exists(self):
        self.store.create_user("alice")

        with self.assertRaises(UserExists):
            self.store.create_user("alice")

        self.assertEqual(User.objects.filter(username="alice").count(), 1)

    def test_create_user_username_is_case_sensitive(self):
        self.store.create_user("alice")
        self.store.create_user("Alice")
        self.assertEqual(User.objects.count(), 2)

    def test_create_user_blank_username_rejected_before_storage(self):
        with self.assertRaises(ValueError):
            self.store.create_user("")
        self.assertEqual(User.objects.count(), 0)

    @patch("chat.store.User")
    def test_create_user_database_error_is_internal(self, mock_user):
        mock_user.objects.using.return_value.create.side_effect = DatabaseError("connection lost")

        with self.assertRaises(InternalError) as cm:
            self.store.create_user("alice")

        self.assertIsInstance(cm.exception.__cause__, DatabaseError)
        self.assertEqual(cm.exception.status_code, 500)


class CreateUserViewTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.existing_user = User.objects.create(username='existinguser')

    def setUp(self):
        self.client = Client()
        self.url = reverse("create_user")

    def post_json(self, data):
        response = self.client.post(self.url, data=data, content_type="application/json")
        return response, json.loads(str(response.content, 'utf-8'))

    def test_create_user_success(self):
        response, body = self.post_json({"username": "newuser"})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(list(body.keys()), ["id"])

        new_user = User.objects.get(pk=body["id"])
        self.assertEqual(new_user.username, "newuser")

    def test_create_user_already_exists(self):
        response, body = self.post_json({"username": "existinguser"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "User already exists")
        self.assertEqual(User.objects.filter(username="existinguser").count(), 1)

    def test_create_user_no_username_field(self):
        response, body = self.post_json({"name": "newuser"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], 'Missing Field "username"')
        self.assertEqual(body["form_errors"], {"username": ['Missing Field "username"']})

    def test_create_user_blank_username(self):
        response, body = self.post_json({"username": ""})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], 'Field "username" must have non-zero length')

    def test_create_user_null_username(self):
        response, body = self.post_json({"username": None})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], 'Field "username" must be a string')

    def test_create_user_username_not_string(self):
        response, body = self.post_json({"username": 42})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], 'Field "username" must be a string')

    def test_create_user_username_too_long(self):
        response, body = self.post_json({"username": "a" * 129})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], 'Field "username" must be at most 128 characters long')
        self.assertFalse(User.objects.filter(username="a" * 129).exists())

    @patch("accounts.views.get_store")
    def test_create_user_internal_error(self, mock_get_store):
        mock_get_store.return_value.create_user.side_effect = InternalError("creating user (newuser): boom")

        with self.assertLogs("messenger", level="ERROR") as logs:
            response, body = self.post_json({"username": "newuser"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(body, {"error": "Internal Server Error"})
        self.assertIn("boom", logs.output[0])

    @patch("accounts.views.get_store")
    def test_create_user_validation_error_does_not_reach_store(self, mock_get_store):
        response, body = self.post_json({"username": ""})
        self.assertEqual(response.status_code, 400)
        mock_get_store.assert_not_called()

    def test_create_user_get_request_not_allowed(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response["Allow"], "POST")
