import json
import logging

from django.http import JsonResponse
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from messenger.decorators import json_post_required
from messenger.forms import IDField, IDListField, JSONForm, StrictCharField
from messenger.log import RequestIDFilter, request_id
from messenger.views import page_not_found, server_error


@json_post_required
def echo_view(request, payload):
    return JsonResponse(payload)


class JsonPostRequiredTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def test_valid_request_passes_payload(self):
        request = self.factory.post("/", data={"username": "alice"}, content_type="application/json")
        response = echo_view(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content), {"username": "alice"})

    def test_charset_parameter_allowed(self):
        request = self.factory.post("/", data=b'{"a": 1}', content_type="application/json; charset=utf-8")
        response = echo_view(request)
        self.assertEqual(response.status_code, 200)

    def test_missing_content_type_treated_as_json(self):
        request = self.factory.generic("POST", "/", data=b'{"a": 1}', content_type="")
        response = echo_view(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content), {"a": 1})

    def test_not_post(self):
        for method in ("get", "put", "delete"):
            with self.subTest(method=method):
                request = getattr(self.factory, method)("/")
                response = echo_view(request)
                self.assertEqual(response.status_code, 405)
                self.assertEqual(response["Allow"], "POST")
                self.assertEqual(response.content, b"Method Not Allowed")

    def test_unsupported_content_type(self):
        request = self.factory.post("/", data=b"username=alice", content_type="application/x-www-form-urlencoded")
        response = echo_view(request)
        self.assertEqual(response.status_code, 415)
        self.assertEqual(json.loads(response.content)["error"], "Content-Type header must be application/json")

    def test_no_body(self):
        request = self.factory.post("/", data=b"", content_type="application/json")
        response = echo_view(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)["error"], "No body provided")

    def test_malformed_json(self):
        request = self.factory.post("/", data=b'{"username": ', content_type="application/json")
        response = echo_view(request)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)["error"], "Malformed JSON")

    def test_body_not_object(self):
        for body in (b'[1, 2]', b'"alice"', b'null'):
            with self.subTest(body=body):
                request = self.factory.post("/", data=body, content_type="application/json")
                response = echo_view(request)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(json.loads(response.content)["error"], "Request body must be a JSON object")

    @override_settings(DATA_UPLOAD_MAX_MEMORY_SIZE=10)
    def test_body_too_large(self):
        request = self.factory.post("/", data=b'{"username": "alice"}', content_type="application/json")
        with self.assertLogs("messenger", level="ERROR"):
            response = echo_view(request)
        self.assertEqual(response.status_code, 413)


class SampleForm(JSONForm):
    name = StrictCharField(max_length=5)
    owner = IDField(entity="user")
    members = IDListField(entity="user")


class JSONFormTestCase(SimpleTestCase):

    def test_valid(self):
        form = SampleForm({"name": "abc", "owner": 7, "members": [1, 2]})
        self.assertTrue(form.is_valid())
        self.assertEqual(form.cleaned_data, {"name": "abc", "owner": 7, "members": [1, 2]})

    def test_missing_differs_from_null(self):
        missing = SampleForm({"owner": 7, "members": [1]})
        null = SampleForm({"name": None, "owner": 7, "members": [1]})

        self.assertFalse(missing.is_valid())
        self.assertFalse(null.is_valid())
        self.assertEqual(missing.first_error(), 'Missing Field "name"')
        self.assertEqual(null.first_error(), 'Field "name" must be a string')

    def test_first_error_follows_field_order(self):
        form = SampleForm({"name": "", "owner": 0})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.first_error(), 'Field "name" must have non-zero length')
        self.assertEqual(form.error_dict(), {
            "name": ['Field "name" must have non-zero length'],
            "owner": ['Field "owner" must be a valid user id greater than zero'],
            "members": ['Missing Field "members"'],
        })

    def test_no_coercion(self):
        form = SampleForm({"name": "abc", "owner": "7", "members": [1]})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.first_error(), 'Field "owner" must be a 64-bit integer value')

    def test_max_length(self):
        form = SampleForm({"name": "abcdef", "owner": 1, "members": [1]})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.first_error(), 'Field "name" must be at most 5 characters long')

    def test_int64_bounds(self):
        self.assertTrue(SampleForm({"name": "a", "owner": 2 ** 63 - 1, "members": [1]}).is_valid())
        self.assertFalse(SampleForm({"name": "a", "owner": 2 ** 63, "members": [1]}).is_valid())


class RequestLoggingTestCase(TestCase):

    def test_request_id_header_and_log(self):
        with self.assertLogs("messenger", level="INFO") as logs:
            response = self.client.post(reverse("chats_by_user"), data={"user": 1}, content_type="application/json")

        rid = response["X-Request-ID"]
        self.assertEqual(len(rid), 32)
        self.assertIn("incoming http request method=POST uri=/chats/get", logs.output[0])

    def test_request_ids_differ(self):
        first = self.client.post(reverse("chats_by_user"), data={"user": 1}, content_type="application/json")
        second = self.client.post(reverse("chats_by_user"), data={"user": 1}, content_type="application/json")
        self.assertNotEqual(first["X-Request-ID"], second["X-Request-ID"])

    def test_filter_stamps_current_request_id(self):
        record = logging.LogRecord("messenger", logging.INFO, __file__, 1, "msg", None, None)
        token = request_id.set("abc123")
        try:
            RequestIDFilter().filter(record)
        finally:
            request_id.reset(token)
        self.assertEqual(record.request_id, "abc123")

    def test_filter_outside_request(self):
        record = logging.LogRecord("messenger", logging.INFO, __file__, 1, "msg", None, None)
        RequestIDFilter().filter(record)
        self.assertEqual(record.request_id, "-")


class ErrorHandlerTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def test_page_not_found(self):
        response = page_not_found(self.factory.get("/nowhere"), Exception("nope"))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.content), {"error": "Not Found"})

    def test_server_error(self):
        response = server_error(self.factory.get("/"))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.content), {"error": "Internal Server Error"})
