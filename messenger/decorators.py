import json
import logging
from functools import wraps

from django.core.exceptions import RequestDataTooBig
from django.http import HttpResponseNotAllowed, JsonResponse

logger = logging.getLogger("messenger")


def json_post_required(view_func):
    """
    Only let POST requests with a JSON object body through to the view.

    The decoded object is passed to the view as its second positional
    argument. A missing Content-Type header is treated as application/json.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if request.method != "POST":
            return HttpResponseNotAllowed(["POST"], content="Method Not Allowed")

        content_type = request.META.get("CONTENT_TYPE", "")
        if content_type and request.content_type != "application/json":
            return JsonResponse({"error": "Content-Type header must be application/json"}, status=415)

        try:
            body = request.body
        except RequestDataTooBig as e:
            logger.error(e)
            return JsonResponse({"error": "Request body too large"}, status=413)

        if not body:
            return JsonResponse({"error": "No body provided"}, status=400)

        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.debug(f"Malformed JSON body: {e}")
            return JsonResponse({"error": "Malformed JSON"}, status=400)

        if not isinstance(payload, dict):
            return JsonResponse({"error": "Request body must be a JSON object"}, status=400)

        return view_func(request, payload, *args, **kwargs)
    return wrapper
