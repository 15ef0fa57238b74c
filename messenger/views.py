import logging

from django.http import JsonResponse

from chat.exceptions import InternalError

logger = logging.getLogger("messenger")


def form_error_response(form):
    logger.debug(form.errors)
    return JsonResponse({"error": form.first_error(), "form_errors": form.error_dict()}, status=400)


def store_error_response(error, messages=None):
    """
    Render a StoreError. ``messages`` optionally maps error classes to
    endpoint-specific wording.
    """
    if isinstance(error, InternalError):
        logger.error(error)

    message = error.message
    for error_class, text in (messages or {}).items():
        if isinstance(error, error_class):
            message = text
            break

    return JsonResponse({"error": message}, status=error.status_code)


def page_not_found(request, exception):
    return JsonResponse({"error": "Not Found"}, status=404)


def server_error(request):
    return JsonResponse({"error": InternalError.message}, status=500)
