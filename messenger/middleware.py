import logging
import uuid

from messenger.log import request_id

logger = logging.getLogger("messenger")


class RequestLogMiddleware:
    """
    Give every request an id, log it on the way in and return the id in the
    X-Request-ID header so clients can quote it.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = uuid.uuid4().hex
        token = request_id.set(rid)
        request.request_id = rid

        try:
            logger.info(f"incoming http request method={request.method} uri={request.get_full_path()} "
                        f"ip={request.META.get('REMOTE_ADDR')}")
            response = self.get_response(request)
        finally:
            request_id.reset(token)

        response["X-Request-ID"] = rid
        return response
