import logging
from contextvars import ContextVar

# Id of the request being served by the current thread or task.
request_id = ContextVar("request_id", default="-")


class RequestIDFilter(logging.Filter):
    """Stamp every record with the id of the request that produced it."""

    def filter(self, record):
        record.request_id = request_id.get()
        return True
