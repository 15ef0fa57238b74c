"""
Errors raised by the chat store.

Every error carries the HTTP status and the message a view should answer
with. Conflict and not-found errors are the caller's fault and map to 400.
InternalError wraps any other database failure and maps to 500.
"""


class StoreError(Exception):
    status_code = 400
    message = "Bad Request"

    def __init__(self, detail=None):
        super().__init__(detail or self.message)


class ConflictError(StoreError):
    pass


class NotFoundError(StoreError):
    pass


class UserExists(ConflictError):
    message = "User already exists"


class ChatExists(ConflictError):
    message = "Chat already exists"


class ChatBadUsers(NotFoundError):
    message = "Bad user list"


class UserNotExist(NotFoundError):
    message = "User does not exist"


class ChatNotExist(NotFoundError):
    message = "Chat does not exist"


class UserNotChatMember(NotFoundError):
    message = "Author is not chat member"


class UserHasNoChats(NotFoundError):
    message = "User does not have chats"


class ChatHasNoMessages(NotFoundError):
    message = "Chat does not have messages"


class InternalError(StoreError):
    status_code = 500
    message = "Internal Server Error"
