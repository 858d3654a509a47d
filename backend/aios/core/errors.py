"""Domain errors raised by services and translated to HTTP responses by the routers."""


class NotFoundError(Exception):
    def __init__(self, what: str, ident: str):
        super().__init__(f"{what} '{ident}' not found")
        self.what = what
        self.ident = ident


class AuthError(Exception):
    """Authentication failed. ``code`` is ``no_token`` or ``invalid_token``."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class EmptyMessageError(Exception):
    pass


class QuotaExceededError(Exception):
    def __init__(self, limit: int, used: int):
        super().__init__(f"Daily quota reached ({used}/{limit})")
        self.limit = limit
        self.used = used


class ChatLimitReachedError(Exception):
    def __init__(self, message_count: int, limit: int):
        super().__init__(
            f"This chat has reached the limit of {limit} messages. Create a new chat to continue."
        )
        self.message_count = message_count
        self.limit = limit


class UnsupportedFileTypeError(Exception):
    pass


class FileParseError(Exception):
    pass


class PineconeError(Exception):
    pass
