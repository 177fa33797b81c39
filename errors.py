"""Error kinds raised by the stores and mapped to HTTP responses by ``main``.

Every error carries its own status code and knows how to render the JSON body
the client expects, so the exception handlers stay a one-liner.
"""
from __future__ import annotations

from typing import Any, Iterable, List


class ApiError(Exception):
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {"msg": self.message}


class ValidationError(ApiError):
    """One or more request fields are missing or malformed."""

    status_code = 400
    default_message = "Invalid request"

    def __init__(self, messages: Iterable[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))

    def to_body(self) -> dict[str, Any]:
        return {"errors": [{"msg": msg} for msg in self.messages]}


class InvalidCredentials(ValidationError):
    # Same message for unknown email and wrong password
    def __init__(self) -> None:
        super().__init__("Invalid Credentials")


class NoToken(ApiError):
    status_code = 401
    default_message = "No token, authorization denied"


class InvalidToken(ApiError):
    status_code = 401
    default_message = "Token is not valid"


class TokenExpired(InvalidToken):
    default_message = "Token has expired"


class Forbidden(ApiError):
    status_code = 403
    default_message = "User not authorized"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class UpstreamUnavailable(NotFound):
    default_message = "No Github profile found"


class AlreadyLiked(ApiError):
    status_code = 400
    default_message = "Post already liked"


class NotLiked(ApiError):
    status_code = 400
    default_message = "Post has not yet been liked"
