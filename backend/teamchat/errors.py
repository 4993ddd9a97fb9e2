"""Error taxonomy shared by the HTTP routes and the realtime gateway.

Services raise these; ``teamchat.main`` maps them to ``{error, details?}``
responses and the gateway maps them to ``error`` frames.
"""


class ChatError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details: str | None = None, *, error: str | None = None) -> None:
        super().__init__(details or error or self.error)
        self.details = details
        if error is not None:
            self.error = error

    def to_body(self) -> dict:
        body = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


class Unauthorized(ChatError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(ChatError):
    status_code = 403
    error = "Forbidden"


class ValidationError(ChatError):
    status_code = 400
    error = "Invalid request"


class NotFound(ChatError):
    status_code = 404
    error = "Not found"
