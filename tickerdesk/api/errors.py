"""Gateway error taxonomy and user-facing messages."""

from __future__ import annotations

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred."
AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in again."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
SERVER_UNREACHABLE_MESSAGE = "Network error. This could be due to CORS configuration or server unavailability."

STATUS_MESSAGES: dict[int, str] = {
    400: "Bad request. Please check your input and try again.",
    401: AUTH_REQUIRED_MESSAGE,
    403: "Access denied. You don't have permission to perform this action.",
    404: "The requested resource was not found.",
    422: "The request format is invalid. Please check your input.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "Server error. Please try again later.",
    503: "Service temporarily unavailable. Please try again later.",
}

# Substring heuristics for failures where no response was received.
_NETWORK_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("failed to fetch", "connection refused", "all connection attempts failed", "timed out"),
        NETWORK_ERROR_MESSAGE,
    ),
    (
        ("networkerror", "name or service not known", "nodename nor servname", "server disconnected"),
        SERVER_UNREACHABLE_MESSAGE,
    ),
)


def message_for_status(status_code: int | None, error_text: str | None = None) -> str:
    """Map an HTTP status (or a transport error text) to a stable message."""
    if status_code is not None and status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if error_text:
        lowered = error_text.lower()
        for hints, message in _NETWORK_HINTS:
            if any(hint in lowered for hint in hints):
                return message
    return DEFAULT_ERROR_MESSAGE


class APIError(Exception):
    """API request failed with structured error info."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail or message  # Fallback to full message if no detail

    @property
    def user_message(self) -> str:
        return message_for_status(self.status_code, self.detail)


class AuthExpiredError(APIError):
    """Authorization failed after the single refresh and retry; the user is signed out."""

    @property
    def user_message(self) -> str:
        return AUTH_REQUIRED_MESSAGE


class TransientHTTPError(APIError):
    """Non-auth 4xx/5xx response. Not retried."""


class NetworkUnreachableError(APIError):
    """No response received (connect error, timeout, dropped connection)."""

    @property
    def user_message(self) -> str:
        message = message_for_status(None, self.detail)
        return NETWORK_ERROR_MESSAGE if message == DEFAULT_ERROR_MESSAGE else message
