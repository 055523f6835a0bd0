from enum import Enum
from typing import Optional


class AdapterError(Exception):
    """
    Raised by a source adapter when a fetch cannot produce items.
    The aggregator catches these per source; they never reach the API caller.
    """
    user_message = "Something went wrong. Please try again."
    is_retryable = True

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source_name = source_name

    def __str__(self) -> str:
        if self.source_name:
            return f"[{self.source_name}] {self.message}"
        return self.message


# ---------------------------------------------------------------------------
# Network errors: transport failures and non-2xx responses
# ---------------------------------------------------------------------------

class NetworkErrorKind(str, Enum):
    NO_CONNECTION = "no_connection"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"


NETWORK_MESSAGES: dict[NetworkErrorKind, str] = {
    NetworkErrorKind.NO_CONNECTION: "No internet connection",
    NetworkErrorKind.TIMEOUT:       "The request took too long",
    NetworkErrorKind.SERVER_ERROR:  "The service is temporarily unavailable",
    NetworkErrorKind.RATE_LIMITED:  "Too many requests. Please wait a moment.",
    NetworkErrorKind.UNAUTHORIZED:  "Authentication required",
    NetworkErrorKind.NOT_FOUND:     "Content not found",
}

RETRYABLE_NETWORK_KINDS = {
    NetworkErrorKind.NO_CONNECTION,
    NetworkErrorKind.TIMEOUT,
    NetworkErrorKind.SERVER_ERROR,
    NetworkErrorKind.RATE_LIMITED,
}


class NetworkError(AdapterError):
    def __init__(
        self,
        kind: NetworkErrorKind,
        status_code: Optional[int] = None,
        source_name: Optional[str] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        message = NETWORK_MESSAGES[kind]
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message, source_name)

    @property
    def user_message(self) -> str:
        if self.kind == NetworkErrorKind.SERVER_ERROR and self.status_code and self.status_code < 500:
            return "There was a problem with the request"
        return NETWORK_MESSAGES[self.kind]

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_NETWORK_KINDS

    @classmethod
    def from_status(cls, status_code: int) -> Optional["NetworkError"]:
        """Map an HTTP status code to a NetworkError, or None for 2xx."""
        if 200 <= status_code < 300:
            return None
        if status_code == 401:
            return cls(NetworkErrorKind.UNAUTHORIZED, status_code)
        if status_code == 404:
            return cls(NetworkErrorKind.NOT_FOUND, status_code)
        if status_code == 429:
            return cls(NetworkErrorKind.RATE_LIMITED, status_code)
        return cls(NetworkErrorKind.SERVER_ERROR, status_code)


# ---------------------------------------------------------------------------
# Parsing errors: the provider answered but the payload is unusable
# ---------------------------------------------------------------------------

class ParsingErrorKind(str, Enum):
    INVALID_JSON = "invalid_json"
    MISSING_FIELD = "missing_field"
    INVALID_FORMAT = "invalid_format"
    EMPTY_RESPONSE = "empty_response"


PARSING_MESSAGES: dict[ParsingErrorKind, str] = {
    ParsingErrorKind.INVALID_JSON:   "Unable to read the content",
    ParsingErrorKind.MISSING_FIELD:  "Some information is missing",
    ParsingErrorKind.INVALID_FORMAT: "The content format is unexpected",
    ParsingErrorKind.EMPTY_RESPONSE: "No content available",
}


class ParsingError(AdapterError):
    is_retryable = False

    def __init__(self, kind: ParsingErrorKind, detail: str = "", source_name: Optional[str] = None):
        self.kind = kind
        message = PARSING_MESSAGES[kind]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, source_name)

    @property
    def user_message(self) -> str:
        return PARSING_MESSAGES[self.kind]


class InvalidSourceError(AdapterError):
    """The source is missing something its adapter needs (e.g. a feed URL)."""
    user_message = "This source can't be loaded"
    is_retryable = False
