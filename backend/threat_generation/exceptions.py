from http import HTTPStatus
from typing import Dict, Optional


class ThreatGenerationError(Exception):
    """
    Base class for pipeline errors.
    Subclasses that reach the HTTP surface overwrite STATUS to specify the
    status code of the response.
    """

    STATUS = HTTPStatus.INTERNAL_SERVER_ERROR

    def to_dict(self, request_id: Optional[str] = None) -> Dict[str, str]:
        error_dict = {"code": type(self).__name__, "message": str(self)}
        if request_id:
            error_dict["requestId"] = request_id
        return error_dict


class ContextItemError(ThreatGenerationError):
    """A single file or ticket could not be turned into content."""

    def __init__(self, item_name: str, reason: str):
        self.item_name = item_name
        self.reason = reason
        super().__init__(f"{item_name}: {reason}")


class ProviderError(ThreatGenerationError):
    """The LLM backend call failed."""

    STATUS = HTTPStatus.BAD_GATEWAY

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.detail = message
        super().__init__(f"{provider} provider error: {message}")


class ProviderTimeoutError(ProviderError):
    STATUS = HTTPStatus.GATEWAY_TIMEOUT


class ModelProviderError(ThreatGenerationError):
    """The configured provider is unknown or not usable."""


class ParseError(ThreatGenerationError):
    """The model response was not valid or complete JSON."""

    STATUS = HTTPStatus.UNPROCESSABLE_ENTITY


class EmptyContextError(ParseError):
    pass


class NotFoundError(ThreatGenerationError):
    STATUS = HTTPStatus.NOT_FOUND


class ConflictError(ThreatGenerationError):
    STATUS = HTTPStatus.CONFLICT

    def __init__(self, message, details=None):
        if isinstance(message, dict):
            # If message is a dict, extract the message and store details
            self.details = message
            super().__init__(message.get("message", "Conflict detected"))
        else:
            super().__init__(message)
            self.details = details

    def to_dict(self, request_id: Optional[str] = None) -> Dict:
        error_dict = super().to_dict(request_id)
        if self.details:
            error_dict.update(self.details)
        return error_dict
