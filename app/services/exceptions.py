import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConversationNotFoundError(ServiceError):
    def __init__(self, message="Conversation not found."):
        super().__init__(message, status_code=404)


class EmptyMessageError(ServiceError):
    """Blank message text; rejected before any write."""

    def __init__(self, message="Message text must not be empty."):
        super().__init__(message, status_code=422)


class ConversationClosedError(ServiceError):
    """The conversation's lifecycle flag is off; no further messages accepted."""

    def __init__(self, message="This conversation is closed."):
        super().__init__(message, status_code=409)


class StorageUnavailableError(ServiceError):
    """Transient backend failure on read, write or subscribe."""

    def __init__(self, message="Message storage is temporarily unavailable."):
        super().__init__(message, status_code=503)


class CollaboratorError(ServiceError):
    """An external read model (reservations, restaurants) could not be reached."""

    def __init__(self, message="An external collaborator request failed."):
        super().__init__(message, status_code=502)


class EnrichmentDegraded(ServiceError):
    """Raised and caught inside enrichment; the conversation falls back to no display fields."""

    def __init__(self, message="Conversation enrichment degraded."):
        super().__init__(message, status_code=200)


class InvalidTimezoneError(ServiceError):
    def __init__(self, message="Unknown time zone."):
        super().__init__(message, status_code=400)
