"""Exception types shared by the cache, sync and remote layers.

Validation problems are never raised; they are returned as data in
ValidationResult. These exceptions cover the remote store and cache lookups.
"""


class EventFormsError(Exception):
    """Base class for eventforms errors."""

    pass


class TransportError(EventFormsError):
    """A call against the remote document store failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteRejectedError(TransportError):
    """The remote store understood the request and refused it."""

    pass


class NotFoundError(EventFormsError):
    """Operation referenced an unknown document, entity or event type."""

    pass


class RuleSetShapeError(EventFormsError):
    """A fetched section rule table does not have the expected shape."""

    pass
