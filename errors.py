class HealthDiaryError(Exception):
    """Base class for errors raised by the diary core."""


class ValidationError(HealthDiaryError, ValueError):
    """User supplied data violates a domain constraint. State is unchanged."""


class NotFoundError(HealthDiaryError, LookupError):
    """A lookup targeted an id that does not exist."""


class RefusedOperation(HealthDiaryError):
    """The operation is understood but not allowed for the target."""


class FormatError(HealthDiaryError, ValueError):
    """An imported or stored document has an unusable shape."""


class ParseError(FormatError):
    """An imported or stored document is not well-formed JSON."""


class PersistenceError(HealthDiaryError):
    """Writing to or reading from the storage collaborator failed.

    ``entity`` holds what a create operation added to the in-memory state
    before the write failed, when there is one.
    """

    def __init__(self, message: str, entity=None) -> None:
        super().__init__(message)
        self.entity = entity


class SyncError(HealthDiaryError):
    """Pushing to or pulling from the cloud mirror failed."""
