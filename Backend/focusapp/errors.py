"""Domain errors raised by the session lifecycle, the stores and the aggregator."""


class FocusError(Exception):
    """Base class for all focus session errors."""


class AlreadyActiveError(FocusError):
    """A session is already running; only one may be active at a time."""


class NoActiveSessionError(FocusError):
    """The operation needs an active session and there is none."""


class InvalidStateError(FocusError):
    """The operation is not valid for the current session."""


class StorageError(FocusError):
    """The backing store could not complete the operation."""


class NotFoundError(FocusError):
    """No stored session has the requested id."""
