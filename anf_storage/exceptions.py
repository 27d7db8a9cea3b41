"""ANF Storage driver exceptions."""


class AnfStorageException(Exception):
    """Base exception for ANF storage driver errors."""

    message = "An unknown exception occurred."

    def __init__(self, message=None, **kwargs):
        """Initialize exception with optional custom message."""
        self.kwargs = kwargs
        if message:
            self.message = message
        super(AnfStorageException, self).__init__(self.message % kwargs)


class ConfigurationError(AnfStorageException):
    """Invalid driver configuration."""

    message = "Invalid configuration: %(details)s"


class ValidationError(AnfStorageException):
    """A request value failed syntactic or semantic validation.

    Always raised before any backend call is issued.
    """

    message = "Invalid value: %(details)s"


class UnsupportedCapacityRangeError(ValidationError):
    """Requested size is outside the supported range."""

    message = "Unsupported capacity range: %(details)s"


class AlreadyExistsError(AnfStorageException):
    """Generic resource already exists error."""

    message = "Resource %(name)s already exists"


class VolumeExistsError(AlreadyExistsError):
    """A stable volume with the same creation token already exists."""

    message = "Volume %(name)s already exists"


class TransientError(AnfStorageException):
    """The operation is still in progress and should be retried later."""

    message = "Operation in progress: %(details)s"


class VolumeCreatingError(AlreadyExistsError, TransientError):
    """The volume exists but is still being created.

    Callers must retry the whole operation instead of provisioning again.
    """

    message = "Volume %(name)s is still creating: %(details)s"


class NotFoundError(AnfStorageException):
    """Generic resource not found error."""

    message = "Resource %(name)s not found"


class VolumeNotFound(NotFoundError):
    """Volume not found in backend."""

    message = "Volume %(name)s not found"


class SnapshotNotFound(NotFoundError):
    """Snapshot not found in backend."""

    message = "Snapshot %(name)s not found"


class EntitlementError(AnfStorageException):
    """A gated feature is not available to this installation."""

    message = "Feature %(feature)s is not enabled: %(details)s"


class PlacementError(AnfStorageException):
    """No placement could be found for a volume."""

    message = "Could not place volume %(name)s: %(details)s"


class PlacementExhaustedError(PlacementError):
    """Every capacity pool candidate rejected the create request."""

    message = "Could not create volume %(name)s in any capacity pool; %(details)s"

    def __init__(self, name, failures):
        # failures is a list of (capacity pool full name, exception) tuples
        self.failures = list(failures)
        details = "; ".join(
            "capacity pool %s: %s" % (cpool, error) for cpool, error in self.failures
        )
        super(PlacementExhaustedError, self).__init__(name=name, details=details)


class StateError(AnfStorageException):
    """An object is not in the state an operation requires."""

    message = "%(resource)s %(name)s state is %(state)s, not %(expected)s"


class StateWaitError(AnfStorageException):
    """Waiting for a provisioning state did not succeed.

    The last observed state is kept in ``state`` (blank if never observed).
    """

    message = "%(details)s"

    def __init__(self, message=None, state="", **kwargs):
        self.state = state
        super(StateWaitError, self).__init__(message, **kwargs)


class StateWaitTimeout(StateWaitError, TransientError):
    """The desired state was not reached before the deadline.

    The object is still in a transient state, so the caller may retry.
    """

    message = "Timed out after %(timeout)s seconds; %(details)s"


class TerminalStateError(StateWaitError):
    """An abort state was reached while waiting."""

    message = "Terminal state reached; %(details)s"


class VolumeImportError(AnfStorageException):
    """A volume could not be imported."""

    message = "Could not import volume %(name)s; %(details)s"


class BackendError(AnfStorageException):
    """The backend client reported a failure."""

    message = "Backend error: %(details)s"
