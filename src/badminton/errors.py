class SchedulerError(Exception):
    """Base class for every rejected scheduler operation.

    Raised before any mutation, so the session is left as it was.
    """
    level = "error"
    status_code = 400


class ValidationError(SchedulerError):
    pass


class CapacityError(SchedulerError):
    status_code = 409


class CourtsFullError(CapacityError):
    pass


class NoEligibleMatchError(CapacityError):
    pass


class QueueEmptyError(CapacityError):
    level = "info"


class ImportFormatError(SchedulerError):
    pass
