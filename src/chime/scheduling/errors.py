"""Scheduling error taxonomy."""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class ValidationError(SchedulingError, ValueError):
    """A schedule entry was rejected before any store mutation."""


class StoreError(SchedulingError):
    """Persistence failed; the operation is not complete."""


class DeliveryError(SchedulingError):
    """The dispatcher could not deliver a payload."""


class UnsatisfiableScheduleError(SchedulingError):
    """A schedule has no computable next occurrence."""
