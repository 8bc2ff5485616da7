"""Exceptions raised by the usage tracker."""


class UsageTrackerError(Exception):
    """Base exception for usage tracker errors."""


class StorageFailure(UsageTrackerError):
    """A persisted read or write was rejected; the operation is abandoned."""


class InvalidRequest(UsageTrackerError):
    """A request payload was malformed or named an unknown action."""
