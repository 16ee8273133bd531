"""Exception types raised by brokershift."""


class BrokerShiftError(Exception):
    """Base class for all brokershift errors."""


class ConfigurationError(BrokerShiftError):
    """Input data describes an invalid configuration."""


class SchedulingError(BrokerShiftError):
    """The engine reached an inconsistent state during a generation attempt."""


class StorageError(BrokerShiftError):
    """A repository failed to read or write scheduling data."""
