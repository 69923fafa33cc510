class ConfigError(Exception):
    """Required configuration is missing or invalid."""


class StoreError(Exception):
    """The record store could not be reached or answered unexpectedly."""


class RecordNotFound(StoreError):
    """No record matched the query."""


class StoreConflict(StoreError):
    """A record with the same unique key already exists."""
