"""Exception types raised by the restore pipeline."""


class RestoreError(Exception):
    """Base class for every fatal restore condition."""


class ConfigError(RestoreError):
    """Missing or invalid configuration."""


class HarvestError(RestoreError):
    """Binary log source directory problems or file I/O failures."""


class LockError(RestoreError):
    """Another restore run holds the lock."""


class CommandError(RestoreError):
    """An external command failed, timed out, or could not be started."""

    def __init__(self, purpose, result):
        self.purpose = purpose
        self.result = result
        super().__init__(f"{purpose}: {result.get('error') or 'command failed'}")
