class RelayError(Exception):
    """Base class for relay failures."""


class ConfigError(RelayError):
    pass


class EmptyPlaylistError(RelayError):
    """The catalog produced nothing playable; the relay refuses to start."""


class FetchError(RelayError):
    """A clip could not be downloaded to local storage."""

    def __init__(self, message, locator=None, returncode=None):
        super().__init__(message)
        self.locator = locator
        self.returncode = returncode


class PublishError(RelayError):
    """The publish process could not be started."""
