from __future__ import annotations

from typing import Optional


class LoadError(RuntimeError):
    """Base error for everything that can go wrong while loading connections."""


class StoreUnreachableError(LoadError):
    """Connecting to or querying the remote store failed."""


class StoreConfigurationError(LoadError):
    """The store holds no usable metadata and bootstrapping it failed."""


class AuthenticationDeclinedError(LoadError):
    """No candidate password could decrypt the store's protection marker."""


class VersionIncompatibleError(LoadError):
    """The store's schema version is not one this loader understands."""


class DeserializationError(LoadError):
    """Raw rows or local payloads could not be turned into a tree."""


class CacheWriteError(LoadError):
    """Writing the local cache file failed."""


class NoFallbackAvailableError(LoadError):
    """There is no local cache file to fall back to."""


class CacheReadError(LoadError):
    """A local cache file exists but could not be read or parsed.

    When raised during fallback, `remote_error` holds the failure that made
    the loader fall back in the first place.
    """

    def __init__(self, message: str, *, remote_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.remote_error = remote_error
